"""Custom resource definitions used to discover channel and source types."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..printers import DescribeWriter, Printable, PrintOptions, conditions_of, ready_condition, translate_timestamp_since
from ..refs import GVR, guess_resource, sink_to_text
from ..utils import nested_get

CRD_API_VERSION = "apiextensions.k8s.io/v1"

CHANNEL_TYPE_SELECTOR = "messaging.knative.dev/subscribable=true,duck.knative.dev/addressable=true"
SOURCE_TYPE_SELECTOR = "duck.knative.dev/source=true"

TYPE_DESCRIPTIONS: Dict[str, str] = {
    "InMemoryChannel": "The events are stored in memory",
    "KafkaChannel": "The events are stored in a Kafka cluster (must be installed separately)",
    "ApiServerSource": "Watch and send Kubernetes API events to addressable",
    "ContainerSource": "Generate events by Container image and send to addressable",
    "PingSource": "Send periodically ping events to addressable",
    "SinkBinding": "Binding for connecting a PodSpecable to addressable",
}


def crd_from_gvk(group: str, version: str, kind: str) -> Dict[str, Any]:
    """Minimal CRD document describing a type that is known to be served."""

    plural = guess_resource(kind)
    return {
        "apiVersion": CRD_API_VERSION,
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{plural}.{group}"},
        "spec": {
            "group": group,
            "names": {"kind": kind, "plural": plural},
            "versions": [{"name": version, "served": True}],
        },
    }


def crd_list(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"apiVersion": CRD_API_VERSION, "kind": "CustomResourceDefinitionList", "items": items}


class CrdTypeView(Printable):
    kind = "CustomResourceDefinition"
    columns = ("Type", "Name", "Description")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        kind = nested_get(item, "spec", "names", "kind", default="")
        return [kind, nested_get(item, "metadata", "name", default=""), TYPE_DESCRIPTIONS.get(kind, "")]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_attribute("Name", nested_get(item, "metadata", "name", default=""))
        writer.write_attribute("Type", nested_get(item, "spec", "names", "kind", default=""))
        writer.write_attribute("Group", nested_get(item, "spec", "group", default=""))
        writer.write_attribute("Age", translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")))

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return None


def gvr_from_crd(crd: Dict[str, Any]) -> GVR:
    """Served (storage first) version of a CRD as a GVR."""

    versions = nested_get(crd, "spec", "versions", default=[])
    served = [entry for entry in versions if entry.get("served", True)]
    served.sort(key=lambda entry: not entry.get("storage", False))
    version = served[0]["name"] if served else nested_get(crd, "spec", "version", default="")
    return GVR(
        group=nested_get(crd, "spec", "group", default=""),
        version=version,
        resource=nested_get(crd, "spec", "names", "plural", default=""),
    )


class SourceSummaryView(Printable):
    """Any event source, as listed by ``source list``."""

    kind = "Source"
    columns = ("Name", "Type", "Resource", "Sink", "Ready")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        kind = item.get("kind", "")
        group = (item.get("apiVersion") or "").split("/")[0]
        return [
            nested_get(item, "metadata", "name", default=""),
            kind,
            f"{guess_resource(kind)}.{group}",
            sink_to_text(nested_get(item, "spec", "sink"), options.current_namespace, options.prefixes),
            ready_condition(conditions_of(item)),
        ]
