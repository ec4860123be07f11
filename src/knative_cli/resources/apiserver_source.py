"""ApiServerSource resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from ..errors import UsageError
from ..printers import (
    DescribeWriter,
    Printable,
    PrintOptions,
    conditions_of,
    conditions_value,
    non_ready_reason,
    ready_condition,
    translate_timestamp_since,
)
from ..refs import sink_to_text
from ..utils import added_and_removed, map_from_array, nested_get
from .base import CloudEventOverrides, Destination, ResourceDefinition, ResourceModel, editable_copy, object_metadata

APISERVERSOURCE_API_VERSION = "sources.knative.dev/v1"

REFERENCE_MODE = "Reference"
RESOURCE_MODE = "Resource"
# older releases called the reference mode "Ref"
MODE_ALIASES = {"Ref": REFERENCE_MODE, REFERENCE_MODE: REFERENCE_MODE, RESOURCE_MODE: RESOURCE_MODE}

RESOURCE_FORMAT = "Kind:APIVersion[:key1=value1,key2=value2]"


def normalize_mode(mode: str) -> str:
    try:
        return MODE_ALIASES[mode]
    except KeyError:
        raise UsageError(
            f"invalid value: {mode}. Accepted values are: {REFERENCE_MODE}|{RESOURCE_MODE}"
        ) from None


class WatchedResource(ResourceModel):
    """Kind and apiVersion of objects to watch, optionally narrowed by labels."""

    kind: str
    api_version: str = Field(alias="apiVersion")
    selector: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def parse(cls, value: str) -> "WatchedResource":
        parts = value.split(":", 2)
        if not parts[0]:
            raise UsageError(f"cannot find 'Kind' part in resource specification {value} (expected: <{RESOURCE_FORMAT}>)")
        if len(parts) < 2 or not parts[1]:
            raise UsageError(
                f"cannot find 'APIVersion' part in resource specification {value} (expected: <{RESOURCE_FORMAT}>)"
            )
        selector: Dict[str, str] = {}
        if len(parts) == 3 and parts[2]:
            selector = map_from_array(parts[2].split(","), allow_singles=False)
        return cls(kind=parts[0], api_version=parts[1], selector=selector)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatchedResource":
        return cls(
            kind=data.get("kind", ""),
            api_version=data.get("apiVersion", ""),
            selector=nested_get(data, "selector", "matchLabels", default={}),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind}
        if self.selector:
            data["selector"] = {"matchLabels": dict(self.selector)}
        return data

    def as_text(self) -> str:
        text = f"{self.kind}:{self.api_version}"
        if self.selector:
            text += ":" + ",".join(f"{key}={self.selector[key]}" for key in sorted(self.selector))
        return text


def update_resources(existing: List[Dict[str, Any]], entries: List[str]) -> List[Dict[str, Any]]:
    """Append added resources, then drop the ones given with a trailing ``-``."""

    added, removed = added_and_removed(entries)
    resources = [WatchedResource.from_dict(entry) for entry in existing]
    resources.extend(WatchedResource.parse(entry) for entry in added)
    for entry in removed:
        target = WatchedResource.parse(entry)
        if target not in resources:
            raise UsageError(f"cannot find resource {target.as_text()} to remove")
        resources.remove(target)
    return [resource.to_dict() for resource in resources]


class ApiServerSourceConfig(ResourceModel):
    """Configuration for creating or updating an ApiServerSource."""

    name: str
    namespace: Optional[str] = None
    service_account: Optional[str] = None
    mode: Optional[str] = None
    resources: List[str] = Field(default_factory=list)
    sink: Optional[Destination] = None
    ce_overrides: CloudEventOverrides = Field(default_factory=CloudEventOverrides)

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        spec: Dict[str, Any] = {"mode": normalize_mode(self.mode or REFERENCE_MODE)}
        self._fill_spec(spec)
        return ResourceDefinition(
            api_version=APISERVERSOURCE_API_VERSION,
            kind="ApiServerSource",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        if self.mode:
            document["spec"]["mode"] = normalize_mode(self.mode)
        self._fill_spec(document["spec"])
        return document

    def _fill_spec(self, spec: Dict[str, Any]) -> None:
        if self.service_account:
            spec["serviceAccountName"] = self.service_account
        if self.resources:
            spec["resources"] = update_resources(spec.get("resources") or [], self.resources)
        if self.sink is not None:
            spec["sink"] = self.sink.to_dict()
        self.ce_overrides.apply(spec)


class ApiServerSourceView(Printable):
    kind = "ApiServerSource"
    columns = ("Name", "Resources", "Sink", "Age", "Conditions", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        resources = [WatchedResource.from_dict(entry).as_text() for entry in nested_get(item, "spec", "resources", default=[])]
        return [
            nested_get(item, "metadata", "name", default=""),
            ",".join(resources),
            sink_to_text(nested_get(item, "spec", "sink"), options.current_namespace, options.prefixes),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("ServiceAccountName", nested_get(item, "spec", "serviceAccountName", default=""))
        writer.write_attribute("EventMode", nested_get(item, "spec", "mode", default=""))
        resources = nested_get(item, "spec", "resources", default=[])
        if resources:
            writer.write_line()
            section = writer.write_attribute("Resources")
            for entry in resources:
                resource = WatchedResource.from_dict(entry)
                section.write_attribute("Kind", f"{resource.kind} ({resource.api_version})")
                if resource.selector:
                    selector = ",".join(f"{k}={v}" for k, v in sorted(resource.selector.items()))
                    section.write_attribute("Selector", selector)
        writer.write_line()
        writer.write_sink("Sink", nested_get(item, "spec", "sink"))
        writer.write_ce_overrides(nested_get(item, "spec", "ceOverrides", "extensions"))
        writer.write_conditions(conditions_of(item), options.details)
