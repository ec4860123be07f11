"""EventType resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..errors import UsageError
from ..printers import (
    DescribeWriter,
    Printable,
    PrintOptions,
    conditions_of,
    non_ready_reason,
    ready_condition,
    translate_timestamp_since,
)
from ..utils import nested_get
from .base import KReference, ResourceDefinition, ResourceModel, object_metadata
from .broker import BROKER_API_VERSION

EVENTTYPE_API_VERSION = "eventing.knative.dev/v1beta2"


def validate_source(value: str) -> str:
    """Event sources must be absolute URIs."""

    parsed = urlparse(value)
    if not parsed.scheme:
        raise UsageError(f"cannot create eventtype, invalid source URL '{value}': must be an absolute URI")
    return value


class EventTypeConfig(ResourceModel):
    """Configuration for creating an EventType."""

    name: str
    namespace: Optional[str] = None
    event_type: str
    source: Optional[str] = None
    broker: Optional[str] = None
    reference: Optional[KReference] = None
    description: Optional[str] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        spec: Dict[str, Any] = {"type": self.event_type}
        if self.source:
            spec["source"] = validate_source(self.source)
        if self.broker:
            spec["reference"] = {"apiVersion": BROKER_API_VERSION, "kind": "Broker", "name": self.broker}
        elif self.reference is not None:
            spec["reference"] = self.reference.to_dict()
        if self.description:
            spec["description"] = self.description
        return ResourceDefinition(
            api_version=EVENTTYPE_API_VERSION,
            kind="EventType",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )


def _reference_text(item: Dict[str, Any]) -> str:
    reference = nested_get(item, "spec", "reference")
    if reference:
        return f"{reference.get('kind', '')}:{reference.get('name', '')}"
    return nested_get(item, "spec", "broker", default="")


class EventTypeView(Printable):
    kind = "EventType"
    columns = ("Name", "Type", "Source", "Reference", "Age", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "spec", "type", default=""),
            nested_get(item, "spec", "source", default=""),
            _reference_text(item),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("Type", nested_get(item, "spec", "type", default=""))
        writer.write_attribute("Source", nested_get(item, "spec", "source", default=""))
        writer.write_attribute("Reference", _reference_text(item))
        if nested_get(item, "spec", "description"):
            writer.write_attribute("Description", item["spec"]["description"])
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return None
