"""Broker resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

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
from ..utils import nested_get
from .base import Destination, ResourceDefinition, ResourceModel, editable_copy, object_metadata

BROKER_API_VERSION = "eventing.knative.dev/v1"
BROKER_CLASS_ANNOTATION = "eventing.knative.dev/broker.class"


class BrokerConfig(ResourceModel):
    """Configuration for creating or updating a Broker."""

    name: str
    namespace: Optional[str] = None
    broker_class: Optional[str] = None
    dead_letter_sink: Optional[Destination] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        annotations = {BROKER_CLASS_ANNOTATION: self.broker_class} if self.broker_class else None
        spec: Dict[str, Any] = {}
        if self.dead_letter_sink is not None:
            spec["delivery"] = {"deadLetterSink": self.dead_letter_sink.to_dict()}
        return ResourceDefinition(
            api_version=BROKER_API_VERSION,
            kind="Broker",
            metadata=object_metadata(self.name, self.namespace or default_namespace, annotations=annotations),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        if self.dead_letter_sink is not None:
            document["spec"].setdefault("delivery", {})["deadLetterSink"] = self.dead_letter_sink.to_dict()
        return document


class BrokerView(Printable):
    kind = "Broker"
    columns = ("Name", "URL", "Age", "Conditions", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "status", "address", "url", default=""),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        broker_class = nested_get(item, "metadata", "annotations", BROKER_CLASS_ANNOTATION)
        if broker_class:
            writer.write_attribute("Class", broker_class)
        writer.write_line()
        address = writer.write_attribute("Address")
        address.write_attribute("URL", nested_get(item, "status", "address", "url", default=""))
        writer.write_sink("DeadLetterSink", nested_get(item, "spec", "delivery", "deadLetterSink"))
        writer.write_conditions(conditions_of(item), options.details)
