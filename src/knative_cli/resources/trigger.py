"""Trigger resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

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
from ..utils import apply_overrides, nested_get
from .base import Destination, ResourceDefinition, ResourceModel, editable_copy, object_metadata

TRIGGER_API_VERSION = "eventing.knative.dev/v1"
DEFAULT_BROKER = "default"


class TriggerConfig(ResourceModel):
    """Configuration for creating or updating a Trigger.

    ``filters`` are added to the attribute filter, ``removed_filters`` are
    dropped from it afterwards.
    """

    name: str
    namespace: Optional[str] = None
    broker: str = DEFAULT_BROKER
    filters: Dict[str, str] = Field(default_factory=dict)
    removed_filters: List[str] = Field(default_factory=list)
    sink: Optional[Destination] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        spec: Dict[str, Any] = {"broker": self.broker}
        self._fill_spec(spec)
        return ResourceDefinition(
            api_version=TRIGGER_API_VERSION,
            kind="Trigger",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        self._fill_spec(document["spec"])
        return document

    def _fill_spec(self, spec: Dict[str, Any]) -> None:
        if self.filters or self.removed_filters:
            attributes = apply_overrides(
                nested_get(spec, "filter", "attributes", default={}), self.filters, self.removed_filters
            )
            if attributes:
                spec["filter"] = {"attributes": attributes}
            else:
                spec.pop("filter", None)
        if self.sink is not None:
            spec["subscriber"] = self.sink.to_dict()


class TriggerView(Printable):
    kind = "Trigger"
    columns = ("Name", "Broker", "Sink", "Age", "Conditions", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "spec", "broker", default=""),
            sink_to_text(nested_get(item, "spec", "subscriber"), options.current_namespace, options.prefixes),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("Broker", nested_get(item, "spec", "broker", default=""))
        attributes = nested_get(item, "spec", "filter", "attributes", default={})
        if attributes:
            section = writer.write_attribute("Filter")
            for key in sorted(attributes):
                section.write_attribute(key, attributes[key])
        writer.write_line()
        writer.write_sink("Sink", nested_get(item, "spec", "subscriber"))
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return nested_get(item, "status", "subscriberUri")
