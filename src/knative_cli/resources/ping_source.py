"""PingSource resource builder and view."""
from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..errors import InvalidEncodingError
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
from ..utils import nested_get
from .base import CloudEventOverrides, Destination, ResourceDefinition, ResourceModel, editable_copy, object_metadata

PINGSOURCE_API_VERSION = "sources.knative.dev/v1"

TEXT_ENCODING = "text"
BASE64_ENCODING = "base64"


def looks_like_base64(value: str) -> bool:
    """True when ``value`` is valid padded standard base64."""

    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def select_payload(data: str, encoding: Optional[str]) -> Tuple[str, str]:
    """Return ``(data, dataBase64)`` with exactly one of them filled for non-empty data."""

    if not encoding:
        if data and looks_like_base64(data):
            return "", data
        return data, ""
    if encoding == BASE64_ENCODING:
        return "", data
    if encoding == TEXT_ENCODING:
        return data, ""
    raise InvalidEncodingError(encoding)


class PingSourceConfig(ResourceModel):
    """Configuration for creating or updating a PingSource."""

    name: str
    namespace: Optional[str] = None
    schedule: Optional[str] = None
    data: Optional[str] = None
    encoding: Optional[str] = None
    timezone: Optional[str] = None
    sink: Optional[Destination] = None
    ce_overrides: CloudEventOverrides = Field(default_factory=CloudEventOverrides)

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        spec: Dict[str, Any] = {}
        self._fill_spec(spec)
        return ResourceDefinition(
            api_version=PINGSOURCE_API_VERSION,
            kind="PingSource",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        self._fill_spec(document["spec"])
        return document

    def _fill_spec(self, spec: Dict[str, Any]) -> None:
        if self.schedule is not None:
            spec["schedule"] = self.schedule
        if self.timezone is not None:
            spec["timezone"] = self.timezone
        if self.data is not None:
            data, data_base64 = select_payload(self.data, self.encoding)
            spec.pop("data", None)
            spec.pop("dataBase64", None)
            if data:
                spec["data"] = data
            if data_base64:
                spec["dataBase64"] = data_base64
        elif self.encoding:
            # validate the flag even when no new payload is given
            select_payload("", self.encoding)
        if self.sink is not None:
            spec["sink"] = self.sink.to_dict()
        self.ce_overrides.apply(spec)


class PingSourceView(Printable):
    kind = "PingSource"
    columns = ("Name", "Schedule", "Sink", "Age", "Conditions", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "spec", "schedule", default=""),
            sink_to_text(nested_get(item, "spec", "sink"), options.current_namespace, options.prefixes),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("Schedule", nested_get(item, "spec", "schedule", default=""))
        if nested_get(item, "spec", "dataBase64"):
            writer.write_attribute("DataBase64", item["spec"]["dataBase64"])
        else:
            writer.write_attribute("Data", nested_get(item, "spec", "data", default=""))
        writer.write_line()
        writer.write_sink("Sink", nested_get(item, "spec", "sink"))
        writer.write_ce_overrides(nested_get(item, "spec", "ceOverrides", "extensions"))
        writer.write_conditions(conditions_of(item), options.details)
