"""Channel resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from ..config import ChannelTypeMapping
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
from .base import ResourceDefinition, ResourceModel, object_metadata

CHANNEL_API_VERSION = "messaging.knative.dev/v1"


class ChannelType(NamedTuple):
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


BUILTIN_CHANNEL_TYPES: Dict[str, ChannelType] = {
    "imcv1beta1": ChannelType("messaging.knative.dev", "v1beta1", "InMemoryChannel"),
    "imc": ChannelType("messaging.knative.dev", "v1", "InMemoryChannel"),
}


def channel_type_aliases(mappings: Iterable[ChannelTypeMapping] = ()) -> Dict[str, ChannelType]:
    aliases = dict(BUILTIN_CHANNEL_TYPES)
    for mapping in mappings:
        aliases[mapping.alias] = ChannelType(mapping.group, mapping.version, mapping.kind)
    return aliases


def parse_channel_type(value: str, mappings: Iterable[ChannelTypeMapping] = ()) -> ChannelType:
    """Parse ``--type`` given as ``Group:Version:Kind`` or as a configured alias."""

    invalid = (
        f"incorrect value '{value}' for '--type', must be in the format 'Group:Version:Kind' "
        "or configure an alias in kn config"
    )
    parts = value.split(":")
    if len(parts) == 1:
        aliases = channel_type_aliases(mappings)
        if value in aliases:
            return aliases[value]
        raise UsageError(f"unknown channel type alias: '{value}'")
    if len(parts) != 3 or not all(parts):
        raise UsageError(invalid)
    return ChannelType(*parts)


class ChannelConfig(ResourceModel):
    """Configuration for creating a Channel."""

    name: str
    namespace: Optional[str] = None
    channel_type: Optional[ChannelType] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        spec: Dict[str, Any] = {}
        if self.channel_type is not None:
            spec["channelTemplate"] = {
                "apiVersion": self.channel_type.api_version,
                "kind": self.channel_type.kind,
            }
        return ResourceDefinition(
            api_version=CHANNEL_API_VERSION,
            kind="Channel",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )


class ChannelView(Printable):
    kind = "Channel"
    columns = ("Name", "Type", "URL", "Age", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "spec", "channelTemplate", "kind", default=""),
            nested_get(item, "status", "address", "url", default=""),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        template = nested_get(item, "spec", "channelTemplate")
        if template:
            writer.write_attribute("Type", f"{template.get('kind', '')} ({template.get('apiVersion', '')})")
        address = nested_get(item, "status", "address", "url")
        if address:
            writer.write_attribute("URL", address)
        subscribers = nested_get(item, "spec", "subscribers", default=[])
        if subscribers:
            section = writer.write_attribute("Subscribers")
            for subscriber in subscribers:
                section.write_attribute("URI", subscriber.get("subscriberUri", ""))
        writer.write_conditions(conditions_of(item), options.details)
