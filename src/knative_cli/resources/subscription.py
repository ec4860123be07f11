"""Subscription resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from ..config import ChannelTypeMapping
from ..printers import (
    DescribeWriter,
    Printable,
    PrintOptions,
    conditions_of,
    non_ready_reason,
    ready_condition,
)
from ..refs import sink_to_text
from ..utils import nested_get
from .base import Destination, KReference, ResourceDefinition, ResourceModel, editable_copy, object_metadata
from .channel import CHANNEL_API_VERSION, channel_type_aliases

SUBSCRIPTION_API_VERSION = "messaging.knative.dev/v1"


def parse_channel_ref(value: str, mappings: Iterable[ChannelTypeMapping] = ()) -> KReference:
    """``NAME`` refers to a generic Channel, ``ALIAS:NAME`` to a typed channel."""

    alias, sep, name = value.partition(":")
    if not sep:
        return KReference(kind="Channel", api_version=CHANNEL_API_VERSION, name=value)
    channel_type = channel_type_aliases(mappings).get(alias)
    if channel_type is None:
        return KReference(kind="Channel", api_version=CHANNEL_API_VERSION, name=name)
    return KReference(kind=channel_type.kind, api_version=channel_type.api_version, name=name)


class SubscriptionConfig(ResourceModel):
    """Configuration for creating or updating a Subscription."""

    name: str
    namespace: Optional[str] = None
    channel: Optional[KReference] = None
    subscriber: Optional[Destination] = None
    reply: Optional[Destination] = None
    dead_letter_sink: Optional[Destination] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        spec: Dict[str, Any] = {}
        self._fill_spec(spec)
        return ResourceDefinition(
            api_version=SUBSCRIPTION_API_VERSION,
            kind="Subscription",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        self._fill_spec(document["spec"])
        return document

    def _fill_spec(self, spec: Dict[str, Any]) -> None:
        if self.channel is not None:
            spec["channel"] = self.channel.to_dict()
        if self.subscriber is not None:
            spec["subscriber"] = self.subscriber.to_dict()
        if self.reply is not None:
            spec["reply"] = self.reply.to_dict()
        if self.dead_letter_sink is not None:
            spec.setdefault("delivery", {})["deadLetterSink"] = self.dead_letter_sink.to_dict()


class SubscriptionView(Printable):
    kind = "Subscription"
    columns = ("Name", "Channel", "Subscriber", "Reply", "Dead Letter Sink", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        namespace = options.current_namespace
        channel = nested_get(item, "spec", "channel", default={})
        return [
            nested_get(item, "metadata", "name", default=""),
            f"{channel.get('kind', '')}:{channel.get('name', '')}" if channel else "",
            sink_to_text(nested_get(item, "spec", "subscriber"), namespace, options.prefixes),
            sink_to_text(nested_get(item, "spec", "reply"), namespace, options.prefixes),
            sink_to_text(nested_get(item, "spec", "delivery", "deadLetterSink"), namespace, options.prefixes),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        channel = nested_get(item, "spec", "channel")
        if channel:
            writer.write_attribute("Channel", f"{channel.get('kind', '')}:{channel.get('name', '')} ({channel.get('apiVersion', '')})")
        writer.write_sink("Subscriber", nested_get(item, "spec", "subscriber"))
        writer.write_sink("Reply", nested_get(item, "spec", "reply"))
        writer.write_sink("DeadLetterSink", nested_get(item, "spec", "delivery", "deadLetterSink"))
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return None

