"""SinkBinding resource builder and view."""
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
from ..refs import sink_to_text, split_group_version
from ..utils import nested_get
from .base import CloudEventOverrides, Destination, ResourceDefinition, ResourceModel, editable_copy, object_metadata

SINKBINDING_API_VERSION = "sources.knative.dev/v1"


def parse_selector(value: str) -> Dict[str, str]:
    selector: Dict[str, str] = {}
    for part in value.split(","):
        key, sep, label = part.partition("=")
        if not sep:
            raise UsageError(f"invalid subject label selector '{value}'. format: key1=value,key2=value")
        selector[key] = label
    return selector


class Subject(ResourceModel):
    """The PodSpecable object (or objects, by labels) a binding applies to."""

    kind: str
    api_version: str = Field(alias="apiVersion")
    name: Optional[str] = None
    namespace: Optional[str] = None
    selector: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def parse(cls, value: str) -> "Subject":
        """Parse ``Kind:apiVersion:name`` or ``Kind:apiVersion:key=value,...``."""

        parts = value.split(":", 2)
        if len(parts) < 3:
            raise UsageError(f"invalid subject argument '{value}': not in format kind:api/version:nameOrSelector")
        kind, api_version, target = parts
        try:
            split_group_version(api_version)
        except ValueError as exc:
            raise UsageError(str(exc)) from exc
        if not target:
            raise UsageError(f"invalid subject argument '{value}': name or label selector required")
        if "=" in target:
            return cls(kind=kind, api_version=api_version, selector=parse_selector(target))
        return cls(kind=kind, api_version=api_version, name=target)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.name:
            data["name"] = self.name
        if self.selector:
            data["selector"] = {"matchLabels": dict(self.selector)}
        return data


def subject_text(subject: Optional[Dict[str, Any]]) -> str:
    if not subject:
        return ""
    target = subject.get("name")
    if not target:
        labels = nested_get(subject, "selector", "matchLabels", default={})
        target = ",".join(f"{key}={labels[key]}" for key in sorted(labels))
    return f"{subject.get('kind', '')}:{subject.get('apiVersion', '')}:{target}"


class SinkBindingConfig(ResourceModel):
    """Configuration for creating or updating a SinkBinding."""

    name: str
    namespace: Optional[str] = None
    subject: Optional[Subject] = None
    sink: Optional[Destination] = None
    ce_overrides: CloudEventOverrides = Field(default_factory=CloudEventOverrides)

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        if self.subject is None:
            raise UsageError("a subject is required to create a sink binding")
        spec: Dict[str, Any] = {}
        self._fill_spec(spec)
        return ResourceDefinition(
            api_version=SINKBINDING_API_VERSION,
            kind="SinkBinding",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        self._fill_spec(document["spec"])
        return document

    def _fill_spec(self, spec: Dict[str, Any]) -> None:
        if self.subject is not None:
            spec["subject"] = self.subject.to_dict()
        if self.sink is not None:
            spec["sink"] = self.sink.to_dict()
        self.ce_overrides.apply(spec)


class SinkBindingView(Printable):
    kind = "SinkBinding"
    columns = ("Name", "Subject", "Sink", "Age", "Conditions", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            subject_text(nested_get(item, "spec", "subject")),
            sink_to_text(nested_get(item, "spec", "sink"), options.current_namespace, options.prefixes),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        subject = nested_get(item, "spec", "subject")
        if subject:
            section = writer.write_attribute("Subject")
            if subject.get("namespace"):
                section.write_attribute("Namespace", subject["namespace"])
            if subject.get("name"):
                section.write_attribute("Name", subject["name"])
            section.write_attribute("Resource", f"{subject.get('kind', '')} ({subject.get('apiVersion', '')})")
            labels = nested_get(subject, "selector", "matchLabels", default={})
            if labels:
                selector = section.write_attribute("Selector")
                for key in sorted(labels):
                    selector.write_attribute(key, labels[key])
        writer.write_line()
        writer.write_sink("Sink", nested_get(item, "spec", "sink"))
        writer.write_ce_overrides(nested_get(item, "spec", "ceOverrides", "extensions"))
        writer.write_conditions(conditions_of(item), options.details)
