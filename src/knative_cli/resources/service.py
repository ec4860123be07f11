"""Knative Service resource builder and view."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from ..config import Profile
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
from ..utils import apply_overrides, nested_get
from .base import ResourceDefinition, ResourceModel, editable_copy

KSERVICE_API_VERSION = "serving.knative.dev/v1"

MIN_SCALE_ANNOTATION = "autoscaling.knative.dev/min-scale"
MAX_SCALE_ANNOTATION = "autoscaling.knative.dev/max-scale"


def parse_port(value: str) -> Dict[str, Any]:
    """``8080`` or ``NAME:8080`` (e.g. ``h2c:8080``) into a container port."""

    name, sep, number = value.rpartition(":")
    try:
        port = int(number)
    except ValueError:
        raise UsageError(f"expected format for --port is NAME:PORT or PORT, got {value!r}") from None
    data: Dict[str, Any] = {"containerPort": port}
    if sep and name:
        data["name"] = name
    return data


def update_env(existing: List[Dict[str, Any]], updates: Dict[str, str], removals: List[str]) -> List[Dict[str, Any]]:
    """Replace variables in place, append new ones, then drop removed names."""

    env = [dict(entry) for entry in existing]
    names = {entry.get("name"): index for index, entry in enumerate(env)}
    for key in sorted(updates):
        if key in names:
            env[names[key]] = {"name": key, "value": updates[key]}
        else:
            env.append({"name": key, "value": updates[key]})
    return [entry for entry in env if entry.get("name") not in set(removals)]


class ServiceConfig(ResourceModel):
    """Configuration for creating or updating a Knative Service.

    Map valued fields carry additions; the matching ``*_removals`` list names
    keys to drop afterwards. Profiles contribute labels and annotations to the
    revision template; removing a profile drops every key it defines.
    """

    name: str
    namespace: Optional[str] = None
    image: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    env_removals: List[str] = Field(default_factory=list)
    port: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    label_removals: List[str] = Field(default_factory=list)
    annotations: Dict[str, str] = Field(default_factory=dict)
    annotation_removals: List[str] = Field(default_factory=list)
    service_account: Optional[str] = None
    profiles: List[Profile] = Field(default_factory=list)
    removed_profiles: List[Profile] = Field(default_factory=list)
    scale_min: Optional[int] = None
    scale_max: Optional[int] = None
    concurrency_limit: Optional[int] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        if not self.image:
            raise UsageError("'service create' requires the image name to run provided with the --image option")
        metadata: Dict[str, Any] = {"name": self.name}
        namespace = self.namespace or default_namespace
        if namespace:
            metadata["namespace"] = namespace
        document = {"metadata": metadata, "spec": {}}
        self._apply(document)
        return ResourceDefinition(
            api_version=KSERVICE_API_VERSION,
            kind="Service",
            metadata=document["metadata"],
            spec=document["spec"],
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        self._apply(document)
        return document

    def _apply(self, document: Dict[str, Any]) -> None:
        if self.scale_min is not None and self.scale_max is not None and self.scale_min > self.scale_max:
            raise UsageError(f"max-scale ({self.scale_max}) must be greater than or equal to min-scale ({self.scale_min})")
        metadata = document["metadata"]
        template = document["spec"].setdefault("template", {})
        template_metadata = template.setdefault("metadata", {})
        pod_spec = template.setdefault("spec", {})
        containers = pod_spec.setdefault("containers", [])
        if not containers:
            containers.append({})
        container = containers[0]

        if self.image:
            container["image"] = self.image
        if self.env or self.env_removals:
            env = update_env(container.get("env") or [], self.env, self.env_removals)
            if env:
                container["env"] = env
            else:
                container.pop("env", None)
        if self.port:
            container["ports"] = [parse_port(self.port)]
        if self.service_account is not None:
            pod_spec["serviceAccountName"] = self.service_account
        if self.concurrency_limit is not None:
            pod_spec["containerConcurrency"] = self.concurrency_limit

        template_annotations: Dict[str, str] = {}
        if self.scale_min is not None:
            template_annotations[MIN_SCALE_ANNOTATION] = str(self.scale_min)
        if self.scale_max is not None:
            template_annotations[MAX_SCALE_ANNOTATION] = str(self.scale_max)

        template_labels: Dict[str, str] = {}
        removed_labels: List[str] = []
        removed_annotations: List[str] = []
        for profile in self.removed_profiles:
            removed_labels.extend(profile.label_map())
            removed_annotations.extend(profile.annotation_map())
        for profile in self.profiles:
            template_labels.update(profile.label_map())
            template_annotations.update(profile.annotation_map())

        _set_map(metadata, "labels", apply_overrides(metadata.get("labels"), self.labels, self.label_removals))
        _set_map(
            metadata,
            "annotations",
            apply_overrides(metadata.get("annotations"), self.annotations, self.annotation_removals),
        )
        template_labels.update(self.labels)
        template_annotations.update(self.annotations)
        _set_map(
            template_metadata,
            "labels",
            apply_overrides(template_metadata.get("labels"), template_labels, removed_labels + self.label_removals),
        )
        _set_map(
            template_metadata,
            "annotations",
            apply_overrides(
                template_metadata.get("annotations"), template_annotations, removed_annotations + self.annotation_removals
            ),
        )
        if not template_metadata:
            template.pop("metadata", None)


def _set_map(target: Dict[str, Any], key: str, values: Dict[str, str]) -> None:
    if values:
        target[key] = values
    else:
        target.pop(key, None)


class ServiceView(Printable):
    kind = "Service"
    columns = ("Name", "URL", "Latest", "Age", "Conditions", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "status", "url", default=""),
            nested_get(item, "status", "latestCreatedRevisionName", default=""),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("URL", nested_get(item, "status", "url", default=""))
        account = nested_get(item, "spec", "template", "spec", "serviceAccountName")
        if account:
            writer.write_attribute("Service Account", account)
        container = (nested_get(item, "spec", "template", "spec", "containers", default=[]) or [{}])[0]
        writer.write_attribute("Image", container.get("image", ""))
        env = container.get("env") or []
        writer.write_slice([f"{entry.get('name')}={entry.get('value', '')}" for entry in env], "Env", options.details)
        traffic = nested_get(item, "status", "traffic", default=[])
        if traffic:
            writer.write_line()
            section = writer.write_attribute("Revisions")
            for target in traffic:
                tag = f" #{target['tag']}" if target.get("tag") else ""
                revision = target.get("revisionName", "")
                if target.get("latestRevision"):
                    revision = f"@latest ({revision})"
                section.write_line(f"{target.get('percent', 0)}%  {revision}{tag}")
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return nested_get(item, "status", "url")


class RevisionView(Printable):
    kind = "Revision"
    columns = ("Name", "Service", "Traffic", "Tags", "Generation", "Age", "Conditions", "Ready", "Reason")

    SERVICE_LABEL = "serving.knative.dev/service"
    GENERATION_LABEL = "serving.knative.dev/configurationGeneration"

    def __init__(self, traffic: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        # revision name -> {"percent": int, "tags": [...]} as reported by the services
        self.traffic = traffic or {}

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        name = nested_get(item, "metadata", "name", default="")
        share = self.traffic.get(name, {})
        percent = share.get("percent")
        return [
            name,
            nested_get(item, "metadata", "labels", self.SERVICE_LABEL, default=""),
            f"{percent}%" if percent else "",
            ",".join(share.get("tags", [])),
            nested_get(item, "metadata", "labels", self.GENERATION_LABEL, default=""),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            conditions_value(conditions),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        container = (nested_get(item, "spec", "containers", default=[]) or [{}])[0]
        writer.write_attribute("Image", container.get("image", ""))
        writer.write_attribute("Service", nested_get(item, "metadata", "labels", self.SERVICE_LABEL, default=""))
        writer.write_conditions(conditions_of(item), options.details)

    @staticmethod
    def traffic_by_revision(services: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        shares: Dict[str, Dict[str, Any]] = {}
        for service in services:
            for target in nested_get(service, "status", "traffic", default=[]):
                revision = target.get("revisionName")
                if not revision:
                    continue
                share = shares.setdefault(revision, {"percent": 0, "tags": []})
                share["percent"] += target.get("percent") or 0
                if target.get("tag"):
                    share["tags"].append(target["tag"])
        return shares


class RouteView(Printable):
    kind = "Route"
    columns = ("Name", "URL", "Ready")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "status", "url", default=""),
            ready_condition(conditions_of(item)),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("URL", nested_get(item, "status", "url", default=""))
        address = nested_get(item, "status", "address", "url")
        if address:
            writer.write_attribute("Address", address)
        traffic = nested_get(item, "status", "traffic", default=[])
        if traffic:
            section = writer.write_attribute("Traffic Targets")
            for target in traffic:
                line = f"{target.get('percent', 0)}%  {target.get('revisionName', '')}"
                if target.get("tag"):
                    line += f" #{target['tag']}"
                section.write_line(line)
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return nested_get(item, "status", "url")

