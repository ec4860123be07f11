"""Shared resource definitions for kn builders."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils import apply_overrides, nested_get


class ResourceModel(BaseModel):
    """Shared base model for kn resource builders."""

    model_config = ConfigDict(populate_by_name=True)


@dataclass(frozen=True)
class ResourceDefinition:
    """Represents a Kubernetes resource manifest."""

    api_version: str
    kind: str
    metadata: Dict[str, Any]
    spec: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata,
        }
        if self.spec is not None:
            body["spec"] = self.spec
        if self.extra:
            body.update(self.extra)
        return body

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get("name")

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.get("namespace")


class KReference(ResourceModel):
    """Reference to an addressable object inside the cluster."""

    kind: str
    api_version: str = Field(alias="apiVersion")
    name: str
    namespace: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        data = {"kind": self.kind, "apiVersion": self.api_version, "name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        return data


class Destination(ResourceModel):
    """Sink address: either a cluster object reference or a URI."""

    ref: Optional[KReference] = None
    uri: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.ref is not None:
            data["ref"] = self.ref.to_dict()
        if self.uri:
            data["uri"] = self.uri
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Destination"]:
        if not data:
            return None
        return cls.model_validate(data)


class CloudEventOverrides(ResourceModel):
    """Extensions added to (and removed from) events emitted by a source."""

    add: Dict[str, str] = Field(default_factory=dict)
    remove: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.add and not self.remove

    def apply(self, spec: Dict[str, Any]) -> None:
        """Merge into ``spec.ceOverrides.extensions``: add first, then remove."""

        if self.is_empty():
            return
        existing = nested_get(spec, "ceOverrides", "extensions", default={})
        extensions = apply_overrides(existing, self.add, self.remove)
        spec["ceOverrides"] = {"extensions": extensions}


def object_metadata(
    name: str,
    namespace: Optional[str],
    labels: Optional[Dict[str, str]] = None,
    annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)
    return metadata


def editable_copy(existing: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy of a server document with a guaranteed ``spec`` mapping."""

    document = copy.deepcopy(existing)
    if not isinstance(document.get("spec"), dict):
        document["spec"] = {}
    document.setdefault("metadata", {})
    return document
