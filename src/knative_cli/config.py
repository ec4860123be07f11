"""Configuration models and helpers for the kn CLI."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError


class KubeParams(BaseModel):
    """Connection parameters used to build clients for the cluster."""

    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    cluster: Optional[str] = None
    as_user: Optional[str] = None
    as_uid: Optional[str] = None
    as_groups: List[str] = Field(default_factory=list)
    log_http: bool = False


class SinkMapping(BaseModel):
    """Custom sink prefix, e.g. ``prefix: svc`` pointing to core ``services``."""

    prefix: str
    resource: str
    group: str = ""
    version: str

    @property
    def api_group(self) -> str:
        return "" if self.group == "core" else self.group


class ChannelTypeMapping(BaseModel):
    """Alias for a channel type usable with ``channel create --type``."""

    alias: str
    kind: str
    group: str
    version: str


class NamedValue(BaseModel):
    name: str
    value: str = ""


class Profile(BaseModel):
    """Labels and annotations applied to a service by ``--profile``."""

    labels: List[NamedValue] = Field(default_factory=list)
    annotations: List[NamedValue] = Field(default_factory=list)

    def label_map(self) -> Dict[str, str]:
        return {entry.name: entry.value for entry in self.labels}

    def annotation_map(self) -> Dict[str, str]:
        return {entry.name: entry.value for entry in self.annotations}


class EventingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sink_mappings: List[SinkMapping] = Field(default_factory=list, alias="sink-mappings")
    channel_type_mappings: List[ChannelTypeMapping] = Field(default_factory=list, alias="channel-type-mappings")


BUILTIN_PROFILES: Dict[str, Profile] = {
    "istio": Profile(
        annotations=[
            NamedValue(name="sidecar.istio.io/inject", value="true"),
            NamedValue(name="sidecar.istio.io/rewriteAppHTTPProbers", value="true"),
            NamedValue(name="serving.knative.openshift.io/enablePassthrough", value="true"),
        ]
    ),
}


def default_config_path() -> Path:
    """Location of the user configuration file."""

    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_home:
        return Path(xdg_home) / "kn" / "config.yaml"
    return Path.home() / ".config" / "kn" / "config.yaml"


class CliConfig(BaseModel):
    """Optional user configuration read from ``~/.config/kn/config.yaml``."""

    model_config = ConfigDict(populate_by_name=True)

    config_file: Optional[str] = Field(default=None, exclude=True)
    eventing: EventingConfig = Field(default_factory=EventingConfig)
    profiles: Dict[str, Profile] = Field(default_factory=dict)
    # legacy top level key for sink mappings
    sink: List[SinkMapping] = Field(default_factory=list)

    @property
    def sink_mappings(self) -> List[SinkMapping]:
        return self.eventing.sink_mappings or self.sink

    @property
    def channel_type_mappings(self) -> List[ChannelTypeMapping]:
        return self.eventing.channel_type_mappings

    def profile(self, name: str) -> Optional[Profile]:
        if name in self.profiles:
            return self.profiles[name]
        return BUILTIN_PROFILES.get(name)

    @classmethod
    def from_file(cls, path: Optional[str | Path] = None) -> "CliConfig":
        """Load the configuration, tolerating a missing default file."""

        explicit = path is not None
        document_path = Path(path) if explicit else default_config_path()
        if not document_path.exists():
            if explicit:
                raise ConfigError(f"config file '{document_path}' does not exist")
            return cls()
        data = yaml.safe_load(document_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"configuration file {document_path} must contain a mapping at the top level")
        try:
            config = cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"error while parsing configuration file {document_path}: {exc}") from exc
        config.config_file = str(document_path)
        return config
