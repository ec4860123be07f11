"""Parsing and resolution of user supplied resource references.

A reference is written in one of these forms::

    <prefix>:<name>[:<namespace>]           ksvc:mysvc, broker:default:other-ns
    <group>/<version>/<kind>:<name>[:<ns>]  sources.knative.dev/v1/PingSource:ping
    <name>                                  uses the default prefix of the flag
    http(s)://...                           plain URL sink

Prefixes are looked up in a :class:`PrefixTable` built from the defaults
below plus the ``eventing.sink-mappings`` of the user configuration.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterator, Mapping, NamedTuple, Optional
from urllib.parse import urlparse

from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from .config import CliConfig
from .errors import SinkInvalidError, SinkRequiredError, api_message
from .resources.base import Destination, KReference

if TYPE_CHECKING:  # pragma: no cover
    from .kube import KnativeAPI


DEFAULT_SINK_PREFIX = "ksvc"


@dataclass(frozen=True)
class GVR:
    """Group/Version/Resource triple identifying a kind of API object."""

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def as_text(self) -> str:
        """Shorthand accepted back by :func:`parse_sink`."""

        return f"{self.api_version}/{self.resource}"

    @classmethod
    def from_api_version(cls, api_version: str, resource: str) -> "GVR":
        group, version = split_group_version(api_version)
        return cls(group=group, version=version, resource=resource)


KSERVICE = GVR("serving.knative.dev", "v1", "services")
KROUTE = GVR("serving.knative.dev", "v1", "routes")
BROKER = GVR("eventing.knative.dev", "v1", "brokers")
CHANNEL = GVR("messaging.knative.dev", "v1", "channels")
SERVICE = GVR("", "v1", "services")

DEFAULT_MAPPINGS: Mapping[str, GVR] = MappingProxyType(
    {
        "kservice": KSERVICE,
        "kroute": KROUTE,
        "broker": BROKER,
        "channel": CHANNEL,
        "service": SERVICE,
    }
)

# synonym -> mapping it shares its GVR with
DEFAULT_ALIASES: Mapping[str, str] = MappingProxyType({"ksvc": "kservice", "svc": "service"})

# preferred rendering, in order of precedence
CANONICAL_PREFIXES = ("ksvc", "kroute", "broker", "channel", "service")


class ParsedRef(NamedTuple):
    prefix: str
    name: str
    namespace: str

    @property
    def is_url(self) -> bool:
        return self.prefix == ""


def parse_ref(text: str, default_prefix: str = DEFAULT_SINK_PREFIX) -> ParsedRef:
    """Split a reference string into prefix, name and namespace.

    URLs come back with an empty prefix and the URL as name. Characters are
    not validated here.
    """

    if text.startswith("http://") or text.startswith("https://"):
        return ParsedRef("", text, "")
    parts = text.split(":", 2)
    if len(parts) == 1:
        return ParsedRef(default_prefix, parts[0], "")
    if len(parts) == 2:
        return ParsedRef(parts[0], parts[1], "")
    return ParsedRef(parts[0], parts[1], parts[2])


def split_group_version(group_version: str) -> tuple[str, str]:
    """Split ``group/version`` (or a bare core ``version``) into its parts."""

    if not group_version:
        return "", ""
    if "/" not in group_version:
        return "", group_version
    group, _, version = group_version.partition("/")
    if "/" in version:
        raise ValueError(f"unexpected GroupVersion string: {group_version}")
    return group, version


def guess_resource(kind: str) -> str:
    """Lower case plural resource name guessed from a kind."""

    resource = kind.lower()
    if not resource.endswith("s"):
        resource += "s"
    return resource


def parse_gvr_shorthand(prefix: str) -> Optional[GVR]:
    """Parse ``group/version/Kind`` (or ``version/Kind`` for core) into a GVR."""

    idx = prefix.rfind("/")
    if idx == -1 or idx == len(prefix) - 1:
        return None
    group_version, kind = prefix[:idx], prefix[idx + 1:]
    try:
        group, version = split_group_version(group_version)
    except ValueError:
        return None
    if not version:
        return None
    return GVR(group=group, version=version, resource=guess_resource(kind))


class PrefixTable(Mapping[str, GVR]):
    """Immutable mapping of sink prefixes to the resources they address."""

    def __init__(self, mappings: Mapping[str, GVR]) -> None:
        self._mappings: Mapping[str, GVR] = MappingProxyType(dict(mappings))

    @classmethod
    def default(cls, config: Optional[CliConfig] = None) -> "PrefixTable":
        mappings: Dict[str, GVR] = dict(DEFAULT_MAPPINGS)
        for alias, target in DEFAULT_ALIASES.items():
            mappings[alias] = DEFAULT_MAPPINGS[target]
        if config is not None:
            for entry in config.sink_mappings:
                mappings[entry.prefix] = GVR(entry.api_group, entry.version, entry.resource)
        return cls(mappings)

    def __getitem__(self, prefix: str) -> GVR:
        return self._mappings[prefix]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    def resolve_prefix(self, prefix: str) -> Optional[GVR]:
        gvr = self._mappings.get(prefix)
        if gvr is not None:
            return gvr
        return parse_gvr_shorthand(prefix)

    def alias_for(self, gvr: GVR) -> str:
        """Text prefix for ``gvr``, preferring the canonical aliases."""

        for alias in CANONICAL_PREFIXES:
            if self._mappings.get(alias) == gvr:
                return alias
        for alias in sorted(self._mappings):
            if self._mappings[alias] == gvr:
                return alias
        return gvr.as_text()


@dataclass(frozen=True)
class SinkReference:
    """Either a URL or a reference to an object inside the cluster."""

    url: Optional[str] = None
    gvr: Optional[GVR] = None
    name: str = ""
    namespace: str = ""

    def __post_init__(self) -> None:
        if (self.url is None) == (self.gvr is None):
            raise ValueError("exactly one of url or gvr must be set on a sink reference")

    @property
    def is_url(self) -> bool:
        return self.url is not None

    def resolve(self, api: "KnativeAPI") -> Destination:
        """Turn the reference into a destination, checking that the object exists."""

        if self.url is not None:
            return Destination(uri=self.url)
        try:
            obj = api.resource(self.gvr, self.namespace).get(self.name)
        except (ApiException, ResourceNotFoundError) as exc:
            detail = api_message(exc) if isinstance(exc, ApiException) else str(exc)
            raise SinkInvalidError(detail, cause=exc) from exc
        return Destination(
            ref=KReference(
                kind=obj.get("kind", ""),
                api_version=obj.get("apiVersion", self.gvr.api_version),
                name=obj.get("metadata", {}).get("name", self.name),
                namespace=self.namespace,
            )
        )

    def as_text(self, current_namespace: str, table: Optional[PrefixTable] = None) -> str:
        if self.url is not None:
            return self.url
        prefixes = table if table is not None else PrefixTable.default()
        text = f"{prefixes.alias_for(self.gvr)}:{self.name}"
        if self.namespace and self.namespace != current_namespace:
            text = f"{text}:{self.namespace}"
        return text


def _validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise SinkInvalidError(f"invalid URL {url!r}")
    return url


def parse_sink(
    text: str,
    namespace: str,
    table: Optional[PrefixTable] = None,
    default_prefix: str = DEFAULT_SINK_PREFIX,
) -> SinkReference:
    """Parse ``text`` into a :class:`SinkReference` in ``namespace`` unless it names one."""

    if not text:
        raise SinkRequiredError()
    prefixes = table if table is not None else PrefixTable.default()
    parsed = parse_ref(text, default_prefix)
    if parsed.is_url:
        return SinkReference(url=_validate_url(parsed.name))
    if not parsed.name:
        raise SinkInvalidError(f"missing name in {text!r}")
    gvr = prefixes.resolve_prefix(parsed.prefix)
    if gvr is None:
        raise SinkInvalidError(f"unknown prefix {parsed.prefix!r} in {text!r}")
    return SinkReference(gvr=gvr, name=parsed.name, namespace=parsed.namespace or namespace)


def resolve_sink(
    text: str,
    api: "KnativeAPI",
    namespace: str,
    table: Optional[PrefixTable] = None,
    default_prefix: str = DEFAULT_SINK_PREFIX,
) -> Destination:
    return parse_sink(text, namespace, table, default_prefix).resolve(api)


def guess_from_destination(destination: Optional[Dict[str, Any]]) -> Optional[SinkReference]:
    """Best effort conversion of a stored destination back to a reference."""

    if not destination:
        return None
    ref = destination.get("ref")
    if not ref:
        uri = destination.get("uri")
        return SinkReference(url=uri) if uri else None
    try:
        gvr = GVR.from_api_version(ref.get("apiVersion", ""), guess_resource(ref.get("kind", "")))
    except ValueError:
        return None
    return SinkReference(gvr=gvr, name=ref.get("name", ""), namespace=ref.get("namespace") or "")


def sink_to_text(destination: Optional[Dict[str, Any]], current_namespace: str = "", table: Optional[PrefixTable] = None) -> str:
    """Render a stored destination for list and describe output."""

    reference = guess_from_destination(destination)
    if reference is None:
        return ""
    return reference.as_text(current_namespace or reference.namespace, table)
