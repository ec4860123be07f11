"""DomainMapping resource builder and view."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import UsageError
from ..printers import (
    DescribeWriter,
    Printable,
    PrintOptions,
    conditions_of,
    ready_condition,
)
from ..refs import KROUTE, KSERVICE, SERVICE, PrefixTable, parse_ref
from ..utils import nested_get
from .base import KReference, ResourceDefinition, ResourceModel, editable_copy, object_metadata

if TYPE_CHECKING:  # pragma: no cover
    from ..kube import KnativeAPI

DOMAINMAPPING_API_VERSION = "serving.knative.dev/v1beta1"

DNS1123_SUBDOMAIN_MAX_LENGTH = 253
_DNS1123_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

# only addressables that can back a domain mapping
REF_PREFIXES = PrefixTable({"ksvc": KSERVICE, "kroute": KROUTE, "svc": SERVICE})


def validate_secret_name(name: str) -> str:
    if len(name) > DNS1123_SUBDOMAIN_MAX_LENGTH:
        raise UsageError(f"invalid secret name {name!r}: must be no more than {DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
    if not _DNS1123_SUBDOMAIN.match(name):
        raise UsageError(
            f"invalid secret name {name!r}: a lowercase RFC 1123 subdomain must consist of lower case "
            "alphanumeric characters, '-' or '.', and must start and end with an alphanumeric character"
        )
    return name


def resolve_domain_ref(text: str, api: "KnativeAPI", namespace: str) -> KReference:
    """Look up the object behind ``--ref`` (``ksvc:NAME``, ``kroute:NAME``, ``svc:NAME`` or ``NAME``)."""

    parsed = parse_ref(text, default_prefix="ksvc")
    if parsed.is_url:
        raise UsageError(f"unsupported reference '{text}': a URL cannot back a domain mapping")
    gvr = REF_PREFIXES.get(parsed.prefix)
    if gvr is None:
        raise UsageError(f"unsupported sink prefix: '{parsed.prefix}'")
    ref_namespace = parsed.namespace or namespace
    obj = api.resource(gvr, ref_namespace).get(parsed.name)
    return KReference(
        kind=obj.get("kind", ""),
        api_version=obj.get("apiVersion", gvr.api_version),
        name=nested_get(obj, "metadata", "name", default=parsed.name),
        namespace=ref_namespace,
    )


class DomainMappingConfig(ResourceModel):
    """Configuration for creating or updating a DomainMapping."""

    name: str
    namespace: Optional[str] = None
    reference: Optional[KReference] = None
    tls_secret: Optional[str] = None

    def to_resource(self, default_namespace: Optional[str] = None) -> ResourceDefinition:
        if self.reference is None:
            raise UsageError("a reference is required to create a domain mapping")
        spec: Dict[str, Any] = {}
        self._fill_spec(spec)
        return ResourceDefinition(
            api_version=DOMAINMAPPING_API_VERSION,
            kind="DomainMapping",
            metadata=object_metadata(self.name, self.namespace or default_namespace),
            spec=spec,
        )

    def apply_to(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        document = editable_copy(existing)
        self._fill_spec(document["spec"])
        return document

    def _fill_spec(self, spec: Dict[str, Any]) -> None:
        if self.reference is not None:
            spec["ref"] = self.reference.to_dict()
        if self.tls_secret:
            spec["tls"] = {"secretName": validate_secret_name(self.tls_secret)}


class DomainMappingView(Printable):
    kind = "DomainMapping"
    columns = ("Name", "URL", "Ready", "Ksvc")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        return [
            nested_get(item, "metadata", "name", default=""),
            nested_get(item, "status", "url", default=""),
            ready_condition(conditions_of(item)),
            nested_get(item, "spec", "ref", "name", default=""),
        ]

    def describe(self, item: Dict[str, Any], writer: DescribeWriter, options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_attribute("URL", nested_get(item, "status", "url", default=""))
        ref = nested_get(item, "spec", "ref")
        if ref:
            section = writer.write_attribute("Reference")
            section.write_attribute("Kind", ref.get("kind", ""))
            section.write_attribute("Name", ref.get("name", ""))
            section.write_attribute("APIVersion", ref.get("apiVersion", ""))
        secret = nested_get(item, "spec", "tls", "secretName")
        if secret:
            tls = writer.write_attribute("TLS")
            tls.write_attribute("SecretName", secret)
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return nested_get(item, "status", "url")
