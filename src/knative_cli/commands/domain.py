"""``kn domain`` commands."""
from __future__ import annotations

from typing import List, Optional

import typer

from ..refs import GVR
from ..resources.domain_mapping import DOMAINMAPPING_API_VERSION, DomainMappingConfig, DomainMappingView, resolve_domain_ref
from .common import (
    add_delete_command,
    add_describe_command,
    add_list_command,
    create_resource,
    created,
    get_env,
    name_completer,
    names_argument,
    namespace_option,
    require_single_name,
)

DOMAINMAPPINGS = GVR.from_api_version(DOMAINMAPPING_API_VERSION, "domainmappings")

app = typer.Typer(help="Manage domain mappings.", no_args_is_help=True)


def _ref_option(required: bool):
    return typer.Option(
        ... if required else None,
        "--ref",
        help="Addressable target reference for the domain mapping: a Knative service ('ksvc:hello' or simply "
        "'hello'), a Knative route ('kroute:hello') or a Kubernetes service ('svc:hello').",
    )


def _tls_option():
    return typer.Option(None, "--tls", help="Enable TLS and point to the secret that holds the server certificate.")


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("domain mapping"),
    ref: str = _ref_option(required=True),
    tls: Optional[str] = _tls_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create a domain mapping."""

    name = require_single_name(names, "'kn domain create' requires the domain name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = DomainMappingConfig(
        name=name,
        namespace=current,
        reference=resolve_domain_ref(ref, env.api(), current),
        tls_secret=tls,
    )
    create_resource(env.client(DOMAINMAPPINGS, current), config.to_resource())
    created("Domain mapping", name, current)


@app.command("update")
def update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("domain mapping", name_completer(DOMAINMAPPINGS)),
    ref: Optional[str] = _ref_option(required=False),
    tls: Optional[str] = _tls_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a domain mapping."""

    name = require_single_name(names, "'kn domain update' requires the domain name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = DomainMappingConfig(
        name=name,
        reference=resolve_domain_ref(ref, env.api(), current) if ref else None,
        tls_secret=tls,
    )
    env.update(DOMAINMAPPINGS, current, name, config.apply_to)
    typer.echo(f"Domain mapping '{name}' updated in namespace '{current}'.")


add_delete_command(app, DOMAINMAPPINGS, "domain mapping", "Domain mapping", "Delete a domain mapping.")
add_describe_command(app, DOMAINMAPPINGS, DomainMappingView, "domain mapping", "Show details of a domain mapping.")
add_list_command(app, DOMAINMAPPINGS, DomainMappingView, "domain mappings", "List domain mappings.")
