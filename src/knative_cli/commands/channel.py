"""``kn channel`` commands."""
from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional

import typer
from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from ..errors import InvalidCRDError, is_forbidden
from ..printers import Printer
from ..refs import CHANNEL, GVR, guess_resource
from ..resources.channel import BUILTIN_CHANNEL_TYPES, ChannelConfig, ChannelView, parse_channel_type
from ..resources.crd import CHANNEL_TYPE_SELECTOR, CrdTypeView, crd_from_gvk, crd_list
from .common import (
    CommandEnv,
    add_delete_command,
    add_describe_command,
    add_list_command,
    create_resource,
    created,
    get_env,
    names_argument,
    namespace_option,
    no_headers_option,
    output_option,
    print_options,
    require_single_name,
)

_LOG = logging.getLogger(__name__)

app = typer.Typer(help="Manage event channels.", no_args_is_help=True)

# types tried in turn when listing CRDs is forbidden
LISTABLE_BUILTIN_TYPES = (BUILTIN_CHANNEL_TYPES["imc"],)


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("channel"),
    channel_type: Optional[str] = typer.Option(
        None,
        "--type",
        help="Override channel type to create, in the format '--type Group:Version:Kind'. "
        "Aliases such as 'imc' (InMemoryChannel) or those configured in the kn config can be used too.",
    ),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create an event channel."""

    name = require_single_name(names, "'channel create' requires the channel name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = ChannelConfig(
        name=name,
        namespace=current,
        channel_type=parse_channel_type(channel_type, env.config.channel_type_mappings) if channel_type else None,
    )
    create_resource(env.client(CHANNEL, current), config.to_resource())
    created("Channel", name, current)


add_delete_command(app, CHANNEL, "channel", "Channel", "Delete a channel.")
add_describe_command(app, CHANNEL, ChannelView, "channel", "Show details of a channel.")
add_list_command(app, CHANNEL, ChannelView, "channels", "List channels.")


def _builtin_channel_types(env: CommandEnv, namespace: str) -> List[Dict[str, Any]]:
    """CRDs of built-in channel types that can be listed in ``namespace``."""

    found: List[Dict[str, Any]] = []
    last_error: Optional[Exception] = None
    for channel_type in LISTABLE_BUILTIN_TYPES:
        gvr = GVR(channel_type.group, channel_type.version, guess_resource(channel_type.kind))
        try:
            env.client(gvr, namespace).list()
        except (ApiException, ResourceNotFoundError) as exc:
            _LOG.debug("Channel type %s not available: %s", channel_type.kind, exc)
            last_error = exc
            continue
        found.append(crd_from_gvk(*channel_type))
    if not found and last_error is not None:
        raise last_error
    return found


@app.command("list-types")
def list_types(
    ctx: typer.Context,
    namespace: Optional[str] = namespace_option(),
    output: Optional[str] = output_option(),
    no_headers: bool = no_headers_option(),
) -> None:
    """List channel types."""

    Printer.validate_format(output)
    env = get_env(ctx)
    current = env.namespace(namespace)
    try:
        items = env.api().list_crds(CHANNEL_TYPE_SELECTOR).get("items") or []
    except ApiException as exc:
        if not is_forbidden(exc):
            raise
        items = _builtin_channel_types(env, current)
    if not output and not items:
        raise InvalidCRDError("Channels")
    Printer(CrdTypeView(), print_options(env, current, output, no_headers=no_headers)).print_list(
        crd_list(items), sys.stdout
    )
