"""``kn eventtype`` commands."""
from __future__ import annotations

from typing import List, Optional

import typer

from ..errors import UsageError
from ..refs import GVR
from ..resources.eventtype import EVENTTYPE_API_VERSION, EventTypeConfig, EventTypeView
from .common import (
    add_delete_command,
    add_describe_command,
    add_list_command,
    create_resource,
    created,
    get_env,
    mutually_exclusive,
    names_argument,
    namespace_option,
    require_single_name,
    resolve_sink_flag,
)

EVENTTYPES = GVR.from_api_version(EVENTTYPE_API_VERSION, "eventtypes")

app = typer.Typer(help="Manage eventtypes.", no_args_is_help=True)


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("eventtype"),
    event_type: str = typer.Option(..., "--type", "-t", help="Cloud Event type."),
    source: Optional[str] = typer.Option(None, "--source", help="Cloud Event source (an absolute URI)."),
    broker: Optional[str] = typer.Option(None, "--broker", "-b", help="Cloud Event broker."),
    reference: Optional[str] = typer.Option(
        None, "--reference", "-r", help="Addressable reference producing the events, e.g. 'channel:pipe'."
    ),
    description: Optional[str] = typer.Option(None, "--description", help="Description of the eventtype."),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create an eventtype."""

    name = require_single_name(names, "'eventtype create' requires the eventtype name given as single argument")
    mutually_exclusive({"--broker": broker, "--reference": reference})
    env = get_env(ctx)
    current = env.namespace(namespace)
    resolved = None
    if reference:
        destination = resolve_sink_flag(env, reference, current)
        if destination.ref is None:
            raise UsageError(f"--reference must name an object in the cluster, not a URL: '{reference}'")
        resolved = destination.ref
    config = EventTypeConfig(
        name=name,
        namespace=current,
        event_type=event_type,
        source=source,
        broker=broker,
        reference=resolved,
        description=description,
    )
    create_resource(env.client(EVENTTYPES, current), config.to_resource())
    created("Eventtype", name, current, prefix="successfully ")


add_delete_command(app, EVENTTYPES, "eventtype", "Eventtype", "Delete an eventtype.")
add_describe_command(app, EVENTTYPES, EventTypeView, "eventtype", "Describe an eventtype.")
add_list_command(app, EVENTTYPES, EventTypeView, "eventtypes", "List eventtypes.")
