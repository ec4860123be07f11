"""``kn trigger`` commands."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import typer

from ..errors import KnError
from ..refs import GVR
from ..resources.trigger import DEFAULT_BROKER, TRIGGER_API_VERSION, TriggerConfig, TriggerView
from ..utils import split_updates
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
    resolve_sink_flag,
    sink_option,
)

TRIGGERS = GVR.from_api_version(TRIGGER_API_VERSION, "triggers")

app = typer.Typer(help="Manage event triggers.", no_args_is_help=True)


def _filter_option():
    return typer.Option(
        None,
        "--filter",
        help="Key-value pair for exact CloudEvent attribute matching against incoming events, "
        "e.g. type=dev.knative.foo. To remove a filter on update, append \"-\" to the key (e.g. type-).",
    )


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("trigger"),
    broker: str = typer.Option(DEFAULT_BROKER, "--broker", help="Name of the Broker which the trigger associates with."),
    filters: Optional[List[str]] = _filter_option(),
    sink: str = sink_option(required=True),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create a trigger."""

    name = require_single_name(names, "'trigger create' requires the name of the trigger as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    additions, _ = split_updates(filters or [])
    config = TriggerConfig(
        name=name,
        namespace=current,
        broker=broker,
        filters=additions,
        sink=resolve_sink_flag(env, sink, current),
    )
    create_resource(env.client(TRIGGERS, current), config.to_resource())
    created("Trigger", name, current, prefix="successfully ")


@app.command("update")
def update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("trigger", name_completer(TRIGGERS)),
    broker: Optional[str] = typer.Option(None, "--broker", help="Name of the Broker (cannot be changed)."),
    filters: Optional[List[str]] = _filter_option(),
    sink: Optional[str] = sink_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a trigger."""

    name = require_single_name(names, "'trigger update' requires the name of the trigger as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    additions, removals = split_updates(filters or [])
    destination = resolve_sink_flag(env, sink, current) if sink else None
    config = TriggerConfig(name=name, filters=additions, removed_filters=removals, sink=destination)

    def mutate(trigger: Dict[str, Any]) -> Dict[str, Any]:
        if broker is not None:
            raise KnError(f"cannot update trigger '{name}' because broker is immutable")
        return config.apply_to(trigger)

    env.update(TRIGGERS, current, name, mutate)
    typer.echo(f"Trigger '{name}' updated in namespace '{current}'.")


add_delete_command(app, TRIGGERS, "trigger", "Trigger", "Delete a trigger.")
add_describe_command(app, TRIGGERS, TriggerView, "trigger", "Show details of a trigger.")
add_list_command(app, TRIGGERS, TriggerView, "triggers", "List triggers.")
