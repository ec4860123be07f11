"""``kn broker`` commands."""
from __future__ import annotations

from typing import List, Optional

import typer

from ..refs import BROKER
from ..resources.broker import BrokerConfig, BrokerView
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
)

app = typer.Typer(help="Manage message brokers.", no_args_is_help=True)


def _dead_letter_option():
    return typer.Option(
        None, "--dl-sink", help="Reference to a sink for undeliverable events, e.g. 'ksvc:handler' or a URL."
    )


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("broker"),
    broker_class: Optional[str] = typer.Option(None, "--class", help="Broker class like 'MTChannelBasedBroker'."),
    dl_sink: Optional[str] = _dead_letter_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create a broker."""

    name = require_single_name(names, "'broker create' requires the broker name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = BrokerConfig(
        name=name,
        namespace=current,
        broker_class=broker_class,
        dead_letter_sink=resolve_sink_flag(env, dl_sink, current) if dl_sink else None,
    )
    create_resource(env.client(BROKER, current), config.to_resource())
    created("Broker", name, current, prefix="successfully ")


@app.command("update")
def update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("broker", name_completer(BROKER)),
    dl_sink: Optional[str] = _dead_letter_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a broker."""

    name = require_single_name(names, "'broker update' requires the broker name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = BrokerConfig(name=name, dead_letter_sink=resolve_sink_flag(env, dl_sink, current) if dl_sink else None)
    env.update(BROKER, current, name, config.apply_to)
    typer.echo(f"Broker '{name}' updated in namespace '{current}'.")


add_delete_command(app, BROKER, "broker", "Broker", "Delete a broker.")
add_describe_command(app, BROKER, BrokerView, "broker", "Describe a broker.")
add_list_command(app, BROKER, BrokerView, "brokers", "List brokers.")
