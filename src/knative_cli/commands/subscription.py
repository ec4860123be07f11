"""``kn subscription`` commands."""
from __future__ import annotations

from typing import List, Optional

import typer

from ..refs import GVR
from ..resources.subscription import SUBSCRIPTION_API_VERSION, SubscriptionConfig, SubscriptionView, parse_channel_ref
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

SUBSCRIPTIONS = GVR.from_api_version(SUBSCRIPTION_API_VERSION, "subscriptions")

app = typer.Typer(help="Manage event subscriptions.", no_args_is_help=True)


def _reply_option():
    return typer.Option(None, "--sink-reply", help="Sink for replies from the subscriber, e.g. 'broker:default'.")


def _dead_letter_option():
    return typer.Option(None, "--sink-dead-letter", help="Sink for events that could not be delivered.")


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("subscription"),
    channel: str = typer.Option(..., "--channel", help="Channel to subscribe to, e.g. 'pipe' or 'imc:pipe'."),
    sink: Optional[str] = sink_option(),
    sink_reply: Optional[str] = _reply_option(),
    sink_dead_letter: Optional[str] = _dead_letter_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Subscribe to a channel."""

    name = require_single_name(names, "'subscription create' requires the subscription name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = SubscriptionConfig(
        name=name,
        namespace=current,
        channel=parse_channel_ref(channel, env.config.channel_type_mappings),
        subscriber=resolve_sink_flag(env, sink, current) if sink else None,
        reply=resolve_sink_flag(env, sink_reply, current) if sink_reply else None,
        dead_letter_sink=resolve_sink_flag(env, sink_dead_letter, current) if sink_dead_letter else None,
    )
    create_resource(env.client(SUBSCRIPTIONS, current), config.to_resource())
    created("Subscription", name, current)


@app.command("update")
def update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("subscription", name_completer(SUBSCRIPTIONS)),
    sink: Optional[str] = sink_option(),
    sink_reply: Optional[str] = _reply_option(),
    sink_dead_letter: Optional[str] = _dead_letter_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a subscription."""

    name = require_single_name(names, "'subscription update' requires the subscription name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = SubscriptionConfig(
        name=name,
        subscriber=resolve_sink_flag(env, sink, current) if sink else None,
        reply=resolve_sink_flag(env, sink_reply, current) if sink_reply else None,
        dead_letter_sink=resolve_sink_flag(env, sink_dead_letter, current) if sink_dead_letter else None,
    )
    env.update(SUBSCRIPTIONS, current, name, config.apply_to)
    typer.echo(f"Subscription '{name}' updated in namespace '{current}'.")


add_delete_command(app, SUBSCRIPTIONS, "subscription", "Subscription", "Delete a subscription.")
add_describe_command(app, SUBSCRIPTIONS, SubscriptionView, "subscription", "Show details of a subscription.")
add_list_command(app, SUBSCRIPTIONS, SubscriptionView, "subscriptions", "List subscriptions.")
