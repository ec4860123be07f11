"""``kn source`` commands: listing source types and the built-in sources."""
from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional

import typer
from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from ..errors import InvalidCRDError, InvalidEncodingError, KnError, UsageError, is_forbidden, is_not_found
from ..printers import LIST_FORMATS, Printer
from ..refs import GVR, guess_resource
from ..resources.apiserver_source import APISERVERSOURCE_API_VERSION, ApiServerSourceConfig, ApiServerSourceView
from ..resources.crd import SOURCE_TYPE_SELECTOR, CrdTypeView, SourceSummaryView, crd_from_gvk, crd_list, gvr_from_crd
from ..resources.ping_source import PINGSOURCE_API_VERSION, PingSourceConfig, PingSourceView
from ..resources.sink_binding import SINKBINDING_API_VERSION, SinkBindingConfig, SinkBindingView, Subject
from .common import (
    CommandEnv,
    add_delete_command,
    add_describe_command,
    add_list_command,
    all_namespaces_option,
    ce_override_option,
    create_resource,
    get_env,
    name_completer,
    names_argument,
    namespace_option,
    no_headers_option,
    output_option,
    parse_ce_overrides,
    print_list,
    print_options,
    require_single_name,
    resolve_sink_flag,
    sink_option,
)

_LOG = logging.getLogger(__name__)

PINGSOURCES = GVR.from_api_version(PINGSOURCE_API_VERSION, "pingsources")
APISERVERSOURCES = GVR.from_api_version(APISERVERSOURCE_API_VERSION, "apiserversources")
SINKBINDINGS = GVR.from_api_version(SINKBINDING_API_VERSION, "sinkbindings")

# (group, version, kind) tried in turn when listing CRDs is forbidden
BUILTIN_SOURCE_TYPES = (
    ("sources.knative.dev", "v1", "ApiServerSource"),
    ("sources.knative.dev", "v1", "ContainerSource"),
    ("sources.knative.dev", "v1", "PingSource"),
    ("sources.knative.dev", "v1", "SinkBinding"),
)

app = typer.Typer(help="Manage event sources.", no_args_is_help=True)
ping_app = typer.Typer(help="Manage ping sources.", no_args_is_help=True)
apiserver_app = typer.Typer(help="Manage Kubernetes api-server sources.", no_args_is_help=True)
binding_app = typer.Typer(help="Manage sink bindings.", no_args_is_help=True)

app.add_typer(ping_app, name="ping")
app.add_typer(apiserver_app, name="apiserver")
app.add_typer(binding_app, name="binding")


def _source_types(env: CommandEnv, namespace: str) -> List[Dict[str, Any]]:
    try:
        return env.api().list_crds(SOURCE_TYPE_SELECTOR).get("items") or []
    except ApiException as exc:
        if not is_forbidden(exc):
            raise
    _LOG.debug("Listing CRDs is forbidden, probing built-in source types")
    found = []
    for group, version, kind in BUILTIN_SOURCE_TYPES:
        try:
            env.client(GVR(group, version, guess_resource(kind)), namespace).list()
        except (ApiException, ResourceNotFoundError) as exc:
            _LOG.debug("Source type %s not available: %s", kind, exc)
            continue
        found.append(crd_from_gvk(group, version, kind))
    return found


@app.command("list-types")
def list_types(
    ctx: typer.Context,
    namespace: Optional[str] = namespace_option(),
    output: Optional[str] = output_option(),
    no_headers: bool = no_headers_option(),
) -> None:
    """List event source types."""

    Printer.validate_format(output, LIST_FORMATS)
    env = get_env(ctx)
    current = env.namespace(namespace)
    items = _source_types(env, current)
    if not output and not items:
        raise InvalidCRDError("Eventing")
    Printer(CrdTypeView(), print_options(env, current, output, no_headers=no_headers)).print_list(
        crd_list(items), sys.stdout
    )


@app.command("list")
def list_sources(
    ctx: typer.Context,
    types: Optional[List[str]] = typer.Option(
        None, "--type", "-t", help="Filter list on given source type, e.g. PingSource. Can be given multiple times."
    ),
    namespace: Optional[str] = namespace_option(),
    all_namespaces: bool = all_namespaces_option(),
    output: Optional[str] = output_option(),
    no_headers: bool = no_headers_option(),
) -> None:
    """List event sources of every installed source type."""

    Printer.validate_format(output, LIST_FORMATS)
    env = get_env(ctx)
    current = env.namespace(namespace)
    wanted = {kind.lower() for kind in types or []}
    items: List[Dict[str, Any]] = []
    for crd in _source_types(env, current):
        kind = crd.get("spec", {}).get("names", {}).get("kind", "")
        if wanted and kind.lower() not in wanted:
            continue
        gvr = gvr_from_crd(crd)
        try:
            listing = env.client(gvr, current).list(all_namespaces=all_namespaces)
        except ResourceNotFoundError as exc:
            _LOG.debug("Skipping source type %s: %s", kind, exc)
            continue
        except ApiException as exc:
            if is_not_found(exc) or is_forbidden(exc):
                _LOG.debug("Skipping source type %s: %s", kind, exc)
                continue
            raise
        for item in listing.get("items") or []:
            item.setdefault("apiVersion", gvr.api_version)
            item.setdefault("kind", kind)
            items.append(item)
    document = {"apiVersion": "v1", "kind": "List", "items": items}
    where = "all" if all_namespaces else current
    print_list(
        SourceSummaryView(),
        document,
        print_options(env, current, output, all_namespaces, no_headers),
        f"No sources found in {where} namespace.",
    )


# ping

@ping_app.command("create")
def ping_create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("ping source"),
    schedule: str = typer.Option(..., "--schedule", help="Schedule specification in crontab format, e.g. '*/2 * * * *'."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Json data to send."),
    encoding: Optional[str] = typer.Option(
        None, "--encoding", "-e", help="Data encoding format. One of: text|base64. Detected from the data if not set."
    ),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Time zone of the schedule, e.g. 'Europe/Berlin'."),
    sink: str = sink_option(required=True),
    ce_overrides: Optional[List[str]] = ce_override_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create a ping source."""

    name = require_single_name(names, "'source ping create' requires the name of the ping source as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = PingSourceConfig(
        name=name,
        namespace=current,
        schedule=schedule,
        data=data,
        encoding=encoding,
        timezone=timezone,
        sink=resolve_sink_flag(env, sink, current),
        ce_overrides=parse_ce_overrides(ce_overrides),
    )
    try:
        resource = config.to_resource()
    except InvalidEncodingError as exc:
        raise KnError(f'cannot create PingSource "{name}" in namespace "{current}" because: {exc}') from exc
    create_resource(env.client(PINGSOURCES, current), resource)
    typer.echo(f"Ping source '{name}' created in namespace '{current}'.")


@ping_app.command("update")
def ping_update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("ping source", name_completer(PINGSOURCES)),
    schedule: Optional[str] = typer.Option(None, "--schedule", help="Schedule specification in crontab format."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Json data to send."),
    encoding: Optional[str] = typer.Option(None, "--encoding", "-e", help="Data encoding format. One of: text|base64."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Time zone of the schedule."),
    sink: Optional[str] = sink_option(),
    ce_overrides: Optional[List[str]] = ce_override_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a ping source."""

    name = require_single_name(names, "'source ping update' requires the name of the ping source as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = PingSourceConfig(
        name=name,
        schedule=schedule,
        data=data,
        encoding=encoding,
        timezone=timezone,
        sink=resolve_sink_flag(env, sink, current) if sink else None,
        ce_overrides=parse_ce_overrides(ce_overrides),
    )
    env.update(PINGSOURCES, current, name, config.apply_to)
    typer.echo(f"Ping source '{name}' updated in namespace '{current}'.")


add_delete_command(ping_app, PINGSOURCES, "ping source", "Ping source", "Delete a ping source.")
add_describe_command(ping_app, PINGSOURCES, PingSourceView, "ping source", "Show details of a ping source.")
add_list_command(ping_app, PINGSOURCES, PingSourceView, "ping sources", "List ping sources.")


# apiserver

def _resource_option():
    return typer.Option(
        None,
        "--resource",
        help="Specification for which events to listen, in the format Kind:APIVersion[:key1=value1,key2=value2], "
        "e.g. 'Event:v1'. Append '-' to remove a resource on update (e.g. Event:v1-).",
    )


def _mode_option():
    return typer.Option(
        None,
        "--mode",
        help="The mode the receive adapter controller runs under: 'Reference' sends only the object reference, "
        "'Resource' sends the full resource. Defaults to Reference.",
    )


def _service_account_option():
    return typer.Option(
        None, "--service-account", help="Name of the service account to use to run this source."
    )


@apiserver_app.command("create")
def apiserver_create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("api-server source"),
    resources: Optional[List[str]] = _resource_option(),
    mode: Optional[str] = _mode_option(),
    service_account: Optional[str] = _service_account_option(),
    sink: str = sink_option(required=True),
    ce_overrides: Optional[List[str]] = ce_override_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create an api-server source."""

    name = require_single_name(names, "'source apiserver create' requires the name of the source as single argument")
    if not resources:
        raise UsageError("'source apiserver create' requires at least one --resource")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = ApiServerSourceConfig(
        name=name,
        namespace=current,
        service_account=service_account,
        mode=mode,
        resources=resources,
        sink=resolve_sink_flag(env, sink, current),
        ce_overrides=parse_ce_overrides(ce_overrides),
    )
    create_resource(env.client(APISERVERSOURCES, current), config.to_resource())
    typer.echo(f"ApiServer source '{name}' created in namespace '{current}'.")


@apiserver_app.command("update")
def apiserver_update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("api-server source", name_completer(APISERVERSOURCES)),
    resources: Optional[List[str]] = _resource_option(),
    mode: Optional[str] = _mode_option(),
    service_account: Optional[str] = _service_account_option(),
    sink: Optional[str] = sink_option(),
    ce_overrides: Optional[List[str]] = ce_override_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update an api-server source."""

    name = require_single_name(names, "'source apiserver update' requires the name of the source as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = ApiServerSourceConfig(
        name=name,
        service_account=service_account,
        mode=mode,
        resources=resources or [],
        sink=resolve_sink_flag(env, sink, current) if sink else None,
        ce_overrides=parse_ce_overrides(ce_overrides),
    )
    env.update(APISERVERSOURCES, current, name, config.apply_to)
    typer.echo(f"ApiServer source '{name}' updated in namespace '{current}'.")


add_delete_command(apiserver_app, APISERVERSOURCES, "api-server source", "ApiServer source", "Delete an api-server source.")
add_describe_command(
    apiserver_app, APISERVERSOURCES, ApiServerSourceView, "api-server source", "Show details of an api-server source."
)
add_list_command(apiserver_app, APISERVERSOURCES, ApiServerSourceView, "api-server sources", "List api-server sources.")


# binding

def _subject_option(required: bool):
    return typer.Option(
        ... if required else None,
        "--subject",
        help="Subject which emits cloud events, in the format Kind:apiVersion:name, e.g. 'Deployment:apps/v1:myapp', "
        "or with a label selector instead of a name, e.g. 'Job:batch/v1:app=heartbeat-cron'.",
    )


@binding_app.command("create")
def binding_create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("sink binding"),
    subject: str = _subject_option(required=True),
    sink: str = sink_option(required=True),
    ce_overrides: Optional[List[str]] = ce_override_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create a sink binding."""

    name = require_single_name(names, "'source binding create' requires the name of the sink binding as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = SinkBindingConfig(
        name=name,
        namespace=current,
        subject=Subject.parse(subject),
        sink=resolve_sink_flag(env, sink, current),
        ce_overrides=parse_ce_overrides(ce_overrides),
    )
    create_resource(env.client(SINKBINDINGS, current), config.to_resource())
    typer.echo(f"Sink binding '{name}' created in namespace '{current}'.")


@binding_app.command("update")
def binding_update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("sink binding", name_completer(SINKBINDINGS)),
    subject: Optional[str] = _subject_option(required=False),
    sink: Optional[str] = sink_option(),
    ce_overrides: Optional[List[str]] = ce_override_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a sink binding."""

    name = require_single_name(names, "'source binding update' requires the name of the sink binding as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = SinkBindingConfig(
        name=name,
        subject=Subject.parse(subject) if subject else None,
        sink=resolve_sink_flag(env, sink, current) if sink else None,
        ce_overrides=parse_ce_overrides(ce_overrides),
    )
    env.update(SINKBINDINGS, current, name, config.apply_to)
    typer.echo(f"Sink binding '{name}' updated in namespace '{current}'.")


add_delete_command(binding_app, SINKBINDINGS, "sink binding", "Sink binding", "Delete a sink binding.")
add_describe_command(binding_app, SINKBINDINGS, SinkBindingView, "sink binding", "Show details of a sink binding.")
add_list_command(binding_app, SINKBINDINGS, SinkBindingView, "sink bindings", "List sink bindings.")
