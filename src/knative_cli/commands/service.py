"""``kn service`` commands."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import typer
from kubernetes.client import ApiException

from ..config import Profile
from ..errors import KnError, UsageError, get_error, is_not_found
from ..kube import ResourceClient
from ..refs import KSERVICE
from ..resources.service import ServiceConfig, ServiceView
from ..utils import added_and_removed, nested_get, split_updates
from ..wait import wait_for_deletion, wait_for_ready
from .common import (
    CommandEnv,
    add_describe_command,
    add_list_command,
    get_env,
    name_completer,
    names_argument,
    namespace_option,
    no_wait_option,
    require_single_name,
    wait_timeout_option,
    wait_window_option,
)

_LOG = logging.getLogger(__name__)

app = typer.Typer(help="Manage Knative services.", no_args_is_help=True)


def _profiles(env: CommandEnv, entries: Optional[List[str]]) -> Tuple[List[Profile], List[Profile]]:
    added, removed = added_and_removed(entries or [])

    def lookup(name: str) -> Profile:
        profile = env.config.profile(name)
        if profile is None:
            raise UsageError(f"profile '{name}' doesn't exist")
        return profile

    return [lookup(name) for name in added], [lookup(name) for name in removed]


def _service_config(
    env: CommandEnv,
    name: str,
    image: Optional[str],
    env_vars: Optional[List[str]],
    port: Optional[str],
    labels: Optional[List[str]],
    annotations: Optional[List[str]],
    service_account: Optional[str],
    profiles: Optional[List[str]],
    scale_min: Optional[int],
    scale_max: Optional[int],
    concurrency_limit: Optional[int],
) -> ServiceConfig:
    env_updates, env_removals = split_updates(env_vars or [])
    label_updates, label_removals = split_updates(labels or [])
    annotation_updates, annotation_removals = split_updates(annotations or [])
    added_profiles, removed_profiles = _profiles(env, profiles)
    return ServiceConfig(
        name=name,
        image=image,
        env=env_updates,
        env_removals=env_removals,
        port=port,
        labels=label_updates,
        label_removals=label_removals,
        annotations=annotation_updates,
        annotation_removals=annotation_removals,
        service_account=service_account,
        profiles=added_profiles,
        removed_profiles=removed_profiles,
        scale_min=scale_min,
        scale_max=scale_max,
        concurrency_limit=concurrency_limit,
    )


def _wait_ready(client: ResourceClient, name: str, timeout: int, window: int) -> None:
    typer.echo(f"Waiting for Service '{name}' in namespace '{client.namespace}' to become ready...")
    elapsed = wait_for_ready(lambda: client.get(name), "Service", name, timeout=timeout, error_window=window)
    url = nested_get(client.get(name), "status", "url", default="")
    typer.echo(f"Service '{name}' is ready after {elapsed:.0f}s and available at URL:")
    typer.echo(url)


# repeated template flags shared by create and update

def _image_option():
    return typer.Option(None, "--image", help="Image to run.")


def _env_option():
    return typer.Option(None, "--env", "-e", help="Environment variable to set. NAME=value; NAME- to unset.")


def _port_option():
    return typer.Option(None, "--port", "-p", help="The port where the application listens on, in the format 'NAME:PORT'.")


def _label_option():
    return typer.Option(None, "--label", "-l", help="Labels to set for both Service and Revision. name=value; name- to remove.")


def _annotation_option():
    return typer.Option(
        None, "--annotation", "-a", help="Annotations for Service and Revision. name=value; name- to remove."
    )


def _service_account_option():
    return typer.Option(None, "--service-account", help="Service account name to set.")


def _profile_option():
    return typer.Option(
        None, "--profile", help="The profile name to apply to the service template. Append '-' (e.g. istio-) to remove it."
    )


def _scale_min_option():
    return typer.Option(None, "--scale-min", help="Minimum number of replicas.")


def _scale_max_option():
    return typer.Option(None, "--scale-max", help="Maximum number of replicas.")


def _concurrency_option():
    return typer.Option(None, "--concurrency-limit", help="Hard limit of concurrent requests to be processed by a single replica.")


@app.command("create")
def create(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("service"),
    image: Optional[str] = _image_option(),
    env_vars: Optional[List[str]] = _env_option(),
    port: Optional[str] = _port_option(),
    labels: Optional[List[str]] = _label_option(),
    annotations: Optional[List[str]] = _annotation_option(),
    service_account: Optional[str] = _service_account_option(),
    profiles: Optional[List[str]] = _profile_option(),
    scale_min: Optional[int] = _scale_min_option(),
    scale_max: Optional[int] = _scale_max_option(),
    concurrency_limit: Optional[int] = _concurrency_option(),
    force: bool = typer.Option(False, "--force", help="Create service forcefully, replaces existing service if any."),
    no_wait: bool = no_wait_option(),
    wait_timeout: int = wait_timeout_option(),
    wait_window: int = wait_window_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Create a service."""

    name = require_single_name(names, "'service create' requires the service name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = _service_config(
        env, name, image, env_vars, port, labels, annotations, service_account, profiles, scale_min, scale_max,
        concurrency_limit,
    )
    body = config.to_resource(current).to_dict()
    client = env.client(KSERVICE, current)
    existing = None
    try:
        existing = client.get(name)
    except ApiException as exc:
        if not is_not_found(exc):
            raise
    if existing is not None:
        if not force:
            raise KnError(
                f"cannot create service '{name}' in namespace '{current}' because the service already exists "
                "and no --force option was given"
            )
        body["metadata"]["resourceVersion"] = nested_get(existing, "metadata", "resourceVersion")
        client.replace(body)
        typer.echo(f"Service '{name}' successfully replaced in namespace '{current}'.")
    else:
        client.create(body)
        typer.echo(f"Service '{name}' successfully created in namespace '{current}'.")
    if not no_wait:
        _wait_ready(client, name, wait_timeout, wait_window)


@app.command("update")
def update(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("service", name_completer(KSERVICE)),
    image: Optional[str] = _image_option(),
    env_vars: Optional[List[str]] = _env_option(),
    port: Optional[str] = _port_option(),
    labels: Optional[List[str]] = _label_option(),
    annotations: Optional[List[str]] = _annotation_option(),
    service_account: Optional[str] = _service_account_option(),
    profiles: Optional[List[str]] = _profile_option(),
    scale_min: Optional[int] = _scale_min_option(),
    scale_max: Optional[int] = _scale_max_option(),
    concurrency_limit: Optional[int] = _concurrency_option(),
    no_wait: bool = no_wait_option(),
    wait_timeout: int = wait_timeout_option(),
    wait_window: int = wait_window_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Update a service."""

    name = require_single_name(names, "'service update' requires the service name given as single argument")
    env = get_env(ctx)
    current = env.namespace(namespace)
    config = _service_config(
        env, name, image, env_vars, port, labels, annotations, service_account, profiles, scale_min, scale_max,
        concurrency_limit,
    )
    env.update(KSERVICE, current, name, config.apply_to)
    typer.echo(f"Service '{name}' updated in namespace '{current}'.")
    if not no_wait:
        _wait_ready(env.client(KSERVICE, current), name, wait_timeout, wait_window)


@app.command("delete")
def delete(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("service", name_completer(KSERVICE)),
    all_services: bool = typer.Option(False, "--all", help="Delete all services in a namespace."),
    no_wait: bool = no_wait_option(),
    wait_timeout: int = wait_timeout_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Delete one or more services."""

    if all_services and names:
        raise UsageError("'service delete' with --all flag requires no arguments")
    if not all_services and not names:
        raise UsageError("'service delete' requires the service name(s)")
    env = get_env(ctx)
    current = env.namespace(namespace)
    client = env.client(KSERVICE, current)
    targets = list(names or [])
    if all_services:
        targets = [item["metadata"]["name"] for item in client.list().get("items", [])]
        if not targets:
            typer.echo("No services found.")
            return
    errors: List[str] = []
    for name in targets:
        try:
            client.delete(name)
            if not no_wait:
                wait_for_deletion(lambda name=name: client.get(name), "Service", name, timeout=wait_timeout)
        except ApiException as exc:
            _LOG.debug("Deleting service %s failed: %s", name, exc)
            errors.append(str(get_error(exc)))
            continue
        typer.echo(f"Service '{name}' successfully deleted in namespace '{current}'.")
    if errors:
        raise KnError("\n".join(errors))


@app.command("wait")
def wait(
    ctx: typer.Context,
    names: Optional[List[str]] = names_argument("service", name_completer(KSERVICE)),
    wait_timeout: int = wait_timeout_option(),
    wait_window: int = wait_window_option(),
    namespace: Optional[str] = namespace_option(),
) -> None:
    """Wait for a service to be ready."""

    name = require_single_name(names, "'service wait' requires the service name given as single argument")
    env = get_env(ctx)
    client = env.client(KSERVICE, env.namespace(namespace))
    _wait_ready(client, name, wait_timeout, wait_window)


add_describe_command(app, KSERVICE, ServiceView, "service", "Show details of a service.")
add_list_command(app, KSERVICE, ServiceView, "services", "List services.")
