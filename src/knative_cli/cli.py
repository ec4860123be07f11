"""Command line entry point for the Knative client."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import typer
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from rich.console import Console
from rich.logging import RichHandler
from typer.core import TyperGroup
from urllib3.exceptions import HTTPError

from .commands import broker, channel, domain, eventtype, revision, route, service, source, subscription, trigger
from .commands.common import CommandEnv
from .commands.version import version
from .config import CliConfig, KubeParams
from .errors import ConfigError, KnError, UsageError, get_error

_LOG = logging.getLogger(__name__)

HANDLED_ERRORS = (KnError, ApiException, ResourceNotFoundError, ConfigException, HTTPError, ConnectionError)


class KnGroup(TyperGroup):
    """Root group that reports failures of any subcommand as ``Error: ...``."""

    def invoke(self, ctx: typer.Context) -> Any:
        try:
            return super().invoke(ctx)
        except HANDLED_ERRORS as exc:
            error = get_error(exc)
            _LOG.debug("Command failed", exc_info=exc)
            typer.echo(f"Error: {error}", err=True)
            if isinstance(error, UsageError):
                typer.echo(f"Run '{error.command_path} --help' for usage.", err=True)
            raise typer.Exit(code=1) from exc


app = typer.Typer(
    cls=KnGroup,
    help="kn is the command line interface for managing Knative Serving and Eventing resources.",
    no_args_is_help=True,
)

app.add_typer(service.app, name="service")
app.add_typer(revision.app, name="revision")
app.add_typer(route.app, name="route")
app.add_typer(domain.app, name="domain")
app.add_typer(broker.app, name="broker")
app.add_typer(trigger.app, name="trigger")
app.add_typer(channel.app, name="channel")
app.add_typer(subscription.app, name="subscription")
app.add_typer(eventtype.app, name="eventtype")
app.add_typer(source.app, name="source")
app.command("version")(version)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, log_time_format="%X")],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="kubectl configuration file (default: ~/.kube/config)."),
    kube_context: Optional[str] = typer.Option(None, "--context", help="Name of the kubeconfig context to use."),
    cluster: Optional[str] = typer.Option(None, "--cluster", help="Name of the kubeconfig cluster to use."),
    as_user: Optional[str] = typer.Option(None, "--as", help="Username to impersonate for the operation."),
    as_uid: Optional[str] = typer.Option(None, "--as-uid", help="UID to impersonate for the operation."),
    as_groups: Optional[List[str]] = typer.Option(
        None, "--as-group", help="Group to impersonate for the operation, can be repeated."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="kn configuration file (default: ~/.config/kn/config.yaml)."),
    log_http: bool = typer.Option(False, "--log-http", help="Log http traffic."),
) -> None:
    _configure_logging(log_http)
    if (as_uid or as_groups) and not as_user:
        raise ConfigError("impersonating a uid or groups requires a user to impersonate given with --as")
    params = KubeParams(
        kubeconfig=kubeconfig,
        context=kube_context,
        cluster=cluster,
        as_user=as_user,
        as_uid=as_uid,
        as_groups=as_groups or [],
        log_http=log_http,
    )
    ctx.obj = CommandEnv(params=params, config=CliConfig.from_file(config_path))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
