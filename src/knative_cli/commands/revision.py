"""``kn revision`` commands."""
from __future__ import annotations

from typing import List, Optional

import typer

from ..printers import LIST_FORMATS, Printer
from ..refs import GVR, KSERVICE
from ..resources.service import KSERVICE_API_VERSION, RevisionView
from .common import (
    add_delete_command,
    add_describe_command,
    all_namespaces_option,
    get_env,
    no_headers_option,
    namespace_option,
    output_option,
    print_list,
    print_options,
)

REVISIONS = GVR.from_api_version(KSERVICE_API_VERSION, "revisions")

app = typer.Typer(help="Manage service revisions.", no_args_is_help=True)


@app.command("list")
def list_revisions(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(None, "--service", "-s", help="Service name to list revisions for."),
    namespace: Optional[str] = namespace_option(),
    all_namespaces: bool = all_namespaces_option(),
    output: Optional[str] = output_option(),
    no_headers: bool = no_headers_option(),
) -> None:
    """List revisions, with the traffic share each one receives."""

    Printer.validate_format(output, LIST_FORMATS)
    env = get_env(ctx)
    current = env.namespace(namespace)
    selector = f"{RevisionView.SERVICE_LABEL}={service}" if service else None
    document = env.client(REVISIONS, current).list(all_namespaces=all_namespaces, label_selector=selector)
    services = env.client(KSERVICE, current).list(all_namespaces=all_namespaces).get("items", [])
    view = RevisionView(RevisionView.traffic_by_revision(services))
    empty = f"No revisions found for service '{service}'." if service else "No revisions found."
    print_list(view, document, print_options(env, current, output, all_namespaces, no_headers), empty)


add_describe_command(app, REVISIONS, RevisionView, "revision", "Show details of a revision.")
add_delete_command(app, REVISIONS, "revision", "Revision", "Delete a revision.")
