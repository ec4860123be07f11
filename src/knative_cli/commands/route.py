"""``kn route`` commands."""
from __future__ import annotations

import typer

from ..refs import KROUTE
from ..resources.service import RouteView
from .common import add_describe_command, add_list_command

app = typer.Typer(help="List and describe service routes.", no_args_is_help=True)

add_describe_command(app, KROUTE, RouteView, "route", "Show details of a route.")
add_list_command(app, KROUTE, RouteView, "routes", "List routes.")
