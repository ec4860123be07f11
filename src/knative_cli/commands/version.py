"""``kn version`` command."""
from __future__ import annotations

import json
import sys
from typing import Any, Dict, Optional

import typer
import yaml

from .. import BUILD_DATE, EVENTING_VERSION, GIT_REVISION, SERVING_VERSION, __version__
from ..errors import FormatError


def version_info() -> Dict[str, Any]:
    return {
        "Version": __version__,
        "BuildDate": BUILD_DATE,
        "GitRevision": GIT_REVISION,
        "SupportedAPIs": {
            "serving": [f"serving.knative.dev/v1 (knative-serving {SERVING_VERSION})"],
            "eventing": [
                f"sources.knative.dev/v1 (knative-eventing {EVENTING_VERSION})",
                f"eventing.knative.dev/v1 (knative-eventing {EVENTING_VERSION})",
            ],
        },
    }


def version(
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format. One of: json|yaml."),
) -> None:
    """Show the version of this client."""

    info = version_info()
    if output is not None:
        fmt = output.lower()
        if fmt == "json":
            typer.echo(json.dumps(info, indent=4))
        elif fmt == "yaml":
            yaml.safe_dump(info, sys.stdout, sort_keys=False)
        else:
            raise FormatError("invalid value for output flag, choose one among 'json' or 'yaml'")
        return
    typer.echo(f"Version:      {info['Version']}")
    typer.echo(f"Build Date:   {info['BuildDate']}")
    typer.echo(f"Git Revision: {info['GitRevision']}")
    typer.echo("Supported APIs:")
    typer.echo("* Serving")
    for api in info["SupportedAPIs"]["serving"]:
        typer.echo(f"  - {api}")
    typer.echo("* Eventing")
    for api in info["SupportedAPIs"]["eventing"]:
        typer.echo(f"  - {api}")
