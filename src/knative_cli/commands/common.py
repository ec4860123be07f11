"""Shared command plumbing: environment, validators, printing and completion."""
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import typer
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from ..config import CliConfig, KubeParams
from ..errors import KnError, UsageError
from ..kube import KnativeAPI, Mutator, ResourceClient, current_namespace
from ..printers import DESCRIBE_FORMATS, LIST_FORMATS, Printable, Printer, PrintOptions
from ..refs import DEFAULT_SINK_PREFIX, GVR, PrefixTable, resolve_sink
from ..resources.base import CloudEventOverrides, Destination, ResourceDefinition
from ..utils import split_updates
from ..wait import DEFAULT_ERROR_WINDOW, DEFAULT_TIMEOUT

_LOG = logging.getLogger(__name__)

# seconds after which conflicting updates stop being retried
UPDATE_TIMEOUT = 60.0


def create_api(params: KubeParams) -> KnativeAPI:
    return KnativeAPI(params)


@dataclass
class CommandEnv:
    """Per invocation state handed from the root callback to every command."""

    params: KubeParams = field(default_factory=KubeParams)
    config: CliConfig = field(default_factory=CliConfig)
    update_timeout: float = UPDATE_TIMEOUT
    _api: Optional[KnativeAPI] = field(default=None, repr=False)

    @property
    def prefixes(self) -> PrefixTable:
        return PrefixTable.default(self.config)

    def api(self) -> KnativeAPI:
        if self._api is None:
            self._api = create_api(self.params)
        return self._api

    def namespace(self, explicit: Optional[str] = None) -> str:
        return explicit or current_namespace(self.params)

    def client(self, gvr: GVR, namespace: Optional[str] = None) -> ResourceClient:
        return self.api().resource(gvr, self.namespace(namespace))

    def update(self, gvr: GVR, namespace: str, name: str, mutate: Mutator) -> Dict[str, Any]:
        """Update ``name`` through the retry pipeline, bounded by ``update_timeout``."""

        deadline = time.monotonic() + self.update_timeout
        return self.client(gvr, namespace).update_with_retry(name, mutate, deadline=deadline)


def get_env(ctx: typer.Context) -> CommandEnv:
    root = ctx.find_root()
    if not isinstance(root.obj, CommandEnv):
        root.obj = CommandEnv()
    return root.obj


# option factories, so every command binds the same flag names and help texts

def namespace_option() -> Any:
    return typer.Option(None, "--namespace", "-n", help="Specify the namespace to operate in.")


def all_namespaces_option() -> Any:
    return typer.Option(
        False, "--all-namespaces", "-A", help="If present, list the requested object(s) across all namespaces."
    )


def output_option(formats: tuple = LIST_FORMATS) -> Any:
    return typer.Option(None, "--output", "-o", help=f"Output format. One of: {'|'.join(formats)}.")


def no_headers_option() -> Any:
    return typer.Option(False, "--no-headers", help="When using the default output format, don't print headers.")


def verbose_option() -> Any:
    return typer.Option(False, "--verbose", "-v", help="More output.")


def names_argument(noun: str, completion: Optional[Callable[..., List[str]]] = None) -> Any:
    return typer.Argument(None, metavar="NAME", help=f"Name of the {noun}.", autocompletion=completion)


def sink_option(required: bool = False, name: str = "--sink", short: Optional[str] = "-s") -> Any:
    flags = [name] + ([short] if short else [])
    default = ... if required else None
    return typer.Option(
        default,
        *flags,
        help="Addressable sink for events. You can specify a broker, channel, Knative service or URI. "
        "Examples: '--sink broker:nest' or '--sink ksvc:mysvc' or simply '--sink mysvc'.",
    )


def ce_override_option() -> Any:
    return typer.Option(
        None,
        "--ce-override",
        help="Cloud Event overrides to apply before sending event to sink. "
        "Example: '--ce-override key=value'. To unset, append \"-\" to the key (e.g. --ce-override key-).",
    )


def no_wait_option() -> Any:
    return typer.Option(False, "--no-wait", help="Do not wait for the operation to complete.")


def wait_timeout_option() -> Any:
    return typer.Option(DEFAULT_TIMEOUT, "--wait-timeout", help="Seconds to wait before giving up.")


def wait_window_option() -> Any:
    return typer.Option(
        DEFAULT_ERROR_WINDOW, "--wait-window", help="Seconds a Ready=False condition must persist to be an error."
    )


# declarative validation

def _is_set(value: Any) -> bool:
    return value not in (None, False, "", [], ())


def require_single_name(names: Optional[List[str]], usage: str) -> str:
    """Exactly one positional name, else a usage error with ``usage`` as message."""

    if not names or len(names) != 1:
        raise UsageError(usage)
    return names[0]


def mutually_exclusive(flags: Dict[str, Any]) -> None:
    given = [name for name, value in flags.items() if _is_set(value)]
    if len(given) > 1:
        raise UsageError(f"{' and '.join(given)} are mutually exclusive")


def required(flag: str, value: Any) -> Any:
    if not _is_set(value):
        raise UsageError(f"required flag(s) \"{flag.lstrip('-')}\" not set")
    return value


# printing

def print_options(
    env: CommandEnv,
    namespace: str,
    output: Optional[str] = None,
    all_namespaces: bool = False,
    no_headers: bool = False,
    details: bool = False,
) -> PrintOptions:
    return PrintOptions(
        output=output,
        no_headers=no_headers,
        all_namespaces=all_namespaces,
        current_namespace=namespace,
        details=details,
        prefixes=env.prefixes,
    )


def print_list(view: Printable, document: Dict[str, Any], options: PrintOptions, empty_message: str) -> None:
    Printer.validate_format(options.output, LIST_FORMATS)
    if not options.output and not document.get("items"):
        typer.echo(empty_message)
        return
    Printer(view, options).print_list(document, sys.stdout)


def print_object(view: Printable, item: Dict[str, Any], options: PrintOptions) -> None:
    Printer(view, options).print_object(item, sys.stdout)


def created(kind: str, name: str, namespace: str, prefix: str = "") -> None:
    typer.echo(f"{kind} '{name}' {prefix}created in namespace '{namespace}'.")


def create_resource(client: ResourceClient, resource: ResourceDefinition) -> Dict[str, Any]:
    return client.create(resource.to_dict())


def resolve_sink_flag(env: CommandEnv, text: str, namespace: str, default_prefix: str = DEFAULT_SINK_PREFIX) -> Destination:
    return resolve_sink(text, env.api(), namespace, env.prefixes, default_prefix)


def parse_ce_overrides(entries: Optional[List[str]]) -> CloudEventOverrides:
    additions, removals = split_updates(entries or [])
    return CloudEventOverrides(add=additions, remove=removals)


# generic verbs

def name_completer(gvr: GVR) -> Callable[[typer.Context, str], List[str]]:
    """Shell completion listing objects of ``gvr`` whose name starts with the typed prefix."""

    def complete(ctx: typer.Context, incomplete: str) -> List[str]:
        if ctx.params.get("names"):
            return []
        root = ctx.find_root().params
        params = KubeParams(
            kubeconfig=root.get("kubeconfig"),
            context=root.get("kube_context"),
            cluster=root.get("cluster"),
        )
        try:
            namespace = ctx.params.get("namespace") or current_namespace(params)
            listing = create_api(params).resource(gvr, namespace).list()
        except (KnError, ApiException, ConfigException, ResourceNotFoundError, OSError) as exc:
            _LOG.debug("No completions for %s: %s", gvr.resource, exc)
            return []
        names = [item.get("metadata", {}).get("name", "") for item in listing.get("items", [])]
        return [name for name in names if name.startswith(incomplete)]

    return complete


def add_list_command(
    app: typer.Typer,
    gvr: GVR,
    view: Callable[[], Printable],
    plural: str,
    help_text: str,
) -> None:
    @app.command("list", help=help_text)
    def list_command(
        ctx: typer.Context,
        namespace: Optional[str] = namespace_option(),
        all_namespaces: bool = all_namespaces_option(),
        output: Optional[str] = output_option(),
        no_headers: bool = no_headers_option(),
    ) -> None:
        env = get_env(ctx)
        current = env.namespace(namespace)
        options = print_options(env, current, output, all_namespaces, no_headers)
        Printer.validate_format(output, LIST_FORMATS)
        document = env.client(gvr, current).list(all_namespaces=all_namespaces)
        print_list(view(), document, options, f"No {plural} found.")


def add_describe_command(
    app: typer.Typer,
    gvr: GVR,
    view: Callable[[], Printable],
    noun: str,
    help_text: str,
) -> None:
    @app.command("describe", help=help_text)
    def describe_command(
        ctx: typer.Context,
        names: Optional[List[str]] = names_argument(noun, name_completer(gvr)),
        namespace: Optional[str] = namespace_option(),
        output: Optional[str] = output_option(DESCRIBE_FORMATS),
        verbose: bool = verbose_option(),
    ) -> None:
        name = require_single_name(names, f"'{noun} describe' requires the {noun} name given as single argument")
        Printer.validate_format(output, DESCRIBE_FORMATS)
        env = get_env(ctx)
        current = env.namespace(namespace)
        item = env.client(gvr, current).get(name)
        print_object(view(), item, print_options(env, current, output, details=verbose))


def add_delete_command(
    app: typer.Typer,
    gvr: GVR,
    noun: str,
    label: str,
    help_text: str,
) -> None:
    @app.command("delete", help=help_text)
    def delete_command(
        ctx: typer.Context,
        names: Optional[List[str]] = names_argument(noun, name_completer(gvr)),
        namespace: Optional[str] = namespace_option(),
    ) -> None:
        name = require_single_name(names, f"'{noun} delete' requires the {noun} name given as single argument")
        env = get_env(ctx)
        current = env.namespace(namespace)
        env.client(gvr, current).delete(name)
        typer.echo(f"{label} '{name}' deleted in namespace '{current}'.")
