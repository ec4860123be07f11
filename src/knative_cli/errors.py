"""Error types and normalization of cluster errors for the kn CLI."""
from __future__ import annotations

import json
from typing import Optional

import click
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import MaxRetryError, NewConnectionError, ProtocolError


class KnError(Exception):
    """Base exception for all errors surfaced to the user."""


class UsageError(KnError):
    """Raised on wrong argument counts or conflicting flags.

    Remembers the command path of the click context active when raised so the
    top level can point at the right help page.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        ctx = click.get_current_context(silent=True)
        self.command_path = ctx.command_path if ctx is not None else "kn"


class ConfigError(KnError):
    """Raised when client or CLI configuration cannot be used."""


class ConfigFileNotFoundError(ConfigError):
    """Raised when an explicit kubeconfig path does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"can not find config file: '{path}'")
        self.path = path


class MultipleConfigsNotSupportedError(ConfigError):
    """Raised when a list of kubeconfig files is given on the command line."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"can not find config file. '{path}' looks like a path. Please use the env var "
            "KUBECONFIG if you want to check for multiple configuration files"
        )
        self.path = path


class NoKubeConfigError(ConfigError):
    """Raised when no kubeconfig is available at all."""

    def __init__(self, detail: str = "") -> None:
        message = (
            "no kubeconfig has been provided, please use a valid configuration to connect to the cluster"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SinkRequiredError(KnError):
    """Raised when a sink is mandatory but was not given."""

    def __init__(self) -> None:
        super().__init__("sink is required")


class SinkInvalidError(KnError):
    """Raised when a sink cannot be parsed or does not exist."""

    def __init__(self, detail: str = "", cause: Optional[BaseException] = None) -> None:
        message = "sink has invalid format"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.cause = cause


class NotFoundError(KnError):
    """A resource looked up by name is absent on the server."""


class ConflictError(KnError):
    """The resource version conflicted on every update attempt."""


class MarkedForDeletionError(KnError):
    """Raised when updating a resource that carries a deletion timestamp."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"can't update {kind} '{name}' because it has been marked for deletion")
        self.kind = kind
        self.name = name


class TransportError(KnError):
    """Connection or authentication problem when talking to the cluster."""


class NoRouteToHostError(TransportError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            f"error connecting to the cluster, please verify connection at: {detail}"
        )


class FormatError(KnError):
    """Raised for an unsupported output format."""


class InvalidCRDError(KnError):
    """The Knative API group is not installed on the cluster."""

    def __init__(self, group: str) -> None:
        super().__init__(
            f"no or newer Knative {group} API found on the backend, please verify the installation or update this client"
        )
        self.group = group


class InvalidEncodingError(KnError):
    """Raised for an unsupported ping source data encoding."""

    def __init__(self, encoding: str) -> None:
        super().__init__(f"invalid value: {encoding}. Accepted values are: text|base64")
        self.encoding = encoding


class WaitTimeoutError(KnError, TimeoutError):
    """Raised when a resource did not become ready in time."""


def api_status(exc: BaseException) -> Optional[int]:
    """Return the HTTP status carried by a kubernetes API exception."""

    if isinstance(exc, ApiException):
        return exc.status
    return None


def is_not_found(exc: BaseException) -> bool:
    return api_status(exc) == 404


def is_conflict(exc: BaseException) -> bool:
    return api_status(exc) == 409


def is_forbidden(exc: BaseException) -> bool:
    return api_status(exc) == 403


def api_message(exc: ApiException) -> str:
    """Extract the server supplied message from an API exception."""

    body = getattr(exc, "body", None)
    if body:
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        try:
            payload = json.loads(body)
        except (TypeError, ValueError):
            payload = None
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
    summary = getattr(exc, "summary", None)
    if callable(summary):
        summary = summary()
    if summary:
        return str(summary)
    return str(exc.reason or exc.status)


def _group_of(exc: ResourceNotFoundError) -> str:
    text = str(exc)
    if "eventing" in text or "sources" in text or "messaging" in text:
        return "Eventing"
    return "Serving"


def get_error(exc: BaseException) -> BaseException:
    """Map low level client errors onto the user facing error taxonomy.

    Errors that are not recognized are returned unchanged.
    """

    if exc is None or isinstance(exc, KnError):
        return exc
    if isinstance(exc, ResourceNotFoundError):
        return InvalidCRDError(_group_of(exc))
    if isinstance(exc, ApiException):
        message = api_message(exc)
        if exc.status == 404:
            return NotFoundError(message)
        if exc.status == 409:
            return ConflictError(message)
        if exc.status in (401, 403):
            return TransportError(message)
        return KnError(message)
    if isinstance(exc, ConfigException):
        text = str(exc)
        if "Invalid kube-config" in text or "Service host/port is not set" in text or "no configuration" in text:
            return NoKubeConfigError(text)
        return ConfigError(text)
    if isinstance(exc, (MaxRetryError, NewConnectionError, ProtocolError, ConnectionError)):
        text = str(exc)
        if "no route to host" in text.lower() or "timed out" in text.lower() or isinstance(exc, MaxRetryError):
            return NoRouteToHostError(text)
        return TransportError(text)
    return exc
