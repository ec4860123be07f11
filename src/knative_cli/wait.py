"""Polling helpers that wait for resources to become ready or disappear."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from kubernetes.client import ApiException

from .errors import KnError, WaitTimeoutError, is_not_found
from .printers import conditions_of
from .utils import nested_get

_LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600
DEFAULT_ERROR_WINDOW = 2
POLL_INTERVAL = 1.0

Fetcher = Callable[[], Dict[str, Any]]


def _ready_condition(document: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    generation = nested_get(document, "metadata", "generation")
    observed = nested_get(document, "status", "observedGeneration")
    if generation is not None and observed is not None and observed < generation:
        # status still describes an older generation
        return None
    for condition in conditions_of(document):
        if condition.get("type") == "Ready":
            return condition
    return None


def wait_for_ready(
    fetch: Fetcher,
    kind: str,
    name: str,
    timeout: float = DEFAULT_TIMEOUT,
    error_window: float = DEFAULT_ERROR_WINDOW,
    poll_interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> float:
    """Poll ``fetch`` until the Ready condition is True and return the elapsed seconds.

    A False Ready condition only fails the wait once it has stayed False for
    ``error_window`` seconds, so short flickers during a rollout are ignored.
    """

    start = clock()
    failing_since: Optional[float] = None
    while True:
        now = clock()
        condition = _ready_condition(fetch())
        status = condition.get("status") if condition else None
        if status == "True":
            return now - start
        if status == "False":
            if failing_since is None:
                failing_since = now
            if now - failing_since >= error_window:
                reason = condition.get("reason") or ""
                message = condition.get("message") or ""
                detail = f"{reason}: {message}" if message else reason
                raise KnError(f"{kind} '{name}' not ready: {detail}")
        else:
            failing_since = None
        if now - start >= timeout:
            raise WaitTimeoutError(f"timeout: {kind} '{name}' not ready after {int(timeout)} seconds")
        _LOG.debug("Waiting for %s %s to become ready (status %s)", kind, name, status)
        sleep(poll_interval)


def wait_for_deletion(
    fetch: Fetcher,
    kind: str,
    name: str,
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> float:
    """Poll ``fetch`` until the server answers NotFound; return the elapsed seconds."""

    start = clock()
    while True:
        now = clock()
        try:
            fetch()
        except ApiException as exc:
            if is_not_found(exc):
                return now - start
            raise
        if now - start >= timeout:
            raise WaitTimeoutError(f"timeout: {kind} '{name}' not deleted after {int(timeout)} seconds")
        sleep(poll_interval)
