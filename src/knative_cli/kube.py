"""Kubernetes client construction and resource access for the kn CLI."""
from __future__ import annotations

import copy
import logging
import os
import random
import re
import sys
import time
from functools import cached_property
from typing import Any, Callable, Dict, Optional, Sequence, Set, TextIO

import yaml
from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic import DynamicClient, ResourceInstance
from urllib3._collections import HTTPHeaderDict

from .config import KubeParams
from .errors import (
    ConfigFileNotFoundError,
    ConflictError,
    MarkedForDeletionError,
    MultipleConfigsNotSupportedError,
    NoKubeConfigError,
    api_message,
    is_conflict,
)
from .refs import GVR
from .utils import nested_get


_LOG = logging.getLogger(__name__)

MAX_UPDATE_RETRIES = 5
RETRY_INITIAL_DELAY = 0.01
RETRY_FACTOR = 2.0
RETRY_MAX_DELAY = 1.0

SERVICE_ACCOUNT_NAMESPACE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"

CRD_GVR = GVR("apiextensions.k8s.io", "v1", "customresourcedefinitions")

_WARNING_PATTERN = re.compile(r'^\d{3}\s+\S+\s+"(?P<text>.*)"$')

Mutator = Callable[[Dict[str, Any]], Dict[str, Any]]


def _to_dict(result: Any) -> Dict[str, Any]:
    return result.to_dict() if isinstance(result, ResourceInstance) else result


def _default_kubeconfig() -> str:
    # first entry of $KUBECONFIG wins, as with the client's own loader
    locations = os.environ.get("KUBECONFIG", "~/.kube/config")
    return os.path.expanduser(locations.split(os.pathsep)[0])


def resolve_kubeconfig_path(params: KubeParams) -> Optional[str]:
    """Return the kubeconfig file to load, or ``None`` for the default loading rules."""

    path = params.kubeconfig
    if not path:
        return None
    if os.path.exists(path):
        return path
    if len(path.split(os.pathsep)) > 1:
        raise MultipleConfigsNotSupportedError(path)
    raise ConfigFileNotFoundError(path)


def _load_with_cluster_override(path: str, params: KubeParams, configuration: client.Configuration) -> None:
    with open(path) as stream:
        document = yaml.safe_load(stream) or {}
    context_name = params.context or document.get("current-context")
    for entry in document.get("contexts") or []:
        if entry.get("name") == context_name:
            entry.setdefault("context", {})["cluster"] = params.cluster
    config.load_kube_config_from_dict(
        document,
        context=params.context,
        client_configuration=configuration,
        persist_config=False,
    )


def load_client_configuration(params: KubeParams) -> client.Configuration:
    """Build a client configuration from kubeconfig parameters."""

    explicit_path = resolve_kubeconfig_path(params)
    configuration = client.Configuration()
    try:
        if params.cluster:
            _load_with_cluster_override(explicit_path or _default_kubeconfig(), params, configuration)
        else:
            config.load_kube_config(
                config_file=explicit_path,
                context=params.context,
                client_configuration=configuration,
                persist_config=False,
            )
    except (ConfigException, FileNotFoundError) as exc:
        if explicit_path:
            raise NoKubeConfigError(str(exc)) from exc
        _LOG.debug("No usable kubeconfig (%s), trying in-cluster configuration", exc)
        try:
            config.load_incluster_config(client_configuration=configuration)
        except ConfigException as incluster_exc:
            raise NoKubeConfigError() from incluster_exc
    configuration.debug = params.log_http
    return configuration


def current_namespace(params: KubeParams) -> str:
    """Namespace of the selected kubeconfig context, ``default`` when unset."""

    explicit_path = resolve_kubeconfig_path(params)
    try:
        contexts, active = config.list_kube_config_contexts(config_file=explicit_path)
    except (ConfigException, FileNotFoundError):
        if os.path.exists(SERVICE_ACCOUNT_NAMESPACE):
            with open(SERVICE_ACCOUNT_NAMESPACE) as stream:
                return stream.read().strip() or "default"
        return "default"
    selected = active
    if params.context:
        selected = next((entry for entry in contexts if entry.get("name") == params.context), active)
    return nested_get(selected, "context", "namespace", default="default")


class KnApiClient(client.ApiClient):
    """API client that reports each distinct server ``Warning`` header once.

    Impersonated groups go out as one ``Impersonate-Group`` header line per
    group, since the server reads every line as a single group name.
    """

    def __init__(
        self,
        configuration: Optional[client.Configuration] = None,
        stream: Optional[TextIO] = None,
        impersonate_groups: Sequence[str] = (),
    ) -> None:
        super().__init__(configuration)
        self._warning_stream = stream
        self._seen_warnings: Set[str] = set()
        self._impersonate_groups = list(impersonate_groups)

    def request(self, method, url, query_params=None, headers=None, *args, **kwargs):
        if self._impersonate_groups:
            headers = HTTPHeaderDict(headers or {})
            for group in self._impersonate_groups:
                headers.add("Impersonate-Group", group)
        response = super().request(method, url, query_params, headers, *args, **kwargs)
        self._report_warnings(response)
        return response

    def _report_warnings(self, response: Any) -> None:
        raw = getattr(response, "urllib3_response", response)
        headers = getattr(raw, "headers", None)
        if not headers:
            return
        value = headers.get("Warning")
        if not value:
            return
        match = _WARNING_PATTERN.match(value.strip())
        text = match.group("text") if match else value.strip()
        if text in self._seen_warnings:
            return
        self._seen_warnings.add(text)
        stream = self._warning_stream or sys.stderr
        stream.write(f"Warning: {text}\n")


def new_api_client(params: KubeParams, warning_stream: Optional[TextIO] = None) -> client.ApiClient:
    configuration = load_client_configuration(params)
    api_client = KnApiClient(configuration, stream=warning_stream, impersonate_groups=params.as_groups)
    if params.as_user:
        api_client.set_default_header("Impersonate-User", params.as_user)
    if params.as_uid:
        api_client.set_default_header("Impersonate-Uid", params.as_uid)
    return api_client


def retry_delay(attempt: int) -> float:
    """Backoff before retry number ``attempt`` (1-based), with a little jitter."""

    delay = min(RETRY_INITIAL_DELAY * (RETRY_FACTOR ** (attempt - 1)), RETRY_MAX_DELAY)
    return delay * (1.0 + 0.1 * random.random())


class ResourceClient:
    """Access to one resource type of the cluster within a namespace."""

    def __init__(self, api: "KnativeAPI", gvr: GVR, namespace: Optional[str]) -> None:
        self.api = api
        self.gvr = gvr
        self.namespace = namespace

    @property
    def _resource(self) -> Any:
        return self.api.dynamic.resources.get(api_version=self.gvr.api_version, name=self.gvr.resource)

    def get(self, name: str) -> Dict[str, Any]:
        return _to_dict(self._resource.get(name=name, namespace=self.namespace))

    def list(self, all_namespaces: bool = False, label_selector: Optional[str] = None) -> Dict[str, Any]:
        """List objects; every item carries the list's apiVersion and kind."""

        namespace = None if all_namespaces else self.namespace
        kwargs: Dict[str, Any] = {"namespace": namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = _to_dict(self._resource.get(**kwargs)) or {}
        items = result.get("items") or []
        list_kind = result.get("kind") or ""
        item_kind = list_kind[: -len("List")] if list_kind.endswith("List") else list_kind
        api_version = result.get("apiVersion") or self.gvr.api_version
        for item in items:
            item.setdefault("apiVersion", api_version)
            if item_kind:
                item.setdefault("kind", item_kind)
        result["items"] = items
        result.setdefault("apiVersion", api_version)
        return result

    def create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        _LOG.debug("Creating %s/%s", self.gvr.resource, nested_get(body, "metadata", "name"))
        return _to_dict(self._resource.create(body=body, namespace=self.namespace))

    def replace(self, body: Dict[str, Any]) -> Dict[str, Any]:
        name = nested_get(body, "metadata", "name")
        _LOG.debug("Updating %s/%s", self.gvr.resource, name)
        return _to_dict(self._resource.replace(body=body, name=name, namespace=self.namespace))

    def delete(self, name: str) -> None:
        self._resource.delete(name=name, namespace=self.namespace)
        _LOG.debug("Deleted %s/%s", self.gvr.resource, name)

    def update_with_retry(
        self,
        name: str,
        mutate: Mutator,
        max_attempts: int = MAX_UPDATE_RETRIES,
        deadline: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Dict[str, Any]:
        """Get, mutate and replace ``name``, retrying on version conflicts.

        ``mutate`` receives a fresh copy of the server document on every
        attempt. ``deadline`` is a ``time.monotonic()`` value after which no
        further attempt is started.
        """

        attempt = 0
        while True:
            attempt += 1
            current = self.get(name)
            if nested_get(current, "metadata", "deletionTimestamp"):
                raise MarkedForDeletionError(current.get("kind") or self.gvr.resource, name)
            updated = mutate(copy.deepcopy(current))
            try:
                return self.replace(updated)
            except ApiException as exc:
                if not is_conflict(exc):
                    raise
                out_of_time = deadline is not None and time.monotonic() >= deadline
                if attempt >= max_attempts or out_of_time:
                    raise ConflictError(api_message(exc)) from exc
                delay = retry_delay(attempt)
                _LOG.debug("Conflict updating %s/%s, retrying in %.3fs", self.gvr.resource, name, delay)
                sleep(delay)


class KnativeAPI:
    """Wrapper around the Kubernetes dynamic client with kn specific helpers."""

    def __init__(self, params: KubeParams, warning_stream: Optional[TextIO] = None) -> None:
        self.params = params
        self.api_client = new_api_client(params, warning_stream)

    @cached_property
    def dynamic(self) -> DynamicClient:
        # discovery talks to the server, so only connect on first use
        return DynamicClient(self.api_client)

    def resource(self, gvr: GVR, namespace: Optional[str] = None) -> ResourceClient:
        return ResourceClient(self, gvr, namespace)

    def list_crds(self, label_selector: Optional[str] = None) -> Dict[str, Any]:
        crds = self.resource(CRD_GVR)
        return crds.list(label_selector=label_selector)
