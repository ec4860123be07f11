import copy
import json
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from knative_cli.commands import common
from knative_cli.config import KubeParams
from knative_cli.kube import KnativeAPI


def api_error(status: int, message: str) -> ApiException:
    error = ApiException(status=status, reason=message)
    error.body = json.dumps({"kind": "Status", "message": message, "code": status})
    return error


def _matches(labels: Dict[str, str], selector: Optional[str]) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeResource:
    """Stores objects of one API resource as plain dicts keyed by namespace and name."""

    def __init__(self, api_version: str, plural: str) -> None:
        self.api_version = api_version
        self.plural = plural
        self.objects: Dict[Tuple[Optional[str], str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.conflicts = 0
        self.forbidden = False

    def add(self, document: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(document)
        stored.setdefault("apiVersion", self.api_version)
        metadata = stored.setdefault("metadata", {})
        metadata.setdefault("resourceVersion", "1")
        self.objects[(metadata.get("namespace"), metadata["name"])] = stored
        return stored

    def _missing(self, name: str) -> ApiException:
        return api_error(404, f'{self.plural} "{name}" not found')

    def get(self, name: Optional[str] = None, namespace: Optional[str] = None, label_selector: Optional[str] = None):
        self.calls.append(("get", name))
        if self.forbidden:
            raise api_error(403, f"{self.plural} is forbidden")
        if name is not None:
            try:
                return copy.deepcopy(self.objects[(namespace, name)])
            except KeyError:
                raise self._missing(name) from None
        items = [
            copy.deepcopy(document)
            for (item_namespace, _), document in self.objects.items()
            if (namespace is None or item_namespace == namespace)
            and _matches(document["metadata"].get("labels") or {}, label_selector)
        ]
        return {"apiVersion": self.api_version, "kind": "List", "items": items}

    def create(self, body: Dict[str, Any], namespace: Optional[str] = None):
        self.calls.append(("create", body["metadata"]["name"]))
        key = (namespace, body["metadata"]["name"])
        if key in self.objects:
            raise api_error(409, f'{self.plural} "{key[1]}" already exists')
        document = copy.deepcopy(body)
        document["metadata"].setdefault("namespace", namespace)
        return self.add(document)

    def replace(self, body: Dict[str, Any], name: str, namespace: Optional[str] = None):
        self.calls.append(("replace", name))
        if self.conflicts:
            self.conflicts -= 1
            raise api_error(409, f'Operation cannot be fulfilled on {self.plural} "{name}"')
        if (namespace, name) not in self.objects:
            raise self._missing(name)
        return self.add(body)

    def delete(self, name: str, namespace: Optional[str] = None, body: Optional[Dict[str, Any]] = None):
        self.calls.append(("delete", name))
        if self.objects.pop((namespace, name), None) is None:
            raise self._missing(name)
        return {"kind": "Status", "status": "Success"}

    def verbs(self) -> List[str]:
        return [verb for verb, _ in self.calls]


class FakeResources:
    def __init__(self, client: "FakeDynamicClient") -> None:
        self.client = client

    def get(self, api_version: str, name: str) -> FakeResource:
        return self.client.resource(api_version, name)


class FakeDynamicClient:
    """In-memory stand-in for ``kubernetes.dynamic.DynamicClient``."""

    def __init__(self) -> None:
        self.store: Dict[Tuple[str, str], FakeResource] = {}
        self.unserved: Set[Tuple[str, str]] = set()
        self.resources = FakeResources(self)

    def resource(self, api_version: str, plural: str) -> FakeResource:
        if (api_version, plural) in self.unserved:
            raise ResourceNotFoundError(f"No matches found for {{'api_version': '{api_version}', 'name': '{plural}'}}")
        key = (api_version, plural)
        if key not in self.store:
            self.store[key] = FakeResource(api_version, plural)
        return self.store[key]

    def seed(
        self,
        api_version: str,
        plural: str,
        kind: str,
        name: str,
        namespace: Optional[str] = "default",
        labels: Optional[Dict[str, str]] = None,
        **fields,
    ):
        document: Dict[str, Any] = {"apiVersion": api_version, "kind": kind, "metadata": {"name": name}}
        if namespace:
            document["metadata"]["namespace"] = namespace
        if labels:
            document["metadata"]["labels"] = labels
        document.update(fields)
        return self.resource(api_version, plural).add(document)

    def seed_service(self, name: str, namespace: str = "default", **fields):
        return self.seed("serving.knative.dev/v1", "services", "Service", name, namespace, **fields)


@pytest.fixture
def dynamic(monkeypatch, tmp_path) -> FakeDynamicClient:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    client = FakeDynamicClient()
    api = KnativeAPI.__new__(KnativeAPI)
    api.params = KubeParams()
    api.dynamic = client
    monkeypatch.setattr(common, "create_api", lambda params: api)
    monkeypatch.setattr(common, "current_namespace", lambda params: "default")
    return client
