import io
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from knative_cli import kube
from knative_cli.commands.common import CommandEnv
from knative_cli.config import KubeParams
from knative_cli.errors import ConfigFileNotFoundError, ConflictError, MarkedForDeletionError, MultipleConfigsNotSupportedError
from knative_cli.kube import MAX_UPDATE_RETRIES, KnativeAPI, resolve_kubeconfig_path, retry_delay
from knative_cli.refs import BROKER


def _make_api() -> KnativeAPI:
    api = KnativeAPI.__new__(KnativeAPI)
    api.params = KubeParams()
    api.dynamic = MagicMock()
    return api


def _broker(**metadata):
    return {"apiVersion": "eventing.knative.dev/v1", "kind": "Broker", "metadata": {"name": "default", **metadata}, "spec": {}}


def test_update_gives_up_after_max_attempts():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = _broker()
    resource.replace.side_effect = ApiException(status=409, reason="Conflict")
    sleep = MagicMock()

    with pytest.raises(ConflictError):
        api.resource(BROKER, "default").update_with_retry("default", lambda doc: doc, sleep=sleep)

    assert resource.replace.call_count == MAX_UPDATE_RETRIES
    assert sleep.call_count == MAX_UPDATE_RETRIES - 1


def test_update_retries_conflict_then_succeeds():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = _broker()
    resource.replace.side_effect = [ApiException(status=409, reason="Conflict"), {"metadata": {"name": "default"}}]

    def mutate(doc):
        doc["spec"]["delivery"] = {"retry": 3}
        return doc

    result = api.resource(BROKER, "default").update_with_retry("default", mutate, sleep=MagicMock())

    assert result == {"metadata": {"name": "default"}}
    assert resource.get.call_count == 2
    assert resource.replace.call_args.kwargs["body"]["spec"] == {"delivery": {"retry": 3}}


def test_update_never_puts_when_marked_for_deletion():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = _broker(deletionTimestamp="2024-01-01T00:00:00Z")
    mutate = MagicMock()

    with pytest.raises(MarkedForDeletionError) as excinfo:
        api.resource(BROKER, "default").update_with_retry("default", mutate)

    assert "marked for deletion" in str(excinfo.value)
    mutate.assert_not_called()
    resource.replace.assert_not_called()


def test_update_propagates_other_errors():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = _broker()
    resource.replace.side_effect = ApiException(status=422, reason="Invalid")

    with pytest.raises(ApiException):
        api.resource(BROKER, "default").update_with_retry("default", lambda doc: doc)
    assert resource.replace.call_count == 1


def test_list_fills_item_kind():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = {"apiVersion": "eventing.knative.dev/v1", "kind": "BrokerList", "items": [{"metadata": {"name": "b"}}]}

    listing = api.resource(BROKER, "default").list(label_selector="a=b")

    assert listing["items"][0]["kind"] == "Broker"
    assert listing["items"][0]["apiVersion"] == "eventing.knative.dev/v1"
    resource.get.assert_called_once_with(namespace="default", label_selector="a=b")


def test_retry_delay_is_capped():
    assert 0.01 <= retry_delay(1) < 0.012
    assert retry_delay(20) <= 1.1


def test_kubeconfig_path_errors(tmp_path):
    with pytest.raises(ConfigFileNotFoundError):
        resolve_kubeconfig_path(KubeParams(kubeconfig=str(tmp_path / "missing")))
    with pytest.raises(MultipleConfigsNotSupportedError):
        resolve_kubeconfig_path(KubeParams(kubeconfig=f"{tmp_path}/a:{tmp_path}/b"))
    existing = tmp_path / "config"
    existing.write_text("apiVersion: v1\nkind: Config\n")
    assert resolve_kubeconfig_path(KubeParams(kubeconfig=str(existing))) == str(existing)


def test_update_stops_retrying_once_deadline_passed():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = _broker()
    resource.replace.side_effect = ApiException(status=409, reason="Conflict")
    sleep = MagicMock()

    with pytest.raises(ConflictError):
        api.resource(BROKER, "default").update_with_retry(
            "default", lambda doc: doc, deadline=time.monotonic() - 1, sleep=sleep
        )

    assert resource.replace.call_count == 1
    sleep.assert_not_called()


def test_command_env_bounds_updates_by_timeout():
    api = _make_api()
    resource = api.dynamic.resources.get.return_value
    resource.get.return_value = _broker()
    resource.replace.side_effect = ApiException(status=409, reason="Conflict")
    env = CommandEnv(update_timeout=0.0, _api=api)

    with pytest.raises(ConflictError):
        env.update(BROKER, "default", "default", lambda doc: doc)

    assert resource.replace.call_count == 1


KUBECONFIG = """
apiVersion: v1
kind: Config
current-context: dev
clusters:
- name: a
  cluster:
    server: https://a.example.com:6443
- name: b
  cluster:
    server: https://b.example.com:6443
contexts:
- name: dev
  context:
    cluster: a
    user: me
    namespace: team
users:
- name: me
  user:
    token: secret
"""


def test_cluster_override_selects_server(tmp_path):
    path = tmp_path / "config"
    path.write_text(KUBECONFIG)

    assert kube.load_client_configuration(KubeParams(kubeconfig=str(path))).host == "https://a.example.com:6443"
    overridden = kube.load_client_configuration(KubeParams(kubeconfig=str(path), cluster="b"))
    assert overridden.host == "https://b.example.com:6443"
    assert kube.current_namespace(KubeParams(kubeconfig=str(path))) == "team"


def _record_requests(monkeypatch, responses):
    sent = []

    def request(self, method, url, query_params=None, headers=None, *args, **kwargs):
        sent.append(headers)
        return responses.pop(0)

    monkeypatch.setattr(client.ApiClient, "request", request)
    return sent


def test_server_warnings_are_written_once(monkeypatch):
    response = SimpleNamespace(headers={"Warning": '299 - "eventing.knative.dev/v1beta1 EventType is deprecated"'})
    _record_requests(monkeypatch, [response, response])
    stream = io.StringIO()
    api_client = kube.KnApiClient(client.Configuration(), stream=stream)

    api_client.request("GET", "https://example.com/a")
    api_client.request("GET", "https://example.com/b")

    assert stream.getvalue() == "Warning: eventing.knative.dev/v1beta1 EventType is deprecated\n"


def test_impersonation_sends_one_group_header_per_group(monkeypatch):
    monkeypatch.setattr(kube, "load_client_configuration", lambda params: client.Configuration())
    sent = _record_requests(monkeypatch, [SimpleNamespace(headers={})])
    api_client = kube.new_api_client(KubeParams(as_user="jane", as_uid="42", as_groups=["dev", "ops"]))

    assert api_client.default_headers["Impersonate-User"] == "jane"
    assert api_client.default_headers["Impersonate-Uid"] == "42"
    api_client.request("GET", "https://example.com/api", headers={"Accept": "application/json"})

    assert sent[0].getlist("Impersonate-Group") == ["dev", "ops"]
    assert sent[0]["Accept"] == "application/json"


def test_no_group_header_without_groups(monkeypatch):
    monkeypatch.setattr(kube, "load_client_configuration", lambda params: client.Configuration())
    sent = _record_requests(monkeypatch, [SimpleNamespace(headers={})])
    api_client = kube.new_api_client(KubeParams(as_user="jane"))

    api_client.request("GET", "https://example.com/api", headers={"Accept": "application/json"})

    assert "Impersonate-Group" not in api_client.default_headers
    assert sent[0] == {"Accept": "application/json"}
