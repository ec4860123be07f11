from kubernetes.config import ConfigException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import MaxRetryError

from conftest import api_error
from knative_cli.errors import (
    ConflictError,
    ConfigError,
    InvalidCRDError,
    KnError,
    NoKubeConfigError,
    NoRouteToHostError,
    NotFoundError,
    TransportError,
    UsageError,
    get_error,
)


def test_api_status_mapping():
    missing = get_error(api_error(404, 'services.serving.knative.dev "foo" not found'))
    assert isinstance(missing, NotFoundError)
    assert str(missing) == 'services.serving.knative.dev "foo" not found'
    assert isinstance(get_error(api_error(409, "conflict")), ConflictError)
    assert isinstance(get_error(api_error(403, "forbidden")), TransportError)
    assert type(get_error(api_error(500, "boom"))) is KnError


def test_missing_api_group():
    error = get_error(ResourceNotFoundError("No matches found for {'api_version': 'sources.knative.dev/v1'}"))
    assert isinstance(error, InvalidCRDError)
    assert error.group == "Eventing"
    assert get_error(ResourceNotFoundError("serving.knative.dev/v1")).group == "Serving"


def test_config_and_transport_errors():
    assert isinstance(get_error(ConfigException("Invalid kube-config file. No configuration found.")), NoKubeConfigError)
    assert isinstance(get_error(ConfigException("context foo not found")), ConfigError)
    error = get_error(MaxRetryError(None, "https://10.0.0.1:6443/api", reason="timed out"))
    assert isinstance(error, NoRouteToHostError)


def test_kn_errors_pass_through():
    error = UsageError("bad")
    assert get_error(error) is error
    assert error.command_path == "kn"
    other = ValueError("x")
    assert get_error(other) is other
