import pytest

from knative_cli.config import ChannelTypeMapping, Profile
from knative_cli.errors import InvalidEncodingError, UsageError
from knative_cli.resources.apiserver_source import ApiServerSourceConfig, WatchedResource, normalize_mode, update_resources
from knative_cli.resources.base import CloudEventOverrides, Destination, KReference
from knative_cli.resources.broker import BROKER_CLASS_ANNOTATION, BrokerConfig
from knative_cli.resources.channel import ChannelType, parse_channel_type
from knative_cli.resources.domain_mapping import DomainMappingConfig, validate_secret_name
from knative_cli.resources.eventtype import EventTypeConfig
from knative_cli.resources.ping_source import PingSourceConfig, select_payload
from knative_cli.resources.service import ServiceConfig, parse_port, update_env
from knative_cli.resources.sink_binding import SinkBindingConfig, Subject
from knative_cli.resources.subscription import parse_channel_ref
from knative_cli.utils import split_updates

SINK = Destination(ref=KReference(kind="Service", apiVersion="serving.knative.dev/v1", name="mysvc", namespace="default"))


def test_select_payload_rules():
    assert select_payload("maxwell", None) == ("maxwell", "")
    assert select_payload("ZGF0YQ==", None) == ("", "ZGF0YQ==")
    assert select_payload("ZGF0YQ==", "text") == ("ZGF0YQ==", "")
    assert select_payload("plain", "base64") == ("", "plain")
    with pytest.raises(InvalidEncodingError):
        select_payload("x", "hex")


def test_ping_source_manifest():
    config = PingSourceConfig(
        name="myping",
        namespace="default",
        schedule="* * * * */2",
        data="maxwell",
        sink=SINK,
        ce_overrides=CloudEventOverrides(add={"bla": "blub", "foo": "bar"}),
    )
    body = config.to_resource().to_dict()
    assert body["apiVersion"] == "sources.knative.dev/v1"
    assert body["spec"]["data"] == "maxwell"
    assert "dataBase64" not in body["spec"]
    assert body["spec"]["sink"]["ref"]["namespace"] == "default"
    assert body["spec"]["ceOverrides"] == {"extensions": {"bla": "blub", "foo": "bar"}}


def test_ping_source_update_switches_payload_field():
    existing = {"metadata": {"name": "myping"}, "spec": {"schedule": "* * * * *", "data": "old"}}
    updated = PingSourceConfig(name="myping", data="ZGF0YQ==").apply_to(existing)
    assert updated["spec"] == {"schedule": "* * * * *", "dataBase64": "ZGF0YQ=="}
    assert existing["spec"]["data"] == "old"


def test_ce_overrides_add_then_remove():
    spec = {"ceOverrides": {"extensions": {"bla": "blub", "foo": "bar"}}}
    CloudEventOverrides(add={"foo": "baz", "bla": "again"}, remove=["bla"]).apply(spec)
    assert spec["ceOverrides"] == {"extensions": {"foo": "baz"}}


def test_apiserver_source_manifest():
    config = ApiServerSourceConfig(
        name="src",
        namespace="default",
        service_account="sa",
        mode="Ref",
        resources=["Event:v1", "Deployment:apps/v1:app=web"],
        sink=SINK,
    )
    spec = config.to_resource().to_dict()["spec"]
    assert spec["mode"] == "Reference"
    assert spec["resources"] == [
        {"apiVersion": "v1", "kind": "Event"},
        {"apiVersion": "apps/v1", "kind": "Deployment", "selector": {"matchLabels": {"app": "web"}}},
    ]


def test_apiserver_resource_errors():
    with pytest.raises(UsageError):
        WatchedResource.parse("Event")
    with pytest.raises(UsageError):
        normalize_mode("Everything")
    with pytest.raises(UsageError) as excinfo:
        update_resources([{"apiVersion": "v1", "kind": "Event"}], ["Pod:v1-"])
    assert "cannot find resource Pod:v1 to remove" in str(excinfo.value)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("messaging.knative.dev:v1:InMemoryChannel", ChannelType("messaging.knative.dev", "v1", "InMemoryChannel")),
        ("imc", ChannelType("messaging.knative.dev", "v1", "InMemoryChannel")),
        ("imcv1beta1", ChannelType("messaging.knative.dev", "v1beta1", "InMemoryChannel")),
        ("kafka", ChannelType("messaging.knative.dev", "v1alpha1", "KafkaChannel")),
    ],
)
def test_parse_channel_type(value, expected):
    mappings = [ChannelTypeMapping(alias="kafka", kind="KafkaChannel", group="messaging.knative.dev", version="v1alpha1")]
    assert parse_channel_type(value, mappings) == expected


def test_parse_channel_type_errors():
    with pytest.raises(UsageError) as excinfo:
        parse_channel_type("messaging.knative.dev:v1")
    assert "must be in the format 'Group:Version:Kind'" in str(excinfo.value)


def test_subscription_channel_reference():
    assert parse_channel_ref("pipe").kind == "Channel"
    typed = parse_channel_ref("imc:pipe")
    assert (typed.kind, typed.api_version, typed.name) == ("InMemoryChannel", "messaging.knative.dev/v1", "pipe")


def test_broker_manifest():
    body = BrokerConfig(name="default", namespace="ns", broker_class="Kafka", dead_letter_sink=SINK).to_resource().to_dict()
    assert body["metadata"]["annotations"] == {BROKER_CLASS_ANNOTATION: "Kafka"}
    assert body["spec"]["delivery"]["deadLetterSink"]["ref"]["name"] == "mysvc"


def test_eventtype_manifest():
    body = EventTypeConfig(
        name="et", namespace="ns", event_type="dev.example", source="https://example.com/src", broker="default"
    ).to_resource().to_dict()
    assert body["spec"]["reference"] == {"apiVersion": "eventing.knative.dev/v1", "kind": "Broker", "name": "default"}
    with pytest.raises(UsageError):
        EventTypeConfig(name="et", event_type="dev.example", source="relative/path").to_resource()


def test_sink_binding_subject():
    subject = Subject.parse("Job:batch/v1:app=heartbeat,team=a")
    assert subject.to_dict() == {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "selector": {"matchLabels": {"app": "heartbeat", "team": "a"}},
    }
    assert Subject.parse("Deployment:apps/v1:web").name == "web"
    with pytest.raises(UsageError):
        Subject.parse("Deployment:apps/v1")
    with pytest.raises(UsageError):
        SinkBindingConfig(name="binding", sink=SINK).to_resource()


def test_domain_mapping_tls_secret():
    assert validate_secret_name("my-cert.example") == "my-cert.example"
    with pytest.raises(UsageError):
        validate_secret_name("Not_Valid")
    with pytest.raises(UsageError):
        DomainMappingConfig(name="example.com").to_resource()


def test_service_manifest_with_profile():
    profile = Profile.model_validate({"annotations": [{"name": "sidecar.istio.io/inject", "value": "true"}]})
    body = ServiceConfig(
        name="hello",
        namespace="default",
        image="ghcr.io/example/hello",
        env={"TARGET": "world"},
        port="h2c:8080",
        scale_max=3,
        profiles=[profile],
    ).to_resource().to_dict()
    template = body["spec"]["template"]
    container = template["spec"]["containers"][0]
    assert container["env"] == [{"name": "TARGET", "value": "world"}]
    assert container["ports"] == [{"containerPort": 8080, "name": "h2c"}]
    assert template["metadata"]["annotations"] == {
        "autoscaling.knative.dev/max-scale": "3",
        "sidecar.istio.io/inject": "true",
    }


def test_service_requires_image_and_valid_scale():
    with pytest.raises(UsageError):
        ServiceConfig(name="hello").to_resource()
    with pytest.raises(UsageError):
        ServiceConfig(name="hello", image="img", scale_min=3, scale_max=1).to_resource()
    with pytest.raises(UsageError):
        parse_port("http:abc")


def test_update_env_keeps_order():
    existing = [{"name": "A", "value": "1"}, {"name": "B", "value": "2"}]
    assert update_env(existing, {"B": "3", "C": "4"}, ["A"]) == [{"name": "B", "value": "3"}, {"name": "C", "value": "4"}]


def test_split_updates():
    assert split_updates(["a=1", "b-", "c=x=y"]) == ({"a": "1", "c": "x=y"}, ["b"])
    with pytest.raises(UsageError):
        split_updates(["=1"])
