import json

import yaml
from typer.testing import CliRunner

from knative_cli.cli import app


runner = CliRunner()

CRDS = ("apiextensions.k8s.io/v1", "customresourcedefinitions")
TRIGGERS = ("eventing.knative.dev/v1", "triggers")
PINGSOURCES = ("sources.knative.dev/v1", "pingsources")
APISERVERSOURCES = ("sources.knative.dev/v1", "apiserversources")


def _ready(url=""):
    status = {"conditions": [{"type": "Ready", "status": "True"}]}
    if url:
        status["url"] = url
    return status


def test_top_level_nouns_present() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for noun in ("service", "revision", "route", "domain", "broker", "trigger", "channel", "subscription", "source"):
        assert noun in result.stdout


def test_source_subcommands() -> None:
    result = runner.invoke(app, ["source", "--help"])
    assert result.exit_code == 0
    for command in ("list", "list-types", "ping", "apiserver", "binding"):
        assert command in result.stdout


def test_channel_create_with_type(dynamic):
    result = runner.invoke(
        app, ["channel", "create", "pipe", "--type", "messaging.knative.dev:v1:InMemoryChannel", "-n", "test"]
    )
    assert result.exit_code == 0, result.output
    assert "Channel 'pipe' created in namespace 'test'." in result.output
    channel = dynamic.resource("messaging.knative.dev/v1", "channels").objects[("test", "pipe")]
    assert channel["spec"]["channelTemplate"] == {"apiVersion": "messaging.knative.dev/v1", "kind": "InMemoryChannel"}


def test_channel_create_with_unknown_alias(dynamic):
    result = runner.invoke(app, ["channel", "create", "pipe", "--type", "kafka"])
    assert result.exit_code == 1
    assert "unknown channel type alias: 'kafka'" in result.output
    assert not dynamic.resource("messaging.knative.dev/v1", "channels").objects


def test_channel_delete_missing(dynamic):
    result = runner.invoke(app, ["channel", "delete", "pipe", "-n", "test"])
    assert result.exit_code == 1
    assert result.output.startswith("Error:")
    assert "not found" in result.output


def test_channel_list_types_without_crds(dynamic):
    result = runner.invoke(app, ["channel", "list-types"])
    assert result.exit_code == 1
    assert "no or newer Knative Channels API found" in result.output


def test_channel_list_types_falls_back_when_forbidden(dynamic):
    dynamic.resource(*CRDS).forbidden = True
    result = runner.invoke(app, ["channel", "list-types"])
    assert result.exit_code == 0, result.output
    assert "InMemoryChannel" in result.output
    assert "The events are stored in memory" in result.output


def test_ping_create_plain_data(dynamic):
    dynamic.seed_service("mysvc")
    result = runner.invoke(
        app,
        [
            "source", "ping", "create", "myping",
            "--sink", "ksvc:mysvc",
            "--schedule", "* * * * */2",
            "--data", "maxwell",
            "--ce-override", "bla=blub",
            "--ce-override", "foo=bar",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Ping source 'myping' created in namespace 'default'." in result.output
    spec = dynamic.resource(*PINGSOURCES).objects[("default", "myping")]["spec"]
    assert spec["data"] == "maxwell"
    assert "dataBase64" not in spec
    assert spec["sink"] == {
        "ref": {"kind": "Service", "apiVersion": "serving.knative.dev/v1", "name": "mysvc", "namespace": "default"}
    }
    assert spec["ceOverrides"] == {"extensions": {"bla": "blub", "foo": "bar"}}


def test_ping_create_detects_base64(dynamic):
    dynamic.seed_service("mysvc")
    result = runner.invoke(
        app,
        ["source", "ping", "create", "myping", "--sink", "ksvc:mysvc", "--schedule", "* * * * */2", "--data", "ZGF0YQ=="],
    )
    assert result.exit_code == 0, result.output
    spec = dynamic.resource(*PINGSOURCES).objects[("default", "myping")]["spec"]
    assert spec["dataBase64"] == "ZGF0YQ=="
    assert "data" not in spec


def test_ping_create_rejects_unknown_encoding(dynamic):
    dynamic.seed_service("mysvc")
    result = runner.invoke(
        app,
        [
            "source", "ping", "create", "myping", "--sink", "ksvc:mysvc", "--schedule", "* * * * *",
            "--data", "x", "--encoding", "hex",
        ],
    )
    assert result.exit_code == 1
    assert 'cannot create PingSource "myping" in namespace "default" because' in result.output
    assert "Accepted values are: text|base64" in result.output
    assert not dynamic.resource(*PINGSOURCES).objects


def test_ping_create_with_missing_sink(dynamic):
    result = runner.invoke(app, ["source", "ping", "create", "myping", "--sink", "ksvc:nope", "--schedule", "* * * * *"])
    assert result.exit_code == 1
    assert "sink has invalid format" in result.output
    assert "not found" in result.output


def _seed_apiserver_source(dynamic, resources):
    dynamic.seed(
        *APISERVERSOURCES,
        "ApiServerSource",
        "src",
        spec={
            "serviceAccountName": "sa1",
            "mode": "Reference",
            "resources": resources,
            "sink": {"ref": {"kind": "Service", "apiVersion": "serving.knative.dev/v1", "name": "svc1"}},
            "ceOverrides": {"extensions": {"bla": "blub", "foo": "bar"}},
        },
    )


def _apiserver_update(extra=()):
    args = [
        "source", "apiserver", "update", "src",
        "--service-account", "sa2",
        "--sink", "ksvc:svc2",
        "--ce-override", "bla-",
        "--ce-override", "foo=baz",
        "--mode", "Reference",
        "--resource", "Pod:v1",
    ]
    return runner.invoke(app, args + list(extra))


def test_apiserver_update(dynamic):
    dynamic.seed_service("svc2")
    _seed_apiserver_source(dynamic, [])
    result = _apiserver_update()
    assert result.exit_code == 0, result.output
    spec = dynamic.resource(*APISERVERSOURCES).objects[("default", "src")]["spec"]
    assert spec["serviceAccountName"] == "sa2"
    assert spec["sink"]["ref"]["name"] == "svc2"
    assert spec["resources"] == [{"apiVersion": "v1", "kind": "Pod"}]
    assert spec["ceOverrides"] == {"extensions": {"foo": "baz"}}
    assert spec["mode"] == "Reference"


def test_apiserver_update_appends_and_removes_resources(dynamic):
    dynamic.seed_service("svc2")
    _seed_apiserver_source(dynamic, [{"apiVersion": "v1", "kind": "Event"}, {"apiVersion": "v1", "kind": "Secret"}])
    result = _apiserver_update(["--resource", "Secret:v1-"])
    assert result.exit_code == 0, result.output
    spec = dynamic.resource(*APISERVERSOURCES).objects[("default", "src")]["spec"]
    assert spec["resources"] == [{"apiVersion": "v1", "kind": "Event"}, {"apiVersion": "v1", "kind": "Pod"}]


def test_apiserver_create_requires_resource(dynamic):
    dynamic.seed_service("svc")
    result = runner.invoke(app, ["source", "apiserver", "create", "src", "--sink", "svc"])
    assert result.exit_code == 1
    assert "requires at least one --resource" in result.output


def test_trigger_update_rejects_broker_change(dynamic):
    dynamic.seed(*TRIGGERS, "Trigger", "t1", spec={"broker": "default"})
    triggers = dynamic.resource(*TRIGGERS)
    triggers.calls.clear()
    result = runner.invoke(app, ["trigger", "update", "t1", "--broker", "newbroker"])
    assert result.exit_code == 1
    assert "cannot update trigger 't1' because broker is immutable" in result.output
    assert triggers.verbs() == ["get"]


def test_trigger_create_and_update_filters(dynamic):
    dynamic.seed_service("handler")
    result = runner.invoke(
        app, ["trigger", "create", "t1", "--filter", "type=dev.knative.foo", "--filter", "source=ping", "--sink", "handler"]
    )
    assert result.exit_code == 0, result.output
    assert "Trigger 't1' successfully created in namespace 'default'." in result.output
    result = runner.invoke(app, ["trigger", "update", "t1", "--filter", "source-"])
    assert result.exit_code == 0, result.output
    spec = dynamic.resource(*TRIGGERS).objects[("default", "t1")]["spec"]
    assert spec["broker"] == "default"
    assert spec["filter"] == {"attributes": {"type": "dev.knative.foo"}}
    assert spec["subscriber"]["ref"]["name"] == "handler"


def test_create_requires_single_name(dynamic):
    result = runner.invoke(app, ["broker", "create"])
    assert result.exit_code == 1
    assert "'broker create' requires the broker name given as single argument" in result.output
    assert "broker create --help' for usage." in result.output

    result = runner.invoke(app, ["broker", "create", "a", "b"])
    assert result.exit_code == 1


def test_eventtype_broker_and_reference_are_exclusive(dynamic):
    result = runner.invoke(
        app, ["eventtype", "create", "et", "--type", "dev.example", "--broker", "default", "--reference", "channel:pipe"]
    )
    assert result.exit_code == 1
    assert "--broker and --reference are mutually exclusive" in result.output


def test_broker_list_empty(dynamic):
    result = runner.invoke(app, ["broker", "list"])
    assert result.exit_code == 0, result.output
    assert "No brokers found." in result.output


def test_broker_list_json(dynamic):
    dynamic.seed("eventing.knative.dev/v1", "brokers", "Broker", "default", status=_ready())
    result = runner.invoke(app, ["broker", "list", "-o", "json"])
    assert result.exit_code == 0, result.output
    document = json.loads(result.stdout)
    assert [item["metadata"]["name"] for item in document["items"]] == ["default"]


def test_list_rejects_unknown_format(dynamic):
    result = runner.invoke(app, ["broker", "list", "-o", "xml"])
    assert result.exit_code == 1
    assert "unable to match a printer suitable for the output format \"xml\"" in result.output


def test_service_delete_argument_rules(dynamic):
    result = runner.invoke(app, ["service", "delete"])
    assert result.exit_code == 1
    assert "requires the service name(s)" in result.output

    result = runner.invoke(app, ["service", "delete", "foo", "--all"])
    assert result.exit_code == 1
    assert "with --all flag requires no arguments" in result.output


def test_service_delete_all(dynamic):
    result = runner.invoke(app, ["service", "delete", "--all"])
    assert result.exit_code == 0, result.output
    assert "No services found." in result.output

    dynamic.seed_service("one")
    dynamic.seed_service("two")
    result = runner.invoke(app, ["service", "delete", "--all"])
    assert result.exit_code == 0, result.output
    assert "Service 'one' successfully deleted in namespace 'default'." in result.output
    assert "Service 'two' successfully deleted in namespace 'default'." in result.output
    assert not dynamic.resource("serving.knative.dev/v1", "services").objects


def test_service_delete_reports_missing_and_continues(dynamic):
    dynamic.seed_service("one")
    result = runner.invoke(app, ["service", "delete", "missing", "one", "--no-wait"])
    assert result.exit_code == 1
    assert "Service 'one' successfully deleted" in result.output
    assert 'services "missing" not found' in result.output


def test_service_create_and_update(dynamic):
    result = runner.invoke(
        app,
        [
            "service", "create", "hello", "--image", "ghcr.io/example/hello", "--env", "TARGET=world",
            "--scale-min", "1", "--profile", "istio", "--no-wait",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Service 'hello' successfully created in namespace 'default'." in result.output
    result = runner.invoke(app, ["service", "update", "hello", "--env", "TARGET-", "--profile", "istio-", "--no-wait"])
    assert result.exit_code == 0, result.output
    template = dynamic.resource("serving.knative.dev/v1", "services").objects[("default", "hello")]["spec"]["template"]
    container = template["spec"]["containers"][0]
    assert container["image"] == "ghcr.io/example/hello"
    assert "env" not in container
    assert template["metadata"]["annotations"] == {"autoscaling.knative.dev/min-scale": "1"}


def test_service_create_unknown_profile(dynamic):
    result = runner.invoke(app, ["service", "create", "hello", "--image", "img", "--profile", "nope", "--no-wait"])
    assert result.exit_code == 1
    assert "profile 'nope' doesn't exist" in result.output


def test_service_create_existing_without_force(dynamic):
    dynamic.seed_service("hello")
    result = runner.invoke(app, ["service", "create", "hello", "--image", "img", "--no-wait"])
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_service_wait_prints_url(dynamic):
    dynamic.seed_service("hello", status=_ready("http://hello.default.example.com"))
    result = runner.invoke(app, ["service", "wait", "hello"])
    assert result.exit_code == 0, result.output
    assert "http://hello.default.example.com" in result.output


def test_service_describe_url(dynamic):
    dynamic.seed_service("hello", status=_ready("http://hello.default.example.com"))
    result = runner.invoke(app, ["service", "describe", "hello", "-o", "url"])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == "http://hello.default.example.com"


def test_revision_list_shows_traffic(dynamic):
    labels = {"serving.knative.dev/service": "hello", "serving.knative.dev/configurationGeneration": "1"}
    dynamic.seed("serving.knative.dev/v1", "revisions", "Revision", "hello-00001", labels=labels)
    dynamic.seed_service("hello", status={"traffic": [{"revisionName": "hello-00001", "percent": 100, "tag": "current"}]})
    result = runner.invoke(app, ["revision", "list", "-s", "hello"])
    assert result.exit_code == 0, result.output
    row = [line for line in result.stdout.splitlines() if line.startswith("hello-00001")][0]
    assert "100%" in row
    assert "current" in row


def test_domain_create(dynamic):
    dynamic.seed_service("hello")
    result = runner.invoke(app, ["domain", "create", "hello.example.com", "--ref", "hello", "--tls", "cert"])
    assert result.exit_code == 0, result.output
    assert "Domain mapping 'hello.example.com' created in namespace 'default'." in result.output
    spec = dynamic.resource("serving.knative.dev/v1beta1", "domainmappings").objects[("default", "hello.example.com")]["spec"]
    assert spec["ref"]["kind"] == "Service"
    assert spec["tls"] == {"secretName": "cert"}


def test_domain_create_rejects_broker_ref(dynamic):
    result = runner.invoke(app, ["domain", "create", "hello.example.com", "--ref", "broker:default"])
    assert result.exit_code == 1
    assert "unsupported sink prefix: 'broker'" in result.output


def test_source_list(dynamic):
    dynamic.seed(
        *CRDS,
        "CustomResourceDefinition",
        "pingsources.sources.knative.dev",
        namespace=None,
        labels={"duck.knative.dev/source": "true"},
        spec={
            "group": "sources.knative.dev",
            "names": {"kind": "PingSource", "plural": "pingsources"},
            "versions": [{"name": "v1", "served": True, "storage": True}],
        },
    )
    dynamic.seed(*PINGSOURCES, "PingSource", "heartbeat", spec={"sink": {"uri": "http://sink.example.com"}})
    result = runner.invoke(app, ["source", "list"])
    assert result.exit_code == 0, result.output
    row = [line for line in result.stdout.splitlines() if line.startswith("heartbeat")][0]
    assert "PingSource" in row
    assert "http://sink.example.com" in row

    result = runner.invoke(app, ["source", "list", "--type", "ApiServerSource"])
    assert result.exit_code == 0, result.output
    assert "No sources found in default namespace." in result.output


def test_version_outputs(dynamic):
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Version:" in result.stdout
    assert "* Eventing" in result.stdout

    result = runner.invoke(app, ["version", "-o", "yaml"])
    assert result.exit_code == 0
    info = yaml.safe_load(result.stdout)
    assert set(info) == {"Version", "BuildDate", "GitRevision", "SupportedAPIs"}

    result = runner.invoke(app, ["version", "-o", "xml"])
    assert result.exit_code == 1
