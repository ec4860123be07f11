import pytest

from knative_cli.config import CliConfig
from knative_cli.errors import SinkInvalidError, SinkRequiredError
from knative_cli.refs import (
    BROKER,
    GVR,
    KSERVICE,
    SERVICE,
    PrefixTable,
    SinkReference,
    guess_from_destination,
    parse_ref,
    parse_sink,
    sink_to_text,
)


@pytest.mark.parametrize(
    "prefix, name, namespace",
    [("ksvc", "mysvc", ""), ("broker", "default", "other"), ("channel", "pipe", "default")],
)
def test_reference_text_round_trip(prefix, name, namespace):
    table = PrefixTable.default()
    reference = SinkReference(gvr=table[prefix], name=name, namespace=namespace or "current")
    parsed = parse_ref(reference.as_text("current"))
    assert parsed.prefix == prefix
    assert parsed.name == name
    assert (parsed.namespace or "current") == (namespace or "current")


def test_parse_ref_forms():
    assert parse_ref("mysvc") == ("ksvc", "mysvc", "")
    assert parse_ref("broker:default:ns") == ("broker", "default", "ns")
    assert parse_ref("https://example.com/path").is_url
    assert parse_ref("pipe", default_prefix="channel").prefix == "channel"


def test_canonical_aliases_are_preferred():
    table = PrefixTable.default()
    assert table.alias_for(KSERVICE) == "ksvc"
    assert table.alias_for(SERVICE) == "service"
    assert table["kservice"] == table["ksvc"]


def test_unknown_gvr_renders_as_shorthand():
    table = PrefixTable.default()
    gvr = GVR("sources.knative.dev", "v1", "pingsources")
    assert table.alias_for(gvr) == "sources.knative.dev/v1/pingsources"
    assert table.alias_for(GVR("", "v1", "configmaps")) == "v1/configmaps"


def test_user_sink_mappings_extend_table():
    config = CliConfig.model_validate(
        {"eventing": {"sink-mappings": [{"prefix": "cm", "resource": "configmaps", "group": "core", "version": "v1"}]}}
    )
    table = PrefixTable.default(config)
    assert table["cm"] == GVR("", "v1", "configmaps")
    assert table.alias_for(BROKER) == "broker"


def test_parse_sink_with_group_version_kind():
    reference = parse_sink("sources.knative.dev/v1/PingSource:ping", "default")
    assert reference.gvr == GVR("sources.knative.dev", "v1", "pingsources")
    assert reference.name == "ping"
    assert reference.namespace == "default"


def test_parse_sink_errors():
    with pytest.raises(SinkRequiredError):
        parse_sink("", "default")
    with pytest.raises(SinkInvalidError):
        parse_sink("unknown:foo", "default")
    with pytest.raises(SinkInvalidError):
        parse_sink("ftp://example.com", "default")


def test_sink_to_text_for_destinations():
    destination = {"ref": {"kind": "Broker", "apiVersion": "eventing.knative.dev/v1", "name": "default", "namespace": "ns"}}
    assert sink_to_text(destination, "ns") == "broker:default"
    assert sink_to_text(destination, "other") == "broker:default:ns"
    assert sink_to_text({"uri": "http://example.com"}) == "http://example.com"
    assert guess_from_destination(None) is None
