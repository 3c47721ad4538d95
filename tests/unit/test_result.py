"""Unit tests for the severity Result builder and its metric output."""

from __future__ import annotations

import dataclasses

import pytest

from exporter import PerfDataItem, Result, Severity, metric_name


def _samples(result: Result) -> dict[str, float]:
    return {fam.name: fam.samples[0].value for fam in result.collect()}


def test_new_result_is_ok():
    result = Result(name="orders", check="stream")
    assert result.severity is Severity.OK
    assert result.exit_code == 0


def test_warning_after_critical_stays_critical():
    result = Result(name="orders", check="stream")
    result.raise_severity(Severity.CRITICAL, True, "stream not found")
    assert result.raise_severity(Severity.WARNING, True, "few messages") is True
    result.ok("fine")
    assert result.severity is Severity.CRITICAL
    assert result.warnings == []
    assert result.oks == []
    assert result.render() == "orders CRITICAL Crit:stream not found"


def test_critical_after_critical_still_appends():
    result = Result(name="orders", check="stream")
    result.critical("stream not found")
    result.raise_severity(Severity.CRITICAL, True, "no leader")
    assert result.criticals == ["stream not found", "no leader"]


def test_false_condition_records_nothing():
    result = Result(name="orders", check="stream")
    assert result.raise_severity(Severity.CRITICAL, False, "nope") is False
    assert result.severity is Severity.OK
    assert result.criticals == []


def test_ok_message_never_downgrades():
    result = Result(name="orders", check="stream")
    result.warn("slow")
    result.ok("fine")
    assert result.severity is Severity.WARNING


def test_critical_if_err_returns_whether_recorded():
    result = Result(name="orders", check="stream")
    assert result.critical_if_err(None, "ignored") is False
    err = ValueError("boom")
    assert result.critical_if_err(err, f"invalid properties: {err}") is True
    assert result.criticals == ["invalid properties: boom"]


def test_render_nagios_line_with_perf_data():
    result = Result(name="conn", check="connection")
    result.warn("rtt 0.600s >= 0.500s")
    result.ok("connected")
    result.attach_metric("rtt", 0.6, "s", 0.5, 1.0)
    result.attach_metric("connections", 12)
    assert result.render() == (
        "conn WARNING Warn:rtt 0.600s >= 0.500s OK:connected "
        "| rtt=0.6000s;0.5000;1.0000 connections=12"
    )
    assert str(result) == result.render()


def test_render_lists_criticals_before_warnings():
    result = Result(name="kv", check="kv")
    result.warn("a")
    result.critical("b")
    result.critical("c")
    assert result.render() == "kv CRITICAL Crit:b, c Warn:a"


def test_collect_emits_status_code_and_perf_data():
    result = Result(name="orders", check="stream", namespace="nats")
    result.attach_metric("messages", 10)
    result.critical("lagging")
    samples = _samples(result)
    assert samples == {"nats_stream_messages": 10.0, "nats_stream_status_code": 2.0}


def test_collect_labels_series_with_check_name():
    result = Result(name="orders", check="stream")
    families = list(result.collect())
    assert families[-1].name == "natscli_stream_status_code"
    assert families[-1].samples[0].labels == {"item": "orders"}


@pytest.mark.parametrize(
    "level,expected",
    [(Severity.OK, 0.0), (Severity.WARNING, 1.0), (Severity.CRITICAL, 2.0)],
)
def test_status_code_values(level, expected):
    result = Result(name="x", check="meta")
    result.raise_severity(level, True, "msg")
    assert _samples(result)["natscli_meta_status_code"] == expected


def test_empty_namespace_falls_back_to_default():
    result = Result(name="x", check="server", namespace="")
    assert result.snapshot().namespace == "natscli"


def test_snapshot_is_frozen_and_detached():
    result = Result(name="x", check="kv")
    snap = result.snapshot()
    result.critical("later")
    assert snap.severity is Severity.OK
    assert snap.criticals == ()
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.severity = Severity.CRITICAL  # type: ignore[misc]


def test_perf_data_without_thresholds():
    assert str(PerfDataItem("values", 3.0)) == "values=3"
    assert str(PerfDataItem("age", 1.5, "s", None, 10.0)) == "age=1.5000s;;10.0000"


def test_metric_name_sanitises_invalid_characters():
    assert metric_name("my-ns", "kv", "values") == "my_ns_kv_values"
    assert metric_name("", "kv", "status_code") == "kv_status_code"
    assert metric_name("1ns", "kv") == "_1ns_kv"
