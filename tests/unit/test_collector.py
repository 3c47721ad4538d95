"""Unit tests for the scrape-time collector."""

from __future__ import annotations

import logging
import socket
import time
from types import MappingProxyType

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from exporter import Severity
from exporter.check_config import Check, ExporterConfig
from exporter.collector import Exporter
from exporter.registry import CHECK_REGISTRY


def _samples(exporter: Exporter) -> dict[tuple[str, str], float]:
    out = {}
    for family in exporter.collect():
        for sample in family.samples:
            out[(sample.name, sample.labels["item"])] = sample.value
    return out


def _fake_registry(**handlers):
    return MappingProxyType(handlers)


def _report(level: Severity, message: str = "done"):
    def handler(servers, nats_opts, check, result):
        result.attach_metric("value", 1)
        result.raise_severity(level, True, message)

    return handler


@pytest.fixture
def exporter_for(context_dir):
    def _build(*checks, registry=None, **kwargs) -> Exporter:
        config = ExporterConfig(checks=list(checks))
        if registry is not None:
            kwargs["registry"] = registry
        return Exporter(config, context_dir=context_dir, **kwargs)

    return _build


def test_describe_is_empty(exporter_for):
    assert exporter_for().describe() == []


def test_unknown_kind_is_skipped_and_logged(exporter_for, caplog):
    exporter = exporter_for(
        Check(name="x", kind="carrier-pigeon"),
        registry=_fake_registry(),
    )
    with caplog.at_level(logging.WARNING, logger="exporter.collector"):
        assert list(exporter.collect()) == []
    assert "Unknown check kind carrier-pigeon for check x" in caplog.text


def test_unknown_kind_does_not_stop_other_checks(exporter_for):
    exporter = exporter_for(
        Check(name="x", kind="carrier-pigeon"),
        Check(name="y", kind="fake"),
        registry=_fake_registry(fake=_report(Severity.OK)),
    )
    assert _samples(exporter) == {("natscli_fake_value", "y"): 1.0, ("natscli_fake_status_code", "y"): 0.0}


def _closed_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_unreachable_server_fails_fast_with_connect_error(exporter_for, write_context):
    write_context("down", url=f"nats://127.0.0.1:{_closed_port()}")
    exporter = exporter_for(
        Check(name="conn", kind="connection", context="down"), namespace="nats", check_timeout=5
    )

    started = time.monotonic()
    [result] = exporter.run_checks()
    elapsed = time.monotonic() - started

    assert elapsed < 2
    assert result.exit_code == 2
    assert result.criticals[0].startswith("check failed: ")
    assert "timed out" not in result.criticals[0]
    assert [fam.name for fam in result.collect()] == ["nats_connection_status_code"]


def test_missing_context_fails_only_that_check(exporter_for, write_context):
    write_context("prod", url="nats://prod:4222")
    seen = []

    def record(servers, nats_opts, check, result):
        seen.append(servers)
        result.ok("reached")

    exporter = exporter_for(
        Check(name="a", kind="fake", context="missing"),
        Check(name="b", kind="fake", context="prod"),
        registry=_fake_registry(fake=record),
    )
    results = exporter.run_checks()

    assert seen == ["nats://prod:4222"]
    assert results[0].severity is Severity.CRITICAL
    assert results[0].criticals[0].startswith("could not load context: unknown context 'missing'")
    assert results[1].severity is Severity.OK


def test_config_context_is_used_when_check_has_none(context_dir, write_context):
    write_context("east", url="nats://east:4222")
    seen = []

    def record(servers, nats_opts, check, result):
        seen.append((servers, nats_opts["connect_timeout"]))

    config = ExporterConfig(context="east", checks=[Check(name="a", kind="fake")])
    exporter = Exporter(
        config, context_dir=context_dir, check_timeout=0.5, registry=_fake_registry(fake=record)
    )
    exporter.run_checks()
    assert seen == [("nats://east:4222", 0.5)]


def test_same_kind_checks_share_one_family(exporter_for):
    exporter = exporter_for(
        Check(name="orders", kind="fake"),
        Check(name="billing", kind="fake"),
        registry=_fake_registry(fake=_report(Severity.WARNING)),
    )
    families = {f.name: f for f in exporter.collect()}
    assert set(families) == {"natscli_fake_value", "natscli_fake_status_code"}
    status = families["natscli_fake_status_code"]
    assert [(s.labels["item"], s.value) for s in status.samples] == [("orders", 1.0), ("billing", 1.0)]


def test_each_scrape_runs_checks_again(exporter_for):
    calls = []

    def count(servers, nats_opts, check, result):
        calls.append(check.name)
        result.attach_metric("calls", len(calls))

    exporter = exporter_for(Check(name="a", kind="fake"), registry=_fake_registry(fake=count))
    first = _samples(exporter)
    second = _samples(exporter)
    assert calls == ["a", "a"]
    assert first[("natscli_fake_calls", "a")] == 1.0
    assert second[("natscli_fake_calls", "a")] == 2.0
    assert first[("natscli_fake_status_code", "a")] == second[("natscli_fake_status_code", "a")] == 0.0


def test_handler_exception_becomes_critical(exporter_for):
    def explode(servers, nats_opts, check, result):
        raise RuntimeError("kaput")

    exporter = exporter_for(Check(name="a", kind="fake"), registry=_fake_registry(fake=explode))
    [result] = exporter.run_checks()
    assert result.criticals == ["check failed: kaput"]


def test_results_logged_to_injected_logger(exporter_for, caplog):
    log = logging.getLogger("test.exporter")
    exporter = exporter_for(
        Check(name="a", kind="fake"),
        registry=_fake_registry(fake=_report(Severity.CRITICAL, "broken")),
        log=log,
    )
    with caplog.at_level(logging.INFO, logger="test.exporter"):
        exporter.run_checks()
    [record] = [r for r in caplog.records if r.name == "test.exporter"]
    assert record.levelno == logging.ERROR
    assert record.getMessage() == "a CRITICAL Crit:broken | value=1"


def test_scrape_timeout_skips_remaining_checks(exporter_for, monkeypatch, caplog):
    ticks = [0.0, 0.0]
    monkeypatch.setattr("exporter.collector.time.monotonic", lambda: ticks.pop(0) if ticks else 10.0)
    exporter = exporter_for(
        Check(name="a", kind="fake"),
        Check(name="b", kind="fake"),
        registry=_fake_registry(fake=_report(Severity.OK)),
        scrape_timeout=5,
    )
    with caplog.at_level(logging.WARNING, logger="exporter.collector"):
        results = exporter.run_checks()
    assert [r.name for r in results] == ["a"]
    assert "not running: b" in caplog.text


@pytest.mark.parametrize("namespace,expected", [("", "natscli"), ("  ", "natscli"), ("my-ns", "my_ns")])
def test_namespace_normalised(exporter_for, namespace, expected):
    assert exporter_for(namespace=namespace).namespace == expected


def test_registers_with_prometheus_client(exporter_for):
    exporter = exporter_for(
        Check(name="orders", kind="fake"),
        registry=_fake_registry(fake=_report(Severity.OK)),
    )
    registry = CollectorRegistry()
    registry.register(exporter)
    text = generate_latest(registry).decode()
    assert 'natscli_fake_status_code{item="orders"} 0.0' in text


def test_from_file_builds_exporter(write_config, context_dir):
    path = write_config("checks:\n  - name: conn\n    kind: connection\n")
    exporter = Exporter.from_file(path, namespace="nats", context_dir=context_dir)
    assert [c.name for c in exporter.config.checks] == ["conn"]
    assert exporter.namespace == "nats"


def test_invalid_properties_do_not_block_next_check(exporter_for):
    def healthy(servers, nats_opts, check, result):
        result.ok("fine")

    exporter = exporter_for(
        Check(name="broken", kind="kv", properties={"bucket": "A", "values_critical": "lots"}),
        Check(name="good", kind="fake"),
        registry=_fake_registry(kv=CHECK_REGISTRY["kv"], fake=healthy),
    )
    broken, good = exporter.run_checks()
    assert broken.criticals[0].startswith("invalid properties: values_critical:")
    assert good.severity is Severity.OK
    assert _samples(exporter) == {
        ("natscli_kv_status_code", "broken"): 2.0,
        ("natscli_fake_status_code", "good"): 0.0,
    }


def test_no_checks_yields_no_series(exporter_for):
    exporter = exporter_for()
    assert exporter.run_checks() == []
    assert list(exporter.collect()) == []


def test_no_context_anywhere_uses_default_profile(exporter_for):
    seen = []

    def record(servers, nats_opts, check, result):
        seen.append(servers)

    exporter_for(Check(name="a", kind="fake"), registry=_fake_registry(fake=record)).run_checks()
    assert seen == ["nats://127.0.0.1:4222"]
