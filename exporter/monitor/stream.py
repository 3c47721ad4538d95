"""
exporter/monitor/stream.py — Stream state, cluster replicas and sources.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from exporter import Severity
from exporter.monitor import CheckOptions, JetStreamAPIError, connect, js_api, run

if TYPE_CHECKING:
    from exporter import Result

NANOSECONDS = 1_000_000_000


class StreamHealthCheckOptions(CheckOptions):
    stream: str
    # Alert when the stream holds fewer messages than these.
    messages_warning: int = 0
    messages_critical: int = 0
    peer_expect: int = 0
    peer_lag_critical: int = 0
    peer_seen_critical: float = 0
    min_sources: int = 0
    max_sources: int = 0
    source_lag_critical: int = 0
    source_seen_critical: float = 0

    @field_validator("stream")
    @classmethod
    def non_blank_stream(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("stream name is required")
        return value


def check_stream(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: StreamHealthCheckOptions,
    timeout: float,
) -> None:
    async def body() -> dict:
        nc = await connect(servers, nats_opts)
        try:
            return await js_api(nc, f"STREAM.INFO.{opts.stream}", None, timeout)
        finally:
            await nc.close()

    try:
        info = run(body, timeout)
    except JetStreamAPIError as exc:
        if exc.not_found:
            result.critical(f"stream {opts.stream} not found")
            return
        raise

    state = info.get("state") or {}
    messages = int(state.get("messages", 0))
    result.attach_metric("messages", messages, "", opts.messages_warning or None, opts.messages_critical or None)
    result.attach_metric("bytes", int(state.get("bytes", 0)), "B")
    result.attach_metric("consumers", int(state.get("consumer_count", 0)))

    if opts.messages_critical > 0 and messages <= opts.messages_critical:
        result.critical(f"{messages} messages")
    elif opts.messages_warning > 0 and messages <= opts.messages_warning:
        result.warn(f"{messages} messages")

    _check_cluster(result, info.get("cluster") or {}, opts)
    _check_sources(result, info.get("sources") or [], opts)

    result.ok(f"{messages} messages")


def _check_cluster(result: Result, cluster: dict, opts: StreamHealthCheckOptions) -> None:
    if opts.peer_expect <= 0 and opts.peer_lag_critical <= 0 and opts.peer_seen_critical <= 0:
        return

    replicas = cluster.get("replicas") or []
    if not cluster.get("leader"):
        result.critical("no cluster leader")

    peers = len(replicas) + 1
    result.attach_metric("peers", peers)
    if opts.peer_expect > 0 and peers != opts.peer_expect:
        result.critical(f"{peers} peers of expected {opts.peer_expect}")

    lagged = inactive = offline = 0
    for peer in replicas:
        if peer.get("offline"):
            offline += 1
        if opts.peer_lag_critical > 0 and int(peer.get("lag", 0)) >= opts.peer_lag_critical:
            lagged += 1
        seen = int(peer.get("active", 0)) / NANOSECONDS
        if opts.peer_seen_critical > 0 and seen >= opts.peer_seen_critical:
            inactive += 1

    result.attach_metric("peer_offline", offline)
    result.attach_metric("peer_lagged", lagged)
    result.attach_metric("peer_inactive", inactive)
    result.raise_severity(Severity.CRITICAL, offline > 0, f"{offline} offline replicas")
    result.raise_severity(Severity.CRITICAL, lagged > 0, f"{lagged} replicas lagged")
    result.raise_severity(Severity.CRITICAL, inactive > 0, f"{inactive} replicas inactive")


def _check_sources(result: Result, sources: list[dict], opts: StreamHealthCheckOptions) -> None:
    count = len(sources)
    result.attach_metric("sources", count)
    if opts.min_sources > 0 and count < opts.min_sources:
        result.critical(f"{count} sources of min expected {opts.min_sources}")
    if opts.max_sources > 0 and count > opts.max_sources:
        result.critical(f"{count} sources of max expected {opts.max_sources}")

    lagged = inactive = 0
    for source in sources:
        if opts.source_lag_critical > 0 and int(source.get("lag", 0)) >= opts.source_lag_critical:
            lagged += 1
        active = int(source.get("active", -1))
        if opts.source_seen_critical > 0 and (active < 0 or active / NANOSECONDS >= opts.source_seen_critical):
            inactive += 1

    if opts.source_lag_critical > 0:
        result.attach_metric("sources_lagged", lagged)
        if lagged:
            result.critical(f"{lagged} lagged sources")
    if opts.source_seen_critical > 0:
        result.attach_metric("sources_inactive", inactive)
        if inactive:
            result.critical(f"{inactive} inactive sources")
