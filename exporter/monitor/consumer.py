"""
exporter/monitor/consumer.py — Consumer backlog and activity checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from exporter.monitor import (
    CheckOptions,
    JetStreamAPIError,
    check_upper,
    connect,
    js_api,
    parse_timestamp,
    run,
    seconds_since,
)

if TYPE_CHECKING:
    from exporter import Result


class ConsumerHealthCheckOptions(CheckOptions):
    stream: str
    consumer: str
    ack_outstanding_critical: int = 0
    waiting_critical: int = 0
    unprocessed_critical: int = 0
    redelivery_critical: int = 0
    # Seconds since the last delivery / acknowledgement.
    last_delivery_critical: float = 0
    last_ack_critical: float = 0

    @field_validator("stream", "consumer")
    @classmethod
    def non_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value


def check_consumer(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: ConsumerHealthCheckOptions,
    timeout: float,
) -> None:
    async def body() -> dict:
        nc = await connect(servers, nats_opts)
        try:
            return await js_api(nc, f"CONSUMER.INFO.{opts.stream}.{opts.consumer}", None, timeout)
        finally:
            await nc.close()

    try:
        info = run(body, timeout)
    except JetStreamAPIError as exc:
        if exc.not_found:
            result.critical(f"consumer {opts.stream} > {opts.consumer} not found: {exc.description}")
            return
        raise

    counters = (
        ("ack_pending", "num_ack_pending", "ack pending", opts.ack_outstanding_critical),
        ("waiting", "num_waiting", "waiting pulls", opts.waiting_critical),
        ("pending", "num_pending", "unprocessed", opts.unprocessed_critical),
        ("redelivered", "num_redelivered", "redelivered", opts.redelivery_critical),
    )
    for metric, key, label, critical in counters:
        value = int(info.get(key, 0))
        result.attach_metric(metric, value, "", None, critical or None)
        check_upper(result, label, value, 0, critical)

    _check_last_active(
        result, "last_delivery", "last delivery",
        (info.get("delivered") or {}).get("last_active"), opts.last_delivery_critical,
    )
    _check_last_active(
        result, "last_ack", "last ack",
        (info.get("ack_floor") or {}).get("last_active"), opts.last_ack_critical,
    )

    result.ok(f"consumer {opts.stream} > {opts.consumer}")


def _check_last_active(result: Result, metric: str, label: str, raw: str | None, critical: float) -> None:
    if critical <= 0:
        return
    ts = parse_timestamp(raw)
    if ts is None:
        result.critical(f"no {label}")
        return
    since = seconds_since(ts)
    result.attach_metric(metric, since, "s", None, critical)
    check_upper(result, label, since, 0, critical, "s")
