"""
exporter/monitor/jetstream.py — JetStream account usage against its limits.

Thresholds are percentages of the account limit. They default to -1
(disabled); unlimited resources are never alerted on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from exporter.monitor import CheckOptions, JetStreamAPIError, check_range, connect, js_api, run

if TYPE_CHECKING:
    from exporter import Result


class JetStreamAccountOptions(CheckOptions):
    memory_warning: float = -1
    memory_critical: float = -1
    file_warning: float = -1
    file_critical: float = -1
    streams_warning: float = -1
    streams_critical: float = -1
    consumers_warning: float = -1
    consumers_critical: float = -1


# (metric, usage key, limit key, warning attr, critical attr, unit)
_RESOURCES = (
    ("memory", "memory", "max_memory", "memory_warning", "memory_critical", "B"),
    ("storage", "storage", "max_storage", "file_warning", "file_critical", "B"),
    ("streams", "streams", "max_streams", "streams_warning", "streams_critical", ""),
    ("consumers", "consumers", "max_consumers", "consumers_warning", "consumers_critical", ""),
)


def check_jetstream_account(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: JetStreamAccountOptions,
    timeout: float,
) -> None:
    async def body() -> dict:
        nc = await connect(servers, nats_opts)
        try:
            return await js_api(nc, "INFO", None, timeout)
        finally:
            await nc.close()

    try:
        info = run(body, timeout)
    except JetStreamAPIError as exc:
        result.critical(f"JetStream not available: {exc.description}")
        return

    limits = info.get("limits") or {}
    for metric, used_key, limit_key, warn_attr, crit_attr, unit in _RESOURCES:
        used = float(info.get(used_key, 0))
        limit = float(limits.get(limit_key, -1))
        result.attach_metric(metric, used, unit)
        if limit <= 0:
            continue
        pct = used / limit * 100
        warning = getattr(opts, warn_attr)
        critical = getattr(opts, crit_attr)
        result.attach_metric(f"{metric}_pct", pct, "%", _threshold(warning), _threshold(critical))
        check_range(result, f"{metric} %", round(pct, 2), warning, critical)

    result.ok("JetStream account")


def _threshold(value: float) -> float | None:
    return value if value > -1 else None
