"""
exporter/monitor/server.py — Single server health via the system account.

Sends a VARZ ping filtered to one server name. Needs a context with access to
the system account ($SYS).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from exporter.monitor import (
    CheckOptions,
    check_upper,
    connect,
    parse_timestamp,
    request_json,
    run,
)

if TYPE_CHECKING:
    from exporter import Result

VARZ_SUBJECT = "$SYS.REQ.SERVER.PING.VARZ"


class ServerCheckOptions(CheckOptions):
    name: str
    cpu_warning: float = 0
    cpu_critical: float = 0
    memory_warning: float = 0
    memory_critical: float = 0
    connections_warning: int = 0
    connections_critical: int = 0
    subscriptions_warning: int = 0
    subscriptions_critical: int = 0
    # Uptime thresholds catch restarts: alert when uptime is *below* them.
    uptime_warning: float = 0
    uptime_critical: float = 0
    jetstream_required: bool = False
    tls_required: bool = False
    auth_required: bool = False

    @field_validator("name")
    @classmethod
    def non_blank_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("server name is required")
        return value


def check_server(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: ServerCheckOptions,
    timeout: float,
) -> None:
    async def body() -> dict:
        nc = await connect(servers, nats_opts)
        try:
            return await request_json(nc, VARZ_SUBJECT, {"server_name": opts.name}, timeout)
        finally:
            await nc.close()

    response = run(body, timeout)
    varz = response.get("data") or {}
    if not varz:
        result.critical(f"no VARZ response from server {opts.name}")
        return

    reported = (response.get("server") or {}).get("name", varz.get("server_name", ""))
    if reported and reported != opts.name:
        result.critical(f"response from {reported} while expecting {opts.name}")
        return

    _check_uptime(result, varz, opts)

    cpu = float(varz.get("cpu", 0))
    result.attach_metric("cpu", cpu, "%", opts.cpu_warning or None, opts.cpu_critical or None)
    check_upper(result, "cpu", cpu, opts.cpu_warning, opts.cpu_critical, "%")

    mem = float(varz.get("mem", 0))
    result.attach_metric("mem", mem, "B", opts.memory_warning or None, opts.memory_critical or None)
    check_upper(result, "memory", mem, opts.memory_warning, opts.memory_critical, "B")

    conns = int(varz.get("connections", 0))
    result.attach_metric(
        "connections", conns, "", opts.connections_warning or None, opts.connections_critical or None
    )
    check_upper(result, "connections", conns, opts.connections_warning, opts.connections_critical)

    subs = int(varz.get("subscriptions", 0))
    result.attach_metric(
        "subscriptions", subs, "", opts.subscriptions_warning or None, opts.subscriptions_critical or None
    )
    check_upper(result, "subscriptions", subs, opts.subscriptions_warning, opts.subscriptions_critical)

    if opts.jetstream_required and not (varz.get("jetstream") or {}).get("config"):
        result.critical("JetStream not enabled")
    if opts.tls_required and not varz.get("tls_required"):
        result.critical("TLS not required")
    if opts.auth_required and not varz.get("auth_required"):
        result.critical("authentication not required")

    result.ok(f"server {opts.name}")


def _check_uptime(result: Result, varz: dict, opts: ServerCheckOptions) -> None:
    start = parse_timestamp(varz.get("start"))
    now = parse_timestamp(varz.get("now"))
    if start is None or now is None:
        return
    uptime = (now - start).total_seconds()
    result.attach_metric(
        "uptime", uptime, "s", opts.uptime_warning or None, opts.uptime_critical or None
    )
    if opts.uptime_critical > 0 and uptime <= opts.uptime_critical:
        result.critical(f"up {uptime:.0f}s")
    elif opts.uptime_warning > 0 and uptime <= opts.uptime_warning:
        result.warn(f"up {uptime:.0f}s")
