"""
exporter/monitor/connection.py — Connection, round-trip and request latency.

Connects with the check's context, measures connect time, a PING/PONG round
trip via flush(), and a request/reply through a private inbox subscription.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from exporter.monitor import CheckOptions, check_upper, connect, run

if TYPE_CHECKING:
    from exporter import Result


class ConnectionCheckOptions(CheckOptions):
    connect_time_warning: float = 0
    connect_time_critical: float = 0
    server_rtt_warning: float = 0
    server_rtt_critical: float = 0
    request_rtt_warning: float = 0
    request_rtt_critical: float = 0


def check_connection(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: ConnectionCheckOptions,
    timeout: float,
) -> None:
    async def body() -> None:
        t0 = time.perf_counter()
        nc = await connect(servers, nats_opts)
        connected = nc.connected_url.netloc if nc.connected_url else servers
        try:
            connect_time = time.perf_counter() - t0
            result.attach_metric(
                "connect_time",
                connect_time,
                "s",
                opts.connect_time_warning or None,
                opts.connect_time_critical or None,
                "Time taken to connect to NATS",
            )
            check_upper(
                result, "connect time", connect_time,
                opts.connect_time_warning, opts.connect_time_critical, "s",
            )

            t0 = time.perf_counter()
            await nc.flush(timeout=timeout)
            rtt = time.perf_counter() - t0
            result.attach_metric(
                "rtt",
                rtt,
                "s",
                opts.server_rtt_warning or None,
                opts.server_rtt_critical or None,
                "Round trip time to the connected server",
            )
            check_upper(result, "rtt", rtt, opts.server_rtt_warning, opts.server_rtt_critical, "s")

            subject = nc.new_inbox()

            async def echo(msg: Any) -> None:
                await msg.respond(msg.data)

            sub = await nc.subscribe(subject, cb=echo)
            try:
                t0 = time.perf_counter()
                await nc.request(subject, b"ping", timeout=timeout)
                request_rtt = time.perf_counter() - t0
            finally:
                await sub.unsubscribe()
            result.attach_metric(
                "request_time",
                request_rtt,
                "s",
                opts.request_rtt_warning or None,
                opts.request_rtt_critical or None,
                "Time taken for a full request-reply round trip",
            )
            check_upper(
                result, "request time", request_rtt,
                opts.request_rtt_warning, opts.request_rtt_critical, "s",
            )
        finally:
            await nc.close()

        result.ok(f"connected to {connected}")

    run(body, timeout)
