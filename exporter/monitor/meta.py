"""
exporter/monitor/meta.py — JetStream meta group (cluster metadata leader) health.

Asks the meta leader for JSZ through the system account.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from exporter.monitor import CheckOptions, connect, request_json, run

if TYPE_CHECKING:
    from exporter import Result

JSZ_SUBJECT = "$SYS.REQ.SERVER.PING.JSZ"
NANOSECONDS = 1_000_000_000


class CheckMetaOptions(CheckOptions):
    expect: int = 0
    lag_critical: int = 0
    seen_critical: float = 0


def check_meta(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: CheckMetaOptions,
    timeout: float,
) -> None:
    async def body() -> dict:
        nc = await connect(servers, nats_opts)
        try:
            return await request_json(nc, JSZ_SUBJECT, {"leader_only": True}, timeout)
        finally:
            await nc.close()

    response = run(body, timeout)
    if response.get("error"):
        result.critical(f"JSZ request failed: {response['error'].get('description', response['error'])}")
        return

    meta = (response.get("data") or {}).get("meta_cluster")
    if not meta:
        result.critical("no meta cluster information received")
        return
    if not meta.get("leader"):
        result.critical("no meta leader")
        return

    replicas = meta.get("replicas") or []
    peers = len(replicas) + 1
    result.attach_metric("peers", peers, "", None, opts.expect or None)
    if opts.expect > 0 and peers != opts.expect:
        result.critical(f"{peers} peers of expected {opts.expect}")

    offline = not_current = inactive = lagged = 0
    for peer in replicas:
        if peer.get("offline"):
            offline += 1
        if not peer.get("current"):
            not_current += 1
        if opts.seen_critical > 0 and int(peer.get("active", 0)) / NANOSECONDS >= opts.seen_critical:
            inactive += 1
        if opts.lag_critical > 0 and int(peer.get("lag", 0)) >= opts.lag_critical:
            lagged += 1

    for metric, count, label in (
        ("peer_offline", offline, "offline"),
        ("peer_not_current", not_current, "not current"),
        ("peer_inactive", inactive, "inactive"),
        ("peer_lagged", lagged, "lagged"),
    ):
        result.attach_metric(metric, count)
        if count:
            result.critical(f"{count} {label}")

    result.ok(f"{peers} peers led by {meta['leader']}")
