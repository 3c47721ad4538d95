"""
exporter/monitor/kv.py — Key-Value bucket existence, size and key presence.

A bucket is the stream KV_<bucket>. Value count thresholds default to -1
(disabled) so an unconfigured check only fails on a missing bucket or key.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from exporter.monitor import CheckOptions, JetStreamAPIError, check_range, connect, js_api, run

if TYPE_CHECKING:
    from exporter import Result


class KVCheckOptions(CheckOptions):
    bucket: str
    key: str = ""
    values_warning: int = -1
    values_critical: int = -1

    @field_validator("bucket")
    @classmethod
    def non_blank_bucket(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("bucket is required")
        return value


def check_kv(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: KVCheckOptions,
    timeout: float,
) -> None:
    stream = f"KV_{opts.bucket}"

    async def body() -> tuple[dict | None, dict | None, str]:
        nc = await connect(servers, nats_opts)
        try:
            try:
                info = await js_api(nc, f"STREAM.INFO.{stream}", None, timeout)
            except JetStreamAPIError as exc:
                if exc.not_found:
                    return None, None, ""
                raise
            if not opts.key:
                return info, None, ""
            try:
                entry = await js_api(
                    nc,
                    f"STREAM.MSG.GET.{stream}",
                    {"last_by_subj": f"$KV.{opts.bucket}.{opts.key}"},
                    timeout,
                )
            except JetStreamAPIError as exc:
                if exc.not_found:
                    return info, None, exc.description
                raise
            return info, entry, ""
        finally:
            await nc.close()

    info, entry, missing = run(body, timeout)
    if info is None:
        result.critical(f"bucket {opts.bucket} does not exist")
        return

    state = info.get("state") or {}
    values = int(state.get("messages", 0))
    result.attach_metric(
        "values",
        values,
        "",
        opts.values_warning if opts.values_warning > -1 else None,
        opts.values_critical if opts.values_critical > -1 else None,
    )
    result.attach_metric("bytes", int(state.get("bytes", 0)), "B")
    result.attach_metric("replicas", int((info.get("config") or {}).get("num_replicas", 1)))
    check_range(result, "values", values, opts.values_warning, opts.values_critical)

    if opts.key:
        if entry is None:
            result.critical(f"key {opts.key} not found ({missing})" if missing else f"key {opts.key} not found")
        elif _deleted((entry.get("message") or {}).get("hdrs")):
            result.critical(f"key {opts.key} deleted")
        else:
            result.ok(f"key {opts.key} found")

    result.ok(f"bucket {opts.bucket}")


def _deleted(raw_headers: str | None) -> bool:
    if not raw_headers:
        return False
    headers = base64.b64decode(raw_headers).decode(errors="replace")
    for line in headers.splitlines()[1:]:
        name, _, value = line.partition(":")
        if name.strip().lower() == "kv-operation" and value.strip().upper() in ("DEL", "PURGE"):
            return True
    return False
