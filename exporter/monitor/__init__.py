"""
exporter/monitor — Check implementations, one module per check kind.

Each module exposes an options model (decoded from the check's `properties`)
and a check function with the signature

    check_<kind>(servers, nats_opts, result, opts, timeout) -> None

that records its outcome into `result`. Check functions may raise; the
registry turns exceptions into CRITICAL results.

NATS I/O runs in a private event loop per call (see `run`) so that a check is
a plain blocking call bounded by `timeout`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, TypeVar

import nats
import orjson
from nats.aio.client import Client
from nats.errors import NoServersError
from pydantic import BaseModel, ConfigDict

from exporter import Result

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 2.0

_FRACTION_RE = re.compile(r"\.(\d+)")


class CheckOptions(BaseModel):
    """Base for per-kind properties. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class JetStreamAPIError(RuntimeError):
    def __init__(self, code: int, err_code: int, description: str) -> None:
        super().__init__(description)
        self.code = code
        self.err_code = err_code
        self.description = description

    @property
    def not_found(self) -> bool:
        return self.code == 404


def run(fn: Callable[[], Awaitable[T]], timeout: float) -> T:
    """Run an async check body to completion, bounded by timeout seconds."""
    return asyncio.run(asyncio.wait_for(fn(), timeout))


async def connect(servers: str, nats_opts: dict[str, Any]) -> Client:
    """Connect once to the first reachable server.

    Raises:
        The last error seen while connecting (e.g. ConnectionRefusedError)
        rather than nats-py's generic NoServersError.
    """
    urls = [s.strip() for s in servers.split(",") if s.strip()]
    seen: list[Exception] = []

    async def error_cb(exc: Exception) -> None:
        seen.append(exc)
        logger.debug("nats error on %s: %r", servers, exc)

    try:
        return await nats.connect(servers=urls, error_cb=error_cb, **nats_opts)
    except NoServersError as exc:
        if seen:
            raise seen[-1] from exc
        raise


async def request_json(nc: Client, subject: str, payload: dict | None, timeout: float) -> dict:
    body = orjson.dumps(payload) if payload else b""
    msg = await nc.request(subject, body, timeout=timeout)
    data = orjson.loads(msg.data) if msg.data else {}
    if not isinstance(data, dict):
        raise ValueError(f"unexpected response on {subject}")
    return data


async def js_api(nc: Client, subject: str, payload: dict | None, timeout: float) -> dict:
    """Call the JetStream API and raise JetStreamAPIError on error responses."""
    data = await request_json(nc, f"$JS.API.{subject}", payload, timeout)
    err = data.get("error")
    if err:
        raise JetStreamAPIError(
            int(err.get("code", 0)), int(err.get("err_code", 0)), err.get("description", "unknown error")
        )
    return data


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse RFC3339 timestamps as sent by the server ('Z' suffix, nanoseconds)."""
    if not value:
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    # datetime supports microseconds only
    raw = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw, count=1)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def seconds_since(ts: datetime, now: datetime | None = None) -> float:
    return ((now or datetime.now(tz=UTC)) - ts).total_seconds()


def check_upper(
    result: Result,
    label: str,
    value: float,
    warning: float,
    critical: float,
    unit: str = "",
) -> None:
    """Warn/crit when value is at or above a threshold. Thresholds <= 0 are off."""
    if critical > 0 and value >= critical:
        result.critical(f"{label} {_fmt(value, unit)} >= {_fmt(critical, unit)}")
    elif warning > 0 and value >= warning:
        result.warn(f"{label} {_fmt(value, unit)} >= {_fmt(warning, unit)}")


def check_range(
    result: Result,
    label: str,
    value: float,
    warning: float,
    critical: float,
) -> None:
    """Nagios-style range check where -1 disables a threshold.

    When critical is below warning the range is inverted: low values are bad.
    """
    if critical < warning:
        if critical > -1 and value <= critical:
            result.critical(f"{label} {value:g} <= {critical:g}")
        elif warning > -1 and value <= warning:
            result.warn(f"{label} {value:g} <= {warning:g}")
        return
    if critical > -1 and value >= critical:
        result.critical(f"{label} {value:g} >= {critical:g}")
    elif warning > -1 and value >= warning:
        result.warn(f"{label} {value:g} >= {warning:g}")


def _fmt(value: float, unit: str) -> str:
    if unit == "s":
        return f"{value:.3f}s"
    return f"{value:g}{unit}"
