"""
exporter/monitor/message.py — Freshness and content of the last message on a subject.
"""

from __future__ import annotations

import base64
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from exporter.monitor import (
    CheckOptions,
    JetStreamAPIError,
    connect,
    js_api,
    parse_timestamp,
    run,
    seconds_since,
)

if TYPE_CHECKING:
    from exporter import Result


class StreamMessageOptions(CheckOptions):
    stream: str
    subject: str
    age_warning: float = 0
    age_critical: float = 0
    # Regular expression the message body must match.
    content: str = ""
    # Treat the body as a unix timestamp and use it for the age check.
    body_timestamp: bool = False

    @field_validator("stream", "subject")
    @classmethod
    def non_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("content")
    @classmethod
    def valid_regex(cls, value: str) -> str:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid content pattern: {exc}") from exc
        return value


def check_stream_message(
    servers: str,
    nats_opts: dict[str, Any],
    result: Result,
    opts: StreamMessageOptions,
    timeout: float,
) -> None:
    async def body() -> dict:
        nc = await connect(servers, nats_opts)
        try:
            return await js_api(
                nc, f"STREAM.MSG.GET.{opts.stream}", {"last_by_subj": opts.subject}, timeout
            )
        finally:
            await nc.close()

    try:
        response = run(body, timeout)
    except JetStreamAPIError as exc:
        if exc.not_found:
            result.critical(f"no message on {opts.subject} in {opts.stream}: {exc.description}")
            return
        raise

    msg = response.get("message") or {}
    data = base64.b64decode(msg.get("data") or b"")

    if opts.body_timestamp:
        try:
            stamp = datetime.fromtimestamp(float(data.decode().strip()), tz=UTC)
        except (ValueError, UnicodeDecodeError, OverflowError):
            result.critical("invalid timestamp body")
            return
    else:
        stamp = parse_timestamp(msg.get("time"))
        if stamp is None:
            result.critical("message has no timestamp")
            return

    age = seconds_since(stamp)
    result.attach_metric("age", age, "s", opts.age_warning or None, opts.age_critical or None)
    result.attach_metric("size", len(data), "B")

    if opts.age_critical > 0 and age >= opts.age_critical:
        result.critical(f"{age:.0f}s old message")
    elif opts.age_warning > 0 and age >= opts.age_warning:
        result.warn(f"{age:.0f}s old message")

    if opts.content and not re.search(opts.content, data.decode(errors="replace")):
        result.critical(f"content does not match {opts.content!r}")

    result.ok(f"valid message on {opts.stream} > {opts.subject}")
