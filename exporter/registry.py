"""
Check kind registry.

Maps each check `kind` to a handler with one signature:

    handler(servers, nats_opts, check, result) -> None

A handler decodes the check's raw `properties` into the kind's options model
and runs the check function. Every failure ends up in `result` as CRITICAL;
nothing is raised to the caller.

The table is built once at import and is read-only.
"""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from pydantic import ValidationError

from exporter.monitor import DEFAULT_TIMEOUT_SECONDS, CheckOptions
from exporter.monitor.connection import ConnectionCheckOptions, check_connection
from exporter.monitor.consumer import ConsumerHealthCheckOptions, check_consumer
from exporter.monitor.credential import CredentialCheckOptions, check_credential
from exporter.monitor.jetstream import JetStreamAccountOptions, check_jetstream_account
from exporter.monitor.kv import KVCheckOptions, check_kv
from exporter.monitor.message import StreamMessageOptions, check_stream_message
from exporter.monitor.meta import CheckMetaOptions, check_meta
from exporter.monitor.server import ServerCheckOptions, check_server
from exporter.monitor.stream import StreamHealthCheckOptions, check_stream

if TYPE_CHECKING:
    from exporter import Result
    from exporter.check_config import Check

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, Any], "Check", "Result"], None]
CheckFunc = Callable[[str, dict[str, Any], "Result", Any, float], None]


def decode_properties(options_model: type[CheckOptions], properties: Any) -> CheckOptions:
    """Decode a raw properties payload; None means all defaults.

    Raises:
        ValidationError: the payload does not fit the options model.
    """
    return options_model.model_validate({} if properties is None else properties)


def make_handler(options_model: type[CheckOptions], check_fn: CheckFunc) -> Handler:
    def handler(servers: str, nats_opts: dict[str, Any], check: Check, result: Result) -> None:
        try:
            opts = decode_properties(options_model, check.properties)
        except ValidationError as exc:
            result.critical(f"invalid properties: {_short_error(exc)}")
            return

        timeout = float(nats_opts.get("connect_timeout", DEFAULT_TIMEOUT_SECONDS))
        try:
            check_fn(servers, nats_opts, result, opts, timeout)
        except (asyncio.TimeoutError, TimeoutError):
            result.critical(f"check timed out after {timeout:g}s")
        except Exception as exc:  # noqa: BLE001
            logger.debug("check %s failed", check.name, exc_info=True)
            result.critical(f"check failed: {exc or type(exc).__name__}")

    handler.__name__ = f"handle_{check_fn.__name__}"
    handler.options_model = options_model  # type: ignore[attr-defined]
    return handler


def _short_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "properties"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


CHECK_REGISTRY: Mapping[str, Handler] = MappingProxyType(
    {
        "connection": make_handler(ConnectionCheckOptions, check_connection),
        "stream": make_handler(StreamHealthCheckOptions, check_stream),
        "consumer": make_handler(ConsumerHealthCheckOptions, check_consumer),
        "message": make_handler(StreamMessageOptions, check_stream_message),
        "meta": make_handler(CheckMetaOptions, check_meta),
        "jetstream": make_handler(JetStreamAccountOptions, check_jetstream_account),
        "server": make_handler(ServerCheckOptions, check_server),
        "kv": make_handler(KVCheckOptions, check_kv),
        "credential": make_handler(CredentialCheckOptions, check_credential),
    }
)


def lookup(kind: str, registry: Mapping[str, Handler] = CHECK_REGISTRY) -> Handler | None:
    return registry.get(kind)
