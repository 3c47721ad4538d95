"""
NATS context resolution.

A check names the context it connects with, falling back to the config-level
context, then to the context currently selected with `nats context select`,
then to the fixed DEFAULT_CONTEXT. The name is either a path to a context JSON
file or the name of a context saved in the NATS CLI context directory.

Resolution never connects anywhere. A named context that does not exist still
resolves; the failure surfaces when connection options are derived so the
collector can report it against the single check that uses it.
"""

from __future__ import annotations

import json
import logging
import os
import ssl
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, ValidationError

if TYPE_CHECKING:
    from exporter.check_config import Check, ExporterConfig

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = "default"
DEFAULT_SERVER_URL = "nats://127.0.0.1:4222"
CLIENT_NAME = "nats-check-exporter"


class ContextError(ValueError):
    """A context could not be located, parsed or turned into connect options."""


class NatsContext(BaseModel):
    """A NATS CLI context document plus where it was found."""

    model_config = ConfigDict(extra="ignore")

    description: str = ""
    url: str = ""
    user: str = ""
    password: str = ""
    token: str = ""
    creds: str = ""
    nkey: str = ""
    cert: str = ""
    key: str = ""
    ca: str = ""
    tls_first: bool = False
    inbox_prefix: str = ""

    # Not part of the document
    name: str = ""
    path: str = ""
    loaded: bool = False

    @classmethod
    def from_file(cls, path: str | Path, name: str = "") -> NatsContext:
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise ContextError(f"could not read context file {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ContextError(f"context file {path} must contain a JSON object")
        payload = {k: v for k, v in payload.items() if k not in ("name", "path", "loaded")}
        try:
            ctx = cls.model_validate(payload)
        except ValidationError as exc:
            raise ContextError(f"invalid context file {path}: {exc}") from exc
        return ctx.model_copy(update={"name": name or path.stem, "path": str(path), "loaded": True})

    @property
    def server_url(self) -> str:
        return self.url.strip() or DEFAULT_SERVER_URL

    def connection_options(self, timeout: float = 2.0) -> tuple[str, dict[str, Any]]:
        """Return (servers, keyword arguments for nats.connect).

        Raises:
            ContextError: the context was never found, or a credential or TLS
                file it refers to is unusable.
        """
        if not self.loaded and self.name != DEFAULT_CONTEXT:
            raise ContextError(f"unknown context {self.name!r} (looked for {self.path})")

        opts: dict[str, Any] = {
            "name": CLIENT_NAME,
            "connect_timeout": timeout,
            "allow_reconnect": False,
            # nats-py only drops a failing server from its pool when this is
            # positive; 0 retries a refused address until the check times out.
            "max_reconnect_attempts": 1,
            "reconnect_time_wait": 0,
        }
        if self.user:
            opts["user"] = self.user
            opts["password"] = self.password
        if self.token:
            opts["token"] = self.token
        if self.creds:
            opts["user_credentials"] = _existing_file(self.creds, "creds")
        if self.nkey:
            opts["nkeys_seed"] = _existing_file(self.nkey, "nkey")
        if self.inbox_prefix:
            opts["inbox_prefix"] = self.inbox_prefix

        tls = self._tls_context()
        if tls is not None:
            opts["tls"] = tls
            if self.tls_first:
                opts["tls_handshake_first"] = True

        return self.server_url, opts

    def _tls_context(self) -> ssl.SSLContext | None:
        if not (self.cert or self.key or self.ca):
            return None
        if bool(self.cert) != bool(self.key):
            raise ContextError("context TLS settings need both cert and key")
        try:
            ca = _existing_file(self.ca, "ca") if self.ca else None
            tls = ssl.create_default_context(cafile=ca)
            if self.cert:
                tls.load_cert_chain(_existing_file(self.cert, "cert"), _existing_file(self.key, "key"))
        except (OSError, ssl.SSLError) as exc:
            raise ContextError(f"could not set up TLS: {exc}") from exc
        return tls


def _existing_file(raw: str, what: str) -> str:
    path = Path(raw).expanduser()
    if not path.is_file():
        raise ContextError(f"{what} file {path} does not exist")
    return str(path)


def context_dir(override: str | Path | None = None) -> Path:
    """Directory holding <name>.json context files, as used by the NATS CLI."""
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME", "").strip() or str(Path.home() / ".config")
    return Path(base) / "nats" / "context"


def selected_context(directory: Path) -> str:
    """Name written by `nats context select`, or '' when nothing is selected."""
    marker = directory.parent / "context.txt"
    try:
        return marker.read_text(encoding="utf-8").strip()
    except OSError:
        return ""


def context_name(check: Check, config: ExporterConfig, directory: Path | None = None) -> str:
    name = check.context or config.context
    if name:
        return name
    return selected_context(directory or context_dir()) or DEFAULT_CONTEXT


def resolve_context(name: str, directory: str | Path | None = None) -> NatsContext:
    """Resolve a context file path or saved context name.

    Raises:
        ContextError: the file exists but can't be parsed, or the name is not
            usable as a saved context name.
    """
    if name and Path(name).expanduser().is_file():
        return NatsContext.from_file(Path(name).expanduser())

    name = name or DEFAULT_CONTEXT
    if "/" in name or "\\" in name or name.startswith("."):
        raise ContextError(f"invalid context name {name!r}")

    ctx_dir = Path(directory).expanduser() if directory else context_dir()
    path = ctx_dir / f"{name}.json"
    if path.is_file():
        return NatsContext.from_file(path, name=name)

    logger.debug("context %s not found at %s", name, path)
    return NatsContext(name=name, path=str(path), loaded=False)
