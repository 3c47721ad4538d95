"""
exporter/monitor/credential.py — Expiry of a NATS user credentials file.

Reads the user JWT from a .creds file and checks its `exp` claim. No network
access; the connection options passed in are unused.
"""

from __future__ import annotations

import base64
import json
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from exporter.monitor import CheckOptions

if TYPE_CHECKING:
    from exporter import Result

_JWT_RE = re.compile(r"-{3,}BEGIN NATS USER JWT-{3,}\s*(\S+)\s*-{3,}END NATS USER JWT-{3,}")


class CredentialCheckOptions(CheckOptions):
    file: str
    # Seconds of validity left before alerting.
    validity_warning: float = 0
    validity_critical: float = 0
    require_expiry: bool = False

    @field_validator("file")
    @classmethod
    def non_blank_file(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("credentials file is required")
        return value


def read_user_jwt_claims(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    match = _JWT_RE.search(text)
    if not match:
        raise ValueError(f"no user JWT found in {path}")
    parts = match.group(1).split(".")
    if len(parts) != 3:
        raise ValueError(f"malformed user JWT in {path}")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    claims = json.loads(base64.urlsafe_b64decode(payload))
    if not isinstance(claims, dict):
        raise ValueError(f"malformed user JWT claims in {path}")
    return claims


def check_credential(
    servers: str,  # noqa: ARG001
    nats_opts: dict[str, Any],  # noqa: ARG001
    result: Result,
    opts: CredentialCheckOptions,
    timeout: float,  # noqa: ARG001
) -> None:
    path = Path(opts.file).expanduser()
    claims = read_user_jwt_claims(path)

    expires = int(claims.get("exp") or 0)
    if expires == 0:
        if opts.require_expiry:
            result.critical("never expires")
        else:
            result.ok("never expires")
        return

    remaining = expires - time.time()
    result.attach_metric(
        "expiry",
        remaining,
        "s",
        opts.validity_warning or None,
        opts.validity_critical or None,
        "Seconds until the credential expires",
    )

    if remaining <= 0:
        result.critical(f"expired {-remaining:.0f}s ago")
    elif opts.validity_critical > 0 and remaining <= opts.validity_critical:
        result.critical(f"expires in {remaining:.0f}s")
    elif opts.validity_warning > 0 and remaining <= opts.validity_warning:
        result.warn(f"expires in {remaining:.0f}s")
    else:
        result.ok(f"expires in {remaining:.0f}s")
