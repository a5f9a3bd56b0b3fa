"""
auth.py — Credential Gate
==========================
Bearer-token check against the single shared secret.
The pipeline calls check() before anything reads the payload.

Contract:
  no header / not "Bearer "  → 401 authentication_missing
  token != secret            → 403 authentication_invalid
  otherwise                  → authorized
"""

import hmac
import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)

SCHEME = "Bearer "


@dataclass
class AuthResult:
    authorized: bool
    status:     int = 200
    code:       str | None = None
    reason:     str | None = None


def _extract_token(header: str | None) -> str | None:
    """Returns the bearer token, or None when the header is missing or uses another scheme."""
    if not header or not header.startswith(SCHEME):
        return None
    return header[len(SCHEME):].strip()


def check(header: str | None, api_key: str, remote_addr: str | None = None) -> AuthResult:
    """Public interface. Pipeline calls this."""
    token = _extract_token(header)
    if token is None:
        log.warning(f"Missing or malformed Authorization header from {remote_addr or 'unknown'}")
        return AuthResult(
            authorized=False,
            status=401,
            code="authentication_missing",
            reason="Missing or malformed Authorization header",
        )

    # Constant-time compare; never log the presented token
    if not hmac.compare_digest(token.encode("utf-8"), api_key.encode("utf-8")):
        log.warning(f"Invalid API key presented from {remote_addr or 'unknown'}")
        return AuthResult(
            authorized=False,
            status=403,
            code="authentication_invalid",
            reason="Invalid API key",
        )

    return AuthResult(authorized=True)
