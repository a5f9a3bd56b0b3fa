"""
origin.py — Origin Policy
==========================
Decides which browser origins may call the submission endpoint.

Three shapes, selected by CORS_POLICY:
  fixed      — one origin, or * for any
  allowlist  — explicit origins, exact match
  dynamic    — explicit origins, and callers that send no Origin header
               (curl, server-side forms) are let through

Flask-CORS writes the response headers and answers preflights.
This module adds the server-side half: a disallowed origin is refused
before the limiter, the credential gate or the mailer ever run, so a
blocked browser response never hides a mail that was already sent.
"""

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS

from .config import CorsSettings
from .pipeline import ORIGIN_REJECTED

log = logging.getLogger(__name__)

ALLOWED_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"]
ALLOWED_METHODS = ["GET", "HEAD", "POST", "OPTIONS"]


class OriginPolicy:

    def __init__(self, settings: CorsSettings):
        self.policy = settings.policy
        self.wildcard = settings.wildcard
        self.allow_credentials = settings.allow_credentials
        self.origins = frozenset(settings.origins)
        self.allow_missing_origin = self.wildcard or self.policy == "dynamic"

    def permits(self, origin: str | None) -> bool:
        if not origin:
            return self.allow_missing_origin
        if self.wildcard:
            return True
        return origin in self.origins

    def cors_options(self) -> dict:
        """Flask-CORS resource options for this policy."""
        return {
            "origins": "*" if self.wildcard else sorted(self.origins),
            "supports_credentials": self.allow_credentials,
            "allow_headers": ALLOWED_HEADERS,
            "methods": ALLOWED_METHODS,
        }

    def install(self, app: Flask, protected_paths: tuple[str, ...]) -> None:
        """Attach CORS headers to /api/* and refuse disallowed origins on protected_paths."""
        CORS(app, resources={r"/api/*": self.cors_options()})

        @app.before_request
        def enforce_origin():
            # Preflights are answered by Flask-CORS without touching the pipeline
            if request.method == "OPTIONS" or request.path not in protected_paths:
                return None
            origin = request.headers.get("Origin")
            if self.permits(origin):
                return None
            log.warning(f"Origin rejected [{ORIGIN_REJECTED}]: {origin or '(none)'} "
                        f"from {request.remote_addr} policy={self.policy}")
            return jsonify({"error": "Origin not allowed"}), 403

    def summary(self) -> str:
        origins = "*" if self.wildcard else ", ".join(sorted(self.origins))
        return f"{self.policy} [{origins}] credentials={self.allow_credentials}"
