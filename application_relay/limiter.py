"""
limiter.py — Submission Limiter
================================
Per-caller request cap on the submission endpoint only.
Counting and atomic increments belong to Flask-Limiter and its storage
backend (memory:// in a single process, redis:// when shared).
"""

import logging

from flask import Flask, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .config import RateLimitSettings
from .pipeline import RATE_LIMITED

log = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many attempts, please try again later."


def create_limiter(app: Flask, settings: RateLimitSettings) -> Limiter:
    """Bind a Limiter to app. No default limits: only routes wrapped with submission_limit() count."""
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        storage_uri=settings.storage_uri,
        strategy="fixed-window",
        headers_enabled=True,
        default_limits=[],
    )
    log.info(f"Rate limit: {settings.limit_value} per caller (storage={settings.storage_uri.split(':')[0]})")
    return limiter


def submission_limit(limiter: Limiter, settings: RateLimitSettings):
    """Decorator applying the configured window to POST requests of a view."""
    return limiter.limit(
        settings.limit_value,
        methods=["POST"],
        error_message=RATE_LIMIT_MESSAGE,
    )


def rate_limited_response(error):
    """429 handler. Plain text body, like the form frontends expect."""
    log.warning(f"Request rejected [{RATE_LIMITED}]: {request.remote_addr} on {request.path}")
    return RATE_LIMIT_MESSAGE, 429, {"Content-Type": "text/plain; charset=utf-8"}
