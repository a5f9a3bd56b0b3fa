"""
verifier.py — Human Verifier
=============================
Optional reCAPTCHA-style check. Off unless RECAPTCHA_ENABLED=true; when off
the pipeline simply holds no verifier and skips the step.

Service contract:
  POST {verify_url}  form: secret, response, remoteip (optional)
  → {"success": bool, "score": float (optional), "error-codes": [...] (optional)}

Outcomes:
  passed          — success and (no score, or score >= threshold)
  failed          — success false, or score below threshold   → 403
  service_error   — network, timeout, or unreadable response  → 503
"""

import http.client
import json
import logging
import urllib.parse
import urllib.request
from dataclasses import dataclass, field

from .config import RecaptchaSettings

log = logging.getLogger(__name__)


class VerificationServiceError(Exception):
    """The scoring service could not be reached or answered nonsense."""


@dataclass
class VerificationResult:
    passed:        bool
    service_error: bool = False
    score:         float | None = None
    error_codes:   list[str] = field(default_factory=list)


class RecaptchaVerifier:

    def __init__(self, settings: RecaptchaSettings):
        self.secret = settings.secret
        self.threshold = settings.score_threshold
        self.verify_url = settings.verify_url
        self.timeout = settings.timeout

    def _call_service(self, token: str, remote_ip: str | None) -> dict:
        params = {"secret": self.secret, "response": token}
        if remote_ip:
            params["remoteip"] = remote_ip
        body = urllib.parse.urlencode(params).encode("ascii")
        req = urllib.request.Request(
            self.verify_url,
            data=body,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                data = json.loads(resp.read())
        except (OSError, ValueError, http.client.HTTPException) as e:
            # URLError, HTTPError and socket timeouts are all OSError;
            # truncated or garbled HTTP responses raise http.client.HTTPException
            raise VerificationServiceError(str(e)) from e

        if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
            raise VerificationServiceError(f"Malformed verification response: {str(data)[:200]}")
        return data

    def verify(self, token: str, remote_ip: str | None = None) -> VerificationResult:
        """Public interface. Pipeline calls this — never raises."""
        try:
            data = self._call_service(token, remote_ip)
        except VerificationServiceError as e:
            log.error(f"Verification service error: {e}")
            return VerificationResult(passed=False, service_error=True)

        score = data.get("score")
        if score is not None and not isinstance(score, (int, float)):
            log.error(f"Verification service returned non-numeric score: {score!r}")
            return VerificationResult(passed=False, service_error=True)

        error_codes = data.get("error-codes") or []
        if not data["success"]:
            log.warning(f"Verification failed: error-codes={error_codes}")
            return VerificationResult(passed=False, score=score, error_codes=error_codes)

        if score is not None and score < self.threshold:
            log.warning(f"Verification score {score} below threshold {self.threshold}")
            return VerificationResult(passed=False, score=score, error_codes=error_codes)

        return VerificationResult(passed=True, score=score, error_codes=error_codes)
