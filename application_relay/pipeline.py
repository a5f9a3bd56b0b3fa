"""
pipeline.py — Submission Processing Pipeline
=============================================
Executes the per-request steps for every application submission.
Each step is a rejection point. Transport is the last step.

Origin policy and rate limiting run earlier, as Flask hooks, because they
act on the HTTP request rather than the submission.

Steps:
1. Credential gate
2. Validate payload fields
3. Human verification (only when a verifier is configured)
4. Render notification
5. Hand off to transport
6. Return result
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Protocol

from . import auth, templates, validation
from .config import Settings
from .transport import TransportMessage, TransportResult
from .verifier import VerificationResult

log = logging.getLogger(__name__)

# Error taxonomy — every code is terminal for its request
AUTHENTICATION_MISSING     = "authentication_missing"
AUTHENTICATION_INVALID     = "authentication_invalid"
ORIGIN_REJECTED            = "origin_rejected"
RATE_LIMITED               = "rate_limited"
VALIDATION_FAILED          = "validation_failed"
VERIFICATION_FAILED        = "verification_failed"
VERIFICATION_SERVICE_ERROR = "verification_service_error"
DISPATCH_FAILED            = "dispatch_failed"


class Transport(Protocol):
    def deliver(self, msg: TransportMessage) -> TransportResult: ...


class Verifier(Protocol):
    def verify(self, token: str, remote_ip: str | None = None) -> VerificationResult: ...


@dataclass
class SubmissionRequest:
    authorization: str | None
    payload:       object
    remote_addr:   str | None = None


@dataclass
class SubmissionResult:
    status:        str            # "sent" | "rejected" | "error"
    http_status:   int
    message_id:    str
    error_code:    str | None = None
    error_message: str | None = None
    field_errors:  list[validation.FieldError] = field(default_factory=list)


class Pipeline:
    """
    Holds everything a request needs, built once at startup.
    verifier=None means human verification is switched off.
    """

    def __init__(self, settings: Settings, transport: Transport,
                 verifier: Verifier | None = None,
                 clock: Callable[[], datetime] | None = None):
        self.settings = settings
        self.transport = transport
        self.verifier = verifier
        self.clock = clock

    def _reject(self, message_id: str, status: int, code: str, message: str,
                field_errors: list[validation.FieldError] | None = None) -> SubmissionResult:
        log.warning(f"[{message_id}] Request rejected [{code}]: {message}")
        return SubmissionResult(
            status="rejected",
            http_status=status,
            message_id=message_id,
            error_code=code,
            error_message=message,
            field_errors=field_errors or [],
        )

    def process(self, req: SubmissionRequest) -> SubmissionResult:
        message_id = str(uuid.uuid4())
        log.info(f"[{message_id}] Processing submission from {req.remote_addr or 'unknown'}")

        # ── Step 1: Credential gate ───────────────────────────────────────────
        auth_result = auth.check(req.authorization, self.settings.api_key, req.remote_addr)
        if not auth_result.authorized:
            return self._reject(message_id, auth_result.status, auth_result.code, auth_result.reason)

        # ── Step 2: Validate payload ──────────────────────────────────────────
        submission, errors = validation.validate(
            req.payload,
            require_purpose=self.settings.require_purpose,
            require_verification_token=self.verifier is not None,
        )
        if errors:
            return self._reject(
                message_id, 400, VALIDATION_FAILED,
                "; ".join(f"{e.field}: {e.rule}" for e in errors),
                field_errors=errors,
            )

        # ── Step 3: Human verification ────────────────────────────────────────
        if self.verifier is not None:
            check = self.verifier.verify(submission.recaptcha_token, req.remote_addr)
            if check.service_error:
                log.error(f"[{message_id}] Verification service unavailable")
                return SubmissionResult(
                    status="error",
                    http_status=503,
                    message_id=message_id,
                    error_code=VERIFICATION_SERVICE_ERROR,
                    error_message="Verification service unavailable",
                )
            if not check.passed:
                return self._reject(message_id, 403, VERIFICATION_FAILED, "Human verification failed")

        # ── Step 4: Render notification ───────────────────────────────────────
        now = self.clock() if self.clock else None
        notification = templates.render(submission, remote_addr=req.remote_addr, now=now)

        # ── Step 5: Hand off to transport ─────────────────────────────────────
        transport_result = self.transport.deliver(TransportMessage(
            subject=notification.subject,
            body_text=notification.body_text,
            body_html=notification.body_html,
            message_id=message_id,
            reply_to=submission.email,
        ))

        if not transport_result.success:
            log.error(f"[{message_id}] Transport failed: {transport_result.error} "
                      f"(smtp_code={transport_result.smtp_code})")
            return SubmissionResult(
                status="error",
                http_status=500,
                message_id=message_id,
                error_code=DISPATCH_FAILED,
                error_message="Failed to send email",
            )

        log.info(f"[{message_id}] Sent application from {submission.email}")
        return SubmissionResult(status="sent", http_status=200, message_id=message_id)
