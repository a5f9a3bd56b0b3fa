"""
validation.py — Field Validator
================================
Checks an application form payload field by field and produces either a
normalized Submission or the complete list of violations.

Every rule runs on every request. A caller with three bad fields hears
about all three in one 400, not one at a time.

Adding a field: add it to Submission and give it a rule in validate().
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime

from email_validator import EmailNotValidError, validate_email

log = logging.getLogger(__name__)

NAME_MAX = 100
TEXT_MAX = 1000


@dataclass
class FieldError:
    field:   str
    rule:    str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Submission:
    name:            str
    email:           str
    contact:         str
    time_slot:       str
    timeframe:       str
    weekly_time:     str
    terms_agreed:    bool
    purpose:         str | None = None
    experience:      str | None = None
    ip_address:      str | None = None
    browser_info:    str | None = None
    time_zone:       str | None = None
    submission_time: datetime | None = None
    recaptcha_token: str | None = None


# ── Helpers ───────────────────────────────────────────────────────────────────

class _Checker:
    """Collects FieldErrors while pulling typed values out of the payload."""

    def __init__(self, payload: dict):
        self.payload = payload
        self.errors: list[FieldError] = []

    def fail(self, field: str, rule: str, message: str) -> None:
        self.errors.append(FieldError(field, rule, message))

    def string(self, field: str, message: str, *, trim: bool = True,
               required: bool = True, max_length: int | None = None) -> str | None:
        """
        Required strings must be non-blank. Optional strings treat None and ""
        as absent. Returns the trimmed value when trim is set, else the raw one.
        """
        value = self.payload.get(field)
        if value is None or value == "":
            if required:
                self.fail(field, "required", message)
            return None
        if not isinstance(value, str):
            self.fail(field, "type", f"{field} must be a string")
            return None

        cleaned = value.strip()
        if not cleaned:
            if required:
                self.fail(field, "required", message)
            return None
        if max_length is not None and len(cleaned) > max_length:
            self.fail(field, "length", message)
            return None
        return cleaned if trim else value


def _parse_datetime(value: str) -> datetime | None:
    # fromisoformat accepts a trailing Z from Python 3.11 on, but also bare dates
    value = value.strip()
    if "T" not in value and " " not in value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


# ── Validation ────────────────────────────────────────────────────────────────

def validate(payload, require_purpose: bool = True,
             require_verification_token: bool = False) -> tuple[Submission | None, list[FieldError]]:
    """Returns (submission, []) when valid, (None, errors) otherwise."""
    if not isinstance(payload, dict):
        return None, [FieldError("body", "type", "Request body must be a JSON object")]

    c = _Checker(payload)

    name = c.string("name", f"Name is required (1–{NAME_MAX} chars)", max_length=NAME_MAX)

    email = c.string("email", "Valid email required")
    if email is not None:
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            log.debug(f"Rejected email {email!r}: {e}")
            c.fail("email", "email", "Valid email required")
            email = None

    contact = c.string("contact", "Missing contact method")
    time_slot = c.string("timeSlot", "Missing time slot", trim=False)
    purpose = c.string("purpose", f"Purpose is required (max {TEXT_MAX} chars)",
                       required=require_purpose, max_length=TEXT_MAX)
    timeframe = c.string("timeframe", "Missing timeframe", trim=False)
    weekly_time = c.string("weeklyTime", "Missing weekly time", trim=False)
    experience = c.string("experience", f"Message max length is {TEXT_MAX} chars",
                          required=False, max_length=TEXT_MAX)

    terms_agreed = payload.get("termsAgreed")
    if not isinstance(terms_agreed, bool):
        c.fail("termsAgreed", "boolean", "Terms agreement is required")

    ip_address = c.string("ipAddress", "", trim=False, required=False)
    browser_info = c.string("browserInfo", "", trim=False, required=False)
    time_zone = c.string("timeZone", "", trim=False, required=False)

    submission_time = None
    raw_time = c.string("submissionTime", "", required=False)
    if raw_time is not None:
        submission_time = _parse_datetime(raw_time)
        if submission_time is None:
            c.fail("submissionTime", "datetime", "submissionTime must be an ISO-8601 date-time")

    recaptcha_token = c.string("recaptchaToken", "Missing recaptchaToken",
                               required=require_verification_token)

    if c.errors:
        return None, c.errors

    return Submission(
        name=name,
        email=email,
        contact=contact,
        time_slot=time_slot,
        timeframe=timeframe,
        weekly_time=weekly_time,
        terms_agreed=terms_agreed,
        purpose=purpose,
        experience=experience,
        ip_address=ip_address,
        browser_info=browser_info,
        time_zone=time_zone,
        submission_time=submission_time,
        recaptcha_token=recaptcha_token,
    ), []
