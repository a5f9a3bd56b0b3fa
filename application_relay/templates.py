"""
templates.py — Notification Composer
=====================================
Renders a validated Submission into the email the hiring inbox receives.

render() returns a Notification with subject, body_text and body_html.
HTML carries the formatting; plain text is the alternative part for
clients that refuse HTML.

Every applicant-supplied value is escaped before it touches the HTML.
Free-text answers (purpose, experience) keep their line breaks as <br/>.
"""

import html
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from .validation import Submission

PLACEHOLDER = "(none provided)"

_NEWLINES = re.compile(r"\r\n|\r|\n")


@dataclass
class Notification:
    subject:    str
    body_text:  str
    body_html:  str


# ── Escaping ──────────────────────────────────────────────────────────────────

def _esc(value: str | None) -> str:
    """Escaped inline value, or an italic placeholder when absent."""
    if value is None or value == "":
        return f"<em>{PLACEHOLDER}</em>"
    return html.escape(value, quote=True)


def _esc_multiline(value: str | None) -> str:
    """Escape first, then turn line breaks into explicit <br/> markers."""
    if value is None or value == "":
        return f"<em>{PLACEHOLDER}</em>"
    return _NEWLINES.sub("<br/>", html.escape(value, quote=True))


def _text(value: str | None) -> str:
    return value if value else PLACEHOLDER


def _one_line(value: str) -> str:
    """Collapse all whitespace runs. Header values must not carry line breaks."""
    return " ".join(value.split())


def _sent_at(submission: Submission, now: datetime | None) -> str:
    if submission.submission_time is not None:
        return submission.submission_time.isoformat()
    return (now or datetime.now(timezone.utc)).isoformat()


# ── HTML base template ────────────────────────────────────────────────────────

def _html_wrap(title: str, body_inner: str, footer: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
</head>
<body style="margin:0;padding:0;background:#f4f5f7;font-family:'Segoe UI',system-ui,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background:#f4f5f7;padding:32px 0;">
    <tr><td align="center">
      <table width="560" cellpadding="0" cellspacing="0"
             style="background:#ffffff;border:1px solid #dfe3e8;border-radius:10px;overflow:hidden;">
        <!-- Body -->
        <tr>
          <td style="padding:28px 32px;color:#1f2933;line-height:1.6;">
            {body_inner}
          </td>
        </tr>
        <!-- Footer -->
        <tr>
          <td style="padding:14px 32px 20px;border-top:1px solid #e4e7eb;">
            <small style="color:#7b8794;">{footer}</small>
          </td>
        </tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


# ── Renderer ──────────────────────────────────────────────────────────────────

def render(submission: Submission, remote_addr: str | None = None,
           now: datetime | None = None) -> Notification:
    """
    Deterministic for a given (submission, remote_addr, now).
    now is only consulted when the applicant sent no submissionTime.
    """
    s = submission
    subject = f"New Application from {_one_line(s.name)}"
    sent = _sent_at(s, now)
    terms = "Yes" if s.terms_agreed else "No"

    rows = [
        ("Name",        _esc(s.name)),
        ("Email",       _esc(s.email)),
        ("Contact",     _esc(s.contact)),
        ("Time Slot",   _esc(s.time_slot)),
        ("Purpose",     _esc_multiline(s.purpose)),
        ("Timeframe",   _esc(s.timeframe)),
        ("Weekly Time", _esc(s.weekly_time)),
        ("Experience",  _esc_multiline(s.experience)),
        ("Terms Agreed", terms),
    ]
    body_inner = "<h2 style=\"margin:0 0 16px;font-size:20px;\">New Application</h2>\n" + "\n".join(
        f"            <p><strong>{label}:</strong> {value}</p>" for label, value in rows
    )
    footer = (
        f"IP: {_esc(s.ip_address)} | "
        f"Received from: {_esc(remote_addr)} | "
        f"Browser: {_esc(s.browser_info)} | "
        f"Time Zone: {_esc(s.time_zone)} | "
        f"Sent: {html.escape(sent)}"
    )
    body_html = _html_wrap(html.escape(subject), body_inner, footer)

    body_text = (
        f"New Application\n---------------\n"
        f"Name         : {s.name}\n"
        f"Email        : {s.email}\n"
        f"Contact      : {s.contact}\n"
        f"Time Slot    : {s.time_slot}\n"
        f"Purpose      : {_text(s.purpose)}\n"
        f"Timeframe    : {s.timeframe}\n"
        f"Weekly Time  : {s.weekly_time}\n"
        f"Experience   : {_text(s.experience)}\n"
        f"Terms Agreed : {terms}\n\n"
        f"IP: {_text(s.ip_address)} | Received from: {_text(remote_addr)} | "
        f"Browser: {_text(s.browser_info)} | Time Zone: {_text(s.time_zone)} | Sent: {sent}"
    )

    return Notification(
        subject=subject,
        body_text=body_text,
        body_html=body_html,
    )
