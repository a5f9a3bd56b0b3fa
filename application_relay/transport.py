"""
transport.py — Mail Dispatcher
===============================
This is the ONLY file that knows about SMTP.
Everything above this layer hands over a TransportMessage and reads back
a TransportResult; nothing upstream sees smtplib exceptions.

Connection per send: connect (SMTP or SMTP_SSL), optional STARTTLS,
optional login, sendmail, quit. Every step is bounded by SMTP_TIMEOUT.
Failures are logged here with the relay's status code and returned as
success=False. Callers only ever learn that the send failed.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

from .config import SmtpSettings

log = logging.getLogger(__name__)


@dataclass
class TransportMessage:
    """Normalized message envelope. Transport layer speaks only this."""
    subject:    str
    body_text:  str
    body_html:  str
    message_id: str
    reply_to:   str | None = None


@dataclass
class TransportResult:
    success:   bool
    error:     str | None = None
    smtp_code: int | None = None


class SmtpTransport:

    def __init__(self, settings: SmtpSettings):
        self.settings = settings

    @property
    def sender(self) -> str:
        return formataddr((self.settings.from_name, self.settings.from_addr))

    def _build_mime(self, msg: TransportMessage) -> MIMEMultipart:
        """Build MIME message with text and HTML parts."""
        mime = MIMEMultipart('alternative')
        mime['Subject']    = msg.subject
        mime['From']       = self.sender
        mime['To']         = self.settings.to_addr
        mime['Date']       = formatdate(localtime=False, usegmt=True)
        mime['Message-ID'] = f"<{msg.message_id}@{self.settings.from_addr.split('@')[-1]}>"
        if msg.reply_to:
            mime['Reply-To'] = msg.reply_to

        mime.attach(MIMEText(msg.body_text, 'plain', 'utf-8'))
        mime.attach(MIMEText(msg.body_html, 'html', 'utf-8'))
        return mime

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.use_ssl:
            return smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout)
        return smtplib.SMTP(s.host, s.port, timeout=s.timeout)

    def _smtp_send(self, msg: TransportMessage) -> TransportResult:
        s = self.settings
        mime = self._build_mime(msg)

        try:
            log.info(f"[{msg.message_id}] Connecting to SMTP {s.host}:{s.port}")
            with self._connect() as server:
                if s.use_tls:
                    server.starttls()
                    log.info(f"[{msg.message_id}] STARTTLS enabled")
                if s.user and s.password:
                    server.login(s.user, s.password)
                    log.info(f"[{msg.message_id}] Authenticated as {s.user}")

                server.sendmail(s.from_addr, [s.to_addr], mime.as_string())

            log.info(f"[{msg.message_id}] Delivered: to={s.to_addr} subject='{msg.subject}'")
            return TransportResult(success=True)

        except smtplib.SMTPRecipientsRefused as e:
            codes = {rcpt: code for rcpt, (code, _) in e.recipients.items()}
            log.error(f"[{msg.message_id}] Relay refused recipients: {codes}")
            first = next(iter(codes.values()), None)
            return TransportResult(success=False, error="Recipients refused", smtp_code=first)
        except smtplib.SMTPResponseException as e:
            # Auth failures, sender refusals and data rejections all carry a code
            log.error(f"[{msg.message_id}] SMTP error {e.smtp_code}: {e.smtp_error!r}")
            return TransportResult(success=False, error=f"SMTP error {e.smtp_code}", smtp_code=e.smtp_code)
        except smtplib.SMTPException as e:
            log.error(f"[{msg.message_id}] SMTP error: {e}")
            return TransportResult(success=False, error=f"SMTP error: {e}")
        except OSError as e:
            log.error(f"[{msg.message_id}] Connection failed to {s.host}:{s.port}: {e}")
            return TransportResult(success=False, error=f"Connection failed: {e}")

    def deliver(self, msg: TransportMessage) -> TransportResult:
        """Public interface. Pipeline calls this — never calls _smtp_send directly."""
        try:
            return self._smtp_send(msg)
        except Exception as e:
            log.exception(f"[{msg.message_id}] Transport error: {e}")
            return TransportResult(success=False, error=str(e))


def smtp_config_summary(settings: SmtpSettings) -> dict:
    """Return current SMTP config for the startup log. Never includes the password."""
    return {
        "host": settings.host,
        "port": settings.port,
        "from": settings.from_addr,
        "to":   settings.to_addr,
        "auth": bool(settings.user),
        "tls":  settings.use_tls,
        "ssl":  settings.use_ssl,
    }
