"""
Application Relay
=================
Language  : Python
Framework : Flask + Gunicorn

Accepts job-application form submissions and relays each one to the
hiring inbox as an HTML email.

Architecture: isolated layers behind a single /api/send endpoint.
  origin.py      — Origin policy (Flask-CORS headers + server-side refusal)
  limiter.py     — Per-caller rate limit (Flask-Limiter)
  auth.py        — Bearer credential gate
  validation.py  — Field rules, all errors collected
  verifier.py    — Optional reCAPTCHA check
  templates.py   — Notification renderer
  transport.py   — SMTP delivery
  pipeline.py    — Per-request orchestration

Run:
  gunicorn 'application_relay.main:create_app()'
  python -m application_relay.main
"""

import logging

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from . import limiter as rate_limit
from .config import Settings
from .origin import OriginPolicy
from .pipeline import Pipeline, SubmissionRequest, Transport, Verifier
from .transport import SmtpTransport, smtp_config_summary
from .verifier import RecaptchaVerifier

log = logging.getLogger(__name__)

SEND_PATH = "/api/send"
MAX_BODY_BYTES = 64 * 1024


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s [application-relay] %(levelname)s %(message)s'
    )


def security_headers(response):
    """Baseline hardening headers on every response."""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'no-referrer'
    response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
    return response


def configure_error_handlers(app: Flask) -> None:

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        return rate_limit.rate_limited_response(error)

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(Exception)
    def unexpected_error(error):
        log.exception(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({"error": "Internal server error"}), 500


def create_app(settings: Settings | None = None,
               transport: Transport | None = None,
               verifier: Verifier | None = None) -> Flask:
    """
    Build the Flask app. Everything is resolved here, once:
    settings from the environment when not given, SMTP transport and
    reCAPTCHA verifier from settings when not injected.
    """
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
        configure_logging(settings.log_level)

    if transport is None:
        transport = SmtpTransport(settings.smtp)
    if verifier is None and settings.recaptcha.enabled:
        verifier = RecaptchaVerifier(settings.recaptcha)

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = MAX_BODY_BYTES
    if settings.trust_proxy_hops:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=settings.trust_proxy_hops)

    pipeline = Pipeline(settings, transport, verifier)
    app.extensions['application_relay'] = pipeline

    # Order matters: the origin hook must run before the limiter's hook
    origin_policy = OriginPolicy(settings.cors)
    origin_policy.install(app, protected_paths=(SEND_PATH,))
    limiter = rate_limit.create_limiter(app, settings.rate_limit)

    app.after_request(security_headers)
    configure_error_handlers(app)

    @app.route('/api/healthcheck')
    def healthcheck():
        return jsonify({"status": "ok"})

    @app.route(SEND_PATH, methods=['POST'])
    @rate_limit.submission_limit(limiter, settings.rate_limit)
    def send():
        result = pipeline.process(SubmissionRequest(
            authorization=request.headers.get('Authorization'),
            payload=request.get_json(silent=True),
            remote_addr=request.remote_addr,
        ))

        if result.status == "sent":
            return "", 200
        if result.field_errors:
            return jsonify({"errors": [e.to_dict() for e in result.field_errors]}), result.http_status
        return jsonify({"error": result.error_message}), result.http_status

    smtp = smtp_config_summary(settings.smtp)
    log.info(f"  Origins:   {origin_policy.summary()}")
    log.info(f"  Transport: SMTP {smtp['host']}:{smtp['port']} (tls={smtp['tls']} ssl={smtp['ssl']} auth={smtp['auth']})")
    log.info(f"  Verifier:  {'reCAPTCHA' if verifier is not None else 'disabled'}")
    return app


if __name__ == '__main__':
    app = create_app()
    pipeline = app.extensions['application_relay']
    port = pipeline.settings.port
    log.info(f"Application Relay starting on :{port}")
    app.run(host='0.0.0.0', port=port)
