import http.client
import time
import urllib.request

import pytest

from application_relay.config import RateLimitSettings, RecaptchaSettings
from application_relay.main import create_app
from application_relay.transport import TransportResult
from application_relay.verifier import RecaptchaVerifier, VerificationResult

from .helpers import API_KEY, ORIGIN, FakeTransport, FakeVerifier, make_settings, valid_payload


def post(client, payload, headers):
    return client.post("/api/send", json=payload, headers=headers)


# ── Happy path ────────────────────────────────────────────────────────────────

def test_valid_submission_sends_exactly_one_email(client, transport, auth_headers):
    resp = post(client, valid_payload(), auth_headers)
    assert resp.status_code == 200
    assert resp.data == b""

    assert len(transport.sent) == 1
    msg = transport.sent[0]
    assert msg.subject == "New Application from Jane Doe"
    assert "Jane Doe" in msg.body_html
    assert "jane@example.com" in msg.body_html
    assert msg.reply_to == "jane@example.com"


def test_identical_submissions_send_independently(client, transport, auth_headers):
    assert post(client, valid_payload(), auth_headers).status_code == 200
    assert post(client, valid_payload(), auth_headers).status_code == 200
    assert len(transport.sent) == 2
    assert transport.sent[0].message_id != transport.sent[1].message_id


def test_healthcheck(client):
    resp = client.get("/api/healthcheck")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


# ── Credential gate ───────────────────────────────────────────────────────────

@pytest.mark.parametrize("authorization", [None, "Basic abc", "bearer " + API_KEY, API_KEY])
def test_missing_or_malformed_authorization_is_401(client, transport, authorization):
    headers = {"Origin": ORIGIN}
    if authorization is not None:
        headers["Authorization"] = authorization
    resp = post(client, valid_payload(), headers)
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Missing or malformed Authorization header"}
    assert transport.sent == []


def test_wrong_token_is_403(client, transport):
    resp = post(client, valid_payload(), {"Origin": ORIGIN, "Authorization": "Bearer nope"})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Invalid API key"}
    assert transport.sent == []


def test_auth_checked_before_validation(client):
    resp = post(client, {}, {"Origin": ORIGIN})
    assert resp.status_code == 401


# ── Validation ────────────────────────────────────────────────────────────────

def test_empty_body_lists_every_violation(transport):
    app = create_app(make_settings(require_purpose=False), transport=transport)
    resp = post(app.test_client(), {}, {"Origin": ORIGIN, "Authorization": f"Bearer {API_KEY}"})
    assert resp.status_code == 400
    fields = {e["field"] for e in resp.get_json()["errors"]}
    assert fields == {"name", "email", "contact", "timeSlot", "timeframe", "weeklyTime", "termsAgreed"}
    assert transport.sent == []


def test_truthy_string_terms_rejected(client, auth_headers):
    resp = post(client, valid_payload(termsAgreed="true"), auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == [
        {"field": "termsAgreed", "rule": "boolean", "message": "Terms agreement is required"},
    ]


def test_non_json_body_is_400(client, auth_headers):
    resp = client.post("/api/send", data="name=Jane", headers=auth_headers,
                       content_type="application/x-www-form-urlencoded")
    assert resp.status_code == 400
    assert resp.get_json()["errors"][0]["field"] == "body"


def test_line_breaks_reach_email_as_markers(client, transport, auth_headers):
    resp = post(client, valid_payload(experience="<b>ten</b> years\nteaching"), auth_headers)
    assert resp.status_code == 200
    body = transport.sent[0].body_html
    assert "&lt;b&gt;ten&lt;/b&gt; years<br/>teaching" in body
    assert "<b>ten</b>" not in body


# ── Dispatch failure ──────────────────────────────────────────────────────────

def test_dispatch_failure_is_generic_500(auth_headers):
    transport = FakeTransport(TransportResult(success=False, error="SMTP error 535", smtp_code=535))
    client = create_app(make_settings(), transport=transport).test_client()
    resp = post(client, valid_payload(), auth_headers)
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Failed to send email"}
    assert b"535" not in resp.data


# ── Human verifier ────────────────────────────────────────────────────────────

def _verified_client(result):
    verifier = FakeVerifier(result)
    transport = FakeTransport()
    client = create_app(make_settings(), transport=transport, verifier=verifier).test_client()
    return client, verifier, transport


def test_verifier_requires_token(auth_headers):
    client, verifier, _ = _verified_client(VerificationResult(passed=True))
    resp = post(client, valid_payload(), auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["errors"][0]["field"] == "recaptchaToken"
    assert verifier.calls == []


def test_verifier_pass(auth_headers):
    client, verifier, transport = _verified_client(VerificationResult(passed=True, score=0.9))
    resp = post(client, valid_payload(recaptchaToken="tok"), auth_headers)
    assert resp.status_code == 200
    assert verifier.calls == [("tok", "127.0.0.1")]
    assert len(transport.sent) == 1


def test_verifier_rejection_is_403(auth_headers):
    client, _, transport = _verified_client(VerificationResult(passed=False, score=0.1))
    resp = post(client, valid_payload(recaptchaToken="tok"), auth_headers)
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Human verification failed"}
    assert transport.sent == []


def test_verifier_outage_is_503_without_detail(auth_headers):
    client, _, transport = _verified_client(VerificationResult(passed=False, service_error=True))
    resp = post(client, valid_payload(recaptchaToken="tok"), auth_headers)
    assert resp.status_code == 503
    assert resp.get_json() == {"error": "Verification service unavailable"}
    assert transport.sent == []


def test_garbled_verifier_reply_is_503(monkeypatch, auth_headers):
    def garbled(req, timeout=None):
        raise http.client.BadStatusLine("garbage")

    monkeypatch.setattr(urllib.request, "urlopen", garbled)
    verifier = RecaptchaVerifier(RecaptchaSettings(enabled=True, secret="s"))
    transport = FakeTransport()
    client = create_app(make_settings(), transport=transport, verifier=verifier).test_client()
    resp = post(client, valid_payload(recaptchaToken="tok"), auth_headers)
    assert resp.status_code == 503
    assert resp.get_json() == {"error": "Verification service unavailable"}
    assert transport.sent == []


# ── Rate limiting ─────────────────────────────────────────────────────────────

def _limited_client(window_ms, max_requests, transport=None):
    settings = make_settings(rate_limit=RateLimitSettings(window_ms=window_ms, max=max_requests))
    return create_app(settings, transport=transport or FakeTransport()).test_client()


def test_excess_requests_get_429(auth_headers):
    client = _limited_client(60_000, 3)
    codes = [post(client, valid_payload(), auth_headers).status_code for _ in range(5)]
    assert codes == [200, 200, 200, 429, 429]

    resp = post(client, valid_payload(), auth_headers)
    assert resp.mimetype == "text/plain"
    assert resp.data.decode() == "Too many attempts, please try again later."


def test_failed_auth_counts_against_the_limit(auth_headers):
    client = _limited_client(60_000, 2)
    bad = {"Origin": ORIGIN, "Authorization": "Bearer wrong"}
    assert post(client, valid_payload(), bad).status_code == 403
    assert post(client, valid_payload(), bad).status_code == 403
    assert post(client, valid_payload(), auth_headers).status_code == 429


def test_limit_resets_after_window(auth_headers):
    client = _limited_client(1000, 1)
    assert post(client, valid_payload(), auth_headers).status_code == 200
    assert post(client, valid_payload(), auth_headers).status_code == 429
    time.sleep(1.2)
    assert post(client, valid_payload(), auth_headers).status_code == 200


def test_callers_are_limited_separately(auth_headers):
    client = _limited_client(60_000, 1)
    first = {"REMOTE_ADDR": "10.0.0.1"}
    second = {"REMOTE_ADDR": "10.0.0.2"}
    assert client.post("/api/send", json=valid_payload(), headers=auth_headers, environ_base=first).status_code == 200
    assert client.post("/api/send", json=valid_payload(), headers=auth_headers, environ_base=first).status_code == 429
    assert client.post("/api/send", json=valid_payload(), headers=auth_headers, environ_base=second).status_code == 200


def test_healthcheck_is_not_rate_limited():
    client = _limited_client(60_000, 1)
    assert all(client.get("/api/healthcheck").status_code == 200 for _ in range(5))


# ── Security headers ──────────────────────────────────────────────────────────

def test_security_headers_present(client):
    resp = client.get("/api/healthcheck")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_is_json_404(client):
    resp = client.get("/nope")
    assert resp.status_code == 404
    assert "error" in resp.get_json()


def test_oversized_body_is_413(client, auth_headers):
    resp = post(client, valid_payload(experience="x" * (70 * 1024)), auth_headers)
    assert resp.status_code == 413

