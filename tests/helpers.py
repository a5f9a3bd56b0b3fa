from application_relay.config import (
    CorsSettings,
    RateLimitSettings,
    Settings,
    SmtpSettings,
)
from application_relay.transport import TransportResult
from application_relay.verifier import VerificationResult

API_KEY = "test-secret"
ORIGIN = "https://apply.example.com"


def make_settings(**overrides) -> Settings:
    values = dict(
        api_key=API_KEY,
        cors=CorsSettings(policy="allowlist", origins=(ORIGIN, "http://localhost:5173")),
        rate_limit=RateLimitSettings(window_ms=60_000, max=10),
        smtp=SmtpSettings(
            host="smtp.test",
            port=587,
            user="relay@example.com",
            password="hunter2",
            from_name="Application Relay",
            from_addr="relay@example.com",
            to_addr="hiring@example.com",
        ),
    )
    values.update(overrides)
    return Settings(**values)


def valid_payload(**overrides) -> dict:
    payload = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "contact": "555-0100",
        "timeSlot": "Mon 9am",
        "purpose": "Career change",
        "timeframe": "2 weeks",
        "weeklyTime": "5 hrs",
        "termsAgreed": True,
    }
    payload.update(overrides)
    return payload


class FakeTransport:
    def __init__(self, result: TransportResult | None = None):
        self.result = result or TransportResult(success=True)
        self.sent = []

    def deliver(self, msg):
        self.sent.append(msg)
        return self.result


class FakeVerifier:
    def __init__(self, result: VerificationResult):
        self.result = result
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return self.result
