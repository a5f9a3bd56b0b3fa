"""
config.py — Service Configuration
===================================
Every setting the service needs is read here, once, at startup.
Nothing downstream touches os.environ; layers receive a Settings object.

Configuration (environment variables):
  API_KEY                    — Shared bearer secret (required)
  CORS_POLICY                — fixed | allowlist | dynamic (default: fixed)
  CORS_ORIGINS               — Comma-separated origins, or * (required)
  CORS_ALLOW_CREDENTIALS     — Allow credentialed cross-origin calls (default: false)
  RATE_LIMIT_WINDOW_MS       — Limiter window in milliseconds (required)
  RATE_LIMIT_MAX             — Requests per window per caller (required)
  RATELIMIT_STORAGE_URI      — Limiter storage (default: memory://)
  TRUST_PROXY_HOPS           — Reverse proxies in front of us (default: 0)
  SMTP_HOST / SMTP_PORT      — Relay address (host required, port default 587)
  SMTP_USER / SMTP_PASS      — Relay credentials (optional)
  SMTP_USE_TLS               — STARTTLS after connect (default: true unless SSL)
  SMTP_USE_SSL               — Implicit TLS (default: true when port is 465)
  SMTP_TIMEOUT               — Seconds (default: 10)
  FROM_NAME / FROM_EMAIL     — Sender display name and address
  TO_EMAIL                   — Fixed recipient (required)
  REQUIRE_PURPOSE            — purpose field mandatory (default: true)
  RECAPTCHA_ENABLED          — Turn on the human verifier (default: false)
  RECAPTCHA_SECRET           — Verifier secret (required when enabled)
  RECAPTCHA_SCORE_THRESHOLD  — Minimum acceptable score (default: 0.5)
  RECAPTCHA_VERIFY_URL       — Scoring endpoint (default: Google siteverify)
  RECAPTCHA_TIMEOUT          — Seconds (default: 5)
  LOG_LEVEL                  — Logging level (default: INFO)
  PORT                       — Listening port (default: 3000)
"""

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

CORS_POLICIES = ("fixed", "allowlist", "dynamic")
WILDCARD = "*"

DEFAULT_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(ValueError):
    """Raised at startup when the environment cannot produce valid Settings."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


@dataclass(frozen=True)
class CorsSettings:
    policy:            str
    origins:           tuple[str, ...]
    allow_credentials: bool = False

    @property
    def wildcard(self) -> bool:
        return WILDCARD in self.origins


@dataclass(frozen=True)
class RateLimitSettings:
    window_ms:   int
    max:         int
    storage_uri: str = "memory://"

    @property
    def window_seconds(self) -> int:
        return max(1, math.ceil(self.window_ms / 1000))

    @property
    def limit_value(self) -> str:
        return f"{self.max} per {self.window_seconds} second"


@dataclass(frozen=True)
class SmtpSettings:
    host:      str
    port:      int = 587
    user:      str = ""
    password:  str = field(default="", repr=False)
    use_tls:   bool = True
    use_ssl:   bool = False
    timeout:   float = 10.0
    from_name: str = "Application Relay"
    from_addr: str = ""
    to_addr:   str = ""


@dataclass(frozen=True)
class RecaptchaSettings:
    enabled:         bool = False
    secret:          str = field(default="", repr=False)
    score_threshold: float = 0.5
    verify_url:      str = DEFAULT_VERIFY_URL
    timeout:         float = 5.0


@dataclass(frozen=True)
class Settings:
    api_key:          str = field(repr=False)
    cors:             CorsSettings
    rate_limit:       RateLimitSettings
    smtp:             SmtpSettings
    recaptcha:        RecaptchaSettings = field(default_factory=RecaptchaSettings)
    require_purpose:  bool = True
    trust_proxy_hops: int = 0
    log_level:        str = "INFO"
    port:             int = 3000

    def __post_init__(self):
        problems = check(self)
        if problems:
            raise ConfigError(problems)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build Settings from environment variables, reporting every problem at once."""
        env = os.environ if environ is None else environ
        reader = _Reader(env)

        smtp_port = reader.integer("SMTP_PORT", 587)
        smtp_ssl = reader.boolean("SMTP_USE_SSL", smtp_port == 465)
        smtp_user = env.get("SMTP_USER", "").strip()
        origins = tuple(o.strip() for o in env.get("CORS_ORIGINS", "").split(",") if o.strip())

        values = dict(
            api_key=env.get("API_KEY", "").strip(),
            cors=CorsSettings(
                policy=env.get("CORS_POLICY", "fixed").strip().lower(),
                origins=origins,
                allow_credentials=reader.boolean("CORS_ALLOW_CREDENTIALS", False),
            ),
            rate_limit=RateLimitSettings(
                window_ms=reader.integer("RATE_LIMIT_WINDOW_MS", None),
                max=reader.integer("RATE_LIMIT_MAX", None),
                storage_uri=env.get("RATELIMIT_STORAGE_URI", "memory://").strip() or "memory://",
            ),
            smtp=SmtpSettings(
                host=env.get("SMTP_HOST", "").strip(),
                port=smtp_port,
                user=smtp_user,
                password=env.get("SMTP_PASS", ""),
                use_tls=reader.boolean("SMTP_USE_TLS", not smtp_ssl),
                use_ssl=smtp_ssl,
                timeout=reader.number("SMTP_TIMEOUT", 10.0),
                from_name=env.get("FROM_NAME", "Application Relay").strip(),
                from_addr=env.get("FROM_EMAIL", "").strip() or smtp_user,
                to_addr=env.get("TO_EMAIL", "").strip(),
            ),
            recaptcha=RecaptchaSettings(
                enabled=reader.boolean("RECAPTCHA_ENABLED", False),
                secret=env.get("RECAPTCHA_SECRET", "").strip(),
                score_threshold=reader.number("RECAPTCHA_SCORE_THRESHOLD", 0.5),
                verify_url=env.get("RECAPTCHA_VERIFY_URL", "").strip() or DEFAULT_VERIFY_URL,
                timeout=reader.number("RECAPTCHA_TIMEOUT", 5.0),
            ),
            require_purpose=reader.boolean("REQUIRE_PURPOSE", True),
            trust_proxy_hops=reader.integer("TRUST_PROXY_HOPS", 0),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            port=reader.integer("PORT", 3000),
        )

        try:
            settings = cls(**values)
        except ConfigError as e:
            # A value that failed to parse is not also "required"
            semantic = [p for p in e.problems
                        if not any(p == f"{name} is required" for name in reader.failed)]
            raise ConfigError(reader.problems + semantic) from None
        if reader.problems:
            raise ConfigError(reader.problems)
        return settings


def check(settings: Settings) -> list[str]:
    """Returns list of configuration problems. Empty list = valid."""
    problems = []

    if not settings.api_key:
        problems.append("API_KEY is required")

    cors = settings.cors
    if cors.policy not in CORS_POLICIES:
        problems.append(f"CORS_POLICY must be one of {', '.join(CORS_POLICIES)}, got '{cors.policy}'")
    if not cors.origins:
        problems.append("CORS_ORIGINS is required")
    elif cors.policy == "fixed" and len(cors.origins) != 1:
        problems.append("CORS_POLICY=fixed takes exactly one origin (or *)")
    elif cors.policy != "fixed" and cors.wildcard:
        problems.append(f"CORS_POLICY={cors.policy} takes explicit origins, not *")
    if cors.allow_credentials and cors.wildcard:
        problems.append("CORS_ALLOW_CREDENTIALS cannot be combined with a wildcard origin")

    rl = settings.rate_limit
    if rl.window_ms is None:
        problems.append("RATE_LIMIT_WINDOW_MS is required")
    elif rl.window_ms <= 0:
        problems.append("RATE_LIMIT_WINDOW_MS must be positive")
    if rl.max is None:
        problems.append("RATE_LIMIT_MAX is required")
    elif rl.max <= 0:
        problems.append("RATE_LIMIT_MAX must be positive")

    smtp = settings.smtp
    if not smtp.host:
        problems.append("SMTP_HOST is required")
    if not 0 < smtp.port < 65536:
        problems.append(f"SMTP_PORT out of range: {smtp.port}")
    if smtp.use_tls and smtp.use_ssl:
        problems.append("SMTP_USE_TLS and SMTP_USE_SSL are mutually exclusive")
    if not smtp.from_addr:
        problems.append("FROM_EMAIL is required (or SMTP_USER to fall back on)")
    if not smtp.to_addr:
        problems.append("TO_EMAIL is required")

    rc = settings.recaptcha
    if rc.enabled and not rc.secret:
        problems.append("RECAPTCHA_SECRET is required when RECAPTCHA_ENABLED=true")
    if not 0.0 <= rc.score_threshold <= 1.0:
        problems.append("RECAPTCHA_SCORE_THRESHOLD must be between 0 and 1")

    if settings.trust_proxy_hops < 0:
        problems.append("TRUST_PROXY_HOPS cannot be negative")

    return problems


class _Reader:
    """Typed environment lookups that collect parse errors instead of raising."""

    def __init__(self, env: Mapping[str, str]):
        self.env = env
        self.problems: list[str] = []
        self.failed: set[str] = set()

    def _raw(self, name: str) -> str | None:
        value = self.env.get(name)
        if value is None or not value.strip():
            return None
        return value.strip()

    def boolean(self, name: str, default: bool) -> bool:
        raw = self._raw(name)
        if raw is None:
            return default
        if raw.lower() in _TRUE:
            return True
        if raw.lower() in _FALSE:
            return False
        self.problems.append(f"{name} must be true or false, got '{raw}'")
        return default

    def integer(self, name: str, default: int | None) -> int | None:
        raw = self._raw(name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            self.problems.append(f"{name} must be an integer, got '{raw}'")
            self.failed.add(name)
            return default

    def number(self, name: str, default: float) -> float:
        raw = self._raw(name)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError:
            self.problems.append(f"{name} must be a number, got '{raw}'")
            self.failed.add(name)
            return default
