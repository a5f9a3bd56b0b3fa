"""Job-application form relay: validate, authenticate, rate-limit, email."""

__version__ = "1.0.0"
