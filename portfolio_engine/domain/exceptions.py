"""
Domain exceptions for the recommendation engine.

Errors fall into three groups:
- arithmetic errors raised by the decimal utility
- data-integrity errors (bad rules, malformed criteria, missing rates,
  out-of-order audit events) that fail a single user's run
- session errors raised when a stored recommendation is acted upon
"""

from typing import Optional


class EngineError(Exception):
    """Base class for all recommendation engine errors."""


# ----------------------------------------------------------------------
# Arithmetic
# ----------------------------------------------------------------------

class DecimalParseError(EngineError, ValueError):
    """Raised when a value cannot be parsed as an exact decimal."""

    def __init__(self, value: object, reason: str = "not a decimal number"):
        self.value = value
        self.reason = reason
        super().__init__(f"Cannot parse {value!r}: {reason}")


class DivisionByZeroError(EngineError, ZeroDivisionError):
    """Raised when a decimal division has a zero divisor."""

    def __init__(self, dividend: object):
        self.dividend = dividend
        super().__init__(f"Division by zero (dividend={dividend})")


# ----------------------------------------------------------------------
# Data integrity
# ----------------------------------------------------------------------

class DataIntegrityError(EngineError):
    """Stored data is inconsistent; the affected user's run must fail."""


class InvalidRuleError(DataIntegrityError):
    """A persisted criterion rule cannot be evaluated."""

    def __init__(self, rule_id: str, message: str):
        self.rule_id = rule_id
        super().__init__(f"Invalid rule {rule_id}: {message}")


class MalformedCriteriaError(DataIntegrityError):
    """A stored criteria version could not be decoded into rules."""

    def __init__(self, criteria_version_id: str, message: str):
        self.criteria_version_id = criteria_version_id
        super().__init__(f"Malformed criteria version {criteria_version_id}: {message}")


class MissingExchangeRateError(DataIntegrityError):
    """No rate (direct or inverse) exists for a currency pair."""

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(f"No exchange rate for {from_currency}_{to_currency}")


class EventSequenceError(DataIntegrityError):
    """An audit event was appended out of lifecycle order."""

    def __init__(self, correlation_id: str, message: str):
        self.correlation_id = correlation_id
        super().__init__(f"Event sequence violation for {correlation_id}: {message}")


class InvalidEventError(DataIntegrityError):
    """An audit event payload does not match its schema."""


class InvariantViolationError(EngineError):
    """A recommendation outcome broke one of its output guarantees."""


# ----------------------------------------------------------------------
# Recommendation sessions
# ----------------------------------------------------------------------

class RecommendationExpiredError(EngineError):
    """Raised when confirming a session past its validity window."""

    def __init__(self, session_id: Optional[str], expires_at):
        self.session_id = session_id
        self.expires_at = expires_at
        super().__init__(f"Recommendation {session_id} expired at {expires_at}")


class RecommendationStateError(EngineError):
    """Raised when a session is not in a state that allows the action."""
