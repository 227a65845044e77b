# errors.py
"""
Exception types raised by the retirement engine.

Only parameter problems surface as exceptions. Solver non-convergence is a
tagged result (see engine.withdrawal_engine) and the 60-year distribution cap
is an ordinary termination condition.
"""


class RetirementEngineError(Exception):
    """Base class for all engine errors."""


class InvalidParameterError(RetirementEngineError, ValueError):
    """Raised before any realization runs when inputs are NaN, negative or inconsistent."""

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value for '{field}': {value!r} ({reason})")
