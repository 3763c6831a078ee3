class InvalidArgumentError(ValueError):
    """Raised when a caller passes a parameter the analytics layer cannot honour
    (non-positive window size, unknown table, column or metric)."""


class DivisionByZeroError(ZeroDivisionError):
    """Raised by strict ratio computations when a denominator is zero or missing."""
