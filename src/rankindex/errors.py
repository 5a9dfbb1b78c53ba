from __future__ import annotations


class RankIndexError(RuntimeError):
    """Base class for failures that abort a training run."""


class InvalidConfiguration(RankIndexError, ValueError):
    """Raised for sizes, shapes or settings that cannot produce a valid run."""


class NumericInstability(RankIndexError, ArithmeticError):
    """Raised when the training loss stops being finite."""


__all__ = ["RankIndexError", "InvalidConfiguration", "NumericInstability"]
