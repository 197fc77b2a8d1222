"""Validation package."""

from trove.validation.validator import LedgerValidator, ValidationError

__all__ = ["LedgerValidator", "ValidationError"]
