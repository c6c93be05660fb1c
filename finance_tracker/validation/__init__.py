"""Input validation package."""

from finance_tracker.validation.validator import (
    EntryValidator,
    ValidationError,
    parse_amount,
    parse_date,
)

__all__ = ["EntryValidator", "ValidationError", "parse_amount", "parse_date"]
