"""Validation utilities for session and scan identifiers."""
import re
from typing import Any

from rollcall.utils.errors import InvalidInput

# Session ids, tokens, subject codes and student ids share one permissive alphabet.
IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9._:\-]{1,128}$')


class Validator:
    """Validation helper class."""

    @staticmethod
    def is_identifier(value: Any) -> bool:
        """Check that a value is a non-empty identifier string."""
        if not isinstance(value, str):
            return False
        return bool(IDENTIFIER_PATTERN.match(value.strip()))

    @staticmethod
    def require_identifier(value: Any, field: str) -> str:
        """Return the stripped identifier or raise InvalidInput."""
        if not Validator.is_identifier(value):
            raise InvalidInput(f"{field} is missing or malformed")
        return value.strip()
