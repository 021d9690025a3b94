"""
Error hierarchy for the deal tax engine.

Structural errors abort a computation (bad configuration or a broken
caller contract). User-correctable input problems are never raised;
they travel as a list of messages on ``DealResult.validation_errors``.
"""

from __future__ import annotations

from typing import Any, Optional


class AutoTaxError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={self.details!r})"
        )


class StructuralError(AutoTaxError):
    """A configuration or caller-contract defect. Computation stops."""


class UnknownJurisdiction(StructuralError):
    """No active policy exists for the requested jurisdiction code."""

    def __init__(self, code: str) -> None:
        super().__init__(
            f"Unknown jurisdiction code: {code}",
            details={"jurisdiction_code": code},
        )
        self.code = code


class MissingTerms(StructuralError):
    """A finance or lease deal was submitted without its terms."""

    def __init__(self, deal_type: str, required: str) -> None:
        super().__init__(
            f"{deal_type} deal requires {required}",
            details={"deal_type": deal_type, "required": required},
        )
        self.deal_type = deal_type
        self.required = required


class RuleConfigurationError(StructuralError):
    """Policy or local-rate data cannot be interpreted."""


class DealInputError(AutoTaxError):
    """A deal record cannot be parsed, or its terms cannot be priced."""
