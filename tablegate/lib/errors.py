"""Structured exception hierarchy for validation agents.

Build-time problems (bad step parameters, empty column selections) fail
fast with ConfigurationError. Problems that only surface while scanning a
table are raised as EvaluationError and captured on the step's result by
the agent. StopThresholdError is the fatal signal raised after a full
interrogation when a step crossed its ``stop`` threshold.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from tablegate.lib.validation_set import ValidationSet

__all__ = [
    "TablegateError",
    "ConfigurationError",
    "EmptySelectionError",
    "EvaluationError",
    "StopThresholdError",
    "ExpectationFailed",
    "PlanConfigError",
    "ThresholdWarning",
    "CapturedWarning",
]


class TablegateError(Exception):
    """Base exception for all validation errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        step: Optional[int] = None,
        column: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.step = step
        self.column = column
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if step is not None or column:
            context = f"step {step if step is not None else '?'}: {column or '?'}"
            parts.insert(0, f"[{context}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "step": self.step,
            "column": self.column,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(TablegateError):
    """Malformed validation step parameters.

    Raised while building steps, before any row is scanned.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)

        super().__init__(message, details=details, **kwargs)


class EmptySelectionError(ConfigurationError):
    """A column selection resolved to zero columns."""

    def __init__(self, message: str = "Column selection resolved to no columns", **kwargs: Any) -> None:
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Check the column names or selector against the table's columns."
        super().__init__(message, suggestion=suggestion, **kwargs)


class EvaluationError(TablegateError):
    """Error raised while scanning rows for a single step.

    The agent records it on the step's result and carries on with the
    remaining steps.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.cause = cause

        details = kwargs.pop("details", {})
        if cause is not None:
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class StopThresholdError(TablegateError):
    """One or more steps crossed their ``stop`` threshold.

    Raised only after every active step has been evaluated, so
    ``validation_set`` always holds complete statistics.
    """

    def __init__(
        self,
        message: str,
        *,
        validation_set: Optional["ValidationSet"] = None,
        **kwargs: Any,
    ) -> None:
        self.validation_set = validation_set

        details = kwargs.pop("details", {})
        if validation_set is not None:
            stopped = [
                step.i for step, result in validation_set if result is not None and result.stop
            ]
            details["stopped_steps"] = stopped

        super().__init__(message, details=details, **kwargs)


class ExpectationFailed(TablegateError, AssertionError):
    """An ``expect_*`` call exceeded its failure threshold."""

    pass


class PlanConfigError(ConfigurationError):
    """Error in a YAML validation plan."""

    pass


class ThresholdWarning(UserWarning):
    """Emitted when a step crossed its ``warn`` threshold."""

    pass


class CapturedWarning(UserWarning):
    """Re-emission of a warning captured while evaluating a step."""

    pass
