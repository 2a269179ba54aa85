"""Bounds and column references for validation predicates.

A bound is either a literal scalar, fixed across all rows, or a reference
to another column, resolved row by row.

Example:
    Bound(1)                       # literal, inclusive
    Bound(col("upper"), inclusive=False)  # per-row value from column "upper"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

import pandas as pd

__all__ = ["Bound", "ColumnRef", "col", "is_null"]


@dataclass(frozen=True)
class ColumnRef:
    """Reference to a column whose per-row value is used as an operand."""

    name: str

    def __str__(self) -> str:
        return self.name


def col(name: str) -> ColumnRef:
    """Reference a column by name.

    Example:
        >>> col_vals_between(df, "a", left=col("lo"), right=col("hi"))
    """
    return ColumnRef(name)


def is_null(value: Any) -> bool:
    """True for None, NaN, NaT and pandas NA scalars."""
    if value is None:
        return True
    if not pd.api.types.is_scalar(value):
        return False
    return bool(pd.isna(value))


@dataclass(frozen=True)
class Bound:
    """One endpoint of a comparison.

    Attributes:
        value: Literal scalar or ColumnRef
        inclusive: Whether the endpoint itself satisfies the comparison
    """

    value: Union[Any, ColumnRef]
    inclusive: bool = True

    @classmethod
    def of(cls, value: Union[Any, "Bound"], inclusive: bool = True) -> "Bound":
        """Wrap a raw value, leaving an existing Bound untouched."""
        if isinstance(value, Bound):
            return value
        return cls(value=value, inclusive=inclusive)

    @property
    def is_column(self) -> bool:
        return isinstance(self.value, ColumnRef)

    @property
    def column(self) -> Optional[str]:
        return self.value.name if isinstance(self.value, ColumnRef) else None

    @property
    def label(self) -> str:
        """Text form used in briefs and failure messages."""
        return str(self.value)

    def resolve(self, row: Mapping[str, Any]) -> Any:
        """Value of this bound for a single row."""
        if isinstance(self.value, ColumnRef):
            return row[self.value.name]
        return self.value

    def resolve_frame(self, frame: pd.DataFrame) -> Any:
        """Literal scalar, or the referenced column as a Series."""
        if isinstance(self.value, ColumnRef):
            return frame[self.value.name]
        return self.value
