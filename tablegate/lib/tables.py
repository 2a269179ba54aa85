"""Table adapters used by the interrogation engine.

The engine needs three things from a table: its column names and types,
the number of test units (rows), and the number of failing test units
for a step. Two adapters implement them:

- FrameTable: in-memory pandas DataFrame, evaluated with evaluate_frame()
- IbisTable: lazy ibis table, counted server-side with a pushed-down
  boolean expression (``t.filter(~passes).count()``); no rows are fetched

Scans of ibis tables are retried with tenacity (see resilience.py).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

import ibis.expr.types as ir
import pandas as pd
from pandas.api import types as ptypes

from tablegate.lib.errors import ConfigurationError, EvaluationError
from tablegate.lib.evaluator import NAPolicy, TypeFamily, evaluate_frame, predicate_expression
from tablegate.lib.preconditions import apply_preconditions
from tablegate.lib.predicates import Predicate, columns_referenced
from tablegate.lib.resilience import RetryConfig, retry_operation

logger = logging.getLogger(__name__)

__all__ = ["FrameTable", "IbisTable", "TableSource", "as_table"]

Categories = Optional[Sequence[Any]]

_INFERRED_FAMILIES = {
    "string": TypeFamily.STRING,
    "integer": TypeFamily.NUMERIC,
    "floating": TypeFamily.NUMERIC,
    "mixed-integer-float": TypeFamily.NUMERIC,
    "decimal": TypeFamily.NUMERIC,
    "boolean": TypeFamily.BOOLEAN,
    "datetime64": TypeFamily.TEMPORAL,
    "datetime": TypeFamily.TEMPORAL,
    "date": TypeFamily.TEMPORAL,
}


class TableSource(ABC):
    """Interface shared by the table adapters."""

    name: Optional[str] = None

    @property
    @abstractmethod
    def raw(self) -> Any:
        """The wrapped table object."""

    @property
    @abstractmethod
    def columns(self) -> List[str]:
        pass

    def has_column(self, column: str) -> bool:
        return column in self.columns

    @abstractmethod
    def type_family(self, column: str) -> Tuple[TypeFamily, Categories]:
        """Type family of a column, with categories for categoricals."""

    @abstractmethod
    def apply(self, preconditions: Any) -> "TableSource":
        """Table with step preconditions applied (never mutates self)."""

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def count_failed(self, predicate: Predicate, column: str, na_policy: NAPolicy) -> int:
        pass

    def _require_columns(self, predicate: Predicate, column: str) -> None:
        missing = [c for c in [column, *columns_referenced(predicate)] if not self.has_column(c)]
        if missing:
            raise EvaluationError(
                f"Column(s) not found in table: {', '.join(missing)}",
                column=column,
                details={"available": ", ".join(self.columns)},
            )


class FrameTable(TableSource):
    """In-memory pandas table."""

    def __init__(self, frame: pd.DataFrame, name: Optional[str] = None):
        self.frame = frame
        self.name = name

    def __repr__(self) -> str:
        return f"FrameTable({self.frame.shape[0]} rows x {self.frame.shape[1]} columns)"

    @property
    def raw(self) -> pd.DataFrame:
        return self.frame

    @property
    def columns(self) -> List[str]:
        return [str(c) for c in self.frame.columns]

    def type_family(self, column: str) -> Tuple[TypeFamily, Categories]:
        dtype = self.frame[column].dtype
        if isinstance(dtype, pd.CategoricalDtype):
            return TypeFamily.CATEGORICAL, list(dtype.categories)
        if ptypes.is_bool_dtype(dtype):
            return TypeFamily.BOOLEAN, None
        if ptypes.is_numeric_dtype(dtype):
            return TypeFamily.NUMERIC, None
        if ptypes.is_datetime64_any_dtype(dtype):
            return TypeFamily.TEMPORAL, None
        if ptypes.is_string_dtype(dtype) or ptypes.is_object_dtype(dtype):
            inferred = ptypes.infer_dtype(self.frame[column], skipna=True)
            return _INFERRED_FAMILIES.get(inferred, TypeFamily.OTHER), None
        return TypeFamily.OTHER, None

    def apply(self, preconditions: Any) -> "FrameTable":
        if preconditions is None:
            return self
        return FrameTable(apply_preconditions(self.frame, preconditions), name=self.name)

    def count(self) -> int:
        return len(self.frame)

    def count_failed(self, predicate: Predicate, column: str, na_policy: NAPolicy) -> int:
        self._require_columns(predicate, column)
        passed = evaluate_frame(predicate, self.frame, column, na_policy)
        return int((~passed).sum())


class IbisTable(TableSource):
    """Lazy ibis table; counts run on the backend."""

    def __init__(
        self,
        table: ir.Table,
        name: Optional[str] = None,
        retry: Optional[RetryConfig] = None,
    ):
        self.table = table
        self.name = name
        self.retry = retry or RetryConfig()

    def __repr__(self) -> str:
        return f"IbisTable({len(self.columns)} columns)"

    @property
    def raw(self) -> ir.Table:
        return self.table

    @property
    def columns(self) -> List[str]:
        return list(self.table.columns)

    def type_family(self, column: str) -> Tuple[TypeFamily, Categories]:
        dtype = self.table.schema()[column]
        if dtype.is_boolean():
            return TypeFamily.BOOLEAN, None
        if dtype.is_numeric():
            return TypeFamily.NUMERIC, None
        if dtype.is_temporal():
            return TypeFamily.TEMPORAL, None
        if dtype.is_string():
            return TypeFamily.STRING, None
        return TypeFamily.OTHER, None

    def apply(self, preconditions: Any) -> "IbisTable":
        if preconditions is None:
            return self
        return IbisTable(apply_preconditions(self.table, preconditions), name=self.name, retry=self.retry)

    def count(self) -> int:
        return retry_operation(
            lambda: int(self.table.count().execute()),
            self.retry,
            f"row count of {self.name or 'table'}",
        )

    def count_failed(self, predicate: Predicate, column: str, na_policy: NAPolicy) -> int:
        self._require_columns(predicate, column)
        passes = predicate_expression(predicate, self.table, column, na_policy)
        failing = self.table.filter(~passes)
        return retry_operation(
            lambda: int(failing.count().execute()),
            self.retry,
            f"{predicate.kind.value} scan of '{column}'",
        )


def as_table(
    tbl: Any,
    name: Optional[str] = None,
    retry: Optional[RetryConfig] = None,
) -> TableSource:
    """Wrap a DataFrame or ibis table in its adapter.

    Raises:
        ConfigurationError: For any other kind of object
    """
    if isinstance(tbl, TableSource):
        return tbl
    if isinstance(tbl, pd.DataFrame):
        return FrameTable(tbl, name=name)
    if isinstance(tbl, ir.Table):
        return IbisTable(tbl, name=name, retry=retry)
    raise ConfigurationError(
        f"Can't validate an object of type {type(tbl).__name__}",
        field="tbl",
        suggestion="Pass a pandas DataFrame or an ibis Table.",
    )
