"""Step-scoped table transforms.

A precondition is a callable taking a table and returning a table of the
same kind (a pandas DataFrame, or an ibis Table). A step may carry one
callable or a sequence of them, applied in order. The shared source
table is never mutated: pandas tables are copied before the first
transform runs, ibis tables are immutable expressions.

Example:
    agent.col_vals_between(
        "ratio", 0, 1,
        preconditions=lambda df: df.assign(ratio=df["a"] / df["b"]),
    )
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

import ibis.expr.types as ir
import pandas as pd

from tablegate.lib.errors import ConfigurationError, EvaluationError, TablegateError

logger = logging.getLogger(__name__)

__all__ = ["apply_preconditions", "normalize_preconditions"]


def normalize_preconditions(preconditions: Any) -> Optional[List[Callable[[Any], Any]]]:
    """Validate a precondition argument at build time.

    Returns:
        None, or the list of callables to apply in order

    Raises:
        ConfigurationError: If any element isn't callable
    """
    if preconditions is None:
        return None
    if callable(preconditions):
        return [preconditions]
    if isinstance(preconditions, (str, bytes)) or not hasattr(preconditions, "__iter__"):
        raise ConfigurationError(
            "preconditions must be a callable or a sequence of callables",
            field="preconditions",
            value=preconditions,
        )

    fns = list(preconditions)
    for fn in fns:
        if not callable(fn):
            raise ConfigurationError(
                "Every precondition must be callable",
                field="preconditions",
                value=fn,
            )
    return fns


def _same_kind(original: Any, result: Any) -> bool:
    if isinstance(original, pd.DataFrame):
        return isinstance(result, pd.DataFrame)
    if isinstance(original, ir.Table):
        return isinstance(result, ir.Table)
    return type(result) is type(original)


def apply_preconditions(tbl: Any, preconditions: Any) -> Any:
    """Apply preconditions to a private view of ``tbl``.

    Args:
        tbl: pandas DataFrame or ibis Table
        preconditions: Callable, sequence of callables, or None

    Returns:
        The transformed table (``tbl`` itself when there is nothing to apply)

    Raises:
        EvaluationError: If a transform fails or returns another kind of table
    """
    fns = normalize_preconditions(preconditions)
    if not fns:
        return tbl

    current = tbl.copy() if isinstance(tbl, pd.DataFrame) else tbl
    for fn in fns:
        name = getattr(fn, "__name__", repr(fn))
        try:
            result = fn(current)
        except TablegateError:
            raise
        except Exception as e:
            raise EvaluationError(
                f"Precondition '{name}' failed: {e}",
                cause=e,
            ) from e

        if not _same_kind(tbl, result):
            raise EvaluationError(
                f"Precondition '{name}' returned {type(result).__name__}, "
                f"expected {type(tbl).__name__}",
                suggestion="Return the transformed table from the precondition.",
            )
        logger.debug("Applied precondition %s", name)
        current = result

    return current
