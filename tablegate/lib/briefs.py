"""Generated step descriptions ("autobriefs").

Example:
    >>> generate_autobriefs(["a"], RangeBetween(Bound(1), Bound(9)))
    ['Expect that values in `a` should be between `1` and `9`.']
"""

from __future__ import annotations

from typing import Any, List, Sequence

from tablegate.lib.predicates import Predicate

__all__ = ["generate_autobriefs"]


def generate_autobriefs(
    columns: Sequence[str],
    predicate: Predicate,
    preconditions: Any = None,
) -> List[str]:
    """One brief per column, index-aligned with ``columns``."""
    computed = " (computed column)" if preconditions is not None else ""
    return [
        f"Expect that values in `{column}`{computed} should be {predicate.relation}."
        for column in columns
    ]
