"""Column selection for validation steps.

Target columns can be given as a name, a ``col()`` reference, a selector
helper, or a list mixing them. Selectors match against the table's
column names (after the step's preconditions, when it has any):

    starts_with("amt_")         # amt_net, amt_gross
    ends_with("_id")
    contains("date")
    matches(r"^q[1-4]_")
    everything()

Names are returned in selection order with duplicates removed.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from tablegate.lib.bounds import ColumnRef
from tablegate.lib.errors import ConfigurationError

__all__ = [
    "Selector",
    "contains",
    "ends_with",
    "everything",
    "matches",
    "resolve_columns",
    "starts_with",
    "uses_selectors",
]


class Selector(ABC):
    """Matches a subset of a table's column names."""

    @abstractmethod
    def select(self, columns: Sequence[str]) -> List[str]:
        pass


@dataclass(frozen=True)
class _AffixSelector(Selector):
    match: str
    ignore_case: bool = True
    where: str = "start"

    def _test(self, name: str) -> bool:
        needle, hay = self.match, name
        if self.ignore_case:
            needle, hay = needle.lower(), hay.lower()
        if self.where == "start":
            return hay.startswith(needle)
        if self.where == "end":
            return hay.endswith(needle)
        return needle in hay

    def select(self, columns: Sequence[str]) -> List[str]:
        return [c for c in columns if self._test(c)]


@dataclass(frozen=True)
class _RegexSelector(Selector):
    pattern: str
    ignore_case: bool = True

    def select(self, columns: Sequence[str]) -> List[str]:
        regex = re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)
        return [c for c in columns if regex.search(c)]


@dataclass(frozen=True)
class _Everything(Selector):
    def select(self, columns: Sequence[str]) -> List[str]:
        return list(columns)


def starts_with(match: str, ignore_case: bool = True) -> Selector:
    return _AffixSelector(match, ignore_case, "start")


def ends_with(match: str, ignore_case: bool = True) -> Selector:
    return _AffixSelector(match, ignore_case, "end")


def contains(match: str, ignore_case: bool = True) -> Selector:
    return _AffixSelector(match, ignore_case, "any")


def matches(pattern: str, ignore_case: bool = True) -> Selector:
    """Columns whose name matches a regular expression (search)."""
    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid column pattern: {e}", field="columns", value=pattern) from e
    return _RegexSelector(pattern, ignore_case)


def everything() -> Selector:
    return _Everything()


def _flatten(columns: Any) -> List[Any]:
    if isinstance(columns, (str, ColumnRef, Selector)):
        return [columns]
    if isinstance(columns, (list, tuple)):
        items: List[Any] = []
        for c in columns:
            items.extend(_flatten(c))
        return items
    raise ConfigurationError(
        "columns must be a name, col() reference, selector, or a list of those",
        field="columns",
        value=columns,
    )


def resolve_columns(
    columns: Any,
    available: Optional[Sequence[str]] = None,
) -> List[str]:
    """Resolve a column selection to an ordered list of names.

    Args:
        columns: Name, ColumnRef, Selector, or a (nested) list of them
        available: Column names of the table, if known

    Returns:
        Ordered, de-duplicated column names (possibly empty)

    Raises:
        ConfigurationError: If a named column isn't in ``available``, or a
            selector is used without known columns

    Example:
        >>> resolve_columns(["a", starts_with("b")], ["a", "b1", "b2", "c"])
        ['a', 'b1', 'b2']
    """
    resolved: List[str] = []
    for item in _flatten(columns):
        if isinstance(item, Selector):
            if available is None:
                raise ConfigurationError(
                    "Column selectors need a table with known columns",
                    field="columns",
                    value=item,
                )
            names = item.select(available)
        else:
            name = item.name if isinstance(item, ColumnRef) else item
            if available is not None and name not in available:
                raise ConfigurationError(
                    f"Column '{name}' not found in table",
                    column=name,
                    field="columns",
                    suggestion=f"Available columns: {', '.join(available)}",
                )
            names = [name]

        for name in names:
            if name not in resolved:
                resolved.append(name)

    return resolved


def uses_selectors(columns: Any) -> bool:
    """True if a column selection contains selector helpers."""
    return any(isinstance(item, Selector) for item in _flatten(columns))
