"""Ordered record of validation steps and their results.

Insertion order is the reporting order: entries are never reordered or
deduplicated. Interrogation never mutates a set in place; it produces a
new set carrying the results (``with_results``), so a reader holding an
earlier set never observes a partially written one.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from tablegate.lib.steps import StepResult, ValidationStep

__all__ = ["Entry", "ValidationSet"]

Entry = Tuple[ValidationStep, Optional[StepResult]]


class ValidationSet:
    """Sequence of ``(step, result)`` pairs.

    ``result`` is None until the set has been interrogated.
    """

    def __init__(self, entries: Sequence[Entry] = ()) -> None:
        self._entries: Tuple[Entry, ...] = tuple(entries)

    # Build phase

    def append(self, steps: Sequence[ValidationStep]) -> "ValidationSet":
        """Return a new set with ``steps`` queued at the end."""
        return ValidationSet(self._entries + tuple((s, None) for s in steps))

    def with_results(self, results: Sequence[StepResult]) -> "ValidationSet":
        """Return a new set pairing every step with its result, in order."""
        if len(results) != len(self._entries):
            raise ValueError(
                f"Expected {len(self._entries)} results, got {len(results)}"
            )
        return ValidationSet(
            tuple((step, result) for (step, _), result in zip(self._entries, results))
        )

    # Read access

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> Entry:
        return self._entries[index]

    def __repr__(self) -> str:
        state = "interrogated" if self.interrogated else "queued"
        return f"ValidationSet({len(self)} steps, {state})"

    @property
    def steps(self) -> List[ValidationStep]:
        return [step for step, _ in self._entries]

    @property
    def results(self) -> List[Optional[StepResult]]:
        return [result for _, result in self._entries]

    @property
    def interrogated(self) -> bool:
        return bool(self._entries) and all(r is not None for _, r in self._entries)

    def snapshot(self) -> Tuple[Entry, ...]:
        """Immutable view of the entries."""
        return self._entries

    def step(self, i: int) -> Entry:
        """Entry for the step with sequence number ``i``."""
        for entry in self._entries:
            if entry[0].i == i:
                return entry
        raise KeyError(f"No step {i}")

    def all_passed(self) -> bool:
        """True if every active step was evaluated with zero failing units."""
        if not self.interrogated:
            return False
        return all(
            result.all_passed
            for step, result in self._entries
            if result is not None and result.active
        )

    def any_tier(self, tier: str) -> bool:
        """True if any step triggered the named tier (notify, warn or stop)."""
        return any(
            getattr(result, tier)
            for _, result in self._entries
            if result is not None
        )

    def to_records(self) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for step, result in self._entries:
            record: Dict[str, Any] = {
                "i": step.i,
                "assertion_type": step.assertion_type.value,
                "column": step.column,
                "values": list(step.values),
                "na_pass": step.na_pass,
                "preconditions": step.preconditions is not None,
                "active": step.active,
                "brief": step.brief,
                "label": step.label,
            }
            if result is not None:
                record.update(result.to_dict())
                record["active"] = step.active
            records.append(record)
        return records

    def to_frame(self) -> pd.DataFrame:
        """One row per step, for a reporting layer."""
        return pd.DataFrame.from_records(self.to_records())
