"""Validation agents: queue steps against a table, then interrogate it.

An agent moves between two states:

- BUILDING: validation calls fan out into steps appended to the queue
- INTERROGATED: every queued step has a result

interrogate() is the only transition to INTERROGATED. Each run produces a
fresh, frozen ValidationSet that is appended to ``agent.history``; earlier
runs are never modified. Queueing another step moves the agent back to
BUILDING.

Example:
    agent = (
        create_agent(df, actions=action_levels(warn_at=0.1, stop_at=0.25))
        .col_vals_between("c", 1, 9, na_pass=True)
        .col_vals_in_set("f", ["low", "mid", "high"])
        .interrogate()
    )
    agent.validation_set.to_frame()
"""

from __future__ import annotations

import logging
import threading
import time
import warnings
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generator, List, Optional, Sequence, Union

from tablegate.lib.actions import ActionLevels, TierDecision
from tablegate.lib.bounds import Bound
from tablegate.lib.briefs import generate_autobriefs
from tablegate.lib.errors import ConfigurationError, StopThresholdError
from tablegate.lib.evaluator import NAPolicy, check_compatible
from tablegate.lib.observability import InterrogationMetrics
from tablegate.lib.preconditions import normalize_preconditions
from tablegate.lib.predicates import (
    Compare,
    CompareOp,
    NullCheck,
    PatternMatch,
    Predicate,
    RangeBetween,
    SetMembership,
    columns_referenced,
)
from tablegate.lib.resilience import RetryConfig
from tablegate.lib.resolver import resolve_columns, uses_selectors
from tablegate.lib.settings import get_settings
from tablegate.lib.steps import StepResult, StepTemplate, ValidationStep, build_steps, normalize_inclusive
from tablegate.lib.tables import TableSource, as_table
from tablegate.lib.validation_set import ValidationSet

logger = logging.getLogger(__name__)

__all__ = [
    "Agent",
    "AgentState",
    "Interrogation",
    "QUIET_AGENT_NAME",
    "create_agent",
]

# Name of the transient agents built by direct, expect_* and test_* calls
QUIET_AGENT_NAME = "::QUIET::"

Brief = Union[None, str, Sequence[Optional[str]]]

# Step number evaluated by the current thread, for warning attribution
_current = threading.local()


class AgentState(Enum):
    BUILDING = "building"
    INTERROGATED = "interrogated"


@dataclass(frozen=True)
class Interrogation:
    """One completed interrogation run."""

    started_at: datetime
    finished_at: datetime
    validation_set: ValidationSet
    metrics: Dict[str, Any]

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class _WarningRouter:
    """Collects warnings raised while a step is evaluated, per step."""

    def __init__(self) -> None:
        self._captured: Dict[int, List[str]] = {}
        self._unrouted: List[warnings.WarningMessage] = []
        self._lock = threading.Lock()

    def _show(self, message, category, filename, lineno, file=None, line=None) -> None:
        step = getattr(_current, "step", None)
        with self._lock:
            if step is None:
                self._unrouted.append(warnings.WarningMessage(message, category, filename, lineno, file, line))
            else:
                self._captured.setdefault(step, []).append(str(message))

    def text(self, step: int) -> Optional[str]:
        with self._lock:
            messages = self._captured.get(step)
        return "\n".join(messages) if messages else None

    @contextmanager
    def active(self) -> Generator["_WarningRouter", None, None]:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("always")
                warnings.showwarning = self._show
                yield self
        finally:
            # Warnings from outside any step are not ours to keep
            for w in self._unrouted:
                warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)


def _error_text(e: BaseException) -> str:
    return str(e) or type(e).__name__


def _literal_operands(predicate: Predicate) -> List[Any]:
    values = [b.value for b in predicate.bounds if not b.is_column]
    if isinstance(predicate, SetMembership):
        values.extend(predicate.members)
    return values


class Agent:
    """Queue of validation steps bound to one table.

    Attributes:
        tbl: The table as given (pandas DataFrame or ibis Table)
        name: Agent name, used in logs and metrics
        label: Free-form description
        actions: Default ActionLevels for steps queued without their own
        history: Completed interrogations, oldest first
    """

    def __init__(
        self,
        tbl: Any,
        name: Optional[str] = None,
        label: Optional[str] = None,
        actions: Optional[ActionLevels] = None,
        tbl_name: Optional[str] = None,
        retry: Optional[RetryConfig] = None,
    ):
        if actions is not None and not isinstance(actions, ActionLevels):
            raise ConfigurationError(
                "actions must be created with action_levels()",
                field="actions",
                value=actions,
            )

        self._source: TableSource = as_table(tbl, name=tbl_name, retry=retry or get_settings().retry_config())
        self.tbl = self._source.raw
        self.name = name or f"agent_{datetime.now():%Y-%m-%d_%H:%M:%S}"
        self.label = label or f"[{datetime.now():%Y-%m-%d|%H:%M:%S}]"
        self.tbl_name = tbl_name
        self.actions = actions

        self._queue = ValidationSet()
        self._history: List[Interrogation] = []
        self._state = AgentState.BUILDING
        self._lock = threading.Lock()

        logger.debug("Created agent %s for %r", self.name, self._source)

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, steps={len(self._queue)}, state={self._state.value})"

    @property
    def quiet(self) -> bool:
        return self.name == QUIET_AGENT_NAME

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def history(self) -> List[Interrogation]:
        with self._lock:
            return list(self._history)

    @property
    def validation_set(self) -> ValidationSet:
        """Latest interrogated set, or the queued steps before interrogation."""
        with self._lock:
            if self._state is AgentState.INTERROGATED:
                return self._history[-1].validation_set
            return self._queue

    # ============================================
    # Build phase
    # ============================================

    def _resolve(self, columns: Any, preconditions: Any) -> List[str]:
        if preconditions is None:
            available: Optional[List[str]] = self._source.columns
        elif uses_selectors(columns):
            available = self._source.apply(preconditions).columns
        else:
            # Preconditions may add columns; missing names are captured at interrogation
            available = None
        return resolve_columns(columns, available)

    def _check_types(self, predicate: Predicate, columns: Sequence[str]) -> None:
        missing = [c for c in columns_referenced(predicate) if not self._source.has_column(c)]
        if missing:
            raise ConfigurationError(
                f"Bound column(s) not found in table: {', '.join(missing)}",
                field="bounds",
                suggestion=f"Available columns: {', '.join(self._source.columns)}",
            )

        literals = _literal_operands(predicate)
        for column in columns:
            family, categories = self._source.type_family(column)
            for value in literals:
                check_compatible(family, value, kind=predicate.kind, column=column, categories=categories)

    def _add(
        self,
        predicate: Predicate,
        columns: Any,
        *,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        normalize_preconditions(preconditions)
        if actions is not None and not isinstance(actions, ActionLevels):
            raise ConfigurationError("actions must be created with action_levels()", field="actions", value=actions)
        if not isinstance(active, bool):
            raise ConfigurationError("active must be True or False", field="active", value=active)
        if not isinstance(na_pass, bool):
            raise ConfigurationError("na_pass must be True or False", field="na_pass", value=na_pass)

        resolved = self._resolve(columns, preconditions)
        if preconditions is None:
            self._check_types(predicate, resolved)

        if brief is None:
            briefs: List[Optional[str]] = list(generate_autobriefs(resolved, predicate, preconditions))
        elif isinstance(brief, str):
            briefs = [brief] * len(resolved)
        else:
            briefs = list(brief)

        template = StepTemplate(
            predicate=predicate,
            na_policy=NAPolicy.from_flag(na_pass),
            preconditions=preconditions,
            actions=actions,
            active=active,
            label=label,
        )

        with self._lock:
            steps = build_steps(template, resolved, briefs, start=len(self._queue) + 1)
            self._queue = self._queue.append(steps)
            self._state = AgentState.BUILDING

        logger.debug(
            "Queued %d %s step(s) on %s",
            len(steps),
            predicate.kind.value,
            ", ".join(resolved),
        )
        return self

    def col_vals_between(
        self,
        columns: Any,
        left: Any,
        right: Any,
        inclusive: Sequence[bool] = (True, True),
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        """Values should lie between ``left`` and ``right``.

        Either bound may be a literal or ``col("name")`` for a per-row
        value. ``inclusive`` sets whether each bound itself passes.
        """
        left_inc, right_inc = normalize_inclusive(inclusive)
        predicate = RangeBetween(Bound.of(left, left_inc), Bound.of(right, right_inc))
        return self._add(
            predicate, columns, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_not_between(
        self,
        columns: Any,
        left: Any,
        right: Any,
        inclusive: Sequence[bool] = (True, True),
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        """Values should lie outside ``left`` and ``right``."""
        left_inc, right_inc = normalize_inclusive(inclusive)
        predicate = RangeBetween(Bound.of(left, left_inc), Bound.of(right, right_inc), negate=True)
        return self._add(
            predicate, columns, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def _compare(self, op: CompareOp, columns: Any, value: Any, **kwargs: Any) -> "Agent":
        return self._add(Compare(op, Bound.of(value)), columns, **kwargs)

    def col_vals_lt(
        self,
        columns: Any,
        value: Any,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._compare(
            CompareOp.LT, columns, value, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_lte(
        self,
        columns: Any,
        value: Any,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._compare(
            CompareOp.LTE, columns, value, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_gt(
        self,
        columns: Any,
        value: Any,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._compare(
            CompareOp.GT, columns, value, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_gte(
        self,
        columns: Any,
        value: Any,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._compare(
            CompareOp.GTE, columns, value, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_equal(
        self,
        columns: Any,
        value: Any,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._compare(
            CompareOp.EQ, columns, value, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_not_equal(
        self,
        columns: Any,
        value: Any,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._compare(
            CompareOp.NE, columns, value, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_in_set(
        self,
        columns: Any,
        set: Sequence[Any],
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        """Values should be members of ``set``. A None in the set admits nulls."""
        return self._add(
            SetMembership(set), columns, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_not_in_set(
        self,
        columns: Any,
        set: Sequence[Any],
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._add(
            SetMembership(set, negate=True), columns, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_null(
        self,
        columns: Any,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._add(
            NullCheck(expect_null=True), columns, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_not_null(
        self,
        columns: Any,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        return self._add(
            NullCheck(expect_null=False), columns, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    def col_vals_regex(
        self,
        columns: Any,
        regex: str,
        na_pass: bool = False,
        preconditions: Any = None,
        actions: Optional[ActionLevels] = None,
        brief: Brief = None,
        active: bool = True,
        label: Optional[str] = None,
    ) -> "Agent":
        """String form of each value should contain a match for ``regex``."""
        return self._add(
            PatternMatch(regex), columns, na_pass=na_pass, preconditions=preconditions,
            actions=actions, brief=brief, active=active, label=label,
        )

    # ============================================
    # Interrogation
    # ============================================

    def _evaluate_step(
        self,
        step: ValidationStep,
        metrics: InterrogationMetrics,
        router: _WarningRouter,
    ) -> StepResult:
        if not step.active:
            return StepResult.inactive()

        time_processed = datetime.now(timezone.utc)
        _current.step = step.i
        try:
            with metrics.time_step(step.i):
                table = self._source.apply(step.preconditions)
                n = table.count()
                n_failed = table.count_failed(step.predicate, step.column, step.na_policy)
        except Exception as e:
            logger.warning(
                "Step %d (%s on '%s') raised %s: %s",
                step.i,
                step.assertion_type.value,
                step.column,
                type(e).__name__,
                e,
            )
            captured_warning = router.text(step.i)
            return StepResult.errored(
                _error_text(e),
                eval_warning=captured_warning is not None,
                captured_warning=captured_warning,
                duration_seconds=metrics.step_duration(step.i),
                time_processed=time_processed,
            )
        finally:
            _current.step = None

        actions = step.actions or self.actions
        decision = actions.evaluate(n_failed, n) if actions is not None else TierDecision()
        captured_warning = router.text(step.i)

        metrics.record_step(step.i, step.column, n, n_failed)
        logger.log(
            logging.DEBUG if self.quiet else logging.INFO,
            "Step %d %s('%s'): %d of %d test units failed",
            step.i,
            step.assertion_type.value,
            step.column,
            n_failed,
            n,
        )

        return StepResult.from_counts(
            n,
            n_failed,
            notify=decision.notify,
            warn=decision.warn,
            stop=decision.stop,
            eval_warning=captured_warning is not None,
            captured_warning=captured_warning,
            duration_seconds=metrics.step_duration(step.i),
            time_processed=time_processed,
        )

    def _evaluate_parallel(
        self,
        steps: Sequence[ValidationStep],
        metrics: InterrogationMetrics,
        router: _WarningRouter,
        max_workers: Optional[int],
        step_timeout: Optional[float],
    ) -> List[StepResult]:
        started = {step.i: threading.Event() for step in steps}
        start_times: Dict[int, float] = {}
        executors: List[ThreadPoolExecutor] = []

        def run(step: ValidationStep) -> StepResult:
            start_times[step.i] = time.perf_counter()
            started[step.i].set()
            return self._evaluate_step(step, metrics, router)

        def launch(batch: Sequence[ValidationStep]) -> Dict[int, Future]:
            executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tablegate")
            executors.append(executor)
            return {step.i: executor.submit(run, step) for step in batch}

        futures = launch(steps)
        try:
            # Collected in insertion order regardless of completion order
            results: List[StepResult] = []
            for n, step in enumerate(steps):
                future = futures[step.i]
                if step_timeout is None:
                    results.append(future.result())
                    continue

                # The clock starts when a worker picks the step up
                started[step.i].wait()
                remaining = step_timeout - (time.perf_counter() - start_times[step.i])
                try:
                    results.append(future.result(timeout=max(remaining, 0.0)))
                    continue
                except FuturesTimeout:
                    logger.warning("Step %d timed out after %.1fs", step.i, step_timeout)
                    results.append(
                        StepResult.errored(
                            f"Step {step.i} timed out after {step_timeout}s",
                            duration_seconds=float(step_timeout),
                            time_processed=datetime.now(timezone.utc),
                        )
                    )

                # The timed-out step keeps its worker; queued steps move to a fresh pool
                waiting = [later for later in steps[n + 1:] if futures[later.i].cancel()]
                if waiting:
                    futures.update(launch(waiting))
            return results
        finally:
            # A timed-out step can't be interrupted; don't wait for it
            for executor in executors:
                executor.shutdown(wait=False, cancel_futures=True)

    def _fire_actions(self, validation_set: ValidationSet) -> None:
        for step, result in validation_set:
            if result is None or not result.active:
                continue
            actions = step.actions or self.actions
            decision = TierDecision(result.notify, result.warn, result.stop)
            if decision.stop:
                logger.error("Step %d (%s on '%s') met the stop threshold", step.i, step.assertion_type.value, step.column)
            elif decision.warn:
                logger.warning("Step %d (%s on '%s') met the warn threshold", step.i, step.assertion_type.value, step.column)
            if actions is not None and decision.any:
                actions.run_fns(decision, step, result)

    def interrogate(
        self,
        max_workers: Optional[int] = None,
        step_timeout: Optional[float] = None,
        raise_on_stop: bool = True,
    ) -> "Agent":
        """Evaluate every queued step against the table.

        Args:
            max_workers: Evaluate steps on this many threads (default from
                settings; unset means one step at a time)
            step_timeout: Seconds to wait for each step's result; a step
                that runs longer is recorded as a captured error
            raise_on_stop: Raise StopThresholdError when any step met its
                stop threshold

        Returns:
            The agent, now INTERROGATED

        Raises:
            StopThresholdError: After all steps ran, if any met its stop
                threshold (and ``raise_on_stop``)
        """
        settings = get_settings()
        if max_workers is None:
            max_workers = settings.max_workers
        if step_timeout is None:
            step_timeout = settings.step_timeout_seconds

        with self._lock:
            queue = self._queue
        steps = queue.steps

        started_at = datetime.now(timezone.utc)
        metrics = InterrogationMetrics(self.name, self.tbl_name)
        router = _WarningRouter()

        with router.active():
            if (max_workers is not None and max_workers > 1) or step_timeout is not None:
                results = self._evaluate_parallel(steps, metrics, router, max_workers, step_timeout)
            else:
                results = [self._evaluate_step(step, metrics, router) for step in steps]

        validation_set = queue.with_results(results)
        interrogation = Interrogation(
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            validation_set=validation_set,
            metrics=metrics.summary(),
        )

        with self._lock:
            self._history.append(interrogation)
            # Steps queued while interrogating keep the agent in BUILDING
            if self._queue is queue:
                self._state = AgentState.INTERROGATED

        logger.log(
            logging.DEBUG if self.quiet else logging.INFO,
            "Interrogation of %s finished: %d step(s) in %.3fs",
            self.name,
            len(steps),
            interrogation.duration_seconds,
        )

        self._fire_actions(validation_set)

        if raise_on_stop and validation_set.any_tier("stop"):
            stopped = [step.i for step, result in validation_set if result is not None and result.stop]
            raise StopThresholdError(
                f"{len(stopped)} step(s) met or exceeded the stop threshold",
                validation_set=validation_set,
            )
        return self

    # ============================================
    # Results
    # ============================================

    def all_passed(self) -> bool:
        """True if the latest interrogation had no failing units and no errors."""
        with self._lock:
            if not self._history:
                return False
            return self._history[-1].validation_set.all_passed()

    def summary(self) -> Dict[str, Any]:
        """Plain-dict view of the agent and its latest results."""
        validation_set = self.validation_set
        with self._lock:
            last = self._history[-1] if self._history else None
            n_interrogations = len(self._history)
            state = self._state

        return {
            "name": self.name,
            "label": self.label,
            "tbl_name": self.tbl_name,
            "state": state.value,
            "n_steps": len(validation_set),
            "n_interrogations": n_interrogations,
            "all_passed": validation_set.all_passed(),
            "notify": validation_set.any_tier("notify"),
            "warn": validation_set.any_tier("warn"),
            "stop": validation_set.any_tier("stop"),
            "time_start": last.started_at.isoformat() if last else None,
            "time_end": last.finished_at.isoformat() if last else None,
            "steps": validation_set.to_records(),
        }


def create_agent(
    tbl: Any,
    name: Optional[str] = None,
    label: Optional[str] = None,
    actions: Optional[ActionLevels] = None,
    tbl_name: Optional[str] = None,
    retry: Optional[RetryConfig] = None,
) -> Agent:
    """Create an agent for a pandas DataFrame or ibis Table.

    Args:
        tbl: Table to validate
        name: Agent name (default: timestamped)
        label: Free-form description
        actions: Default ActionLevels for steps queued without their own
        tbl_name: Table name for logs and metrics
        retry: Retry policy for remote scans (default from settings)
    """
    return Agent(tbl, name=name, label=label, actions=actions, tbl_name=tbl_name, retry=retry)
