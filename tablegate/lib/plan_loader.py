"""YAML validation plans.

Lets a validation agent be defined without writing Python.

Example YAML (orders_plan.yaml):
    name: orders_check
    tbl_name: orders
    data: ./data/orders.csv
    actions:
      warn_at: 0.1
      stop_at: 0.25
    steps:
      - col_vals_between:
          columns: [amount]
          left: 0
          right: ${MAX_ORDER_AMOUNT}
          na_pass: true
      - col_vals_lte:
          columns: shipped_at
          value: {col: delivered_at}       # per-row bound from another column
      - col_vals_in_set:
          columns: {starts_with: status}
          set: [open, shipped, closed]
          actions: {stop_at: 1}

Usage:
    # Command line
    python -m tablegate orders_plan.yaml

    # Python API
    plan = load_plan("orders_plan.yaml")
    agent = build_agent(plan, read_table(plan.data)).interrogate()
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tablegate.lib.actions import ActionLevels, action_levels
from tablegate.lib.agent import Agent, create_agent
from tablegate.lib.bounds import col
from tablegate.lib.errors import PlanConfigError
from tablegate.lib.predicates import AssertionKind
from tablegate.lib.resolver import contains, ends_with, everything, matches, starts_with

logger = logging.getLogger(__name__)

__all__ = [
    "ActionsConfig",
    "PlanConfig",
    "StepConfig",
    "build_agent",
    "expand_env_vars",
    "load_plan",
    "read_table",
]

# ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

SELECTORS = {
    "starts_with": starts_with,
    "ends_with": ends_with,
    "contains": contains,
    "matches": matches,
    "everything": lambda _=None: everything(),
}

_RANGE_KINDS = {"col_vals_between", "col_vals_not_between"}
_COMPARE_KINDS = {
    "col_vals_lt",
    "col_vals_lte",
    "col_vals_gt",
    "col_vals_gte",
    "col_vals_equal",
    "col_vals_not_equal",
}
_SET_KINDS = {"col_vals_in_set", "col_vals_not_in_set"}
_NULL_KINDS = {"col_vals_null", "col_vals_not_null"}


def expand_env_vars(value: Any) -> Any:
    """Expand ${VAR} references in every string of a parsed YAML document.

    A string that is exactly one reference is parsed as YAML after
    expansion, so ``left: ${MIN_AMOUNT}`` yields a number. Unset
    variables are left as written.
    """
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    if not isinstance(value, str):
        return value

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1) or match.group(2))
        return match.group(0) if env_value is None else env_value

    expanded = ENV_VAR_PATTERN.sub(replacer, value)
    if expanded != value and ENV_VAR_PATTERN.fullmatch(value):
        return yaml.safe_load(expanded)
    return expanded


def _operand(value: Any) -> Any:
    """``{col: name}`` is a column reference, anything else a literal."""
    if isinstance(value, dict):
        if set(value) != {"col"}:
            raise ValueError(f"A bound mapping must be {{col: <name>}}, got {value}")
        return col(str(value["col"]))
    return value


def _columns(value: Any) -> Any:
    if isinstance(value, list):
        return [_columns(v) for v in value]
    if isinstance(value, dict):
        if len(value) != 1:
            raise ValueError(f"A column selector must have exactly one key, got {value}")
        (name, arg), = value.items()
        if name == "col":
            return col(str(arg))
        if name not in SELECTORS:
            raise ValueError(f"Unknown column selector '{name}'. Use one of: {sorted(SELECTORS)}")
        return SELECTORS[name](arg)
    return value


class ActionsConfig(BaseModel):
    """Thresholds for the notify, warn and stop tiers."""

    model_config = ConfigDict(extra="forbid")

    warn_at: Optional[float] = Field(default=None, gt=0)
    stop_at: Optional[float] = Field(default=None, gt=0)
    notify_at: Optional[float] = Field(default=None, gt=0)

    def to_action_levels(self) -> ActionLevels:
        return action_levels(warn_at=self.warn_at, stop_at=self.stop_at, notify_at=self.notify_at)


class StepConfig(BaseModel):
    """One validation call; fans out to a step per resolved column.

    Written in YAML as a single-key mapping, ``{<validation>: {...}}``.
    """

    model_config = ConfigDict(extra="forbid")

    validation: str
    columns: Union[str, List[Any], Dict[str, Any]]
    left: Any = None
    right: Any = None
    value: Any = None
    set: Optional[List[Any]] = None
    regex: Optional[str] = None
    inclusive: List[bool] = Field(default_factory=lambda: [True, True])
    na_pass: bool = False
    actions: Optional[ActionsConfig] = None
    brief: Optional[Union[str, List[str]]] = None
    active: bool = True
    label: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_validation(cls, data: Any) -> Any:
        if isinstance(data, dict) and "validation" not in data and len(data) == 1:
            (name, params), = data.items()
            if params is None:
                params = {}
            if not isinstance(params, dict):
                raise ValueError(f"Parameters of '{name}' must be a mapping")
            return {"validation": name, **params}
        return data

    @field_validator("validation")
    @classmethod
    def validate_validation(cls, v: str) -> str:
        valid = {k.value for k in AssertionKind}
        if v not in valid:
            raise ValueError(f"Unknown validation '{v}'. Use one of: {sorted(valid)}")
        return v

    @field_validator("inclusive")
    @classmethod
    def validate_inclusive(cls, v: List[bool]) -> List[bool]:
        if len(v) != 2:
            raise ValueError(f"inclusive must have exactly 2 elements, got {len(v)}")
        return v

    @model_validator(mode="after")
    def validate_parameters(self) -> "StepConfig":
        kind = self.validation
        if kind in _RANGE_KINDS and (self.left is None or self.right is None):
            raise ValueError(f"{kind} requires 'left' and 'right'")
        if kind in _COMPARE_KINDS and self.value is None:
            raise ValueError(f"{kind} requires 'value'")
        if kind in _SET_KINDS and self.set is None:
            raise ValueError(f"{kind} requires 'set'")
        if kind == "col_vals_regex" and self.regex is None:
            raise ValueError("col_vals_regex requires 'regex'")
        for operand in (self.left, self.right, self.value):
            _operand(operand)
        _columns(self.columns)
        return self

    def call_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the matching Agent method."""
        kwargs: Dict[str, Any] = {
            "columns": _columns(self.columns),
            "actions": self.actions.to_action_levels() if self.actions else None,
            "brief": self.brief,
            "active": self.active,
            "label": self.label,
        }
        kind = self.validation
        if kind in _RANGE_KINDS:
            kwargs.update(left=_operand(self.left), right=_operand(self.right), inclusive=tuple(self.inclusive))
        elif kind in _COMPARE_KINDS:
            kwargs["value"] = _operand(self.value)
        elif kind in _SET_KINDS:
            kwargs["set"] = self.set
        elif kind == "col_vals_regex":
            kwargs["regex"] = self.regex

        if kind not in _NULL_KINDS:
            kwargs["na_pass"] = self.na_pass
        return kwargs


class PlanConfig(BaseModel):
    """A validation plan: agent settings plus its steps."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    label: Optional[str] = None
    tbl_name: Optional[str] = None
    data: Optional[str] = None
    actions: Optional[ActionsConfig] = None
    steps: List[StepConfig] = Field(min_length=1)


def _resolve_path(path: str, plan_dir: Path) -> str:
    """Resolve ./ and ../ paths relative to the plan file."""
    if os.path.isabs(path) or "://" in path:
        return path
    if path.startswith(("./", "../")):
        return str(plan_dir / path)
    return path


def _format_validation_error(e: ValidationError) -> str:
    lines = []
    for error in e.errors():
        location = ".".join(str(part) for part in error["loc"]) or "plan"
        lines.append(f"  {location}: {error['msg']}")
    return "\n".join(lines)


def load_plan(plan_path: Union[str, Path]) -> PlanConfig:
    """Load and validate a YAML validation plan.

    Raises:
        FileNotFoundError: If the plan file doesn't exist
        PlanConfigError: If the YAML is malformed or fails validation
    """
    plan_path = Path(plan_path)
    if not plan_path.exists():
        raise FileNotFoundError(f"Plan file not found: {plan_path}")

    with open(plan_path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PlanConfigError(f"Invalid YAML syntax: {e}", field=str(plan_path)) from e

    if not raw:
        raise PlanConfigError("Empty plan file", field=str(plan_path))
    if not isinstance(raw, dict):
        raise PlanConfigError("A plan must be a mapping with a 'steps' list", field=str(plan_path))

    try:
        plan = PlanConfig.model_validate(expand_env_vars(raw))
    except ValidationError as e:
        raise PlanConfigError(
            f"Invalid plan {plan_path.name}:\n{_format_validation_error(e)}",
            field=str(plan_path),
        ) from e

    if plan.data:
        plan = plan.model_copy(update={"data": _resolve_path(plan.data, plan_path.parent.resolve())})

    logger.debug("Loaded plan %s with %d step(s)", plan_path, len(plan.steps))
    return plan


def build_agent(plan: PlanConfig, tbl: Any) -> Agent:
    """Create an agent for ``tbl`` and queue the plan's steps on it."""
    agent = create_agent(
        tbl,
        name=plan.name,
        label=plan.label,
        actions=plan.actions.to_action_levels() if plan.actions else None,
        tbl_name=plan.tbl_name,
    )
    for step in plan.steps:
        getattr(agent, step.validation)(**step.call_kwargs())
    return agent


def read_table(path: Union[str, Path]) -> pd.DataFrame:
    """Read a CSV or Parquet file into a DataFrame.

    Raises:
        PlanConfigError: For other file types
    """
    suffix = Path(path).suffix.lower()
    if suffix in (".csv", ".txt"):
        return pd.read_csv(path)
    if suffix in (".parquet", ".pq"):
        return pd.read_parquet(path, engine="pyarrow")
    raise PlanConfigError(
        f"Unsupported data file type '{suffix}'",
        field="data",
        value=str(path),
        suggestion="Use a .csv or .parquet file.",
    )
