"""Validation library modules.

This package contains the core abstractions for validating the values of
pandas DataFrames and ibis tables: predicates and their evaluation,
steps, action thresholds, agents and the function-style API.
"""

from tablegate.lib.actions import (
    ActionLevels,
    Threshold,
    ThresholdType,
    Tier,
    TierDecision,
    action_levels,
    prime_actions,
    stop_on_fail,
    warn_on_fail,
)
from tablegate.lib.agent import QUIET_AGENT_NAME, Agent, AgentState, Interrogation, create_agent
from tablegate.lib.bounds import Bound, ColumnRef, col, is_null
from tablegate.lib.briefs import generate_autobriefs
from tablegate.lib.errors import (
    CapturedWarning,
    ConfigurationError,
    EmptySelectionError,
    EvaluationError,
    ExpectationFailed,
    PlanConfigError,
    StopThresholdError,
    TablegateError,
    ThresholdWarning,
)
from tablegate.lib.evaluator import (
    NAPolicy,
    TestUnit,
    TypeFamily,
    check_compatible,
    evaluate_frame,
    evaluate_row,
    predicate_expression,
)
from tablegate.lib.functions import *  # noqa: F401,F403
from tablegate.lib.functions import __all__ as _function_names
from tablegate.lib.observability import InterrogationMetrics, JSONFormatter, setup_logging
from tablegate.lib.plan_loader import PlanConfig, StepConfig, build_agent, load_plan, read_table
from tablegate.lib.predicates import (
    AssertionKind,
    Compare,
    CompareOp,
    NullCheck,
    PatternMatch,
    RangeBetween,
    SetMembership,
)
from tablegate.lib.resilience import RetryConfig, retry_operation
from tablegate.lib.resolver import contains, ends_with, everything, matches, resolve_columns, starts_with
from tablegate.lib.settings import AgentSettings, get_settings
from tablegate.lib.steps import StepResult, StepTemplate, ValidationStep, build_steps
from tablegate.lib.tables import FrameTable, IbisTable, as_table
from tablegate.lib.validation_set import ValidationSet

__all__ = [
    # Actions
    "ActionLevels",
    "Threshold",
    "ThresholdType",
    "Tier",
    "TierDecision",
    "action_levels",
    "prime_actions",
    "stop_on_fail",
    "warn_on_fail",
    # Agent
    "Agent",
    "AgentState",
    "Interrogation",
    "QUIET_AGENT_NAME",
    "create_agent",
    # Bounds
    "Bound",
    "ColumnRef",
    "col",
    "is_null",
    # Briefs
    "generate_autobriefs",
    # Errors
    "CapturedWarning",
    "ConfigurationError",
    "EmptySelectionError",
    "EvaluationError",
    "ExpectationFailed",
    "PlanConfigError",
    "StopThresholdError",
    "TablegateError",
    "ThresholdWarning",
    # Evaluation
    "NAPolicy",
    "TestUnit",
    "TypeFamily",
    "check_compatible",
    "evaluate_frame",
    "evaluate_row",
    "predicate_expression",
    # Observability
    "InterrogationMetrics",
    "JSONFormatter",
    "setup_logging",
    # Plans
    "PlanConfig",
    "StepConfig",
    "build_agent",
    "load_plan",
    "read_table",
    # Predicates
    "AssertionKind",
    "Compare",
    "CompareOp",
    "NullCheck",
    "PatternMatch",
    "RangeBetween",
    "SetMembership",
    # Resilience
    "RetryConfig",
    "retry_operation",
    # Column selection
    "contains",
    "ends_with",
    "everything",
    "matches",
    "resolve_columns",
    "starts_with",
    # Settings
    "AgentSettings",
    "get_settings",
    # Steps
    "StepResult",
    "StepTemplate",
    "ValidationStep",
    "build_steps",
    # Tables
    "FrameTable",
    "IbisTable",
    "as_table",
    # Validation sets
    "ValidationSet",
    # Validation functions
    *_function_names,
]
