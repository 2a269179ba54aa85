"""Row-level value validation for pandas DataFrames and ibis tables.

Steps are queued on an agent and evaluated together, or run one at a
time against a table as a pipeline gate, an assertion, or a boolean test.

Usage:
    from tablegate import action_levels, create_agent

    agent = (
        create_agent(df, actions=action_levels(warn_at=0.1, stop_at=0.25))
        .col_vals_between("amount", 0, 10_000, na_pass=True)
        .col_vals_regex("sku", r"^[A-Z]{3}-\\d{4}$")
        .interrogate()
    )

    python -m tablegate orders_plan.yaml
"""

from tablegate.lib import *  # noqa: F401,F403
from tablegate.lib import __all__ as _lib_names

__version__ = "1.0.0"

__all__ = [*_lib_names, "__version__"]
