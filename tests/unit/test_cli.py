"""Tests for the tablegate command line."""

from __future__ import annotations

import textwrap

import pytest

from tablegate.__main__ import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILED,
    EXIT_PASSED,
    EXIT_STOPPED,
    main,
)

ORDERS_CSV = """\
id,amount,status
1,10,open
2,25,shipped
3,40,closed
4,,open
"""


@pytest.fixture
def workspace(tmp_path, restore_root_logger):
    """A data file next to a plan-writing helper."""
    (tmp_path / "orders.csv").write_text(ORDERS_CSV)

    def write(body, data="./orders.csv", name="plan.yaml"):
        header = f"name: orders_check\ndata: {data}\n" if data else "name: orders_check\n"
        path = tmp_path / name
        path.write_text(header + textwrap.dedent(body))
        return str(path)

    return write


PASSING_STEPS = """
steps:
  - col_vals_between:
      columns: amount
      left: 0
      right: 100
      na_pass: true
  - col_vals_in_set:
      columns: status
      set: [open, shipped, closed]
"""

FAILING_STEPS = """
steps:
  - col_vals_lt:
      columns: amount
      value: 30
"""


class TestExitCodes:
    def test_passing_plan(self, workspace, capsys):
        assert main([workspace(PASSING_STEPS)]) == EXIT_PASSED

        out = capsys.readouterr().out
        assert "Agent: orders_check" in out
        assert "  1. col_vals_between(amount): 0/4 failed (0.0%)" in out
        assert "  2. col_vals_in_set(status): 0/4 failed (0.0%)" in out

    def test_failing_units(self, workspace, capsys):
        assert main([workspace(FAILING_STEPS)]) == EXIT_FAILED
        assert "  1. col_vals_lt(amount): 2/4 failed (50.0%)" in capsys.readouterr().out

    def test_warn_tier_flagged(self, workspace, capsys):
        plan = workspace("actions: {warn_at: 0.25}\n" + FAILING_STEPS)
        assert main([plan]) == EXIT_FAILED
        assert "(50.0%)  [WARN]" in capsys.readouterr().out

    def test_stop_tier(self, workspace, capsys):
        plan = workspace("actions: {warn_at: 0.25, stop_at: 0.5}\n" + FAILING_STEPS)
        assert main([plan]) == EXIT_STOPPED
        assert "[WARN, STOP]" in capsys.readouterr().out

    def test_inactive_step_skipped(self, workspace, capsys):
        body = FAILING_STEPS + "      active: false\n"
        assert main([workspace(body)]) == EXIT_PASSED
        assert "  1. col_vals_lt(amount): skipped" in capsys.readouterr().out


class TestConfigErrors:
    def test_missing_plan(self, tmp_path, restore_root_logger, capsys):
        assert main([str(tmp_path / "missing.yaml")]) == EXIT_CONFIG_ERROR
        assert "Plan file not found" in capsys.readouterr().out

    def test_invalid_plan(self, workspace, capsys):
        plan = workspace("steps:\n  - col_vals_lt: {columns: amount}\n")
        assert main([plan]) == EXIT_CONFIG_ERROR
        assert "requires 'value'" in capsys.readouterr().out

    def test_no_data(self, workspace, capsys):
        assert main([workspace(FAILING_STEPS, data=None)]) == EXIT_CONFIG_ERROR
        assert "No data to validate" in capsys.readouterr().out

    def test_missing_data_file(self, workspace):
        assert main([workspace(FAILING_STEPS, data="./nowhere.csv")]) == EXIT_CONFIG_ERROR

    def test_unknown_column(self, workspace, capsys):
        plan = workspace("steps:\n  - col_vals_not_null: {columns: price}\n")
        assert main([plan]) == EXIT_CONFIG_ERROR
        assert "price" in capsys.readouterr().out


class TestOptions:
    def test_data_override(self, workspace, tmp_path):
        (tmp_path / "clean.csv").write_text("id,amount,status\n1,5,open\n")
        plan = workspace(FAILING_STEPS)
        assert main([plan, "--data", str(tmp_path / "clean.csv")]) == EXIT_PASSED

    def test_check_reads_no_data(self, workspace, capsys):
        plan = workspace(FAILING_STEPS, data="./nowhere.csv")
        assert main([plan, "--check"]) == EXIT_PASSED

        out = capsys.readouterr().out
        assert "Plan: orders_check" in out
        assert "col_vals_lt on amount" in out

    def test_parallel_workers(self, workspace, capsys):
        assert main([workspace(PASSING_STEPS), "--workers", "2", "--step-timeout", "30"]) == EXIT_PASSED

    def test_log_file(self, workspace, tmp_path):
        log_file = tmp_path / "run.log"
        assert main([workspace(PASSING_STEPS), "--verbose", "--json-log", "--log-file", str(log_file)]) == EXIT_PASSED
        assert log_file.read_text().startswith("{")
