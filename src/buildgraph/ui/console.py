"""Console output formatting utilities for buildgraph."""

from __future__ import annotations

import sys
from typing import Optional

from ..model import ExecutionPlan, ExecutionResult, PlanStatus, StepResult, StepStatus, Submodule


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, do not echo command output line by line
        """
        self.debug = debug
        self.quiet = quiet

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, config: str, action: str, step_count: int) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Config: {config}")
        print(f"Action: {action}")
        print(f"Steps: {step_count}")
        print()

    def print_plan(self, plan: ExecutionPlan) -> None:
        """Print the ordered steps of a plan."""
        self.print_header(f"PLAN ({plan.action.value}: {', '.join(plan.targets)})")
        if not plan.steps:
            print("  (nothing to do)")
        for idx, step in enumerate(plan.steps, start=1):
            dispatched = plan.dispatch_action(step)
            suffix = " (+ publish to local repository)" if dispatched is not step.action else ""
            print(f"  {idx}. {step.submodule.qualified_name}: {step.action.value}{suffix}")

    def print_step_start(self, index: int, total: int, name: str) -> None:
        """Print step start message."""
        print(f"\nSTEP {index}/{total}: {name}")

    def print_output(self, sub: Submodule, line: str) -> None:
        """Echo one line of external command output."""
        if not self.quiet:
            print(f"  | {line}")

    def print_success(self, name: str, duration: Optional[float] = None) -> None:
        """Print success message."""
        if duration is not None:
            print(f"STATUS: success ({duration:.1f}s)")
        else:
            print("STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        print(f"STEP FAILED: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if hint:
            print(f"Hint: {hint}")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            if error_line:
                print(f"Error: {error_line}")

    def print_step_skipped(self, name: str, reason: str) -> None:
        """Print step skipped message."""
        print(f"SKIPPED: {name} ({reason})")

    def print_results(self, result: ExecutionResult) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for r in result.steps:
            print(f"  {r.step}: {_status_display(r)}")
        print("-" * 40)
        print(f"  overall: {result.status.value.upper()} (exit={result.exit_code})")
        if result.status is PlanStatus.FAILED and result.failed_step is not None:
            failed = result.failed_step
            print(f"  first failure: {failed.step} (exit={failed.exit_code})")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


def _status_display(r: StepResult) -> str:
    if r.status is StepStatus.SUCCEEDED:
        return "SUCCESS"
    if r.status is StepStatus.FAILED:
        return f"FAILED (exit={r.exit_code})"
    return r.status.value.upper()


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
