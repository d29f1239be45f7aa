# orchestrator.py
from __future__ import annotations

from typing import List

from .dispatcher import CommandDispatcher, hint_for
from .errors import INTERRUPTED_EXIT_CODE
from .model import ExecutionPlan, ExecutionResult, PlanStatus, StepResult, StepStatus
from .ui.console import Console, get_console


class Orchestrator:
    """
    Drives an ExecutionPlan through a CommandDispatcher.

    Steps run strictly in plan order, one at a time. The first failing step
    stops the run: every step after it is reported as skipped. Completed
    steps are never rolled back and nothing is retried.
    """

    def __init__(self, dispatcher: CommandDispatcher, console: Console | None = None):
        self.dispatcher = dispatcher
        self.console = console or get_console()

    def execute(self, plan: ExecutionPlan, *, dry_run: bool = False) -> ExecutionResult:
        results: List[StepResult] = [StepResult(step=s) for s in plan.steps]

        if dry_run:
            for r in results:
                r.status = StepStatus.SKIPPED
                self.console.print_step_skipped(str(r.step), "dry run")
            return ExecutionResult(steps=results, status=PlanStatus.SUCCESS, exit_code=0)

        total = len(results)
        for idx, pending in enumerate(results):
            step = pending.step
            action = plan.dispatch_action(step)
            label = str(step) if action is step.action else f"{step} -> {action.value}"
            self.console.print_step_start(idx + 1, total, label)
            pending.status = StepStatus.RUNNING

            try:
                done = self.dispatcher.run(step, action)
            except KeyboardInterrupt:
                pending.status = StepStatus.FAILED
                pending.exit_code = INTERRUPTED_EXIT_CODE
                self.console.print_failure(label, "interrupted by user", exit_code=INTERRUPTED_EXIT_CODE)
                self._skip_rest(results, idx + 1, "run aborted")
                return ExecutionResult(steps=results, status=PlanStatus.ABORTED, exit_code=INTERRUPTED_EXIT_CODE)

            results[idx] = done
            if done.status is StepStatus.SUCCEEDED:
                self.console.print_success(label, done.duration)
                continue

            self.console.print_failure(
                label,
                str(done.error) if done.error else "command failed",
                exit_code=done.exit_code,
                hint=hint_for(done),
            )
            self._skip_rest(results, idx + 1, f"{step} failed")
            code = done.exit_code if done.exit_code and done.exit_code > 0 else 1
            return ExecutionResult(steps=results, status=PlanStatus.FAILED, exit_code=code)

        return ExecutionResult(steps=results, status=PlanStatus.SUCCESS, exit_code=0)

    def _skip_rest(self, results: List[StepResult], start: int, reason: str) -> None:
        for r in results[start:]:
            r.status = StepStatus.SKIPPED
            self.console.print_step_skipped(str(r.step), reason)
