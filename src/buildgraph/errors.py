# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

# Exit code reserved for problems found before any command runs
# (bad config, cycles, unknown targets, unsupported actions).
CONFIG_EXIT_CODE = 78
INTERRUPTED_EXIT_CODE = 130


class BuildGraphError(Exception):
    """Base class for every error raised before a plan is executed."""


class ConfigurationError(BuildGraphError):
    """Bad or missing submodule/prerequisite reference, or malformed config."""


class CyclicDependencyError(BuildGraphError):
    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__("Dependency cycle detected: " + " -> ".join(self.cycle))


class UnknownTargetError(BuildGraphError):
    def __init__(self, target: str, known: List[str] | None = None):
        self.target = target
        self.known = sorted(known or [])
        msg = f"Unknown target '{target}'"
        if self.known:
            msg += f". Known targets: {self.known}"
        super().__init__(msg)


class UnsupportedActionError(BuildGraphError):
    def __init__(self, target: str, action: str, supported: List[str] | None = None):
        self.target = target
        self.action = action
        self.supported = list(supported or [])
        msg = f"'{target}' does not support action '{action}'"
        if supported is not None:
            msg += f" (supported: {', '.join(self.supported) or 'none'})"
        super().__init__(msg)


@dataclass
class StepExecutionError(Exception):
    """
    Structured failure of one plan step.

    Never raised past the orchestrator; it is attached to the failing
    StepResult so the summary can name the submodule, action and exit code.
    """
    submodule: str
    action: str
    exit_code: int
    command: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"[{self.submodule}] {self.action} failed (exit={self.exit_code}): {self.command}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)
