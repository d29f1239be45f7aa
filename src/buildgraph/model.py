# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple


class Action(str, Enum):
    """The four lifecycle verbs a submodule can support."""
    BUILD = "build"
    PACK = "pack"
    PUSH_LOCAL = "push-local"
    CLEAN = "clean"

    @classmethod
    def parse(cls, value: "str | Action") -> "Action":
        if isinstance(value, Action):
            return value
        key = str(value).strip().lower().replace("_", "-")
        # accept the camel-case spellings used by old build scripts too
        aliases = {"pushlocal": "push-local", "balpack": "pack", "balpushlocal": "push-local"}
        key = aliases.get(key, key)
        for action in cls:
            if action.value == key:
                return action
        raise ValueError(f"Unknown action {value!r}. Expected one of: {[a.value for a in cls]}")

    def __str__(self) -> str:
        return self.value


class Layer(str, Enum):
    """Which layer of a product a submodule belongs to (selects default commands)."""
    NATIVE = "native"
    PLUGIN = "plugin"
    BINDING = "binding"


ALL_ACTIONS: Tuple[Action, ...] = tuple(Action)


def qualify(product: str, name: str) -> str:
    return f"{product}/{name}"


@dataclass(frozen=True)
class Submodule:
    """
    One buildable unit inside a product.

    `needs` holds qualified names ("product/submodule") of prerequisites,
    possibly in other products, in declaration order.
    """
    product: str
    name: str
    needs: Tuple[str, ...] = ()
    actions: frozenset = frozenset(ALL_ACTIONS)
    kind: Layer = Layer.BINDING
    cwd: Optional[Path] = None
    commands: Tuple[Tuple[Action, str], ...] = ()
    output_dir: str = "target"
    env: Tuple[Tuple[str, str], ...] = ()

    @property
    def qualified_name(self) -> str:
        return qualify(self.product, self.name)

    def supports(self, action: Action) -> bool:
        return action in self.actions

    def command_override(self, action: Action) -> Optional[str]:
        for a, cmd in self.commands:
            if a is action:
                return cmd
        return None

    def __str__(self) -> str:
        return self.qualified_name


@dataclass
class Product:
    """A deliverable made of an ordered set of submodules."""
    name: str
    submodules: List[Submodule] = field(default_factory=list)
    directory: Optional[Path] = None
    properties: Dict[str, str] = field(default_factory=dict)
    # e.g. {"core-native": "native"}; lets targets use the published project names
    aliases: Dict[str, str] = field(default_factory=dict)


class PlanStep(NamedTuple):
    submodule: Submodule
    action: Action

    @property
    def key(self) -> Tuple[str, Action]:
        return self.submodule.qualified_name, self.action

    def __str__(self) -> str:
        return f"{self.submodule.qualified_name}:{self.action.value}"


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Ordered, deduplicated (submodule, action) steps for one request.

    `publish` lists the steps whose Pack must also publish to the local
    repository (the terminal step of a push-local request).
    """
    action: Action
    targets: Tuple[str, ...]
    steps: Tuple[PlanStep, ...]
    publish: frozenset = frozenset()

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def pairs(self) -> List[Tuple[str, Action]]:
        return [s.key for s in self.steps]

    def dispatch_action(self, step: PlanStep) -> Action:
        """The action the dispatcher should actually run for `step`."""
        if step.action is Action.PACK and step.key in self.publish:
            return Action.PUSH_LOCAL
        return step.action


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class PlanStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class StepResult:
    step: PlanStep
    status: StepStatus = StepStatus.PENDING
    exit_code: Optional[int] = None
    output: str = ""
    command: str = ""
    duration: float = 0.0
    error: Optional[Exception] = None


@dataclass
class ExecutionResult:
    """Per-step outcomes plus the aggregate status of a plan run."""
    steps: List[StepResult]
    status: PlanStatus
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.status is PlanStatus.SUCCESS

    @property
    def failed_step(self) -> Optional[StepResult]:
        for r in self.steps:
            if r.status is StepStatus.FAILED:
                return r
        return None

    def statuses(self) -> Dict[str, str]:
        return {str(r.step): r.status.value for r in self.steps}
