# planner.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import ConfigurationError, UnknownTargetError, UnsupportedActionError
from .graph import ProductGraph
from .model import Action, ExecutionPlan, PlanStep, Submodule


class TaskPlanner:
    """
    Expands a requested action on a target into an ordered execution plan.

    Ordering is a post-order depth-first walk over prerequisites, in the
    order they were declared, so plans are reproducible. A shared
    prerequisite is scheduled once, at the first position any dependent
    demands it.

    Build-closure rule: Pack (and the Pack behind push-local) only needs its
    prerequisites *built*, never packed.
    """

    def __init__(self, graph: ProductGraph):
        if not graph.finalized:
            raise ConfigurationError("ProductGraph must be finalized before planning")
        self.graph = graph

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def plan(self, action: Action | str, target: str) -> ExecutionPlan:
        action = Action.parse(action)
        if target not in self.graph:
            raise UnknownTargetError(target, [s.qualified_name for s in self.graph.submodules()])
        sub = self.graph.get(target)
        steps, publish = self._expand(action, sub)
        return ExecutionPlan(action=action, targets=(target,), steps=tuple(steps), publish=frozenset(publish))

    def plan_many(self, action: Action | str, targets: Optional[Iterable[str]] = None) -> ExecutionPlan:
        """
        Merge plans for several targets. Targets may be qualified submodule
        names, product names or aliases; no targets means the whole graph.

        Submodules reached through a product name (or the whole graph) that
        do not support the action are left out; an explicitly named
        submodule that does not support it is an error.
        """
        action = Action.parse(action)
        target_list = list(targets or [])

        selected: List[Submodule] = []
        if not target_list:
            selected = [s for s in self.graph.submodules() if s.supports(action)]
        else:
            for t in target_list:
                resolved = self.graph.resolve(t)
                explicit = len(resolved) == 1 and t.strip().strip("/") not in {
                    p.name for p in self.graph.products()
                }
                for sub in resolved:
                    if not sub.supports(action):
                        if explicit:
                            raise UnsupportedActionError(
                                sub.qualified_name, action.value, sorted(a.value for a in sub.actions)
                            )
                        continue
                    if sub not in selected:
                        selected.append(sub)

        steps: List[PlanStep] = []
        seen: Set[Tuple[str, Action]] = set()
        publish: Set[Tuple[str, Action]] = set()
        for sub in selected:
            sub_steps, sub_publish = self._expand(action, sub)
            publish.update(sub_publish)
            for step in sub_steps:
                # an earlier pack of the same submodule already built it
                if step.action is Action.BUILD and (step.submodule.qualified_name, Action.PACK) in seen:
                    continue
                if step.key not in seen:
                    seen.add(step.key)
                    steps.append(step)

        return ExecutionPlan(
            action=action,
            targets=tuple(target_list) if target_list else ("*",),
            steps=tuple(steps),
            publish=frozenset(publish),
        )

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def _expand(self, action: Action, sub: Submodule) -> Tuple[List[PlanStep], Set[Tuple[str, Action]]]:
        if not sub.supports(action):
            raise UnsupportedActionError(sub.qualified_name, action.value, sorted(a.value for a in sub.actions))

        if action is Action.CLEAN:
            return [PlanStep(sub, Action.CLEAN)], set()

        if action is Action.BUILD:
            return self._build_closure(sub, include_self=True), set()

        if action is Action.PACK:
            return self._build_closure(sub, include_self=False) + [PlanStep(sub, Action.PACK)], set()

        # PUSH_LOCAL: full build closure (target included), then pack-and-publish the target
        terminal = PlanStep(sub, Action.PACK)
        return self._build_closure(sub, include_self=True) + [terminal], {terminal.key}

    def _build_closure(self, root: Submodule, *, include_self: bool) -> List[PlanStep]:
        order: List[PlanStep] = []
        visited: Dict[str, bool] = {}

        def visit(sub: Submodule) -> None:
            if sub.qualified_name in visited:
                return
            visited[sub.qualified_name] = True
            for pre in self.graph.prerequisites(sub):
                visit(pre)
            if sub is root and not include_self:
                return
            if not sub.supports(Action.BUILD):
                raise UnsupportedActionError(
                    sub.qualified_name, Action.BUILD.value, sorted(a.value for a in sub.actions)
                )
            order.append(PlanStep(sub, Action.BUILD))

        visit(root)
        return order
