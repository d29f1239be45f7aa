from __future__ import annotations

import random

import pytest

from buildgraph.errors import ConfigurationError, UnknownTargetError, UnsupportedActionError
from buildgraph.graph import ProductGraph
from buildgraph.model import Action
from buildgraph.planner import TaskPlanner

B, P, PL, C = Action.BUILD, Action.PACK, Action.PUSH_LOCAL, Action.CLEAN


def test_build_binding_builds_native_first(graph_a: ProductGraph) -> None:
    plan = TaskPlanner(graph_a).plan(Action.BUILD, "A/binding")

    assert plan.pairs() == [("A/native", B), ("A/binding", B)]


def test_unconstrained_prerequisites_follow_declaration_order(graph_b: ProductGraph) -> None:
    plan = TaskPlanner(graph_b).plan("build", "B/binding")

    assert plan.pairs() == [("B/plugin", B), ("B/native", B), ("B/binding", B)]


def test_push_local_packs_after_the_build_closure(graph_a: ProductGraph) -> None:
    plan = TaskPlanner(graph_a).plan(Action.PUSH_LOCAL, "A/binding")

    assert plan.pairs() == [("A/native", B), ("A/binding", B), ("A/binding", P)]
    last = plan.steps[-1]
    assert plan.dispatch_action(last) is PL
    assert all(plan.dispatch_action(s) is s.action for s in plan.steps[:-1])


def test_pack_needs_prerequisite_builds_not_packs(graph_a: ProductGraph) -> None:
    plan = TaskPlanner(graph_a).plan(Action.PACK, "A/binding")

    assert plan.pairs() == [("A/native", B), ("A/binding", P)]
    assert plan.dispatch_action(plan.steps[-1]) is P


def test_clean_is_a_single_step_without_expansion() -> None:
    g = ProductGraph()
    g.add_submodule("A", "native", [], [B, C])
    g.add_submodule("A", "binding", ["native"], [B, C])
    g.finalize()

    plan = TaskPlanner(g).plan(Action.CLEAN, "A/binding")

    assert plan.pairs() == [("A/binding", C)]


def test_unknown_target(graph_a: ProductGraph) -> None:
    with pytest.raises(UnknownTargetError) as exc:
        TaskPlanner(graph_a).plan(Action.BUILD, "unknown/module")

    assert exc.value.target == "unknown/module"


def test_unsupported_action_on_target(graph_a: ProductGraph) -> None:
    with pytest.raises(UnsupportedActionError) as exc:
        TaskPlanner(graph_a).plan(Action.PUSH_LOCAL, "A/native")

    assert exc.value.target == "A/native"
    assert exc.value.action == "push-local"


def test_prerequisite_that_cannot_build_is_reported() -> None:
    g = ProductGraph()
    g.add_submodule("A", "native", [], [C])
    g.add_submodule("A", "binding", ["native"], [B])
    g.finalize()

    with pytest.raises(UnsupportedActionError, match="A/native"):
        TaskPlanner(g).plan(Action.BUILD, "A/binding")


def test_planner_requires_finalized_graph() -> None:
    g = ProductGraph()
    g.add_submodule("A", "native")

    with pytest.raises(ConfigurationError):
        TaskPlanner(g)


def test_shared_prerequisite_is_scheduled_once_at_earliest_position() -> None:
    g = ProductGraph()
    g.add_submodule("core", "native")
    g.add_submodule("core", "ballerina", ["native"])
    g.add_submodule("dicom", "native", ["core/native"])
    g.add_submodule("dicom", "ballerina", ["core/ballerina", "native"])
    g.finalize()

    plan = TaskPlanner(g).plan(Action.BUILD, "dicom/ballerina")

    assert plan.pairs() == [
        ("core/native", B),
        ("core/ballerina", B),
        ("dicom/native", B),
        ("dicom/ballerina", B),
    ]


def test_plan_many_defaults_to_whole_graph_and_skips_unsupported(graph_a: ProductGraph) -> None:
    plan = TaskPlanner(graph_a).plan_many(Action.PUSH_LOCAL)

    assert plan.targets == ("*",)
    assert plan.pairs() == [("A/native", B), ("A/binding", B), ("A/binding", P)]


def test_plan_many_product_target_merges_without_duplicates(graph_b: ProductGraph) -> None:
    plan = TaskPlanner(graph_b).plan_many(Action.BUILD, ["B"])

    assert plan.pairs() == [("B/plugin", B), ("B/native", B), ("B/binding", B)]


def test_plan_many_explicit_unsupported_target_raises(graph_a: ProductGraph) -> None:
    with pytest.raises(UnsupportedActionError):
        TaskPlanner(graph_a).plan_many(Action.PUSH_LOCAL, ["A/native"])


def test_plan_many_product_target_skips_unsupported(graph_a: ProductGraph) -> None:
    plan = TaskPlanner(graph_a).plan_many(Action.PUSH_LOCAL, ["A"])

    assert plan.pairs() == [("A/native", B), ("A/binding", B), ("A/binding", P)]


def test_plan_many_pack_of_product_does_not_rebuild_packed_submodules(graph_a: ProductGraph) -> None:
    plan = TaskPlanner(graph_a).plan_many(Action.PACK, ["A"])

    assert plan.pairs() == [("A/native", P), ("A/binding", P)]


def test_plan_many_pack_across_products_packs_each_submodule_once() -> None:
    g = ProductGraph()
    g.add_submodule("core", "native", (), [B, P])
    g.add_submodule("core", "ballerina", ["native"], [B, P])
    g.add_submodule("dicom", "ballerina", ["core/ballerina"], [B, P])
    g.finalize()

    plan = TaskPlanner(g).plan_many(Action.PACK)

    assert plan.pairs() == [
        ("core/native", P),
        ("core/ballerina", P),
        ("dicom/ballerina", P),
    ]


def _random_graph(rng: random.Random, n_products: int = 3, per_product: int = 5) -> ProductGraph:
    g = ProductGraph()
    names = []
    for p in range(n_products):
        for s in range(per_product):
            qname = f"p{p}/s{s}"
            # only point at earlier nodes so the graph stays acyclic
            k = rng.randint(0, min(3, len(names)))
            needs = rng.sample(names, k)
            g.add_submodule(f"p{p}", f"s{s}", needs, [B, P, PL])
            names.append(qname)
    return g.finalize()


@pytest.mark.parametrize("seed", range(25))
def test_random_graphs_respect_ordering_dedup_and_determinism(seed: int) -> None:
    rng = random.Random(seed)
    g = _random_graph(rng)
    planner = TaskPlanner(g)

    for sub in g.submodules():
        for action in (B, P, PL):
            plan = planner.plan(action, sub.qualified_name)
            pairs = plan.pairs()

            assert pairs == planner.plan(action, sub.qualified_name).pairs()
            assert len(pairs) == len(set(pairs))

            position = {name: i for i, (name, a) in enumerate(pairs) if a is B}
            for i, step in enumerate(plan.steps):
                for pre in step.submodule.needs:
                    assert position[pre] < i
