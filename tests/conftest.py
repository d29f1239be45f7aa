from __future__ import annotations

import pytest

from buildgraph.graph import ProductGraph
from buildgraph.model import Action
from buildgraph.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def _quiet_console():
    set_console(Console(quiet=True))
    yield


@pytest.fixture
def graph_a() -> ProductGraph:
    """Product A: binding needs native."""
    g = ProductGraph()
    g.add_submodule("A", "native", [], [Action.BUILD, Action.PACK])
    g.add_submodule("A", "binding", ["native"], [Action.BUILD, Action.PACK, Action.PUSH_LOCAL])
    return g.finalize()


@pytest.fixture
def graph_b() -> ProductGraph:
    """Product B: binding needs plugin and native, declared plugin first."""
    g = ProductGraph()
    g.add_submodule("B", "plugin", [], [Action.BUILD, Action.PACK])
    g.add_submodule("B", "binding", ["plugin", "native"], [Action.BUILD, Action.PACK, Action.PUSH_LOCAL])
    g.add_submodule("B", "native", [], [Action.BUILD, Action.PACK])
    return g.finalize()
