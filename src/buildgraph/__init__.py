from .dsl import submodule, native, plugin, binding, product, define, graph, ProductBuilder
from .graph import ProductGraph
from .planner import TaskPlanner
from .dispatcher import CommandDispatcher
from .orchestrator import Orchestrator
from .model import Action, ExecutionPlan, ExecutionResult, PlanStep

__all__ = [
    "submodule", "native", "plugin", "binding", "product", "define", "graph", "ProductBuilder",
    "ProductGraph", "TaskPlanner", "CommandDispatcher", "Orchestrator",
    "Action", "ExecutionPlan", "ExecutionResult", "PlanStep",
]
