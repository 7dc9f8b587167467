from handbook_graph.execution.interpreter import ExecutionResult, OperationInput, PlanInterpreter
from handbook_graph.execution.registry import OperationInvoker, OperationRegistry, qualified_key
from handbook_graph.execution.value_store import Value, ValueStore

__all__ = [
    "ExecutionResult",
    "OperationInput",
    "OperationInvoker",
    "OperationRegistry",
    "PlanInterpreter",
    "Value",
    "ValueStore",
    "qualified_key",
]
