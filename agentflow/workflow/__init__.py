"""Workflow engine: nodes, execution context and the top-level Workflow."""

from agentflow.workflow.agent import Agent, AgentResponse
from agentflow.workflow.condition import Condition, output_contains
from agentflow.workflow.context import (
    ExecutionContext,
    SessionState,
    clone_session_state,
    merge_session_states,
)
from agentflow.workflow.errors import (
    NodeConfigurationError,
    ParallelExecutionError,
    ResumeStepNotFoundError,
    RoutingError,
    WorkflowError,
    WorkflowRunError,
)
from agentflow.workflow.history import HistoryFormatOptions, format_history_context
from agentflow.workflow.loop import Loop, fixed_iterations, max_iterations
from agentflow.workflow.node import Node, NodeType, iter_nodes, validate_graph
from agentflow.workflow.parallel import (
    Parallel,
    ParallelFailurePolicy,
    concat_outputs,
    last_output,
)
from agentflow.workflow.router import Router
from agentflow.workflow.step import Step
from agentflow.workflow.workflow import Workflow, WorkflowConfig, WorkflowResult

__all__ = [
    # Agent
    "Agent",
    "AgentResponse",
    # Context
    "ExecutionContext",
    "SessionState",
    "clone_session_state",
    "merge_session_states",
    # Nodes
    "Node",
    "NodeType",
    "Step",
    "Condition",
    "Loop",
    "Parallel",
    "ParallelFailurePolicy",
    "Router",
    "iter_nodes",
    "validate_graph",
    # Node helpers
    "output_contains",
    "max_iterations",
    "fixed_iterations",
    "concat_outputs",
    "last_output",
    # Workflow
    "Workflow",
    "WorkflowConfig",
    "WorkflowResult",
    # History formatting
    "HistoryFormatOptions",
    "format_history_context",
    # Errors
    "WorkflowError",
    "NodeConfigurationError",
    "RoutingError",
    "ResumeStepNotFoundError",
    "ParallelExecutionError",
    "WorkflowRunError",
]
