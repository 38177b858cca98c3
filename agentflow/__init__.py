"""
agentflow - compose LLM agent calls into workflows.

Steps, conditions, loops, parallel fan-out and routing over a shared
execution context, with optional per-session history replay.
"""

from agentflow.config import EngineConfig
from agentflow.observability import configure_logging
from agentflow.schemas import HistoryEntry, RunStatus, SessionStats, WorkflowSession
from agentflow.storage import (
    FileHistoryStore,
    HistoryStore,
    HistoryStoreError,
    InvalidSessionIDError,
    MemoryHistoryStore,
)
from agentflow.workflow import (
    Agent,
    AgentResponse,
    Condition,
    ExecutionContext,
    HistoryFormatOptions,
    Loop,
    Node,
    NodeConfigurationError,
    NodeType,
    Parallel,
    ParallelExecutionError,
    ParallelFailurePolicy,
    Router,
    ResumeStepNotFoundError,
    RoutingError,
    Step,
    Workflow,
    WorkflowConfig,
    WorkflowError,
    WorkflowResult,
    WorkflowRunError,
    concat_outputs,
    fixed_iterations,
    format_history_context,
    last_output,
    max_iterations,
    output_contains,
)

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "configure_logging",
    # Schemas
    "HistoryEntry",
    "RunStatus",
    "SessionStats",
    "WorkflowSession",
    # Storage
    "HistoryStore",
    "MemoryHistoryStore",
    "FileHistoryStore",
    "HistoryStoreError",
    "InvalidSessionIDError",
    # Workflow
    "Agent",
    "AgentResponse",
    "ExecutionContext",
    "Node",
    "NodeType",
    "Step",
    "Condition",
    "Loop",
    "Parallel",
    "ParallelFailurePolicy",
    "Router",
    "Workflow",
    "WorkflowConfig",
    "WorkflowResult",
    "output_contains",
    "max_iterations",
    "fixed_iterations",
    "concat_outputs",
    "last_output",
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
