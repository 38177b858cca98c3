"""
Agent Protocol - What a Step needs from an agent.

The engine never builds prompts, calls tools or talks to a model provider.
It hands an agent the current text plus, optionally, the replayed history of
the session, and takes back text.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from agentflow.schemas.history import HistoryEntry


@dataclass
class AgentResponse:
    """Result of one agent invocation."""

    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Agent(Protocol):
    """
    Anything that turns text into text.

    Implementations raise on failure; the exception reaches the caller of
    Workflow.run() unchanged as the cause of the WorkflowRunError.

    Example:
        class EchoAgent:
            async def run(self, input, history=None):
                return AgentResponse(content=input.upper())
    """

    async def run(
        self,
        input: str,
        history: Sequence[HistoryEntry] | None = None,
    ) -> AgentResponse: ...
