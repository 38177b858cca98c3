"""Step - the leaf node that invokes one agent."""

import logging
import time

from agentflow.observability import get_trace_context, set_trace_context
from agentflow.schemas.history import HistoryEntry
from agentflow.workflow.agent import Agent
from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.errors import NodeConfigurationError
from agentflow.workflow.node import Node, NodeType

logger = logging.getLogger(__name__)


class Step(Node):
    """
    Run an agent on the current output.

    One agent call, no retry: retrying belongs to the agent or its model
    provider. If the agent raises, the exception propagates unchanged and
    ``context.output`` keeps its previous value.

    Args:
        agent: The agent to invoke
        id: Stable id used to namespace values keys (default "step-<name>")
        name: Human-readable label
        description: Free text for diagnostics
        add_history: Override the workflow's add_history_to_steps for this step
        num_history_runs: Override how many replayed runs this step sees

    Example:
        classify = Step(agent=classifier, id="classify")
    """

    node_type = NodeType.STEP

    def __init__(
        self,
        agent: Agent | None,
        id: str = "",
        name: str = "",
        description: str = "",
        add_history: bool | None = None,
        num_history_runs: int | None = None,
    ):
        if agent is None:
            raise NodeConfigurationError("agent is required for step")
        if num_history_runs is not None and num_history_runs < 0:
            raise NodeConfigurationError("num_history_runs cannot be negative")
        super().__init__(id=id, name=name)
        self.agent = agent
        self.description = description
        self.add_history = add_history
        self.num_history_runs = num_history_runs

    def should_add_history(self, context: ExecutionContext) -> bool:
        """Step-level setting wins over the workflow-level one."""
        if self.add_history is not None:
            return self.add_history
        return context.add_history_to_steps

    def history_for(self, context: ExecutionContext) -> list[HistoryEntry] | None:
        """The slice of the run's history snapshot handed to the agent, if any."""
        if not self.should_add_history(context) or not context.history:
            return None
        limit = self.num_history_runs
        if limit is None:
            limit = context.num_history_runs
        if limit <= 0:
            return list(context.history)
        return list(context.history[-limit:])

    async def execute(self, context: ExecutionContext) -> str:
        previous_node_id = get_trace_context().get("node_id")
        set_trace_context(node_id=self.id)
        try:
            return await self._run_agent(context)
        finally:
            set_trace_context(node_id=previous_node_id)

    async def _run_agent(self, context: ExecutionContext) -> str:
        history = self.history_for(context)

        logger.debug(
            f"▶ Step {self.name}: running agent "
            f"(history entries: {len(history) if history else 0})"
        )
        start = time.perf_counter()
        try:
            response = await self.agent.run(context.output, history)
        except Exception as e:
            logger.warning(f"✗ Step {self.name}: agent failed - {type(e).__name__}: {e}")
            raise
        latency_ms = int((time.perf_counter() - start) * 1000)

        context.output = response.content
        context.set(f"step_{self.id}_output", response.content)
        if response.metadata:
            context.set(f"step_{self.id}_metadata", response.metadata)

        logger.debug(
            f"✓ Step {self.name}: done",
            extra={"node_id": self.id, "latency_ms": latency_ms},
        )
        return response.content
