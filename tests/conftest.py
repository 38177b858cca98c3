"""Shared stub agents and fixtures for the workflow tests."""

import asyncio
import random
from collections.abc import Callable, Sequence

import pytest

from agentflow.observability import clear_trace_context
from agentflow.schemas.history import HistoryEntry
from agentflow.workflow import ExecutionContext, Step
from agentflow.workflow.agent import AgentResponse


# ---- Agent that transforms its input ----
class TransformAgent:
    """Applies ``transform`` to the input and records every call."""

    def __init__(self, transform: Callable[[str], str] = lambda s: s, metadata: dict | None = None):
        self.transform = transform
        self.metadata = metadata or {}
        self.calls: list[str] = []
        self.histories: list[list[HistoryEntry] | None] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def run(
        self, input: str, history: Sequence[HistoryEntry] | None = None
    ) -> AgentResponse:
        self.calls.append(input)
        self.histories.append(list(history) if history is not None else None)
        return AgentResponse(content=self.transform(input), metadata=dict(self.metadata))


# ---- Agent that replays a fixed script ----
class ScriptedAgent(TransformAgent):
    """Returns the scripted responses in order, repeating the last one."""

    def __init__(self, responses: list[str]):
        super().__init__()
        self.responses = list(responses)

    async def run(
        self, input: str, history: Sequence[HistoryEntry] | None = None
    ) -> AgentResponse:
        index = min(len(self.calls), len(self.responses) - 1)
        await super().run(input, history)
        return AgentResponse(content=self.responses[index])


# ---- Agent that sleeps before answering ----
class DelayedAgent(TransformAgent):
    """Sleeps for ``delay`` seconds (random up to ``max_delay`` if not given)."""

    def __init__(
        self,
        transform: Callable[[str], str] = lambda s: s,
        delay: float | None = None,
        max_delay: float = 0.02,
    ):
        super().__init__(transform)
        self.delay = delay
        self.max_delay = max_delay
        self.cancelled = False
        self.finished = False

    async def run(
        self, input: str, history: Sequence[HistoryEntry] | None = None
    ) -> AgentResponse:
        delay = self.delay if self.delay is not None else random.uniform(0, self.max_delay)
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        response = await super().run(input, history)
        self.finished = True
        return response


# ---- Agent that always fails ----
class FailingAgent(TransformAgent):
    """Raises ``error`` after an optional delay."""

    def __init__(self, error: Exception | None = None, delay: float = 0.0):
        super().__init__()
        self.error = error or RuntimeError("agent failed")
        self.delay = delay

    async def run(
        self, input: str, history: Sequence[HistoryEntry] | None = None
    ) -> AgentResponse:
        self.calls.append(input)
        if self.delay:
            await asyncio.sleep(self.delay)
        raise self.error


# ---- Agent that cancels its own task ----
class SelfCancellingAgent(TransformAgent):
    """Cancels the task running it after an optional delay."""

    def __init__(self, delay: float = 0.0):
        super().__init__()
        self.delay = delay

    async def run(
        self, input: str, history: Sequence[HistoryEntry] | None = None
    ) -> AgentResponse:
        self.calls.append(input)
        await asyncio.sleep(self.delay)
        asyncio.current_task().cancel()
        await asyncio.sleep(0)
        raise AssertionError("cancellation was not delivered")


# ---- Step that also writes session state ----
class StateStep(Step):
    """Runs its agent, then stores the output under ``state_key`` in the session state."""

    def __init__(self, agent: TransformAgent, state_key: str, **kwargs):
        super().__init__(agent=agent, **kwargs)
        self.state_key = state_key

    async def execute(self, context: ExecutionContext) -> str:
        output = await super().execute(context)
        context.set_session_state(self.state_key, output)
        return output


def suffix(tag: str) -> Callable[[str], str]:
    """Transform that appends ``tag`` to its input."""
    return lambda s: f"{s}{tag}"


@pytest.fixture(autouse=True)
def reset_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration at an absent file so defaults apply."""
    monkeypatch.setenv("AGENTFLOW_CONFIG", str(tmp_path / "no-config.json"))


@pytest.fixture
def echo_agent() -> TransformAgent:
    return TransformAgent()


@pytest.fixture
def upper_agent() -> TransformAgent:
    return TransformAgent(str.upper)
