"""Loop - conditional iteration node."""

import asyncio
import logging
from collections.abc import Callable

from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.errors import NodeConfigurationError
from agentflow.workflow.node import Node, NodeType

logger = logging.getLogger(__name__)

LoopConditionFunc = Callable[[ExecutionContext, int], bool]


class Loop(Node):
    """
    Repeat a body node while a predicate holds.

    Before each pass the condition is called with the context and the number
    of completed iterations (starting at 0). The body's output becomes
    ``context.output`` and ``loop_<id>_iterations`` is updated after every
    pass. An error from the body aborts the loop.

    There is no built-in iteration ceiling: a predicate that never returns
    False loops forever. Wrap it with max_iterations() to cap it.

    Example:
        Loop(body=refine, condition=max_iterations(lambda ctx, i: "DONE" not in ctx.output, 5))
    """

    node_type = NodeType.LOOP

    def __init__(
        self,
        body: Node | None,
        condition: LoopConditionFunc | None,
        id: str = "",
        name: str = "",
    ):
        if body is None:
            raise NodeConfigurationError("loop body is required")
        if condition is None:
            raise NodeConfigurationError("loop condition is required")
        super().__init__(id=id, name=name)
        self.body = body
        self.condition = condition

    @property
    def iterations_key(self) -> str:
        return f"loop_{self.id}_iterations"

    async def execute(self, context: ExecutionContext) -> str:
        iteration = 0
        context.set(self.iterations_key, iteration)

        while self.condition(context, iteration):
            # A pending cancellation is delivered here, before the next pass
            await asyncio.sleep(0)
            logger.debug(f"↻ Loop {self.name}: iteration {iteration + 1}")
            context.output = await self.body.execute(context)
            iteration += 1
            context.set(self.iterations_key, iteration)

        logger.debug(f"Loop {self.name}: finished after {iteration} iteration(s)")
        return context.output


def max_iterations(condition: LoopConditionFunc, limit: int) -> LoopConditionFunc:
    """
    Layer a hard iteration ceiling on a loop condition.

    The wrapped predicate returns False once ``limit`` iterations have run,
    whatever ``condition`` says.
    """
    if limit < 0:
        raise NodeConfigurationError("max_iterations limit cannot be negative")

    def _bounded(context: ExecutionContext, iteration: int) -> bool:
        if iteration >= limit:
            return False
        return condition(context, iteration)

    return _bounded


def fixed_iterations(count: int) -> LoopConditionFunc:
    """Condition that runs the body exactly ``count`` times."""
    return max_iterations(lambda _context, _iteration: True, count)
