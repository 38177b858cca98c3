"""Condition - binary branch node."""

import logging
from collections.abc import Callable

from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.errors import NodeConfigurationError
from agentflow.workflow.node import Node, NodeType

logger = logging.getLogger(__name__)

ConditionFunc = Callable[[ExecutionContext], bool]


class Condition(Node):
    """
    Evaluate a predicate and run exactly one of two branches.

    Either branch may be None (not both): taking a None branch passes
    ``context.output`` through unchanged. The predicate result is recorded
    as ``condition_<id>_result``.

    Example:
        Condition(
            condition=output_contains("positive"),
            true_node=celebrate,
            false_node=console,
            id="sentiment",
        )
    """

    node_type = NodeType.CONDITION

    def __init__(
        self,
        condition: ConditionFunc | None,
        true_node: Node | None = None,
        false_node: Node | None = None,
        id: str = "",
        name: str = "",
    ):
        if condition is None:
            raise NodeConfigurationError("condition function is required")
        if true_node is None and false_node is None:
            raise NodeConfigurationError("condition requires at least one branch")
        super().__init__(id=id, name=name)
        self.condition = condition
        self.true_node = true_node
        self.false_node = false_node

    async def execute(self, context: ExecutionContext) -> str:
        result = bool(self.condition(context))
        context.set(f"condition_{self.id}_result", result)

        branch = self.true_node if result else self.false_node
        if branch is None:
            logger.debug(f"Condition {self.name}: {result} -> no branch, passing output through")
            return context.output

        logger.debug(f"Condition {self.name}: {result} -> {branch.id}")
        return await branch.execute(context)


def output_contains(text: str, case_sensitive: bool = False) -> ConditionFunc:
    """Predicate that checks whether the current output contains ``text``."""

    def _check(context: ExecutionContext) -> bool:
        if case_sensitive:
            return text in context.output
        return text.lower() in context.output.lower()

    return _check
