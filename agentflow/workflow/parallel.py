"""
Parallel - concurrent fan-out / fan-in node.

Every branch runs as its own asyncio task against a fork of the inbound
context, so all branches see the same input and none sees another's writes.
Results are written back by branch index once every branch has settled,
which keeps the node's observable output independent of completion order.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum

from agentflow.config import get_default_parallel_failure_policy
from agentflow.workflow.context import ExecutionContext, merge_session_states
from agentflow.workflow.errors import NodeConfigurationError, ParallelExecutionError
from agentflow.workflow.node import Node, NodeType

logger = logging.getLogger(__name__)

MergeFunc = Callable[[list[str]], str]


class ParallelFailurePolicy(StrEnum):
    """What happens to the other branches when one fails."""

    # Let every branch finish, then report all failures together
    WAIT_ALL = "wait_all"
    # Cancel the remaining branches as soon as one fails
    CANCEL_ON_FIRST = "cancel_on_first"


class Parallel(Node):
    """
    Run sibling nodes concurrently on the same input and join.

    On success each branch's output is stored as
    ``parallel_<id>_branch_<i>_output`` and every value a branch wrote is
    copied back as ``parallel_<id>_branch_<i>_<key>``. Session state the
    branches added or changed is merged into the parent, later branches
    winning on conflicting keys. ``context.output`` is
    left unchanged unless a ``merge`` function is given.

    If any branch fails the node raises ParallelExecutionError and no branch
    result is copied into the context.

    Args:
        nodes: Branches, in index order
        id: Stable id used to namespace values keys (default "parallel-<name>")
        name: Human-readable label
        failure_policy: WAIT_ALL or CANCEL_ON_FIRST (default from configuration)
        merge: Optional function turning branch outputs (in index order) into
            the new ``context.output``
        branch_timeout: Optional per-branch time limit in seconds

    Example:
        Parallel(nodes=[tech, business, ethics], id="review", merge=concat_outputs())
    """

    node_type = NodeType.PARALLEL

    def __init__(
        self,
        nodes: list[Node],
        id: str = "",
        name: str = "",
        failure_policy: ParallelFailurePolicy | str | None = None,
        merge: MergeFunc | None = None,
        branch_timeout: float | None = None,
    ):
        if not nodes:
            raise NodeConfigurationError("parallel node requires at least one child node")
        if any(node is None for node in nodes):
            raise NodeConfigurationError("parallel branches cannot be None")
        if branch_timeout is not None and branch_timeout <= 0:
            raise NodeConfigurationError("branch_timeout must be positive")
        super().__init__(id=id, name=name)
        self.nodes = tuple(nodes)
        try:
            self.failure_policy = ParallelFailurePolicy(
                failure_policy or get_default_parallel_failure_policy()
            )
        except ValueError as e:
            raise NodeConfigurationError(f"unknown failure policy: {failure_policy}") from e
        self.merge = merge
        self.branch_timeout = branch_timeout

    def branch_key(self, index: int, key: str = "output") -> str:
        return f"parallel_{self.id}_branch_{index}_{key}"

    async def _run_branch(self, index: int, node: Node, branch_ctx: ExecutionContext) -> str:
        logger.debug(f"      ▶ Branch {index} ({node.id}): executing")
        if self.branch_timeout is not None:
            output = await asyncio.wait_for(node.execute(branch_ctx), self.branch_timeout)
        else:
            output = await node.execute(branch_ctx)
        logger.debug(f"      ✓ Branch {index} ({node.id}): success")
        return output

    @staticmethod
    async def _wait_cancel_on_first(tasks: list[asyncio.Task]) -> set[asyncio.Task]:
        """
        Wait for every branch; the first failed or cancelled one cancels the rest.

        Returns the branches cancelled here, which are not failures of their own.
        """
        pending = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if any(task.cancelled() or task.exception() is not None for task in done):
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                return pending
        return set()

    async def execute(self, context: ExecutionContext) -> str:
        logger.info(f"   ⑂ Fan-out {self.name}: executing {len(self.nodes)} branches in parallel")

        branch_contexts = [context.fork() for _ in self.nodes]
        tasks = [
            asyncio.create_task(
                self._run_branch(index, node, branch_contexts[index]),
                name=f"{self.id}:branch-{index}",
            )
            for index, node in enumerate(self.nodes)
        ]

        stopped: set[asyncio.Task] = set()
        try:
            if self.failure_policy == ParallelFailurePolicy.CANCEL_ON_FIRST:
                stopped = await self._wait_cancel_on_first(tasks)
            else:
                await asyncio.wait(tasks)
        finally:
            # Outer cancellation: make every branch unwind before propagating
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        errors: dict[int, BaseException] = {}
        for index, task in enumerate(tasks):
            if task.cancelled():
                # A branch cancelled from inside fails the node; one stopped by
                # the failure policy does not
                if task not in stopped:
                    errors[index] = asyncio.CancelledError(f"branch {index} was cancelled")
                continue
            exc = task.exception()
            if exc is not None:
                errors[index] = exc

        if errors:
            for index, exc in sorted(errors.items()):
                logger.error(f"      ✗ Branch {index} ({self.nodes[index].id}): {exc}")
            error = ParallelExecutionError(self.id, errors)
            raise error from errors[min(errors)]

        outputs = [task.result() for task in tasks]
        for index, (output, branch_ctx) in enumerate(zip(outputs, branch_contexts, strict=True)):
            context.set(self.branch_key(index), output)
            for key, value in branch_ctx.values.items():
                if key in context.values and context.values[key] is value:
                    continue  # inherited from the parent, not written by the branch
                context.set(self.branch_key(index, key), value)

        context.session_state = merge_session_states(
            context.session_state, (branch_ctx.session_state for branch_ctx in branch_contexts)
        )

        if self.merge is not None:
            context.output = self.merge(outputs)

        logger.info(f"   ⑃ Fan-in {self.name}: {len(outputs)} branches completed")
        return context.output


def concat_outputs(separator: str = "\n\n") -> MergeFunc:
    """Merge that joins branch outputs in index order."""

    def _merge(outputs: list[str]) -> str:
        return separator.join(outputs)

    return _merge


def last_output(outputs: list[str]) -> str:
    """Merge that keeps the output of the highest-index branch."""
    return outputs[-1]
