"""Router - dynamic dispatch over named routes."""

import logging
from collections.abc import Callable, Mapping

from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.errors import NodeConfigurationError, RoutingError
from agentflow.workflow.node import Node, NodeType

logger = logging.getLogger(__name__)

RouterFunc = Callable[[ExecutionContext], str]


class Router(Node):
    """
    Pick one route by label and execute it.

    The selector's label is recorded as ``router_<id>_selected``. A label
    with no entry in ``routes`` is a RoutingError; a label explicitly mapped
    to None is a registered no-op route that passes the output through.

    Example:
        Router(
            router=lambda ctx: "calc" if any(c.isdigit() for c in ctx.output) else "chat",
            routes={"calc": calculator_step, "chat": chat_step},
            id="dispatch",
        )
    """

    node_type = NodeType.ROUTER

    def __init__(
        self,
        router: RouterFunc | None,
        routes: Mapping[str, Node | None] | None,
        id: str = "",
        name: str = "",
    ):
        if router is None:
            raise NodeConfigurationError("router function is required")
        if not routes:
            raise NodeConfigurationError("router requires at least one route")
        super().__init__(id=id, name=name)
        self.router = router
        self.routes = dict(routes)

    async def execute(self, context: ExecutionContext) -> str:
        label = self.router(context)
        context.set(f"router_{self.id}_selected", label)

        if label not in self.routes:
            raise RoutingError(self.id, label, sorted(self.routes))

        node = self.routes[label]
        if node is None:
            logger.debug(f"Router {self.name}: '{label}' is a no-op route")
            return context.output

        logger.debug(f"Router {self.name}: '{label}' -> {node.id}")
        return await node.execute(context)
