"""
Node Protocol - The unit of workflow control flow.

There are exactly five kinds of node:
- step: invoke one agent
- condition: run one of two branches
- loop: repeat a body while a predicate holds
- parallel: fan out to branches concurrently, join
- router: dispatch to one of several named branches

Every node reads ``context.output``, returns its new output and writes any
named results into ``context.values`` under keys prefixed with its own id.
Nodes are configuration only; no request-scoped state lives on them, so a
node graph can serve any number of concurrent runs.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar, assert_never

if TYPE_CHECKING:
    from agentflow.workflow.context import ExecutionContext


class NodeType(StrEnum):
    """The closed set of node kinds."""

    STEP = "step"
    CONDITION = "condition"
    LOOP = "loop"
    PARALLEL = "parallel"
    ROUTER = "router"


class Node(ABC):
    """
    Base class for all workflow nodes.

    Subclasses must declare ``node_type`` as one of NodeType; a class that
    does not is rejected when it is defined.
    """

    node_type: ClassVar[NodeType]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not isinstance(getattr(cls, "node_type", None), NodeType):
            raise TypeError(
                f"{cls.__name__} must declare node_type as one of "
                f"{', '.join(t.value for t in NodeType)}"
            )

    def __init__(self, id: str = "", name: str = ""):
        if not id:
            id = f"{self.node_type}-{name}" if name else f"{self.node_type}-{uuid.uuid4().hex[:8]}"
        self.id = id
        self.name = name or id

    @abstractmethod
    async def execute(self, context: "ExecutionContext") -> str:
        """
        Run the node against the context.

        Returns the node's output, which is also left in ``context.output``.
        Raises whatever the node (or its agent) raised.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


def child_nodes(node: Any) -> list[Node]:
    """Direct children of a node, in execution/declaration order."""
    match node.node_type:
        case NodeType.STEP:
            return []
        case NodeType.CONDITION:
            return [n for n in (node.true_node, node.false_node) if n is not None]
        case NodeType.LOOP:
            return [node.body]
        case NodeType.PARALLEL:
            return list(node.nodes)
        case NodeType.ROUTER:
            return [n for n in node.routes.values() if n is not None]
        case _:
            assert_never(node.node_type)


def iter_nodes(nodes: Iterable[Node]) -> Iterator[Node]:
    """Depth-first walk of a node graph. Shared sub-nodes are yielded once."""
    seen: set[int] = set()
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node
        stack.extend(reversed(child_nodes(node)))


def validate_graph(nodes: Iterable[Node]) -> list[str]:
    """
    Check a node graph for caller mistakes the engine does not reject.

    Distinct nodes sharing an id would write to the same ``values`` keys;
    that is reported here but left to the caller to fix.

    Returns:
        List of warning messages (empty if the graph looks fine)
    """
    warnings: list[str] = []
    ids: dict[str, Node] = {}
    for node in iter_nodes(nodes):
        existing = ids.get(node.id)
        if existing is not None and existing is not node:
            warnings.append(
                f"Duplicate node id '{node.id}' ({type(existing).__name__} and "
                f"{type(node).__name__}); their values keys will collide"
            )
        ids.setdefault(node.id, node)
    return warnings
