"""Workflow engine exceptions.

Configuration problems are raised when a node or workflow is constructed.
Everything else is raised while a run is executing; upstream agent errors are
never wrapped by nodes, only by the top-level Workflow.
"""


class WorkflowError(Exception):
    """Base class for engine errors."""


class NodeConfigurationError(WorkflowError, ValueError):
    """A node or workflow was constructed with missing or invalid fields."""


class RoutingError(WorkflowError):
    """A Router selector returned a label with no registered route."""

    def __init__(self, node_id: str, label: str, available: list[str]):
        self.node_id = node_id
        self.label = label
        self.available = available
        super().__init__(
            f"router {node_id}: route '{label}' not found (available: {', '.join(available)})"
        )


class ResumeStepNotFoundError(WorkflowError, ValueError):
    """Workflow.run(resume_from=...) named a step that is not a top-level step."""

    def __init__(self, workflow_id: str, step_id: str, available: list[str]):
        self.workflow_id = workflow_id
        self.step_id = step_id
        self.available = available
        super().__init__(
            f"workflow {workflow_id}: resume step '{step_id}' not found "
            f"(available: {', '.join(available)})"
        )


class ParallelExecutionError(WorkflowError):
    """One or more Parallel branches failed.

    ``errors`` maps branch index to the exception that branch raised.
    """

    def __init__(self, node_id: str, errors: dict[int, BaseException]):
        self.node_id = node_id
        self.errors = dict(sorted(errors.items()))
        details = "; ".join(
            f"branch {index}: {type(exc).__name__}: {exc}" for index, exc in self.errors.items()
        )
        super().__init__(
            f"parallel {node_id}: {len(self.errors)} branch(es) failed ({details})"
        )

    @property
    def failed_branches(self) -> list[int]:
        return list(self.errors)


class WorkflowRunError(WorkflowError):
    """A top-level node failed; the node's exception is the ``__cause__``."""

    def __init__(self, workflow_id: str, node_id: str, run_id: str = ""):
        self.workflow_id = workflow_id
        self.node_id = node_id
        self.run_id = run_id
        super().__init__(f"workflow {workflow_id}: step {node_id} failed")


__all__ = [
    "WorkflowError",
    "NodeConfigurationError",
    "RoutingError",
    "ResumeStepNotFoundError",
    "ParallelExecutionError",
    "WorkflowRunError",
]
