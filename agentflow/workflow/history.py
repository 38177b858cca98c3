"""Formatting replayed history for agent prompts."""

from collections.abc import Sequence
from dataclasses import dataclass

from agentflow.schemas.history import HistoryEntry


@dataclass
class HistoryFormatOptions:
    """Options for format_history_context()."""

    header: str = "<workflow_history_context>"
    footer: str = "</workflow_history_context>"
    include_input: bool = True
    include_output: bool = True
    include_timestamp: bool = False
    input_label: str = "input"
    output_label: str = "output"


def format_history_context(
    history: Sequence[HistoryEntry],
    options: HistoryFormatOptions | None = None,
) -> str:
    """
    Render history entries as a block an agent can put in its instructions.

    Example output:
        <workflow_history_context>
        [run-1]
        input: What is 2 + 2?
        output: 4

        </workflow_history_context>

    Returns "" for an empty history.
    """
    if not history:
        return ""

    options = options or HistoryFormatOptions()

    lines = [options.header]
    for run_number, entry in enumerate(history, start=1):
        if options.include_timestamp:
            lines.append(f"[run-{run_number}] ({entry.timestamp:%Y-%m-%d %H:%M:%S})")
        else:
            lines.append(f"[run-{run_number}]")

        if options.include_input and entry.input:
            lines.append(f"{options.input_label}: {entry.input}")
        if options.include_output and entry.output:
            lines.append(f"{options.output_label}: {entry.output}")

        lines.append("")  # blank line between runs

    lines.append(options.footer)
    return "\n".join(lines)
