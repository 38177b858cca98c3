"""Tests for rendering replayed history into an agent prompt block."""

from datetime import UTC, datetime

from agentflow.schemas.history import HistoryEntry
from agentflow.workflow import HistoryFormatOptions, format_history_context


def entries() -> list[HistoryEntry]:
    return [
        HistoryEntry.completed(input="What is 2 + 2?", output="4"),
        HistoryEntry.completed(input="And times 3?", output="12"),
    ]


def test_empty_history_renders_nothing():
    assert format_history_context([]) == ""


def test_default_format():
    rendered = format_history_context(entries())

    assert rendered == (
        "<workflow_history_context>\n"
        "[run-1]\n"
        "input: What is 2 + 2?\n"
        "output: 4\n"
        "\n"
        "[run-2]\n"
        "input: And times 3?\n"
        "output: 12\n"
        "\n"
        "</workflow_history_context>"
    )


def test_failed_run_has_no_output_line():
    rendered = format_history_context([HistoryEntry.failed(input="hm?", error="boom")])

    assert "input: hm?" in rendered
    assert "output:" not in rendered


def test_custom_options():
    options = HistoryFormatOptions(
        header="## Previous turns",
        footer="## End",
        include_input=False,
        output_label="assistant",
    )

    rendered = format_history_context(entries(), options)

    lines = rendered.split("\n")
    assert lines[0] == "## Previous turns"
    assert lines[-1] == "## End"
    assert "assistant: 4" in lines
    assert not any(line.startswith("input:") for line in lines)


def test_timestamp_included_on_request():
    entry = HistoryEntry(
        input="hi",
        output="hello",
        success=True,
        timestamp=datetime(2026, 3, 1, 9, 30, 0, tzinfo=UTC),
    )

    rendered = format_history_context([entry], HistoryFormatOptions(include_timestamp=True))

    assert "[run-1] (2026-03-01 09:30:00)" in rendered
