"""
strata.report - Output and run summary formatting.

Pure formatting: text tables for the terminal, markdown for
pull request comments. Outputs are rendered exactly once each,
in the order the provider returned them.
"""

from __future__ import annotations

from strata.aws.provider import StackOutput
from strata.driver.engine import Outcome, RunReport, StackResult


_MARKS = {
    Outcome.CREATED: "✓",
    Outcome.UPDATED: "✓",
    Outcome.UNCHANGED: "=",
    Outcome.PLANNED: "~",
    Outcome.VALID: "✓",
    Outcome.FAILED: "✗",
    Outcome.SKIPPED: "-",
}


def format_outputs(name: str, template: str, outputs: list[StackOutput]) -> str:
    """Text summary of one stack's outputs."""
    lines = [
        f"Stack:     {name}",
        f"Template:  {template}",
        "",
    ]
    if not outputs:
        lines.append("No outputs.")
        return "\n".join(lines)

    headers = ("KEY", "VALUE", "DESCRIPTION")
    rows = [(o.key, o.value, o.description) for o in outputs]
    widths = [
        max(len(headers[i]), *(len(r[i]) for r in rows))
        for i in range(2)
    ]

    lines.append(f"{headers[0]:<{widths[0]}}  {headers[1]:<{widths[1]}}  {headers[2]}")
    lines.append(f"{'─' * widths[0]}  {'─' * widths[1]}  {'─' * len(headers[2])}")
    for key, value, description in rows:
        lines.append(f"{key:<{widths[0]}}  {value:<{widths[1]}}  {description}".rstrip())
    return "\n".join(lines)


def format_result_line(result: StackResult) -> str:
    line = f"{_MARKS[result.outcome]} {result.name}: {result.outcome.value}"
    if result.operation and result.outcome is Outcome.PLANNED:
        line += f" ({result.operation})"
    elif result.status:
        line += f" ({result.status})"
    if result.error:
        line += f"\n    {result.error}"
    return line


def format_run_summary(report: RunReport) -> str:
    """One line per stack, then a totals line."""
    lines = [format_result_line(r) for r in report.results]
    failed = len(report.failed)
    lines.append("")
    lines.append(
        f"{len(report.results)} stack(s), {failed} failed"
        if failed else f"{len(report.results)} stack(s), all succeeded"
    )
    return "\n".join(lines)


def format_markdown(report: RunReport, title: str = "Stack deployment") -> str:
    """Markdown rendering of a run, for pull request comments."""
    icon = "✅" if report.ok else "❌"
    lines = [f"### {icon} {title}", ""]

    for result in report.results:
        lines.append(f"#### `{result.name}`: {result.outcome.value}")
        lines.append("")
        lines.append(f"Template: `{result.template}`")
        if result.status:
            lines.append(f"Status: `{result.status}`")
        lines.append("")

        if result.error:
            lines.append("```")
            lines.append(result.error)
            lines.append("```")
            lines.append("")

        if result.outputs:
            lines.append("| Key | Value | Description |")
            lines.append("| --- | --- | --- |")
            for o in result.outputs:
                lines.append(
                    f"| {_md_cell(o.key)} | {_md_cell(o.value)} | {_md_cell(o.description)} |"
                )
            lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")
