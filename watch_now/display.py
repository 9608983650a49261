"""Terminal rendering of the current snapshot with rich."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from rich.console import Console
from rich.text import Text

from .checks.base import CheckResult, Status, overall_status

RULE = "=" * 80
THIN_RULE = "-" * 80

STATUS_STYLES = {
    Status.OK: ("OK", "green"),
    Status.WARN: ("WARN", "yellow"),
    Status.FAIL: ("FAIL", "red"),
    Status.INFO: ("INFO", "blue"),
}

OVERALL_TEXT = {
    Status.OK: "All systems operational",
    Status.INFO: "All systems operational",
    Status.WARN: "Some checks need attention",
    Status.FAIL: "Some checks are failing",
}


def print_header(console: Console) -> None:
    console.print("watch-now - Universal Development Monitor", style="bold")
    console.print(RULE)


def result_line(result: CheckResult) -> Text:
    label, style = STATUS_STYLES[result.status]
    message = result.message
    url = result.metadata.get("url")
    if result.is_service and url:
        message = f"{message} @ {url}"

    line = Text("  ")
    line.append(f"[{label}]", style=style)
    line.append(f" {result.name} - {message}")
    return line


def render(
    console: Console,
    results: Mapping[str, CheckResult],
    now: datetime | None = None,
) -> Status:
    """Print one full status screen. Returns the overall status."""
    now = now or datetime.now()
    by_name = sorted(results.values(), key=lambda r: r.name.lower())
    services = [r for r in by_name if r.is_service]
    checks = [r for r in by_name if not r.is_service]

    header = Text("\n")
    header.append(f"[{now:%H:%M:%S}]", style="bold")
    header.append(" System Status")
    console.print(header)
    console.print(THIN_RULE)

    _section(console, "SERVICES", "Services", services, "No services configured")
    _section(console, "CHECKS", "Code Quality", checks, "No checks configured")

    status = overall_status(results)
    _label, style = STATUS_STYLES[status]
    footer = Text("\n")
    footer.append(f"[{status.value.upper()}]", style=style)
    footer.append(f" STATUS: {OVERALL_TEXT[status]}", style="bold")
    console.print(footer)
    console.print(RULE)
    return status


def _section(
    console: Console,
    tag: str,
    title: str,
    results: list[CheckResult],
    empty: str,
) -> None:
    heading = Text("\n")
    heading.append(tag, style="blue")
    heading.append(f" {title}:")
    console.print(heading)

    if not results:
        line = Text("  ")
        line.append("[INFO]", style="yellow")
        line.append(f" {empty}")
        console.print(line)
        return
    for r in results:
        console.print(result_line(r))
