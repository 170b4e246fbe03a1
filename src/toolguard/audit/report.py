"""
Audit log reports.

Turns a sequence of audit events into either a structured summary (for
JSON output) or a Rich terminal view: a timeline table of every event
followed by per-request and per-tool statistics.

Design Principles:
    - Status at a glance: Icons and colors per event type
    - Summary after detail: Timeline first, then counts
    - Same numbers everywhere: Console and JSON share summarize_events()
"""

from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from toolguard.schema import AuditEventBase, AuditEventType

REPORT_VERSION = "1.0"

# Status icons
ICON_EXECUTED = "[green]✓[/green]"
ICON_BLOCKED = "[red]✗[/red]"
ICON_APPROVAL = "[yellow]?[/yellow]"
ICON_TIMEOUT = "[magenta]⧗[/magenta]"
ICON_BUDGET = "[red]⊘[/red]"
ICON_ATTEMPTED = "[dim]○[/dim]"

_ICONS = {
    AuditEventType.ATTEMPTED.value: ICON_ATTEMPTED,
    AuditEventType.BLOCKED.value: ICON_BLOCKED,
    AuditEventType.NEEDS_APPROVAL.value: ICON_APPROVAL,
    AuditEventType.EXECUTED.value: ICON_EXECUTED,
    AuditEventType.TIMEOUT.value: ICON_TIMEOUT,
    AuditEventType.BUDGET_EXCEEDED.value: ICON_BUDGET,
}


def summarize_events(events: Sequence[AuditEventBase]) -> dict[str, Any]:
    """
    Compute summary statistics for a sequence of events.

    Returns:
        Dict with total count, counts per event type, per tool outcome
        counts, per request event counts and total executed duration
    """
    by_type: Counter[str] = Counter()
    by_tool: dict[str, Counter[str]] = defaultdict(Counter)
    by_request: Counter[str] = Counter()
    total_duration_ms = 0.0

    for event in events:
        by_type[event.type] += 1
        by_request[event.request_id] += 1
        tool_name = getattr(event, "tool_name", None)
        if tool_name:
            by_tool[tool_name][event.type] += 1
        if event.type == AuditEventType.EXECUTED.value:
            total_duration_ms += event.duration_ms

    return {
        "total_events": len(events),
        "by_type": {t.value: by_type.get(t.value, 0) for t in AuditEventType},
        "by_tool": {name: dict(counts) for name, counts in sorted(by_tool.items())},
        "by_request": dict(by_request),
        "total_duration_ms": total_duration_ms,
    }


def build_report_dict(events: Sequence[AuditEventBase]) -> dict[str, Any]:
    """Build a JSON-ready report: every event record plus the summary."""
    return {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "events": [event.to_record() for event in events],
        "summary": summarize_events(events),
    }


def render_console_report(
    events: Sequence[AuditEventBase],
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a timeline and summary for a sequence of events.

    Args:
        events: Events to report on, in emission order
        console: Rich Console instance (creates one if not provided)
        verbose: Whether to show redacted inputs for attempted calls
    """
    if console is None:
        console = Console()

    if not events:
        console.print("[dim]No audit events.[/dim]")
        return

    _print_timeline(console, events, verbose)
    console.print()
    _print_summary(console, summarize_events(events))


def _print_timeline(console: Console, events: Sequence[AuditEventBase], verbose: bool) -> None:
    """Print one row per event."""
    console.print("[bold]Timeline[/bold]")
    console.print()

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("", width=2, justify="center")
    table.add_column("Time", style="dim", width=12)
    table.add_column("Event", width=24)
    table.add_column("Tool", style="cyan")
    table.add_column("Details", overflow="fold")

    for index, event in enumerate(events, start=1):
        table.add_row(
            str(index),
            _ICONS.get(event.type, ICON_ATTEMPTED),
            _format_time(event.timestamp),
            event.type,
            escape(getattr(event, "tool_name", None) or "—"),
            _format_details(event, verbose),
        )

    console.print(table)


def _format_time(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    return moment.strftime("%H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


def _format_details(event: AuditEventBase, verbose: bool) -> str:
    """Format the details column for one event."""
    if event.type == AuditEventType.EXECUTED.value:
        return f"{event.duration_ms:.1f}ms"
    if event.type == AuditEventType.TIMEOUT.value:
        return f"[magenta]timed out after {event.timeout_ms}ms[/magenta]"
    if event.type == AuditEventType.BLOCKED.value:
        return f"[red]{escape(_truncate(event.reason, 80))}[/red]"
    if event.type == AuditEventType.NEEDS_APPROVAL.value:
        return f"[yellow]{escape(_truncate(event.reason, 80))}[/yellow]"
    if event.type == AuditEventType.BUDGET_EXCEEDED.value:
        return f"[red]{escape(_truncate(event.reason, 80))}[/red]"
    if verbose:
        return f"[dim]input:[/dim] {escape(_truncate(str(event.input), 100))}"
    return ""


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _print_summary(console: Console, summary: dict[str, Any]) -> None:
    """Print summary statistics."""
    console.print("[bold]Summary[/bold]")
    console.print()

    by_type = summary["by_type"]
    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column("Metric", style="dim")
    stats_table.add_column("Value")

    stats_table.add_row("Requests", str(len(summary["by_request"])))
    stats_table.add_row("Attempted", str(by_type[AuditEventType.ATTEMPTED.value]))
    stats_table.add_row("Executed", _colored(by_type[AuditEventType.EXECUTED.value], "green"))
    stats_table.add_row("Blocked", _colored(by_type[AuditEventType.BLOCKED.value], "red"))
    stats_table.add_row(
        "Needs Approval",
        _colored(by_type[AuditEventType.NEEDS_APPROVAL.value], "yellow"),
    )
    stats_table.add_row("Timed Out", _colored(by_type[AuditEventType.TIMEOUT.value], "magenta"))
    stats_table.add_row(
        "Budget Exceeded",
        _colored(by_type[AuditEventType.BUDGET_EXCEEDED.value], "red"),
    )
    stats_table.add_row("Execution Time", f"{summary['total_duration_ms']:.1f}ms")

    console.print(stats_table)

    if summary["by_tool"]:
        console.print()
        console.print("[bold]Tools[/bold]")
        console.print()
        tool_table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        tool_table.add_column("Tool", style="cyan")
        tool_table.add_column("Attempted", justify="right")
        tool_table.add_column("Executed", justify="right")
        tool_table.add_column("Blocked", justify="right")
        tool_table.add_column("Timed Out", justify="right")
        for name, counts in summary["by_tool"].items():
            tool_table.add_row(
                escape(name),
                str(counts.get(AuditEventType.ATTEMPTED.value, 0)),
                str(counts.get(AuditEventType.EXECUTED.value, 0)),
                str(counts.get(AuditEventType.BLOCKED.value, 0)),
                str(counts.get(AuditEventType.TIMEOUT.value, 0)),
            )
        console.print(tool_table)


def _colored(count: int, color: str) -> str:
    return f"[{color}]{count}[/{color}]" if count > 0 else "0"
