"""
CLI entry point for toolguard.

The library is the product; the CLI is a thin operator tool around it for
trying out a configuration and reading audit logs.

Commands:
    check    Classify and decide one tool call against a config file
    report   Summarize a JSON Lines audit log
    redact   Redact a JSON document with the built-in patterns
"""

import asyncio
import json
import sys
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from toolguard import __version__
from toolguard.audit import build_report_dict, read_audit_log, render_console_report
from toolguard.errors import ToolGuardError
from toolguard.pipeline import GuardPipeline
from toolguard.policy import PolicyEvaluation
from toolguard.redaction import redactor_from_config
from toolguard.schema import DecisionKind, RedactionConfig, load_config

app = typer.Typer(
    name="toolguard",
    help="Policy, budget and audit guard for agent tool calls.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]toolguard[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    toolguard - guard pipeline for agent tool calls.

    Check tool calls against a policy, inspect audit logs and try out
    redaction from the command line.
    """
    pass


@app.command()
def check(
    tool_name: Annotated[
        str,
        typer.Argument(help="Name of the tool to check."),
    ],
    config_path: Annotated[
        Path,
        typer.Option(
            "--config",
            "-c",
            help="Path to the guard config YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    input_json: Annotated[
        Optional[str],
        typer.Option(
            "--input",
            "-i",
            help="Tool input as a JSON document.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the decision in JSON format.",
        ),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Enable debug mode with full error tracebacks.",
        ),
    ] = False,
) -> None:
    """
    Classify and decide one tool call without executing anything.

    Exits 0 when the call would be allowed (with or without approval)
    and 1 when it would be blocked.

    Example:
        $ toolguard check delete_resource --config guard.yaml
    """
    try:
        config = load_config(config_path)
        tool_input = json.loads(input_json) if input_json is not None else None
    except (ToolGuardError, ValueError) as e:
        if json_output:
            _output_json_error("config_error", str(e), debug)
        else:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            if debug:
                console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
        raise typer.Exit(code=1)

    pipeline = GuardPipeline.from_config(config)
    evaluation = asyncio.run(pipeline.evaluate(tool_name, tool_input))

    if evaluation.failed:
        if json_output:
            _output_json_error("policy_evaluation_failed", str(evaluation.error), debug)
        else:
            console.print(f"[red]✗ Policy evaluation failed: {escape(str(evaluation.error))}[/red]")
        raise typer.Exit(code=1)

    classification = evaluation.classification
    decision = evaluation.decision

    if json_output:
        output = {
            "tool_name": tool_name,
            "risk": classification.risk.value,
            "classification_reason": classification.reason,
            "decision": decision.kind.value,
            "reason": decision.reason,
            "rule_matched": decision.rule_matched,
        }
        print(json.dumps(output, indent=2))
    else:
        _display_decision(tool_name, evaluation)

    if decision.kind == DecisionKind.DENY:
        raise typer.Exit(code=1)


def _display_decision(tool_name: str, evaluation: PolicyEvaluation) -> None:
    """Display one classification and decision."""
    decision = evaluation.decision
    if decision.kind == DecisionKind.ALLOW:
        verdict = "[green]✓ allow[/green]"
    elif decision.kind == DecisionKind.NEEDS_APPROVAL:
        verdict = "[yellow]? needs approval[/yellow]"
    else:
        verdict = "[red]✗ deny[/red]"

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Tool", f"[cyan]{escape(tool_name)}[/cyan]")
    table.add_row("Risk", evaluation.classification.risk.value)
    if evaluation.classification.reason:
        table.add_row("Classified as", escape(evaluation.classification.reason))
    table.add_row("Decision", verdict)
    if decision.reason:
        table.add_row("Reason", escape(decision.reason))
    if decision.rule_matched:
        table.add_row("Rule", decision.rule_matched)
    console.print(table)


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


@app.command()
def report(
    audit_log: Annotated[
        Path,
        typer.Argument(
            help="Path to a JSON Lines audit log.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    request_id: Annotated[
        Optional[str],
        typer.Option(
            "--request-id",
            "-r",
            help="Only include events from this request.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the report in JSON format.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Show tool inputs in the timeline.",
        ),
    ] = False,
) -> None:
    """
    Generate a report from an audit log.

    Example:
        $ toolguard report audit.jsonl --request-id req-42
    """
    try:
        events = read_audit_log(audit_log, request_id=request_id)
    except ToolGuardError as e:
        if json_output:
            _output_json_error("audit_log_error", str(e))
        else:
            console.print(f"[red]Error reading audit log: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps(build_report_dict(events), indent=2, default=str))
    else:
        render_console_report(events, console=console, verbose=verbose)


@app.command()
def redact(
    file: Annotated[
        Optional[Path],
        typer.Argument(
            help="JSON file to redact. Reads stdin when omitted.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    fields: Annotated[
        Optional[list[str]],
        typer.Option(
            "--field",
            "-f",
            help="Field name to mask wherever it appears (repeatable).",
        ),
    ] = None,
    no_defaults: Annotated[
        bool,
        typer.Option(
            "--no-defaults",
            help="Skip the built-in secret and PII patterns.",
        ),
    ] = False,
) -> None:
    """
    Redact a JSON document and print the result.

    Example:
        $ toolguard redact request.json --field password
    """
    text = file.read_text(encoding="utf-8") if file is not None else sys.stdin.read()
    try:
        document = json.loads(text)
    except ValueError as e:
        console.print(f"[red]Invalid JSON: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    redactor = redactor_from_config(
        RedactionConfig(use_default_patterns=not no_defaults, fields=fields or [])
    )
    if redactor is not None:
        document = redactor(document)
    print(json.dumps(document, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app()
