from __future__ import annotations

import json
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import CI_TESTS_ENV, ConfigError, SyncConfig
from .reconcile import Outcome, ReconcileError, reconcile
from .selector import UnknownTestModeError, discover_repo_root, select_and_run

app = typer.Typer(help="Keep Rust crates in sync with a project template and run CI tests.")
console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2
EXIT_COMMAND_NOT_FOUND = 127

OUTCOME_STYLES = {
    Outcome.created: "green",
    Outcome.overwritten: "magenta",
    Outcome.updated: "cyan",
    Outcome.unchanged: "dim",
    Outcome.skipped: "yellow",
    Outcome.failed: "red",
}


class OutputFormat(str, Enum):
    table = "table"
    json = "json"
    md = "md"


def _json_print(payload: dict) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=True, sort_keys=True))


def _print_key_value_table(title: str, rows: list[tuple[str, str]]) -> None:
    table = Table(title=title)
    table.add_column("Field")
    table.add_column("Value")
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)


def _emit_success(
    command: str,
    output_format: OutputFormat,
    data: dict,
    md_renderer: Callable[[dict], str] | None = None,
    table_renderer: Callable[[dict], None] | None = None,
    exit_code: int = EXIT_OK,
) -> None:
    if output_format == OutputFormat.json:
        _json_print(
            {
                "ok": exit_code == EXIT_OK,
                "command": command,
                "exit_code": exit_code,
                "data": data,
            }
        )
        return

    if output_format == OutputFormat.md and md_renderer is not None:
        console.print(md_renderer(data))
        return

    if output_format == OutputFormat.table and table_renderer is not None:
        table_renderer(data)
        return

    # Fallback for simple commands without dedicated renderer.
    if output_format == OutputFormat.md:
        lines = [f"# {command}", ""]
        lines.extend(f"- **{key}**: {value}" for key, value in data.items())
        console.print("\n".join(lines))
    else:
        _print_key_value_table(
            title=command,
            rows=[(str(key), str(value)) for key, value in data.items()],
        )


def _emit_error(
    command: str,
    output_format: OutputFormat,
    exit_code: int,
    code: str,
    message: str,
) -> None:
    if output_format == OutputFormat.json:
        _json_print(
            {
                "ok": False,
                "command": command,
                "exit_code": exit_code,
                "error": {
                    "code": code,
                    "message": message,
                },
            }
        )
    elif output_format == OutputFormat.md:
        console.print(f"# {command}\n\n- **status**: error\n- **code**: {code}\n- **message**: {escape(message)}")
    else:
        err_console.print(f"[red]Error ({code}):[/red] {escape(message)}")

    raise typer.Exit(code=exit_code)


@app.command("ci-tests")
def ci_tests():
    """Run the test command selected by TEST_WITH in .ci/ci_tests.env."""
    root = discover_repo_root()
    try:
        result = select_and_run(root / CI_TESTS_ENV, console=console, cwd=root)
    except UnknownTestModeError as error:
        err_console.print(f"[red]Error (unknown_test_mode):[/red] {escape(str(error))}")
        raise typer.Exit(code=EXIT_ERROR)
    except FileNotFoundError as error:
        err_console.print(f"[red]Error (command_not_found):[/red] {escape(str(error))}")
        raise typer.Exit(code=EXIT_COMMAND_NOT_FOUND)
    except OSError as error:
        err_console.print(f"[red]Error (os_error):[/red] {escape(str(error))}")
        raise typer.Exit(code=EXIT_ERROR)

    raise typer.Exit(code=result.exit_code)


@app.command("sync")
def sync_template(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite files that already exist."),
    private: Optional[str] = typer.Option(None, "--private", help="Generate a proprietary LICENSE for this owner."),
    name: Optional[str] = typer.Option(None, "--name", help="Generate an MIT LICENSE for this owner."),
    template: Optional[Path] = typer.Option(
        None, "--template", help="Template directory (defaults to $CRATEKIT_TEMPLATE_DIR)."
    ),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """Copy template files into the crate in the current directory."""
    try:
        config = SyncConfig.from_env(
            target_root=Path.cwd(),
            environ=os.environ,
            force=force,
            private=private,
            name=name,
            template_dir=template,
        )
    except ConfigError as error:
        _emit_error(
            command="sync",
            output_format=output_format,
            exit_code=EXIT_INVALID_INPUT,
            code="config_error",
            message=str(error),
        )
        raise

    try:
        report = reconcile(config)
    except ReconcileError as error:
        _emit_error(
            command="sync",
            output_format=output_format,
            exit_code=EXIT_INVALID_INPUT,
            code="precondition_failed",
            message=str(error),
        )
        raise

    data = {
        "target": str(report.target_root),
        "template": str(report.template_dir),
        "force": config.force,
        "actions": [
            {"path": action.path, "outcome": action.outcome.value, "detail": action.detail}
            for action in report.actions
        ],
        "summary": report.summary(),
    }

    def render_md(payload: dict) -> str:
        lines = [f"# Template sync: `{payload['target']}`", ""]
        lines.append(f"- **template**: `{payload['template']}`")
        for item in payload["actions"]:
            detail = f" ({escape(item['detail'])})" if item["detail"] else ""
            lines.append(f"- `{item['path']}` | {item['outcome']}{detail}")
        lines.append("")
        lines.extend(f"- **{key}**: {value}" for key, value in payload["summary"].items())
        return "\n".join(lines)

    def render_table(payload: dict) -> None:
        table = Table(title=f"Template sync: {payload['target']}")
        table.add_column("File")
        table.add_column("Result")
        table.add_column("Detail")
        for item in payload["actions"]:
            style = OUTCOME_STYLES[Outcome(item["outcome"])]
            table.add_row(item["path"], f"[{style}]{item['outcome']}[/{style}]", escape(item["detail"]))
        console.print(table)
        summary = payload["summary"]
        console.print(
            f"[bold]{summary['created']}[/bold] created, "
            f"[bold]{summary['overwritten']}[/bold] overwritten, "
            f"[bold]{summary['updated']}[/bold] updated, "
            f"[bold]{summary['skipped']}[/bold] skipped"
        )
        if summary["failed"]:
            console.print(f"[red]{summary['failed']} operation(s) failed.[/red]")

    exit_code = EXIT_ERROR if report.failed else EXIT_OK
    _emit_success(
        command="sync",
        output_format=output_format,
        data=data,
        md_renderer=render_md,
        table_renderer=render_table,
        exit_code=exit_code,
    )
    if exit_code != EXIT_OK:
        raise typer.Exit(code=exit_code)


@app.command("version")
def version(
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
) -> None:
    """Print version."""
    _emit_success(command="version", output_format=output_format, data={"version": __version__})


if __name__ == "__main__":
    app()
