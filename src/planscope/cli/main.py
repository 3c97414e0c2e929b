"""
planscope CLI - inspect query plan reports from the terminal.

Accepts PostgreSQL EXPLAIN text (as pasted from psql, pgAdmin or a boxed
table renderer) and profiler JSON.

Usage:
    planscope show plan.txt
    planscope show --json profile.json
    planscope stats plan.txt
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from planscope import __version__
from planscope.config import get_config
from planscope.exceptions import ParseError
from planscope.parser import Plan, PlanNode, parse_plan_file

app = typer.Typer(
    name="planscope",
    help="Query plan report parser (EXPLAIN text & profiler JSON)",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"planscope version {__version__}")
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
    """planscope - Query plan report parser."""
    logging.basicConfig(
        level=get_config().log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _node_label(node: PlanNode) -> str:
    label = f"[bold]#{node.node_id}[/bold] {escape(node.operator_type or '?')}"
    if node.relation_name:
        label += f" on [cyan]{escape(node.relation_name)}[/cyan]"
        if node.alias and node.alias != node.relation_name:
            label += f" {escape(node.alias)}"
    elif node.index_name:
        label += f" using [cyan]{escape(node.index_name)}[/cyan]"
    if node.join_type:
        label += f" [magenta]({node.join_type})[/magenta]"
    if node.subplan_name:
        label += f" [dim]<{escape(node.subplan_name)}>[/dim]"

    details = []
    if node.never_executed:
        details.append("never executed")
    else:
        if node.operator_cardinality is not None:
            details.append(f"rows={node.operator_cardinality:,}")
        if node.operator_timing is not None:
            details.append(f"time={node.operator_timing:g}")
    if node.plan_rows is not None:
        details.append(f"est={node.plan_rows:,}")
    if details:
        label += f"  [dim]{' '.join(details)}[/dim]"
    return label


def _add_subtree(tree: Tree, node: PlanNode) -> None:
    branch = tree.add(_node_label(node))
    for child in node.children:
        _add_subtree(branch, child)


def _format_value(value: int | float | None) -> str:
    if value is None:
        return "-"
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:g}"


def _stats_table(plan: Plan) -> Table:
    table = Table(title="Statistics", show_header=True)
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    stats = plan.stats
    rows = [
        ("Nodes", plan.node_count),
        ("Execution time", stats.execution_time),
        ("Max rows", stats.max_rows),
        ("Max rows scanned", stats.max_rows_scanned),
        ("Max estimated rows", stats.max_estimated_rows),
        ("Max result size", stats.max_result),
        ("Max duration", stats.max_duration),
    ]
    for metric, value in rows:
        table.add_row(metric, _format_value(value))
    return table


def _load(plan_file: Path, name: str = "", query: str = "") -> Plan:
    """Parse a plan file, exiting with a message on failure."""
    config = get_config()
    try:
        return parse_plan_file(
            plan_file,
            name=name or config.default_plan_name,
            query=query,
            config=config.parser,
        )
    except ParseError as e:
        error_console.print(f"[red]Could not parse plan:[/red] {escape(e.message)}")
        if e.detail:
            error_console.print(f"\n[dim]{escape(e.detail)}[/dim]")
        raise typer.Exit(code=1)
    except Exception as e:
        error_console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)


@app.command()
def show(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Path to a plan report (EXPLAIN text or profiler JSON)"),
    ],
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output the parsed plan as JSON",
        ),
    ] = False,
    name: Annotated[
        str,
        typer.Option("--name", "-n", help="Display name for the plan"),
    ] = "",
    query_file: Annotated[
        Optional[Path],
        typer.Option("--query-file", "-q", help="File holding the query text"),
    ] = None,
) -> None:
    """
    Parse a plan report and print its node tree.

    Examples:

        $ psql -c "EXPLAIN ANALYZE SELECT * FROM users" > plan.txt
        $ planscope show plan.txt
    """
    query = ""
    if query_file is not None:
        try:
            query = query_file.read_text(encoding="utf-8")
        except OSError as e:
            error_console.print(f"[red]Error:[/red] Cannot read query file: {e}")
            raise typer.Exit(code=1)

    plan = _load(plan_file, name=name, query=query)

    if json_output:
        console.print_json(plan.model_dump_json(by_alias=True, exclude_none=True))
        return

    console.print(f"[bold]{escape(plan.name)}[/bold]  [dim]{plan.id}[/dim]")
    if plan.query:
        console.print(f"[dim]{escape(plan.query)}[/dim]")
    console.print()

    tree = Tree("[bold]Plan[/bold]")
    _add_subtree(tree, plan.content)
    for cte in plan.ctes:
        _add_subtree(tree, cte)
    console.print(tree)
    console.print()
    console.print(_stats_table(plan))


@app.command()
def stats(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Path to a plan report (EXPLAIN text or profiler JSON)"),
    ],
) -> None:
    """Print only the whole-plan statistics of a plan report."""
    plan = _load(plan_file)
    console.print(_stats_table(plan))


if __name__ == "__main__":
    app()
