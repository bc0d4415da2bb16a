"""history command: display past dispatch records from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_OUTCOME_STYLE = {
    "PASS": "green",
    "SKIP": "yellow",
    "FAIL": "red",
}


def require_store(ctx):
    from presubmit_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' to .presubmit.yml.")
    return store


@click.command("history")
@click.option("--cl", "cl_number", type=int, default=None, help="Filter by CL number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, cl_number: int | None, limit: int):
    """Show which CL lists past poll rounds dispatched or skipped."""
    store = require_store(ctx)

    records = store.list_dispatches(cl_number=cl_number)
    if not records:
        console.print("[yellow]No dispatch records found.[/yellow]")
        return

    # Show most recent first, capped at --limit.
    records = list(reversed(records))[:limit]

    title = f"Dispatch History for CL {cl_number}" if cl_number is not None else "Dispatch History"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("CLs", style="bold")
    table.add_column("Projects", max_width=40)
    table.add_column("Outcome", width=8)
    table.add_column("Reason", max_width=30)
    table.add_column("Tests", justify="right", width=6)
    table.add_column("Dispatched At", width=20)

    for r in records:
        style = _OUTCOME_STYLE.get(r.outcome, "white")
        table.add_row(
            ", ".join(str(n) for n in r.cl_numbers),
            ", ".join(r.projects),
            f"[{style}]{r.outcome}[/{style}]",
            r.reason,
            str(len(r.tests)),
            r.dispatched_at[:19].replace("T", " "),
        )

    console.print(table)
