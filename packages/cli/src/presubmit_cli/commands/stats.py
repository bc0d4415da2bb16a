"""stats command: aggregate dispatch outcomes across history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from presubmit_cli.commands.history import require_store

console = Console()


@click.command("stats")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, top: int):
    """Show aggregated dispatch statistics.

    Reports how often CL lists were sent, skipped or failed to send, why
    they were skipped, and which projects and tests are dispatched most,
    useful for spotting a misconfigured project or a flaky Jenkins.
    """
    store = require_store(ctx)

    records = store.list_dispatches()
    if not records:
        console.print("[yellow]No dispatch records found.[/yellow]")
        return

    outcome_counter: Counter[str] = Counter()
    reason_counter: Counter[str] = Counter()
    project_counter: Counter[str] = Counter()
    test_counter: Counter[str] = Counter()

    for record in records:
        outcome_counter[record.outcome] += 1
        if record.outcome != "PASS" and record.reason:
            reason_counter[record.reason] += 1
        project_counter.update(set(record.projects))
        test_counter.update(record.tests)

    total = len(records)
    total_cls = sum(len(r.cl_numbers) for r in records)

    # --- Summary ---
    console.print("\n[bold]Dispatch stats[/bold]")
    console.print(f"  CL lists handled: {total}")
    console.print(f"  CLs handled:      {total_cls}")

    # --- Outcome breakdown ---
    outcome_table = Table(title="Outcomes", show_header=True)
    outcome_table.add_column("Outcome", style="bold")
    outcome_table.add_column("Count", justify="right")
    outcome_table.add_column("% of total", justify="right")
    _outcome_style = {"PASS": "green", "SKIP": "yellow", "FAIL": "red"}
    for outcome in ["PASS", "SKIP", "FAIL"]:
        count = outcome_counter.get(outcome, 0)
        style = _outcome_style[outcome]
        outcome_table.add_row(f"[{style}]{outcome}[/{style}]", str(count), f"{count / total * 100:.1f}%")
    console.print(outcome_table)

    # --- Skip and failure reasons ---
    if reason_counter:
        reason_table = Table(title="Reasons", show_header=True)
        reason_table.add_column("Reason")
        reason_table.add_column("Count", justify="right")
        for reason, count in reason_counter.most_common(top):
            reason_table.add_row(reason, str(count))
        console.print(reason_table)

    # --- Most dispatched projects and tests ---
    for title, counter in (("Projects", project_counter), ("Tests", test_counter)):
        if not counter:
            continue
        table = Table(title=f"Top {top} {title}", show_header=True)
        table.add_column(title[:-1])
        table.add_column("CL lists", justify="right")
        for name, count in counter.most_common(top):
            table.add_row(name, str(count))
        console.print(table)
