"""query command: poll Gerrit once and dispatch new CLs."""

from __future__ import annotations

import click
from rich.console import Console

from presubmit_core.actions.gerrit import GerritMessagePoster
from presubmit_core.actions.jenkins import JenkinsBuildRemover, JenkinsBuildTrigger
from presubmit_core.errors import MalformedRefError, PresubmitError
from presubmit_core.gerrit.client import GerritClient
from presubmit_core.gerrit.refs import parse_ref
from presubmit_core.jenkins.client import JenkinsClient
from presubmit_core.poll import QuerySummary, run_query
from presubmit_core.sender import DispatchOutcome
from presubmit_store.models import DispatchRecord
from presubmit_store.snapshot import SnapshotFile

console = Console()


def _cl_numbers(refs: list[str]) -> list[int]:
    numbers = []
    for ref in refs:
        try:
            numbers.append(parse_ref(ref)[0])
        except MalformedRefError:
            continue
    return numbers


def _outcome_to_record(outcome: DispatchOutcome, polled_at: str) -> DispatchRecord:
    """Map a DispatchOutcome returned by run_query() to a DispatchRecord for the store.

    The CLI layer owns this mapping: presubmit_core has no store knowledge and
    presubmit_store has no core knowledge. The CLI bridges the two.
    """
    return DispatchRecord(
        refs=list(outcome.refs),
        cl_numbers=_cl_numbers(outcome.refs),
        projects=list(outcome.projects),
        outcome=outcome.status,
        reason=outcome.reason,
        dispatched_at=polled_at,
        tests=list(outcome.tests),
    )


def _print_summary(summary: QuerySummary) -> None:
    if summary.skipped_reason:
        return
    console.print(
        f"[bold]{summary.open_cls}[/bold] open CL(s), "
        f"[bold]{summary.cl_lists_sent}[/bold] CL list(s) sent, "
        f"[bold]{len(summary.submitted)}[/bold] submitted."
    )


@click.command("query")
@click.option(
    "--log-file",
    default=None,
    help="Path of the snapshot of open CLs from the previous poll. Overrides config file.",
)
@click.option(
    "--no-dispatch",
    is_flag=True,
    help="Only refresh the snapshot; never start or cancel builds.",
)
@click.pass_context
def query_cmd(ctx, log_file: str | None, no_dispatch: bool):
    """Query Gerrit for open CLs and send new ones to the presubmit job.

    Meant to run from a periodic Jenkins job. The first run only records
    the open CLs; later runs dispatch whatever changed since the last one.

    \b
    Environment variables:
      GERRIT_USERNAME / GERRIT_PASSWORD   Gerrit HTTP credentials (or ~/.netrc)
      JENKINS_TOKEN                       token for the presubmit job
    """
    config = ctx.obj["config"]
    if not config.gerrit_url:
        raise click.UsageError("gerrit_url is not set. Add it to .presubmit.yml.")
    if log_file:
        config.log_file = log_file
    if no_dispatch:
        config.jenkins_host = None

    gerrit = GerritClient(config.gerrit_url, config.gerrit_username, config.gerrit_password)
    jenkins = JenkinsClient(config.jenkins_host, config.jenkins_token) if config.jenkins_host else None
    snapshot = SnapshotFile(config.log_path)

    try:
        summary = run_query(
            config,
            gerrit,
            snapshot,
            jenkins=jenkins,
            remover=JenkinsBuildRemover(jenkins, config.job, config.outdated_policy) if jenkins else None,
            trigger=JenkinsBuildTrigger(jenkins, config.job) if jenkins else None,
            poster=GerritMessagePoster(gerrit, config.query),
        )
    except PresubmitError as e:
        raise click.ClickException(str(e)) from e

    _print_summary(summary)

    store = ctx.obj.get("store")
    if store is not None:
        for outcome in summary.outcomes:
            store.save(_outcome_to_record(outcome, summary.polled_at))
