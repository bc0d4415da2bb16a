"""One poll round: query Gerrit, dispatch new CL lists, auto-submit.

The previous round's open changes are kept in a snapshot so a round only
dispatches what changed since. The snapshot object is any store with
``load() -> {ref: dict}`` and ``save({ref: dict})``; this module does not
know where it lives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from rich.console import Console

from presubmit_core.actions.base import BuildRemover, BuildTrigger, MessagePoster
from presubmit_core.config import PresubmitConfig
from presubmit_core.differ import new_open_cls
from presubmit_core.errors import MultiPartError, RestError, SnapshotError
from presubmit_core.gerrit.change import Change
from presubmit_core.gerrit.client import GerritClient
from presubmit_core.jenkins.client import JenkinsClient
from presubmit_core.sender import CLsSender, DispatchOutcome
from presubmit_core.submit import get_submittable_cls, submit_cls

logger = logging.getLogger(__name__)
console = Console()


class Snapshot(Protocol):
    def load(self) -> dict: ...

    def save(self, refs: dict) -> None: ...


@dataclass
class QuerySummary:
    """Result of one poll round; the CLI maps outcomes to history records."""

    polled_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    open_cls: int = 0
    cls_sent: int = 0
    cl_lists_sent: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    submitted: list[str] = field(default_factory=list)
    skipped_reason: str = ""


def last_presubmit_build_failed(jenkins: JenkinsClient, job: str) -> bool:
    """True if the last completed run of the presubmit job failed.

    A failing job usually means the Jenkins side is broken; dispatching more
    builds into it only grows the queue. Any error reading the status is
    treated as "not failed".
    """
    try:
        info = jenkins.last_completed_build(job)
    except RestError as e:
        logger.warning("Could not read the last %s build: %s", job, e)
        return False
    return info.result == "FAILURE"


def _load_previous(snapshot: Snapshot) -> dict[str, Change]:
    previous = {}
    for ref, d in snapshot.load().items():
        try:
            previous[ref] = Change.from_dict(d)
        except (AttributeError, TypeError, ValueError) as e:
            raise SnapshotError(f"Malformed snapshot entry for {ref}: {e}") from e
    return previous


def run_query(
    config: PresubmitConfig,
    gerrit: GerritClient,
    snapshot: Snapshot,
    *,
    jenkins: JenkinsClient | None = None,
    remover: BuildRemover,
    trigger: BuildTrigger,
    poster: MessagePoster,
) -> QuerySummary:
    """Run one poll round and return what happened.

    Errors from ``snapshot.load()`` and RestError from the Gerrit
    query propagate; everything after that is handled per CL list.
    """
    summary = QuerySummary()

    if jenkins is not None and last_presubmit_build_failed(jenkins, config.job):
        console.print(f"[yellow]The last {config.job} build failed. Skipping this round.[/yellow]")
        summary.skipped_reason = "last build failed"
        return summary

    previous = _load_previous(snapshot)

    current = gerrit.query(config.query)
    summary.open_cls = len(current)
    snapshot.save({cl.ref: cl.to_dict() for cl in current if cl.ref})

    if not config.jenkins_host:
        console.print("[yellow]Not sending CLs to run presubmit tests due to empty Jenkins host.[/yellow]")
        summary.skipped_reason = "no jenkins host"
        return summary

    if not previous:
        console.print("[yellow]Not sending CLs to run presubmit tests due to empty log file.[/yellow]")
        summary.skipped_reason = "empty snapshot"
        return summary

    def report_multi_part_error(change: Change, error: MultiPartError) -> None:
        try:
            poster.post_message(f"Failed to process multi-part CL:\n{error}\n", [change.ref], False)
        except Exception as e:
            logger.error("Failed to post multi-part error for %s: %s", change.ref, e)

    cl_lists = new_open_cls(previous, current, on_error=report_multi_part_error)
    sender = CLsSender(cl_lists, config, remover, trigger, poster)
    summary.outcomes = sender.send()
    summary.cls_sent = sender.cls_sent
    summary.cl_lists_sent = sender.cl_lists_sent
    console.print(f"{sender.cls_sent} sent.")

    for cl_list in get_submittable_cls(current):
        summary.submitted.extend(submit_cls(gerrit, poster, cl_list))

    return summary
