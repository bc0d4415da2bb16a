"""Decide which open CLs may be submitted automatically, and submit them."""

from __future__ import annotations

import logging
from typing import Sequence

from presubmit_core.actions.base import MessagePoster
from presubmit_core.errors import MultiPartError
from presubmit_core.gerrit.change import Change
from presubmit_core.gerrit.client import GerritClient
from presubmit_core.multipart import MultiPartCLSet

logger = logging.getLogger(__name__)

CODE_REVIEW_LABEL = "Code-Review"

# Labels that block submission when present on a CL but not approved.
# Code-Review is stricter: it must be present as well.
OPTIONAL_SUBMIT_LABELS = ("Verified", "Non-Author-Code-Review", "To-Be-Reviewed")


def is_submittable(change: Change) -> bool:
    if not change.auto_submit:
        return False
    if not change.label_approved(CODE_REVIEW_LABEL):
        return False
    return all(change.label_approved(label) for label in OPTIONAL_SUBMIT_LABELS if change.has_label(label))


def get_submittable_cls(changes: Sequence[Change]) -> list[list[Change]]:
    """Return the CL lists that can be auto-submitted.

    Standalone CLs come first in query order, followed by complete multi-part
    sets in the order their topics were first seen. A multi-part set is
    submittable only as a whole: every part must be eligible.
    """
    standalone: list[list[Change]] = []
    sets: dict[str, MultiPartCLSet] = {}
    blocked_topics: set[str] = set()

    for change in changes:
        if not change.ref:
            continue
        if change.multi_part is None:
            if is_submittable(change):
                standalone.append([change])
            continue

        topic = change.multi_part.topic
        cl_set = sets.setdefault(topic, MultiPartCLSet())
        if not change.multi_part.is_well_formed() or not is_submittable(change):
            blocked_topics.add(topic)
            continue
        try:
            cl_set.add_cl(change)
        except MultiPartError as e:
            logger.error("Failed to add %s to multi-part set %r: %s", change.ref, topic, e)
            blocked_topics.add(topic)

    groups = [
        cl_set.cls() for topic, cl_set in sets.items() if topic not in blocked_topics and cl_set.complete()
    ]
    return standalone + groups


def submit_cls(gerrit: GerritClient, poster: MessagePoster, cl_list: Sequence[Change]) -> list[str]:
    """Submit every CL of ``cl_list`` and return the refs that went in.

    A CL that Gerrit refuses gets a message on its review thread; the rest
    of the list is still attempted.
    """
    submitted = []
    for cl in cl_list:
        try:
            gerrit.submit(cl.change_id)
        except Exception as e:
            logger.error("Failed to submit %s: %s", cl.ref, e)
            try:
                poster.post_message(f"Failed to submit CL:\n{e}\n", [cl.ref], False)
            except Exception as post_error:
                logger.error("Failed to post submit failure for %s: %s", cl.ref, post_error)
            continue
        logger.info("Submitted %s (%s)", cl.ref, cl.change_id)
        submitted.append(cl.ref)
    return submitted


def submit_presubmit_cls(
    gerrit: GerritClient,
    poster: MessagePoster,
    query: str,
    refs: Sequence[str],
) -> list[str]:
    """Submit the submittable CL list that contains every one of ``refs``.

    Used after a fully passing presubmit run: the tested refs are only
    submitted together with the rest of their multi-part set.
    """
    wanted = set(refs)
    for cl_list in get_submittable_cls(gerrit.query(query)):
        if wanted <= {cl.ref for cl in cl_list}:
            return submit_cls(gerrit, poster, cl_list)
    return []
