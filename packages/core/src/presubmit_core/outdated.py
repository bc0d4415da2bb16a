"""Decide which queued or running presubmit builds have been superseded.

A build was launched for a set of refs (``REFS``, colon-separated). When a
newer poll dispatches the same CLs again, any build still testing an older
(or, under the default policy, the same) patchset of those CLs is wasted
work and gets cancelled.

Two comparison policies exist:

    GREATER_OR_EQUAL  a tracked patchset equal to the build's counts as
                      newer, so re-dispatching identical refs cancels the
                      earlier build. This is the historical behaviour.
    STRICTLY_GREATER  only a strictly newer patchset makes a build stale.
"""

from __future__ import annotations

from typing import Mapping

from presubmit_core.gerrit.refs import parse_ref, split_refs
from presubmit_core.jenkins.builds import (
    INVALID_BUILD,
    OngoingBuild,
    QueuedBuild,
    parse_build_listing,
    parse_ongoing_build,
    parse_queue,
)

GREATER_OR_EQUAL = "greater-or-equal"
STRICTLY_GREATER = "strictly-greater"


def _newer(tracked: int, built: int, policy: str) -> bool:
    if policy == STRICTLY_GREATER:
        return tracked > built
    return tracked >= built


def is_build_outdated(build_refs: str, cl_patchsets: Mapping[int, int], policy: str = GREATER_OR_EQUAL) -> bool:
    """Return True if the build launched for ``build_refs`` is stale.

    ``cl_patchsets`` maps CL number to the patchset now being dispatched.

    - No CL in common: the build is unrelated, never stale.
    - Same CL numbers on both sides: stale only if every tracked patchset is
      newer-or-equal (GREATER_OR_EQUAL), or newer-or-equal with at least one
      strictly newer (STRICTLY_GREATER).
    - Different CL numbers (a multi-part set changed shape): stale as soon as
      one shared CL has a newer patchset.

    Raises MalformedRefError for a ref that cannot be parsed.
    """
    built: dict[int, int] = {}
    for ref in split_refs(build_refs):
        cl_number, patchset = parse_ref(ref)
        built[cl_number] = patchset

    overlap = [cl for cl in built if cl in cl_patchsets]
    if not overlap:
        return False

    if set(built) != set(cl_patchsets):
        return any(_newer(cl_patchsets[cl], built[cl], policy) for cl in overlap)

    if not all(cl_patchsets[cl] >= built[cl] for cl in overlap):
        return False
    if policy == STRICTLY_GREATER:
        return any(cl_patchsets[cl] > built[cl] for cl in overlap)
    return True


def queued_outdated_builds(
    queue_payload: dict,
    cl_patchsets: Mapping[int, int],
    job: str,
    policy: str = GREATER_OR_EQUAL,
) -> tuple[list[QueuedBuild], list[Exception]]:
    """Return the queued builds of ``job`` that are stale, plus per-item errors.

    A queue item whose refs cannot be parsed is reported in the error list
    and otherwise ignored, so one bad item does not hide the others.
    """
    outdated: list[QueuedBuild] = []
    errors: list[Exception] = []
    for item in parse_queue(queue_payload):
        if item.task_name != job:
            continue
        if not item.refs:
            errors.append(ValueError(f"queued build {item.id} has no REFS parameter"))
            continue
        try:
            if is_build_outdated(item.refs, cl_patchsets, policy):
                outdated.append(item)
        except ValueError as e:
            errors.append(e)
    return outdated, errors


def ongoing_outdated_build(
    build_payload: dict,
    cl_patchsets: Mapping[int, int],
    policy: str = GREATER_OR_EQUAL,
) -> OngoingBuild:
    """Return the build if it is running and stale, else the invalid sentinel.

    Raises ValueError if a running build carries no refs.
    """
    build = parse_ongoing_build(build_payload)
    if build.building and _ongoing_build_is_outdated(build, cl_patchsets, policy):
        return build
    return INVALID_BUILD


def ongoing_outdated_builds(
    listing_payload: dict,
    cl_patchsets: Mapping[int, int],
    policy: str = GREATER_OR_EQUAL,
) -> tuple[list[OngoingBuild], list[Exception]]:
    """Apply ongoing_outdated_build to every build of a job listing."""
    outdated: list[OngoingBuild] = []
    errors: list[Exception] = []
    for build in parse_build_listing(listing_payload):
        if not build.building:
            continue
        try:
            stale = _ongoing_build_is_outdated(build, cl_patchsets, policy)
        except ValueError as e:
            errors.append(e)
            continue
        if stale:
            outdated.append(build)
    return outdated, errors


def _ongoing_build_is_outdated(build: OngoingBuild, cl_patchsets: Mapping[int, int], policy: str) -> bool:
    if not build.refs:
        raise ValueError(f"ongoing build {build.number} has no REFS parameter")
    return is_build_outdated(build.refs, cl_patchsets, policy)
