"""Dispatch CL lists to the presubmit job.

For every CL list the sender walks the same decision ladder:

    unknown projects   → drop those members ("not found")
    nothing left       → SKIP: Empty CL set
    PresubmitTest:none → post "skipped", SKIP
    no tests           → post "no tests", SKIP
    external owner     → post a manual trigger link, SKIP
    otherwise          → cancel stale builds, start a build, PASS or FAIL

Each line of that ladder is logged through this module's logger in the
order the lists were given, so the log reads as an audit trail of one poll.
A failure on one list is logged and the sender moves on to the next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from presubmit_core.actions.base import BuildRemover, BuildTrigger, MessagePoster
from presubmit_core.config import PresubmitConfig
from presubmit_core.errors import MalformedRefError
from presubmit_core.gerrit.change import Change, PresubmitTestType
from presubmit_core.gerrit.refs import cl_link, parse_ref
from presubmit_core.jenkins.client import start_build_link
from presubmit_core.selection import select_tests

logger = logging.getLogger(__name__)

PASS = "PASS"
FAIL = "FAIL"
SKIP = "SKIP"

SKIP_EMPTY = "empty"
SKIP_PRESUBMIT_NONE = "presubmit=none"
SKIP_NO_TESTS = "no tests found"
SKIP_EXTERNAL_OWNER = "non-google owner"


@dataclass
class DispatchOutcome:
    """What happened to one CL list. The CLI persists these as history."""

    refs: list[str]
    projects: list[str]
    cls: str
    status: str  # PASS | FAIL | SKIP
    reason: str = ""
    tests: list[str] = field(default_factory=list)


@dataclass
class _CLListInfo:
    cl_list: list[Change]
    cl_patchsets: dict[int, int]
    cls: str
    refs: list[str]
    projects: list[str]
    skip_presubmit: bool
    has_external_owner: bool


class CLsSender:
    """Sends each CL list to the presubmit job through the injected strategies.

    ``cls_sent`` counts the changes in successfully dispatched lists and
    ``cl_lists_sent`` counts the lists themselves.
    """

    def __init__(
        self,
        cl_lists: Sequence[Sequence[Change]],
        config: PresubmitConfig,
        remover: BuildRemover,
        trigger: BuildTrigger,
        poster: MessagePoster,
        test_selector: Callable[[PresubmitConfig, Iterable[str]], list[str]] = select_tests,
    ):
        self.cl_lists = [list(cl_list) for cl_list in cl_lists]
        self._config = config
        self._remover = remover
        self._trigger = trigger
        self._poster = poster
        self._select_tests = test_selector
        self.cls_sent = 0
        self.cl_lists_sent = 0
        self.outcomes: list[DispatchOutcome] = []

    def send(self) -> list[DispatchOutcome]:
        for cl_list in self.cl_lists:
            self._send_cl_list(cl_list)
        return self.outcomes

    # ------------------------------------------------------------------ #
    # Per-list steps                                                       #
    # ------------------------------------------------------------------ #

    def _send_cl_list(self, cl_list: list[Change]) -> None:
        info = self._process_cl_list(cl_list)
        if not info.cl_list:
            logger.info("SKIP: Empty CL set")
            self._record(info, SKIP, SKIP_EMPTY)
            return

        if info.skip_presubmit:
            self._post(info, "Presubmit tests skipped.\n", success=True)
            logger.info("SKIP: Add %s (%s)", info.cls, SKIP_PRESUBMIT_NONE)
            self._record(info, SKIP, SKIP_PRESUBMIT_NONE)
            return

        tests = self._select_tests(self._config, info.projects)
        if not tests:
            self._post(info, "No tests found.\n", success=True)
            logger.info("SKIP: Add %s (%s)", info.cls, SKIP_NO_TESTS)
            self._record(info, SKIP, SKIP_NO_TESTS)
            return

        if info.has_external_owner:
            self._post_manual_trigger_link(info, tests)
            logger.info("SKIP: Add %s (%s)", info.cls, SKIP_EXTERNAL_OWNER)
            self._record(info, SKIP, SKIP_EXTERNAL_OWNER, tests)
            return

        try:
            errors = self._remover.remove_outdated_builds(info.cl_patchsets)
        except Exception as e:
            errors = [e]
        for error in errors:
            logger.error("Failed to remove outdated build: %s", error)

        try:
            self._trigger.add_presubmit_test_build(info.cl_list, tests)
        except Exception as e:
            logger.error("FAIL: Add %s", info.cls)
            logger.error("addPresubmitTestBuild failed: %s", e)
            self._record(info, FAIL, str(e), tests)
            return

        logger.info("PASS: Add %s", info.cls)
        self.cls_sent += len(info.cl_list)
        self.cl_lists_sent += 1
        self._record(info, PASS, "", tests)

    def _process_cl_list(self, cl_list: list[Change]) -> _CLListInfo:
        """Drop members that cannot be tested and summarise the rest."""
        kept: list[Change] = []
        cl_patchsets: dict[int, int] = {}
        links: list[str] = []
        for cl in cl_list:
            if cl.project not in self._config.projects:
                logger.info('project="%s" (%s) not found. Skipped.', cl.project, cl.ref)
                continue
            try:
                cl_number, patchset = parse_ref(cl.ref)
            except MalformedRefError as e:
                logger.error("Skipping %s: %s", cl.ref, e)
                continue
            kept.append(cl)
            cl_patchsets[cl_number] = patchset
            links.append(cl_link(self._config.gerrit_url, cl_number, patchset))

        return _CLListInfo(
            cl_list=kept,
            cl_patchsets=cl_patchsets,
            cls=", ".join(links),
            refs=[cl.ref for cl in kept],
            projects=[cl.project for cl in kept],
            skip_presubmit=any(cl.presubmit_test == PresubmitTestType.NONE for cl in kept),
            has_external_owner=any(not self._config.owner_is_trusted(cl.owner_email) for cl in kept),
        )

    def _post_manual_trigger_link(self, info: _CLListInfo, tests: list[str]) -> None:
        link = start_build_link(
            self._config.jenkins_host or "",
            self._config.job,
            ":".join(info.refs),
            ":".join(info.projects),
            " ".join(tests),
        )
        message = f"A team member will manually trigger presubmit tests for this change:\n{link}\n"
        self._post(info, message, success=False)

    def _post(self, info: _CLListInfo, message: str, success: bool) -> None:
        try:
            self._poster.post_message(message, info.refs, success)
        except Exception as e:
            logger.error("Failed to post message to %s: %s", ", ".join(info.refs), e)

    def _record(self, info: _CLListInfo, status: str, reason: str, tests: list[str] | None = None) -> None:
        self.outcomes.append(
            DispatchOutcome(
                refs=info.refs,
                projects=info.projects,
                cls=info.cls,
                status=status,
                reason=reason,
                tests=list(tests or []),
            )
        )
