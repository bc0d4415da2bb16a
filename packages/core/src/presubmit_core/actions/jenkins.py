"""Jenkins-backed BuildRemover and BuildTrigger."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from presubmit_core.actions.base import BuildRemover, BuildTrigger
from presubmit_core.gerrit.change import Change
from presubmit_core.jenkins.client import JenkinsClient
from presubmit_core.outdated import GREATER_OR_EQUAL, ongoing_outdated_builds, queued_outdated_builds

logger = logging.getLogger(__name__)


class JenkinsBuildRemover(BuildRemover):
    """Cancels stale builds of the presubmit job, queued ones first."""

    def __init__(self, jenkins: JenkinsClient, job: str, policy: str = GREATER_OR_EQUAL):
        self._jenkins = jenkins
        self._job = job
        self._policy = policy

    def remove_outdated_builds(self, cl_patchsets: Mapping[int, int]) -> list[Exception]:
        return self._remove_queued(cl_patchsets) + self._remove_ongoing(cl_patchsets)

    def _remove_queued(self, cl_patchsets: Mapping[int, int]) -> list[Exception]:
        try:
            payload = self._jenkins.queue()
            outdated, errors = queued_outdated_builds(payload, cl_patchsets, self._job, self._policy)
        except Exception as e:
            return [e]
        for build in outdated:
            try:
                self._jenkins.cancel_queued_build(build.id)
            except Exception as e:
                errors.append(e)
                continue
            logger.info("Cancelled queued build %d (%s)", build.id, build.refs)
        return errors

    def _remove_ongoing(self, cl_patchsets: Mapping[int, int]) -> list[Exception]:
        try:
            payload = self._jenkins.job_builds(self._job)
            outdated, errors = ongoing_outdated_builds(payload, cl_patchsets, self._policy)
        except Exception as e:
            return [e]
        for build in outdated:
            try:
                self._jenkins.cancel_ongoing_build(self._job, build.number)
            except Exception as e:
                errors.append(e)
                continue
            logger.info("Cancelled ongoing build %d (%s)", build.number, build.refs)
        return errors


class JenkinsBuildTrigger(BuildTrigger):
    def __init__(self, jenkins: JenkinsClient, job: str):
        self._jenkins = jenkins
        self._job = job

    def add_presubmit_test_build(self, cl_list: Sequence[Change], tests: Sequence[str]) -> None:
        params = {
            "REFS": ":".join(cl.ref for cl in cl_list),
            "PROJECTS": ":".join(cl.project for cl in cl_list),
            "TESTS": " ".join(tests),
        }
        self._jenkins.add_build_with_parameters(self._job, params)
        logger.debug("Started %s with %s", self._job, params)
