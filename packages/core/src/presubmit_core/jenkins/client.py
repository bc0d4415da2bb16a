"""Jenkins REST client for the presubmit job."""

from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

import requests

from presubmit_core.errors import DispatchError, RestError
from presubmit_core.jenkins.builds import (
    BuildInfo,
    TestCase,
    failed_test_cases,
    parse_build_info,
)
from presubmit_core.rest import BaseRestClient

logger = logging.getLogger(__name__)

_BUILDS_TREE = "builds[number,building,actions[parameters[name,value]]]"


def build_spec(job: str, suffix: str, axis: dict | None = None, matrix_jobs: dict | None = None) -> str:
    """Return the path of a build below ``/job/``.

    For a multi-configuration job the spec selects one axis combination,
    ``<job>/ARCH=amd64,OS=linux,P=0/<suffix>``; the axes included are the
    ones the job declares in ``matrix_jobs``. Other jobs are ``<job>/<suffix>``.
    """
    conf = (matrix_jobs or {}).get(job)
    if conf is None:
        return f"{job}/{suffix}"
    axis = axis or {}
    parts = []
    if conf.get("has_arch"):
        parts.append(f"ARCH={axis.get('arch', '')}")
    if conf.get("has_os"):
        parts.append(f"OS={axis.get('os', '')}")
    if conf.get("has_parts"):
        parts.append(f"P={axis.get('part_index', 0)}")
    return f"{job}/{','.join(parts)}/{suffix}"


def start_build_link(host: str, job: str, refs: str, projects: str, tests: str) -> str:
    """Link that opens a pre-filled "build with parameters" page for ``job``."""
    query = urlencode({"REFS": refs, "PROJECTS": projects, "TESTS": tests})
    return f"{host.rstrip('/')}/job/{job}/buildWithParameters?{query}"


class JenkinsClient(BaseRestClient):
    """Access to one Jenkins master.

    When a remote-trigger token is configured it is sent with every request
    as the ``token`` query parameter.
    """

    def __init__(self, host: str, token: str | None = None, session: requests.Session | None = None):
        super().__init__(host, session=session)
        self._token = token

    def _url(self, path: str) -> str:
        return f"{self.host}/{path.lstrip('/')}"

    def _auth(self):
        return None

    def _extra_params(self) -> list[tuple[str, str]]:
        return [("token", self._token)] if self._token else []

    # ------------------------------------------------------------------ #
    # Queue and running builds                                             #
    # ------------------------------------------------------------------ #

    def queue(self) -> dict:
        """Raw ``/queue/api/json`` payload."""
        return self.get_json("queue/api/json")

    def job_builds(self, job: str) -> dict:
        """Raw listing of a job's builds with their parameters."""
        return self.get_json(f"job/{quote(job)}/api/json", params={"tree": _BUILDS_TREE})

    def cancel_queued_build(self, item_id: int) -> None:
        self.request("POST", "queue/cancelItem", params={"id": str(item_id)})

    def cancel_ongoing_build(self, job: str, number: int) -> None:
        self.request("POST", f"job/{quote(job)}/{number}/stop")

    def add_build_with_parameters(self, job: str, params: dict[str, str]) -> None:
        try:
            self.request("POST", f"job/{quote(job)}/buildWithParameters", params=params)
        except RestError as e:
            raise DispatchError(f"could not start {job}: {e}") from e

    # ------------------------------------------------------------------ #
    # Build results                                                        #
    # ------------------------------------------------------------------ #

    def build_info_for_spec(self, spec: str) -> BuildInfo:
        return parse_build_info(self.get_json(f"job/{spec}/api/json"))

    def build_info(self, job: str, number: int) -> BuildInfo:
        return self.build_info_for_spec(f"{job}/{number}")

    def last_completed_build(self, job: str, axis: dict | None = None, matrix_jobs: dict | None = None) -> BuildInfo:
        return self.build_info_for_spec(build_spec(job, "lastCompletedBuild", axis, matrix_jobs))

    def failed_test_cases_for_build_spec(self, spec: str) -> list[TestCase]:
        return failed_test_cases(self.get_json(f"job/{spec}/testReport/api/json"))
