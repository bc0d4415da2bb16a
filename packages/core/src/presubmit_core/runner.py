"""Run one presubmit test against a set of CLs.

This is what each configuration of the Jenkins presubmit job executes:
pull every CL into a ``presubmit_<ref>`` branch of its project checkout,
optionally rebuild developer tools, run the test command and leave a status
file for the result step. Failures that are not the test's fault (merge
conflicts, tools that do not build, timeouts) are recorded as results too,
so the result step can explain them on the CL.
"""

from __future__ import annotations

import logging
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from presubmit_core.config import PresubmitConfig
from presubmit_core.errors import GitError, MergeConflictError, PresubmitError, ToolsBuildError
from presubmit_core.gerrit.refs import parse_ref
from presubmit_core.result import (
    MAX_TIMESTAMP,
    AxisValues,
    ResultStatus,
    TestResult,
    TestResultInfo,
    read_results_file,
    write_status_file,
    xunit_report_file_name,
)
from presubmit_core.selection import split_part_suffix
from presubmit_core.utils.git import Git, presubmit_branch_name
from presubmit_core.xunit import create_failure_report

logger = logging.getLogger(__name__)

PREPARE_BRANCH_ATTEMPTS = 3

# Exit code the test command uses for "tests ran and some failed".
FAILED_EXIT_CODE = 3

MERGE_CONFLICT_MESSAGE = (
    "Possible merge conflict detected in {cl}.\n"
    "Presubmit tests will be executed after a new patchset that resolves the conflicts is submitted."
)
TOOLS_BUILD_FAILURE_MESSAGE = "Failed to build required tools. This is likely caused by your changes.\n{output}"

_TRANSIENT_GIT_ERRORS = ("unable to access", "hung up")


@dataclass(frozen=True)
class PresubmitCL:
    ref: str
    project: str
    cl_number: int
    patchset: int

    def __str__(self) -> str:
        return f"{self.cl_number}/{self.patchset}"


def parse_cls(refs: Sequence[str], projects: Sequence[str]) -> list[PresubmitCL]:
    if len(refs) != len(projects):
        raise PresubmitError(f"mismatching lengths of refs and projects: {len(refs)} vs. {len(projects)}")
    cls = []
    for ref, project in zip(refs, projects):
        cl_number, patchset = parse_ref(ref)
        cls.append(PresubmitCL(ref=ref, project=project, cl_number=cl_number, patchset=patchset))
    return cls


@contextmanager
def cleanup_on_signal(cleanup: Callable[[], None]):
    """Run ``cleanup`` and exit 0 if SIGINT or SIGTERM arrive inside the block.

    Jenkins aborts a build with SIGTERM; exiting 0 lets it mark the run
    "Aborted" rather than "Failed".
    """

    def handler(signum, frame):
        try:
            cleanup()
        except Exception as e:
            logger.error("Cleanup after signal %d failed: %s", signum, e)
        sys.exit(0)

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


class TestRunner:
    """Runs one test (or test part) for the CLs of one presubmit build.

    ``git_factory`` builds a Git for a checkout path; tests pass a mock.
    """

    __test__ = False

    def __init__(
        self,
        config: PresubmitConfig,
        workspace: Path,
        axis: AxisValues | None = None,
        git_factory: Callable[[Path], Git] = Git,
    ):
        self._config = config
        self._workspace = Path(workspace)
        self._axis = axis or AxisValues()
        self._git_factory = git_factory

    def run(self, refs: Sequence[str], projects: Sequence[str], test: str) -> TestResultInfo:
        timestamp = int(time.time() * 1000)
        cls = parse_cls(refs, projects)
        test_name, part_index = split_part_suffix(test)
        checkouts = self._checkouts(cls)

        def cleanup() -> None:
            logger.info("Cleaning up presubmit branches")
            for git in checkouts.values():
                try:
                    git.cleanup_presubmit_branches()
                except GitError as e:
                    logger.error("Cleanup of %s failed: %s", git.repo_dir, e)

        with cleanup_on_signal(cleanup):
            try:
                return self._run(cls, checkouts, test_name, part_index, timestamp)
            finally:
                cleanup()

    def _run(
        self,
        cls: list[PresubmitCL],
        checkouts: dict[str, Git],
        test_name: str,
        part_index: int,
        timestamp: int,
    ) -> TestResultInfo:
        try:
            self._prepare_with_retry(cls, checkouts)
        except MergeConflictError as e:
            message = MERGE_CONFLICT_MESSAGE.format(cl=e.ref)
            result = TestResult(status=ResultStatus.MERGE_CONFLICT, merge_conflict_cl=e.ref)
            return self._record_failure("MergeConflict", "Merge conflict detected", message, test_name, -1, result)

        try:
            self._build_tools()
        except ToolsBuildError as e:
            message = TOOLS_BUILD_FAILURE_MESSAGE.format(output=e.output)
            result = TestResult(status=ResultStatus.TOOLS_BUILD_FAILURE, tools_build_failure_msg=e.output)
            return self._record_failure("BuildTools", "Failed to build tools", message, test_name, -1, result)

        with tempfile.TemporaryDirectory() as output_dir:
            cmd = list(self._config.test_command) + ["-output-dir", output_dir]
            if part_index != -1:
                cmd += ["-part", str(part_index)]
            cmd.append(test_name)
            logger.info("Running %s", " ".join(cmd))
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self._config.test_timeout)
            except subprocess.TimeoutExpired as e:
                output = _decode(e.stdout) + _decode(e.stderr)
                result = TestResult(status=ResultStatus.TIMED_OUT, timeout_value=self._config.test_timeout)
                return self._record_failure(
                    "Timeout",
                    f"Test timed out after {self._config.test_timeout}s",
                    output,
                    test_name,
                    part_index,
                    result,
                )
            if proc.returncode not in (0, FAILED_EXIT_CODE):
                raise PresubmitError(
                    f"{' '.join(cmd)} exited with {proc.returncode}:\n{proc.stdout}{proc.stderr}"
                )

            results = read_results_file(Path(output_dir) / "results")
            if test_name not in results:
                raise PresubmitError(f"no test result found for {test_name!r}")
            info = self._info(results[test_name], test_name, part_index, timestamp)
            report = Path(output_dir) / xunit_report_file_name(test_name)
            if report.exists():
                self._workspace.mkdir(parents=True, exist_ok=True)
                shutil.copy(report, self._workspace / report.name)

        write_status_file(self._workspace, info)
        return info

    def _checkouts(self, cls: list[PresubmitCL]) -> dict[str, Git]:
        checkouts = {}
        for cl in cls:
            path = self._config.projects.get(cl.project)
            if path is None:
                raise PresubmitError(f"project {cl.project!r} not found")
            checkouts.setdefault(cl.project, self._git_factory(Path(path).expanduser()))
        return checkouts

    def _prepare_with_retry(self, cls: list[PresubmitCL], checkouts: dict[str, Git]) -> None:
        for attempt in range(1, PREPARE_BRANCH_ATTEMPTS + 1):
            try:
                self._prepare_branches(cls, checkouts)
                return
            except GitError as e:
                if attempt < PREPARE_BRANCH_ATTEMPTS and any(s in e.output for s in _TRANSIENT_GIT_ERRORS):
                    logger.warning("Attempt #%d failed: %s. Retrying...", attempt, e)
                    continue
                raise

    def _prepare_branches(self, cls: list[PresubmitCL], checkouts: dict[str, Git]) -> None:
        for git in checkouts.values():
            git.cleanup_presubmit_branches()
        logger.info("Preparing to test %s", ", ".join(str(cl) for cl in cls))
        for cl in cls:
            git = checkouts[cl.project]
            git.create_and_checkout_branch(presubmit_branch_name(cl.ref))
            remote = f"{(self._config.git_host or '').rstrip('/')}/{cl.project}"
            try:
                git.pull(remote, cl.ref)
            except GitError as e:
                if any(s in e.output for s in _TRANSIENT_GIT_ERRORS):
                    raise
                logger.error("Failed to pull changes from %s", cl)
                raise MergeConflictError(str(cl), e.output) from e
            logger.info("Pulled changes from %s", cl)

    def _build_tools(self) -> None:
        if not self._config.tools_command:
            return
        proc = subprocess.run(list(self._config.tools_command), capture_output=True, text=True)
        if proc.returncode != 0:
            raise ToolsBuildError((proc.stdout + proc.stderr).strip())

    def _info(self, result: TestResult, test_name: str, part_index: int, timestamp: int) -> TestResultInfo:
        return TestResultInfo(
            result=result,
            test_name=test_name,
            timestamp=timestamp,
            axis_values=AxisValues(arch=self._axis.arch, os=self._axis.os, part_index=part_index),
        )

    def _record_failure(
        self,
        case_name: str,
        message: str,
        output: str,
        test_name: str,
        part_index: int,
        result: TestResult,
    ) -> TestResultInfo:
        """Record a failure outside the test itself as a status file plus xUnit report."""
        create_failure_report(
            self._workspace / xunit_report_file_name(test_name),
            suite_name=test_name,
            class_name=test_name,
            case_name=case_name,
            message=message,
            output=output,
        )
        info = self._info(result, test_name, part_index, MAX_TIMESTAMP)
        write_status_file(self._workspace, info)
        return info


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
