"""Turn the status files of one presubmit build into a Gerrit review message.

Why compare against postsubmit:
- A red presubmit is only actionable if the CL made it red. Each test's
  status is shown next to the status of the same test in the newest
  postsubmit build that started before the presubmit run, ``last ➔ cur``.
- Failed test cases are split into NEW failures (blocking), KNOWN failures
  (already failing in postsubmit) and FIXED failures (failing in
  postsubmit, passing here). Only new failures make the run unsuccessful.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Sequence
from urllib.parse import urlencode

from presubmit_core.actions.base import MessagePoster
from presubmit_core.config import PresubmitConfig
from presubmit_core.errors import RestError
from presubmit_core.gerrit.client import GerritClient
from presubmit_core.jenkins.builds import TestCase
from presubmit_core.jenkins.client import JenkinsClient, build_spec, start_build_link
from presubmit_core.result import ResultStatus, TestResultInfo, read_status_files, xunit_report_file_name
from presubmit_core.runner import MERGE_CONFLICT_MESSAGE, TOOLS_BUILD_FAILURE_MESSAGE
from presubmit_core.selection import with_part_suffix
from presubmit_core.submit import submit_presubmit_cls
from presubmit_core.xunit import parse_report

logger = logging.getLogger(__name__)

SUCCESS_RESULT = "SUCCESS"
UNKNOWN_RESULT = "UNKNOWN"


class Status(IntEnum):
    """Aggregation order: a test with parts takes the highest part status."""

    UNKNOWN = 0
    SUCCESS = 1
    FAIL = 2

    @property
    def glyph(self) -> str:
        return {Status.UNKNOWN: "?", Status.SUCCESS: "✔"}.get(self, "✖")

    @classmethod
    def from_build_result(cls, result: str | None) -> Status:
        if result is None or result == UNKNOWN_RESULT:
            return cls.UNKNOWN
        if result == SUCCESS_RESULT:
            return cls.SUCCESS
        return cls.FAIL


class FailureType(IntEnum):
    FIXED = 0
    NEW = 1
    KNOWN = 2

    @property
    def label(self) -> str:
        return f"{self.name} FAILURE"


_FAILURE_TYPE_ORDER = (FailureType.NEW, FailureType.KNOWN, FailureType.FIXED)


@dataclass
class PostsubmitBuildData:
    result: str | None
    failed_test_cases: list[TestCase] = field(default_factory=list)


@dataclass
class FailedTestCase:
    suite_name: str
    class_name: str
    case_name: str
    test_name: str = ""
    axis: dict = field(default_factory=dict)


@dataclass
class Report:
    message: str
    success: bool
    post: bool = True


@dataclass
class _Summary:
    name_with_labels: str
    last_status: Status = Status.UNKNOWN
    cur_status: Status = Status.UNKNOWN
    timeout_value: int = -1


def format_duration(seconds: int) -> str:
    """Format like ``1h2m3s``, dropping leading zero units."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def full_test_name(class_name: str, case_name: str) -> str:
    # Dots become "::" so mail clients do not turn the name into a link.
    return f"{class_name}.{case_name}".replace(".", "::")


def sub_job_label(job: str, axis: dict, matrix_jobs: dict) -> str:
    conf = matrix_jobs.get(job)
    if conf is None:
        return ""
    parts = []
    if conf.get("has_os") and conf.get("show_os"):
        parts.append(axis.get("os", ""))
    if conf.get("has_arch"):
        parts.append(axis.get("arch", ""))
    return ",".join(parts)


def collect_postsubmit_results(
    jenkins: JenkinsClient,
    results: Sequence[TestResultInfo],
    matrix_jobs: dict,
) -> dict[str, PostsubmitBuildData]:
    """Find, per result, the newest postsubmit build started before it.

    Walks back from the job's last completed build. A test whose builds
    cannot be read is left out, which shows as ``?`` in the report.
    """
    data: dict[str, PostsubmitBuildData] = {}
    for info in results:
        axis = info.axis_values.as_dict()
        try:
            last = jenkins.last_completed_build(info.test_name, axis, matrix_jobs)
            number = int(last.id or last.number)
        except (RestError, ValueError) as e:
            logger.warning("No postsubmit build for %s: %s", info.key(), e)
            continue
        for n in range(number, -1, -1):
            spec = build_spec(info.test_name, str(n), axis, matrix_jobs)
            try:
                build = jenkins.build_info_for_spec(spec)
            except RestError as e:
                logger.warning("Could not read %s: %s", spec, e)
                break
            if build.timestamp > info.timestamp:
                continue
            try:
                cases = jenkins.failed_test_cases_for_build_spec(spec)
            except RestError:
                cases = []
            logger.info("Postsubmit %s: build %d %s", info.key(), n, build.result)
            data[info.key()] = PostsubmitBuildData(result=build.result, failed_test_cases=cases)
            break
    return data


class TestReporter:
    """Builds and posts the report for one presubmit build.

    ``presubmit_build_result`` is the Jenkins result of the presubmit master
    build itself; FAILURE means some configurations never produced results.
    """

    __test__ = False

    def __init__(
        self,
        config: PresubmitConfig,
        results: Sequence[TestResultInfo],
        postsubmit: dict[str, PostsubmitBuildData],
        refs: Sequence[str],
        projects: Sequence[str],
        build_number: int,
        all_tests: str = "",
        presubmit_build_result: str | None = None,
    ):
        self._config = config
        self._results = list(results)
        self._postsubmit = postsubmit
        self._refs = list(refs)
        self._projects = list(projects)
        self._build_number = build_number
        self._all_tests = all_tests
        self._presubmit_build_result = presubmit_build_result

    def post_report(self, poster: MessagePoster) -> bool:
        """Post the report and return whether the presubmit run passed."""
        report = self.generate_report()
        if report.post:
            poster.post_message(report.message, self._refs, report.success)
        return report.success

    def generate_report(self) -> Report:
        if not self._results:
            return Report("", success=True, post=False)

        if self._presubmit_build_result == "FAILURE":
            return Report("SOME TESTS FAILED TO RUN.\nRetrying...\n", success=False, post=False)

        failure = self._presubmit_failure_message()
        if failure:
            return Report(failure, success=False)

        lines: list[str] = []
        failed_tests = self._report_summary(lines)
        new_failures = 0
        if failed_tests:
            new_failures = self._report_failed_test_cases(lines)
        self._report_useful_links(lines, failed_tests)
        return Report("".join(lines), success=new_failures == 0)

    # ------------------------------------------------------------------ #
    # Report sections                                                      #
    # ------------------------------------------------------------------ #

    def _presubmit_failure_message(self) -> str:
        for info in self._results:
            if info.result.status == ResultStatus.MERGE_CONFLICT:
                return MERGE_CONFLICT_MESSAGE.format(cl=info.result.merge_conflict_cl)
            if info.result.status == ResultStatus.TOOLS_BUILD_FAILURE:
                return TOOLS_BUILD_FAILURE_MESSAGE.format(output=info.result.tools_build_failure_msg)
        return ""

    def _report_summary(self, lines: list[str]) -> list[str]:
        """Append one line per test and return the failed tests (with part suffix)."""
        lines.append("Test results:\n")
        failed: list[str] = []
        summaries: dict[str, _Summary] = {}
        for info in self._results:
            if info.result.status == ResultStatus.SKIPPED:
                lines.append(f"skipped {info.test_name}\n")
                continue
            axis = info.axis_values
            test_key = f"{info.test_name}_{axis.os}_{axis.arch}"
            summary = summaries.get(test_key)
            if summary is None:
                name = info.test_name
                label = sub_job_label(name, axis.as_dict(), self._config.matrix_jobs)
                if label:
                    name += f" [{label}]"
                summary = summaries[test_key] = _Summary(name_with_labels=name)
            if self._merge(info, summary):
                failed_name = with_part_suffix(info.test_name, axis.part_index)
                if failed_name not in failed:
                    failed.append(failed_name)

        for summary in sorted(summaries.values(), key=lambda s: s.name_with_labels):
            line = f"{summary.last_status.glyph} ➔ {summary.cur_status.glyph}: {summary.name_with_labels}"
            if summary.timeout_value > 0:
                line += f" [TIMED OUT after {format_duration(summary.timeout_value)}]"
            lines.append(line + "\n")
        return failed

    def _merge(self, info: TestResultInfo, summary: _Summary) -> bool:
        data = self._postsubmit.get(info.key())
        last = Status.from_build_result(data.result) if data else Status.UNKNOWN
        summary.last_status = max(summary.last_status, last)

        failed = info.result.status != ResultStatus.PASSED
        summary.cur_status = max(summary.cur_status, Status.FAIL if failed else Status.SUCCESS)

        if info.result.status == ResultStatus.TIMED_OUT:
            timeout = info.result.timeout_value or self._config.test_timeout
            summary.timeout_value = max(summary.timeout_value, timeout)
        return failed

    def _report_failed_test_cases(self, lines: list[str]) -> int:
        groups: dict[FailureType, list[FailedTestCase]] = {t: [] for t in FailureType}
        for info in self._results:
            for failure_type, cases in self._failed_test_case_groups(info).items():
                groups[failure_type].extend(cases)

        for failure_type in _FAILURE_TYPE_ORDER:
            cases = groups[failure_type]
            if not cases:
                continue
            title = failure_type.label + ("S" if len(cases) > 1 else "")
            links = "\n".join(self._test_result_link(case) for case in cases)
            lines.append(f"\n{title}:\n{links}\n\n")
        return len(groups[FailureType.NEW])

    def _failed_test_case_groups(self, info: TestResultInfo) -> dict[FailureType, list[FailedTestCase]]:
        groups: dict[FailureType, list[FailedTestCase]] = {}
        if info.source_dir is None:
            return groups
        report_path = Path(info.source_dir) / xunit_report_file_name(info.test_name)
        try:
            suites = parse_report(report_path.read_bytes())
        except (OSError, ValueError) as e:
            # Not every test produces an xUnit report.
            logger.info("No xUnit report for %s: %s", info.key(), e)
            return groups

        data = self._postsubmit.get(info.key())
        postsubmit_failed = data.failed_test_cases if data else []
        known = {(c.class_name, c.name) for c in postsubmit_failed}
        current: set[tuple[str, str]] = set()
        axis = info.axis_values.as_dict()

        for suite in suites:
            for case in suite.cases:
                if not case.failed:
                    continue
                class_name = case.class_name or suite.name
                failure_type = FailureType.KNOWN if (class_name, case.name) in known else FailureType.NEW
                groups.setdefault(failure_type, []).append(
                    FailedTestCase(suite.name, class_name, case.name, info.test_name, axis)
                )
                current.add((class_name, case.name))

        for case in postsubmit_failed:
            if (case.class_name, case.name) not in current:
                groups.setdefault(FailureType.FIXED, []).append(FailedTestCase("", case.class_name, case.name))
        return groups

    def _test_result_link(self, case: FailedTestCase) -> str:
        full_name = full_test_name(case.class_name, case.case_name)
        if not self._config.dashboard_host:
            return f"- {full_name}"
        query = urlencode(
            {
                "arch": case.axis.get("arch", ""),
                "class": case.class_name,
                "job": case.test_name,
                "n": str(self._build_number),
                "os": case.axis.get("os", ""),
                "part": str(max(case.axis.get("part_index", 0), 0)),
                "suite": case.suite_name,
                "test": case.case_name,
                "type": "presubmit",
            }
        )
        return f"- {full_name}\n{self._config.dashboard_host.rstrip('/')}/?{query}"

    def _report_useful_links(self, lines: list[str], failed_tests: list[str]) -> None:
        if self._config.dashboard_host:
            dashboard = self._config.dashboard_host.rstrip("/")
            lines.append(f"\nMore details at:\n{dashboard}/?type=presubmit&n={self._build_number}\n")
        if not failed_tests or not self._config.jenkins_host:
            return
        refs, projects = ":".join(self._refs), ":".join(self._projects)
        link = start_build_link(self._config.jenkins_host, self._config.job, refs, projects, " ".join(failed_tests))
        lines.append(
            "\nTo re-run FAILED TESTS ONLY without uploading a new patch set:\n"
            f"(click Proceed button on the next screen)\n{link}\n"
        )
        link = start_build_link(self._config.jenkins_host, self._config.job, refs, projects, self._all_tests)
        lines.append(
            "\nTo re-run presubmit tests without uploading a new patch set:\n"
            f"(click Proceed button on the next screen)\n{link}\n"
        )


def report_results(
    config: PresubmitConfig,
    jenkins: JenkinsClient,
    gerrit: GerritClient,
    poster: MessagePoster,
    *,
    workspace: Path,
    build_number: int,
    refs: Sequence[str],
    projects: Sequence[str],
    all_tests: str = "",
) -> bool:
    """Report the results of presubmit build ``build_number`` on its CLs.

    Reads ``<workspace>/test_results/<build_number>/**/status_*.json``, posts
    the report and, if every test passed, submits the tested CLs when they
    are eligible. Returns whether the run passed.
    """
    results = read_status_files(Path(workspace) / "test_results" / str(build_number))
    logger.info("Found %d status file(s) for build %d", len(results), build_number)

    presubmit_build_result = None
    try:
        presubmit_build_result = jenkins.build_info(config.job, build_number).result
    except RestError as e:
        logger.warning("Could not read %s build %d: %s", config.job, build_number, e)

    postsubmit = collect_postsubmit_results(jenkins, results, config.matrix_jobs)
    reporter = TestReporter(
        config,
        results,
        postsubmit,
        refs,
        projects,
        build_number,
        all_tests=all_tests,
        presubmit_build_result=presubmit_build_result,
    )
    passed = reporter.post_report(poster)
    if passed:
        try:
            submit_presubmit_cls(gerrit, poster, config.query, refs)
        except RestError as e:
            logger.error("Failed to submit presubmit CLs: %s", e)
    return passed
