"""Tests for status files, xUnit reports and the git wrapper."""

import json
import subprocess

import pytest

from presubmit_core.errors import GitError
from presubmit_core.result import (
    AxisValues,
    ResultStatus,
    TestResult,
    TestResultInfo,
    read_results_file,
    read_status_files,
    status_file_name,
    write_status_file,
    xunit_report_file_name,
)
from presubmit_core.utils.git import Git, presubmit_branch_name
from presubmit_core.xunit import create_failure_report, parse_report

XUNIT = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites>
  <testsuite name="v.io/x/ref/lib" tests="3">
    <testcase classname="v.io/x/ref/lib" name="TestOk" time="0.1"/>
    <testcase classname="v.io/x/ref/lib" name="TestBad&amp;Worse" time="0.2">
      <failure message="expected 1 got 2">trace</failure>
    </testcase>
    <testcase classname="" name="TestErr"><error>panic</error></testcase>
  </testsuite>
</testsuites>
"""


# ---------------------------------------------------------------------------
# Status files
# ---------------------------------------------------------------------------


class TestStatusFiles:
    def test_file_names(self):
        assert status_file_name("vanadium-go-test") == "status_vanadium_go_test.json"
        assert xunit_report_file_name("vanadium-go-test") == "tests_vanadium_go_test.xml"

    def test_write_uses_wire_keys(self, tmp_path):
        info = TestResultInfo(
            result=TestResult(ResultStatus.TIMED_OUT, timeout_value=600),
            test_name="vanadium-go-race",
            timestamp=1234,
            axis_values=AxisValues(arch="amd64", os="linux", part_index=1),
        )
        path = write_status_file(tmp_path / "out", info)
        assert json.loads(path.read_text()) == {
            "result": {
                "status": "TIMED_OUT",
                "timeoutValue": 600,
                "mergeConflictCL": "",
                "toolsBuildFailureMsg": "",
            },
            "testName": "vanadium-go-race",
            "timestamp": 1234,
            "axisValues": {"arch": "amd64", "os": "linux", "partIndex": 1},
        }

    def test_read_status_files_recursive_and_sorted(self, tmp_path):
        for sub, name in (("b", "t2"), ("a", "t1")):
            write_status_file(
                tmp_path / sub,
                TestResultInfo(result=TestResult(ResultStatus.PASSED), test_name=name, timestamp=1),
            )
        (tmp_path / "a" / "unrelated.json").write_text("{}")

        infos = read_status_files(tmp_path)

        assert [i.test_name for i in infos] == ["t1", "t2"]
        assert infos[0].source_dir == tmp_path / "a"
        assert infos[0].axis_values == AxisValues()

    def test_missing_results_dir(self, tmp_path):
        assert read_status_files(tmp_path / "nope") == []

    def test_read_results_file(self, tmp_path):
        path = tmp_path / "results"
        path.write_text(json.dumps({"vanadium-go-test": {"status": "FAILED"}, "other": {}}))
        results = read_results_file(path)
        assert results["vanadium-go-test"].status is ResultStatus.FAILED
        assert results["other"].status is ResultStatus.FAILED

    def test_key(self):
        info = TestResultInfo(
            result=TestResult(ResultStatus.PASSED),
            test_name="t",
            timestamp=0,
            axis_values=AxisValues(arch="386", os="darwin", part_index=2),
        )
        assert info.key() == "t_darwin_386_2"


# ---------------------------------------------------------------------------
# xUnit
# ---------------------------------------------------------------------------


class TestXUnit:
    def test_parse_report(self):
        (suite,) = parse_report(XUNIT)
        assert suite.name == "v.io/x/ref/lib"
        assert [c.name for c in suite.cases] == ["TestOk", "TestBad&Worse", "TestErr"]
        assert [c.failed for c in suite.cases] == [False, True, True]
        assert suite.cases[1].failures == ["expected 1 got 2"]
        assert suite.cases[2].failures == ["panic"]

    def test_attributes_unescaped_once(self):
        (suite,) = parse_report(
            '<testsuite name="a &amp;amp; b"><testcase classname="c&amp;lt;T&amp;gt;" name="x &amp;lt; y"/></testsuite>'
        )
        assert suite.name == "a &amp; b"
        assert suite.cases[0].class_name == "c&lt;T&gt;"
        assert suite.cases[0].name == "x &lt; y"

    def test_parse_single_suite_root(self):
        (suite,) = parse_report('<testsuite name="s"><testcase classname="c" name="n"/></testsuite>')
        assert suite.cases[0].class_name == "c"

    def test_create_failure_report_parses_back(self, tmp_path):
        path = create_failure_report(
            tmp_path / "deep" / "tests_x.xml",
            suite_name="vanadium-go-test",
            class_name="vanadium-go-test",
            case_name="Timeout",
            message="Test timed out",
            output="partial output",
        )
        (suite,) = parse_report(path.read_bytes())
        (case,) = suite.cases
        assert (case.class_name, case.name, case.failures) == ("vanadium-go-test", "Timeout", ["Test timed out"])


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


class TestGit:
    def test_branch_name(self):
        assert presubmit_branch_name("refs/changes/00/1000/1") == "presubmit_refs/changes/00/1000/1"

    def test_failure_raises_git_error(self, mocker, tmp_path):
        mocker.patch(
            "presubmit_core.utils.git.subprocess.run",
            return_value=subprocess.CompletedProcess([], 1, stdout="", stderr="fatal: unable to access"),
        )
        with pytest.raises(GitError) as exc_info:
            Git(tmp_path).pull("https://host/p", "refs/changes/00/1/1")
        assert exc_info.value.returncode == 1
        assert "unable to access" in exc_info.value.output
        assert exc_info.value.args_ == ["git", "pull", "https://host/p", "refs/changes/00/1/1"]

    def test_cleanup_deletes_only_presubmit_branches(self, mocker, tmp_path):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd[1:])
            out = "master\npresubmit_refs/changes/00/1/1\nfeature\n" if cmd[1] == "branch" else ""
            return subprocess.CompletedProcess(cmd, 0, stdout=out, stderr="")

        mocker.patch("presubmit_core.utils.git.subprocess.run", side_effect=fake_run)
        Git(tmp_path).cleanup_presubmit_branches()

        assert calls == [
            ["reset", "--hard", "HEAD"],
            ["checkout", "master"],
            ["branch", "--format=%(refname:short)"],
            ["branch", "-D", "presubmit_refs/changes/00/1/1"],
        ]

    def test_runs_in_repo_dir(self, mocker, tmp_path):
        run = mocker.patch(
            "presubmit_core.utils.git.subprocess.run",
            return_value=subprocess.CompletedProcess([], 0, stdout="", stderr=""),
        )
        Git(tmp_path).checkout("master")
        assert run.call_args.kwargs["cwd"] == tmp_path
