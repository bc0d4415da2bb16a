"""Tests for TestRunner: branch preparation, the test command and status files."""

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from presubmit_core.config import PresubmitConfig
from presubmit_core.errors import GitError, PresubmitError
from presubmit_core.result import MAX_TIMESTAMP, AxisValues, ResultStatus, read_status_files
from presubmit_core.runner import TestRunner, parse_cls
from presubmit_core.utils.git import Git

REF = "refs/changes/00/1000/1"
GO_PROJECT = "release.go.core"


@pytest.fixture
def config(tmp_path):
    return PresubmitConfig(
        projects={GO_PROJECT: str(tmp_path / "go")},
        git_host="https://vanadium.googlesource.com",
        test_command=["jiri-test", "run"],
        test_timeout=60,
    )


@pytest.fixture
def git():
    return MagicMock(spec=Git)


@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "test_results" / "42"


def make_runner(config, workspace, git, axis=None):
    return TestRunner(config, workspace, axis=axis, git_factory=MagicMock(return_value=git))


def fake_test_command(results=None, returncode=0, xunit=None):
    """Stand-in for subprocess.run that leaves a results file in -output-dir."""
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        output_dir = Path(cmd[cmd.index("-output-dir") + 1])
        (output_dir / "results").write_text(json.dumps(results or {}))
        if xunit is not None:
            (output_dir / xunit[0]).write_text(xunit[1])
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")

    run.calls = calls
    return run


class TestParseCLs:
    def test_pairs_refs_with_projects(self):
        (cl,) = parse_cls([REF], [GO_PROJECT])
        assert (cl.cl_number, cl.patchset, cl.project) == (1000, 1, GO_PROJECT)
        assert str(cl) == "1000/1"

    def test_length_mismatch(self):
        with pytest.raises(PresubmitError, match="mismatching lengths"):
            parse_cls([REF], [])


class TestTestRunner:
    def test_passing_test_writes_status_file(self, mocker, config, workspace, git):
        run = fake_test_command({"vanadium-go-test": {"status": "PASSED"}})
        mocker.patch("presubmit_core.runner.subprocess.run", side_effect=run)

        info = make_runner(config, workspace, git, AxisValues(arch="amd64", os="linux")).run(
            [REF], [GO_PROJECT], "vanadium-go-test"
        )

        assert info.result.status is ResultStatus.PASSED
        assert info.axis_values == AxisValues(arch="amd64", os="linux", part_index=-1)
        git.create_and_checkout_branch.assert_called_once_with("presubmit_" + REF)
        git.pull.assert_called_once_with("https://vanadium.googlesource.com/release.go.core", REF)
        assert git.cleanup_presubmit_branches.call_count == 2
        (cmd,) = run.calls
        assert cmd[:2] == ["jiri-test", "run"]
        assert cmd[-1] == "vanadium-go-test"
        assert "-part" not in cmd
        (stored,) = read_status_files(workspace)
        assert stored.test_name == "vanadium-go-test"
        assert stored.result.status is ResultStatus.PASSED

    def test_part_suffix_selects_part(self, mocker, config, workspace, git):
        run = fake_test_command({"vanadium-go-race": {"status": "FAILED"}})
        mocker.patch("presubmit_core.runner.subprocess.run", side_effect=run)

        info = make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-race-part1")

        (cmd,) = run.calls
        assert cmd[-3:] == ["-part", "1", "vanadium-go-race"]
        assert info.test_name == "vanadium-go-race"
        assert info.axis_values.part_index == 1
        assert info.result.status is ResultStatus.FAILED

    def test_xunit_report_kept_in_workspace(self, mocker, config, workspace, git):
        run = fake_test_command(
            {"vanadium-go-test": {"status": "FAILED"}},
            returncode=3,
            xunit=("tests_vanadium_go_test.xml", "<testsuites/>"),
        )
        mocker.patch("presubmit_core.runner.subprocess.run", side_effect=run)

        make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")

        assert (workspace / "tests_vanadium_go_test.xml").read_text() == "<testsuites/>"

    def test_merge_conflict_recorded(self, mocker, config, workspace, git):
        git.pull.side_effect = GitError(["git", "pull"], 1, "CONFLICT (content): Merge conflict in foo.go")
        run = mocker.patch("presubmit_core.runner.subprocess.run")

        info = make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")

        run.assert_not_called()
        assert info.result.status is ResultStatus.MERGE_CONFLICT
        assert info.result.merge_conflict_cl == "1000/1"
        assert info.timestamp == MAX_TIMESTAMP
        assert (workspace / "tests_vanadium_go_test.xml").exists()
        assert (workspace / "status_vanadium_go_test.json").exists()

    def test_transient_pull_failure_retried(self, mocker, config, workspace, git):
        git.pull.side_effect = [GitError(["git", "pull"], 128, "fatal: unable to access 'https://...'"), None]
        mocker.patch(
            "presubmit_core.runner.subprocess.run",
            side_effect=fake_test_command({"vanadium-go-test": {"status": "PASSED"}}),
        )

        info = make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")

        assert info.result.status is ResultStatus.PASSED
        assert git.pull.call_count == 2

    def test_transient_failure_gives_up_after_three_attempts(self, mocker, config, workspace, git):
        git.pull.side_effect = GitError(["git", "pull"], 128, "remote end hung up unexpectedly")
        mocker.patch("presubmit_core.runner.subprocess.run")

        with pytest.raises(GitError):
            make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")
        assert git.pull.call_count == 3

    def test_tools_build_failure_recorded(self, mocker, config, workspace, git):
        config.tools_command = ["jiri", "go", "install", "v.io/x/devtools/..."]
        mocker.patch(
            "presubmit_core.runner.subprocess.run",
            return_value=subprocess.CompletedProcess([], 1, stdout="cannot find package", stderr=""),
        )

        info = make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")

        assert info.result.status is ResultStatus.TOOLS_BUILD_FAILURE
        assert info.result.tools_build_failure_msg == "cannot find package"

    def test_timeout_recorded(self, mocker, config, workspace, git):
        mocker.patch(
            "presubmit_core.runner.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["jiri-test"], 60, output="still running"),
        )

        info = make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test-part0")

        assert info.result.status is ResultStatus.TIMED_OUT
        assert info.result.timeout_value == 60
        assert info.axis_values.part_index == 0
        assert info.timestamp == MAX_TIMESTAMP

    def test_unexpected_exit_code_raises(self, mocker, config, workspace, git):
        mocker.patch("presubmit_core.runner.subprocess.run", side_effect=fake_test_command(returncode=2))
        with pytest.raises(PresubmitError, match="exited with 2"):
            make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")
        assert git.cleanup_presubmit_branches.call_count == 2

    def test_missing_result_raises(self, mocker, config, workspace, git):
        mocker.patch("presubmit_core.runner.subprocess.run", side_effect=fake_test_command({"other": {}}))
        with pytest.raises(PresubmitError, match="no test result"):
            make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")

    def test_unknown_project_raises(self, config, workspace, git):
        with pytest.raises(PresubmitError, match="not found"):
            make_runner(config, workspace, git).run([REF], ["nope"], "vanadium-go-test")

    def test_cleanup_errors_logged(self, mocker, config, workspace, git, caplog):
        git.cleanup_presubmit_branches.side_effect = [None, GitError(["git", "checkout"], 1, "locked")]
        mocker.patch(
            "presubmit_core.runner.subprocess.run",
            side_effect=fake_test_command({"vanadium-go-test": {"status": "PASSED"}}),
        )

        info = make_runner(config, workspace, git).run([REF], [GO_PROJECT], "vanadium-go-test")

        assert info.result.status is ResultStatus.PASSED
        assert "Cleanup of" in caplog.text
