"""Tests for the CLI entry point."""

from unittest.mock import MagicMock

from click.testing import CliRunner

from presubmit_cli.auth import resolve_gerrit_credentials
from presubmit_cli.cli import _build_store, main
from presubmit_cli.commands.query import _outcome_to_record
from presubmit_cli.commands.test import results_dir
from presubmit_core.config import PresubmitConfig
from presubmit_core.errors import ConfigError, RestError
from presubmit_core.poll import QuerySummary
from presubmit_core.result import ResultStatus, TestResult, TestResultInfo
from presubmit_core.sender import DispatchOutcome
from presubmit_store.models import DispatchRecord
from presubmit_store.noop import NoOpStore
from presubmit_store.snapshot import SnapshotError
from presubmit_store.sqlite import SQLiteStore


def _make_config(**overrides):
    values = {
        "gerrit_url": "https://vanadium-review.googlesource.com",
        "jenkins_host": "https://jenkins.example.com",
        "projects": {"release.go.core": "/src/go"},
    }
    values.update(overrides)
    return PresubmitConfig(**values)


def _patch_common(mocker, config=None, records=None):
    """Patch load_config, credential resolution and _build_store for most tests."""
    cfg = config or _make_config()
    mocker.patch("presubmit_core.config.load_config", return_value=cfg)
    mocker.patch("presubmit_cli.auth.resolve_gerrit_credentials", return_value=("user", "pw"))
    # Use SQLiteStore spec so isinstance(store, NoOpStore) returns False;
    # history and stats must not mistake this for an unconfigured store.
    mock_store = MagicMock(spec=SQLiteStore)
    mock_store.list_dispatches.return_value = records or []
    mocker.patch("presubmit_cli.cli._build_store", return_value=mock_store)
    return cfg, mock_store


def _record(cl_numbers=(1000,), outcome="PASS", reason="", tests=("vanadium-go-test",), projects=("release.go.core",)):
    return DispatchRecord(
        refs=[f"refs/changes/00/{n}/1" for n in cl_numbers],
        cl_numbers=list(cl_numbers),
        projects=list(projects),
        outcome=outcome,
        reason=reason,
        dispatched_at="2026-10-18T09:30:00+00:00",
        tests=list(tests),
    )


class TestCLIConfig:
    def test_bad_config_is_click_error(self, mocker):
        mocker.patch("presubmit_core.config.load_config", side_effect=ConfigError("Unknown configuration key(s): x"))
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code == 1
        assert "Unknown configuration key(s): x" in result.output

    def test_credentials_resolved_into_config(self, mocker):
        cfg, _ = _patch_common(mocker)
        mocker.patch("presubmit_cli.commands.query.run_query", return_value=QuerySummary())
        CliRunner().invoke(main, ["query"])
        assert (cfg.gerrit_username, cfg.gerrit_password) == ("user", "pw")


class TestQueryCommand:
    def test_runs_query_and_saves_outcomes(self, mocker):
        _, store = _patch_common(mocker)
        summary = QuerySummary(
            polled_at="2026-10-18T09:30:00+00:00",
            open_cls=3,
            cl_lists_sent=1,
            outcomes=[
                DispatchOutcome(
                    refs=["refs/changes/00/1000/1"],
                    projects=["release.go.core"],
                    cls="https://vanadium-review.googlesource.com/c/1000/1",
                    status="PASS",
                    tests=["vanadium-go-test"],
                )
            ],
        )
        mock_run = mocker.patch("presubmit_cli.commands.query.run_query", return_value=summary)

        result = CliRunner().invoke(main, ["query"])

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["jenkins"] is not None
        store.save.assert_called_once()
        saved = store.save.call_args.args[0]
        assert saved.cl_numbers == [1000]
        assert saved.outcome == "PASS"
        assert "3 open CL(s)" in result.output

    def test_no_dispatch_drops_jenkins(self, mocker):
        cfg, _ = _patch_common(mocker)
        mock_run = mocker.patch("presubmit_cli.commands.query.run_query", return_value=QuerySummary())

        CliRunner().invoke(main, ["query", "--no-dispatch", "--log-file", "/tmp/snap"])

        assert mock_run.call_args.kwargs["jenkins"] is None
        assert cfg.jenkins_host is None
        assert cfg.log_file == "/tmp/snap"

    def test_missing_gerrit_url(self, mocker):
        _patch_common(mocker, config=_make_config(gerrit_url=None))
        result = CliRunner().invoke(main, ["query"])
        assert result.exit_code != 0
        assert "gerrit_url" in result.output

    def test_snapshot_error_is_click_error(self, mocker):
        _patch_common(mocker)
        mocker.patch("presubmit_cli.commands.query.run_query", side_effect=SnapshotError("Could not parse log"))
        result = CliRunner().invoke(main, ["query"])
        assert result.exit_code == 1
        assert "Could not parse log" in result.output

    def test_rest_error_is_click_error(self, mocker):
        _patch_common(mocker)
        mocker.patch("presubmit_cli.commands.query.run_query", side_effect=RestError("GET changes/ failed: 401"))
        result = CliRunner().invoke(main, ["query"])
        assert result.exit_code == 1
        assert "401" in result.output

    def test_outcome_to_record_skips_malformed_refs(self):
        outcome = DispatchOutcome(
            refs=["refs/changes/00/1000/1", "bogus"], projects=["a", "b"], cls="", status="SKIP", reason="empty"
        )
        record = _outcome_to_record(outcome, "2026-10-18T00:00:00+00:00")
        assert record.cl_numbers == [1000]
        assert record.reason == "empty"


class TestTestCommand:
    def test_results_dir(self):
        assert str(results_dir("/ws", 42, "vanadium-go-race-part1", "amd64", "linux")) == (
            "/ws/test_results/42/vanadium-go-race-part1_amd64_linux"
        )
        assert str(results_dir("/ws", 42, "t")) == "/ws/test_results/42/t"

    def test_runs_test_runner(self, mocker, tmp_path):
        _patch_common(mocker)
        runner_cls = mocker.patch("presubmit_cli.commands.test.TestRunner")
        runner_cls.return_value.run.return_value = TestResultInfo(
            result=TestResult(ResultStatus.PASSED), test_name="vanadium-go-test", timestamp=0
        )

        result = CliRunner().invoke(
            main,
            [
                "test",
                "--refs", "refs/changes/00/1000/1:refs/changes/00/1001/1",
                "--projects", "release.go.core:release.js.core",
                "--test", "vanadium-go-test",
                "--build-number", "42",
                "--workspace", str(tmp_path),
            ],
        )

        assert result.exit_code == 0, result.output
        runner_cls.return_value.run.assert_called_once_with(
            ["refs/changes/00/1000/1", "refs/changes/00/1001/1"],
            ["release.go.core", "release.js.core"],
            "vanadium-go-test",
        )
        assert "PASSED" in result.output

    def test_reads_jenkins_environment(self, mocker, tmp_path):
        _patch_common(mocker)
        runner_cls = mocker.patch("presubmit_cli.commands.test.TestRunner")
        runner_cls.return_value.run.return_value = TestResultInfo(
            result=TestResult(ResultStatus.FAILED), test_name="t", timestamp=0
        )
        env = {
            "REFS": "refs/changes/00/1000/1",
            "PROJECTS": "release.go.core",
            "TEST": "t",
            "BUILD_NUMBER": "7",
            "WORKSPACE": str(tmp_path),
            "ARCH": "amd64",
            "OS": "linux",
        }

        result = CliRunner().invoke(main, ["test"], env=env)

        assert result.exit_code == 0, result.output
        _, workspace = runner_cls.call_args.args
        assert workspace == tmp_path / "test_results" / "7" / "t_amd64_linux"
        assert runner_cls.call_args.kwargs["axis"].arch == "amd64"


class TestResultCommand:
    def test_reports_results(self, mocker, tmp_path):
        _patch_common(mocker)
        report = mocker.patch("presubmit_cli.commands.result.report_results", return_value=True)

        result = CliRunner().invoke(
            main,
            [
                "result",
                "--refs", "refs/changes/00/1000/1",
                "--projects", "release.go.core",
                "--tests", "vanadium-go-build vanadium-go-test",
                "--build-number", "42",
                "--workspace", str(tmp_path),
            ],
        )

        assert result.exit_code == 0, result.output
        kwargs = report.call_args.kwargs
        assert kwargs["build_number"] == 42
        assert kwargs["refs"] == ["refs/changes/00/1000/1"]
        assert kwargs["all_tests"] == "vanadium-go-build vanadium-go-test"
        assert "passed" in result.output

    def test_requires_jenkins_host(self, mocker):
        _patch_common(mocker, config=_make_config(jenkins_host=None))
        result = CliRunner().invoke(
            main, ["result", "--refs", "r", "--projects", "p", "--build-number", "1"]
        )
        assert result.exit_code != 0
        assert "jenkins_host" in result.output


class TestHistoryAndStats:
    def test_history_requires_store(self, mocker):
        mocker.patch("presubmit_core.config.load_config", return_value=_make_config())
        mocker.patch("presubmit_cli.cli._build_store", return_value=NoOpStore())
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code != 0
        assert "No store configured" in result.output

    def test_history_empty(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code == 0
        assert "No dispatch records found" in result.output

    def test_history_filters_by_cl(self, mocker):
        _, store = _patch_common(mocker, records=[_record()])
        result = CliRunner().invoke(main, ["history", "--cl", "1000"])
        assert result.exit_code == 0, result.output
        store.list_dispatches.assert_called_once_with(cl_number=1000)
        assert "1000" in result.output

    def test_stats(self, mocker):
        records = [
            _record(),
            _record(cl_numbers=(1001, 1002), outcome="SKIP", reason="non-google owner", tests=()),
            _record(outcome="FAIL", reason="could not start presubmit-test"),
        ]
        _patch_common(mocker, records=records)
        result = CliRunner().invoke(main, ["stats"])
        assert result.exit_code == 0, result.output
        assert "CL lists handled: 3" in result.output
        assert "CLs handled:      4" in result.output
        assert "non-google owner" in result.output

    def test_stats_requires_store(self, mocker):
        mocker.patch("presubmit_core.config.load_config", return_value=_make_config())
        mocker.patch("presubmit_cli.cli._build_store", return_value=NoOpStore())
        result = CliRunner().invoke(main, ["stats"])
        assert result.exit_code != 0


class TestBuildStore:
    def test_default_is_noop(self):
        assert isinstance(_build_store(PresubmitConfig()), NoOpStore)

    def test_sqlite(self, tmp_path):
        store = _build_store(PresubmitConfig(store="sqlite", store_path=str(tmp_path / "h.db")))
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_unknown_falls_back_to_noop(self):
        assert isinstance(_build_store(PresubmitConfig(store="postgres")), NoOpStore)


class TestResolveGerritCredentials:
    def test_explicit_credentials_win(self, tmp_path):
        assert resolve_gerrit_credentials("https://h", "u", "p", netrc_file=str(tmp_path / "none")) == ("u", "p")

    def test_netrc_fallback(self, tmp_path):
        netrc_path = tmp_path / "netrc"
        netrc_path.write_text("machine vanadium-review.googlesource.com login git-bot password s3cret\n")
        netrc_path.chmod(0o600)
        assert resolve_gerrit_credentials(
            "https://vanadium-review.googlesource.com", netrc_file=str(netrc_path)
        ) == ("git-bot", "s3cret")

    def test_no_source(self, tmp_path):
        assert resolve_gerrit_credentials("https://h", netrc_file=str(tmp_path / "missing")) == (None, None)

    def test_no_url(self):
        assert resolve_gerrit_credentials(None) == (None, None)
