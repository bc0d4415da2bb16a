"""test command: run one presubmit test inside a Jenkins build."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from presubmit_core.errors import PresubmitError
from presubmit_core.result import AxisValues, ResultStatus
from presubmit_core.runner import TestRunner

console = Console()

_STATUS_STYLE = {
    ResultStatus.PASSED: "green",
    ResultStatus.SKIPPED: "dim",
}


def results_dir(workspace: str, build_number: int, test_name: str, arch: str = "", os_name: str = "") -> Path:
    """Where one configuration of a presubmit build leaves its status files.

    The result step reads everything below ``test_results/<build_number>``,
    so each test part and axis combination gets its own directory under it.
    """
    name = "_".join(v for v in (test_name, arch, os_name) if v)
    return Path(workspace) / "test_results" / str(build_number) / name


@click.command("test")
@click.option("--refs", required=True, envvar="REFS", help="Colon-separated refs of the CLs to test.")
@click.option("--projects", required=True, envvar="PROJECTS", help="Colon-separated projects, one per ref.")
@click.option("--test", "test_name", required=True, envvar="TEST", help="Test to run, optionally with a -partN suffix.")
@click.option("--build-number", type=int, required=True, envvar="BUILD_NUMBER", help="Presubmit build number.")
@click.option("--workspace", default=".", show_default=True, envvar="WORKSPACE", help="Jenkins workspace directory.")
@click.option("--arch", default="", envvar="ARCH", help="Architecture axis value of this configuration.")
@click.option("--os", "os_name", default="", envvar="OS", help="OS axis value of this configuration.")
@click.pass_context
def test_cmd(
    ctx,
    refs: str,
    projects: str,
    test_name: str,
    build_number: int,
    workspace: str,
    arch: str,
    os_name: str,
):
    """Pull the CLs into their checkouts and run one test against them.

    Writes a status file (and an xUnit report for failures that happen
    before the test runs) for the `result` command to pick up.
    """
    config = ctx.obj["config"]
    runner = TestRunner(
        config,
        results_dir(workspace, build_number, test_name, arch, os_name),
        axis=AxisValues(arch=arch, os=os_name),
    )

    try:
        info = runner.run(refs.split(":"), projects.split(":"), test_name)
    except PresubmitError as e:
        raise click.ClickException(str(e)) from e

    style = _STATUS_STYLE.get(info.result.status, "red")
    console.print(f"{info.test_name}: [{style}]{info.result.status.value}[/{style}]")
