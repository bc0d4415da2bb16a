"""result command: post the results of a presubmit build back to Gerrit."""

from __future__ import annotations

import click
from rich.console import Console

from presubmit_core.actions.gerrit import GerritMessagePoster
from presubmit_core.errors import PresubmitError
from presubmit_core.gerrit.client import GerritClient
from presubmit_core.jenkins.client import JenkinsClient
from presubmit_core.reporter import report_results

console = Console()


@click.command("result")
@click.option("--refs", required=True, envvar="REFS", help="Colon-separated refs of the tested CLs.")
@click.option("--projects", required=True, envvar="PROJECTS", help="Colon-separated projects, one per ref.")
@click.option("--tests", "all_tests", default="", envvar="TESTS", help="Space-separated tests the build ran.")
@click.option("--build-number", type=int, required=True, envvar="BUILD_NUMBER", help="Presubmit build number.")
@click.option("--workspace", default=".", show_default=True, envvar="WORKSPACE", help="Jenkins workspace directory.")
@click.pass_context
def result_cmd(ctx, refs: str, projects: str, all_tests: str, build_number: int, workspace: str):
    """Summarise a presubmit build on its CLs and submit them if it passed."""
    config = ctx.obj["config"]
    if not config.gerrit_url or not config.jenkins_host:
        raise click.UsageError("gerrit_url and jenkins_host must both be set in .presubmit.yml.")

    gerrit = GerritClient(config.gerrit_url, config.gerrit_username, config.gerrit_password)
    jenkins = JenkinsClient(config.jenkins_host, config.jenkins_token)

    try:
        passed = report_results(
            config,
            jenkins,
            gerrit,
            GerritMessagePoster(gerrit, config.query),
            workspace=workspace,
            build_number=build_number,
            refs=refs.split(":"),
            projects=projects.split(":"),
            all_tests=all_tests,
        )
    except PresubmitError as e:
        raise click.ClickException(str(e)) from e

    if passed:
        console.print(f"[green]Build {build_number} passed.[/green]")
    else:
        console.print(f"[red]Build {build_number} has new failures.[/red]")
