"""CLI entry point for presubmit.

Commands:
  query    poll Gerrit once and dispatch new CLs to the presubmit job
  test     run one presubmit test inside a Jenkins build
  result   post the results of a presubmit build back to Gerrit
  history  display past dispatch records from the configured store
  stats    aggregate dispatch outcomes across history
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from presubmit_cli.commands.history import history_cmd
from presubmit_cli.commands.query import query_cmd
from presubmit_cli.commands.result import result_cmd
from presubmit_cli.commands.stats import stats_cmd
from presubmit_cli.commands.test import test_cmd

console = Console()


def _build_store(config):
    """Instantiate the configured store from .presubmit.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .presubmit.db)
      (default)     → NoOpStore  (no history)

    This factory lives in cli.py so neither presubmit_core nor presubmit_store
    know about the CLI config format.
    """
    from presubmit_store.noop import NoOpStore

    if config.store == "sqlite":
        from presubmit_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.store_path)

    if config.store != "noop":
        console.print(f"[yellow]Unknown store {config.store!r}. Falling back to no store.[/yellow]")
    return NoOpStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("presubmit"),
    prog_name="presubmit",
)
@click.option(
    "--config",
    "config_path",
    default=".presubmit.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRESUBMIT_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Run Gerrit presubmit tests on Jenkins."""
    from presubmit_core.config import load_config
    from presubmit_core.errors import ConfigError
    from presubmit_cli.auth import resolve_gerrit_credentials

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[PRESUBMIT] %(message)s",
    )

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    config.gerrit_username, config.gerrit_password = resolve_gerrit_credentials(
        config.gerrit_url, config.gerrit_username, config.gerrit_password
    )

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(query_cmd)
main.add_command(test_cmd)
main.add_command(result_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
