import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from presubmit_core.errors import ConfigError
from presubmit_core.outdated import GREATER_OR_EQUAL, STRICTLY_GREATER

DEFAULT_CONFIG: dict = {
    "gerrit_url": None,
    "query": "(status:open -project:experimental)",
    "jenkins_host": None,  # None = query and snapshot only, never dispatch
    "job": "presubmit-test",
    "log_file": os.path.join("~", "tmp", "presubmit_log"),
    "trusted_owner_domain": "google.com",
    "outdated_policy": GREATER_OR_EQUAL,
    "projects": {},  # gerrit project -> local checkout path
    "project_tests": {},  # gerrit project -> list of test names or group names
    "test_groups": {},  # group name -> list of test names
    "test_parts": {},  # test name -> list of part selectors
    "matrix_jobs": {},  # job name -> {"has_arch": bool, "has_os": bool, "has_parts": bool, "show_os": bool}
    "dashboard_host": None,
    "git_host": None,
    "test_command": ["jiri-test", "run"],
    "tools_command": None,
    "test_timeout": 55 * 60,
    "store": "noop",
    "store_path": ".presubmit.db",
}


@dataclass
class PresubmitConfig:
    """Everything a poll round, test run or result report needs to know.

    Built once by load_config() and threaded through every core entry point,
    so nothing in presubmit_core reads environment variables or module-level
    settings on its own.
    """

    gerrit_url: Optional[str] = None
    query: str = DEFAULT_CONFIG["query"]
    jenkins_host: Optional[str] = None
    job: str = DEFAULT_CONFIG["job"]
    log_file: str = DEFAULT_CONFIG["log_file"]
    trusted_owner_domain: str = DEFAULT_CONFIG["trusted_owner_domain"]
    outdated_policy: str = GREATER_OR_EQUAL
    projects: dict = field(default_factory=dict)
    project_tests: dict = field(default_factory=dict)
    test_groups: dict = field(default_factory=dict)
    test_parts: dict = field(default_factory=dict)
    matrix_jobs: dict = field(default_factory=dict)
    dashboard_host: Optional[str] = None
    git_host: Optional[str] = None
    test_command: list = field(default_factory=lambda: list(DEFAULT_CONFIG["test_command"]))
    tools_command: Optional[list] = None
    test_timeout: int = DEFAULT_CONFIG["test_timeout"]
    store: str = "noop"
    store_path: str = DEFAULT_CONFIG["store_path"]

    # Credentials, resolved from the environment and never read from the file.
    gerrit_username: Optional[str] = None
    gerrit_password: Optional[str] = None
    jenkins_token: Optional[str] = None

    @property
    def log_path(self) -> Path:
        return Path(self.log_file).expanduser()

    def owner_is_trusted(self, email: str) -> bool:
        return email.endswith("@" + self.trusted_owner_domain.lstrip("@"))


_CREDENTIAL_FIELDS = {"gerrit_username", "gerrit_password", "jenkins_token"}


def load_config(config_path: str = ".presubmit.yml", cli_overrides: Optional[dict] = None) -> PresubmitConfig:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .presubmit.yml in the current directory
      3. CLI argument overrides
    Credentials always come from the environment.
    """
    config = {key: _copy(value) for key, value in DEFAULT_CONFIG.items()}

    path = Path(config_path)
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {config_path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    known = {f.name for f in fields(PresubmitConfig)} - _CREDENTIAL_FIELDS
    unknown = sorted(set(config) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")

    _validate(config)

    return PresubmitConfig(
        **config,
        gerrit_username=os.environ.get("GERRIT_USERNAME"),
        gerrit_password=os.environ.get("GERRIT_PASSWORD"),
        jenkins_token=os.environ.get("JENKINS_TOKEN"),
    )


def _copy(value):
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value


def _validate(config: dict) -> None:
    if config["outdated_policy"] not in (GREATER_OR_EQUAL, STRICTLY_GREATER):
        raise ConfigError(
            f"outdated_policy must be {GREATER_OR_EQUAL!r} or {STRICTLY_GREATER!r}, "
            f"got {config['outdated_policy']!r}"
        )
    for key in ("projects", "project_tests", "test_groups", "test_parts", "matrix_jobs"):
        if not isinstance(config[key], dict):
            raise ConfigError(f"{key} must be a mapping, got {type(config[key]).__name__}")
    for key in ("test_command", "tools_command"):
        value = config[key]
        if isinstance(value, str):
            config[key] = value.split()
        elif value is not None and not isinstance(value, list):
            raise ConfigError(f"{key} must be a list or a string")
    try:
        config["test_timeout"] = int(config["test_timeout"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"test_timeout must be a number of seconds: {e}") from e
