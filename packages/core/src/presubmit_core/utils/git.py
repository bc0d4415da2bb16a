"""Thin subprocess wrapper around the git commands presubmit needs."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from presubmit_core.errors import GitError

logger = logging.getLogger(__name__)

PRESUBMIT_BRANCH_PREFIX = "presubmit_"


def presubmit_branch_name(ref: str) -> str:
    return PRESUBMIT_BRANCH_PREFIX + ref


class Git:
    def __init__(self, repo_dir: str | Path):
        self.repo_dir = Path(repo_dir)

    def _run(self, *args: str) -> str:
        cmd = ["git", *args]
        result = subprocess.run(cmd, cwd=self.repo_dir, capture_output=True, text=True)
        if result.returncode != 0:
            raise GitError(cmd, result.returncode, (result.stdout + result.stderr).strip())
        return result.stdout

    def create_and_checkout_branch(self, name: str) -> None:
        self._run("checkout", "-b", name)

    def checkout(self, name: str) -> None:
        self._run("checkout", name)

    def pull(self, remote: str, ref: str) -> None:
        self._run("pull", remote, ref)

    def branches(self) -> list[str]:
        out = self._run("branch", "--format=%(refname:short)")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def delete_branch(self, name: str) -> None:
        self._run("branch", "-D", name)

    def reset_hard(self) -> None:
        self._run("reset", "--hard", "HEAD")

    def cleanup_presubmit_branches(self, base_branch: str = "master") -> None:
        """Return to ``base_branch`` and delete every presubmit test branch."""
        self.reset_hard()
        self.checkout(base_branch)
        for branch in self.branches():
            if branch.startswith(PRESUBMIT_BRANCH_PREFIX):
                self.delete_branch(branch)
                logger.debug("Deleted %s in %s", branch, self.repo_dir)
