"""Side-effect interfaces used by the dispatch orchestrator.

CLsSender never talks to Gerrit or Jenkins directly. It is handed one
implementation of each interface below, so the dispatch decisions can be
exercised with plain mocks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Mapping, Sequence

if TYPE_CHECKING:
    from presubmit_core.gerrit.change import Change


class BuildRemover(ABC):
    @abstractmethod
    def remove_outdated_builds(self, cl_patchsets: Mapping[int, int]) -> list[Exception]:
        """Cancel queued and running builds superseded by ``cl_patchsets``.

        Returns the errors met along the way; never raises for a single
        build that could not be inspected or cancelled.
        """


class BuildTrigger(ABC):
    @abstractmethod
    def add_presubmit_test_build(self, cl_list: Sequence[Change], tests: Sequence[str]) -> None:
        """Schedule one presubmit build for ``cl_list``. Raises on failure."""


class MessagePoster(ABC):
    @abstractmethod
    def post_message(self, message: str, refs: Sequence[str], success: bool) -> None:
        """Post ``message`` on every ref; ``success`` picks the Verified vote."""
