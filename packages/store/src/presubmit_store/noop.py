"""No-op store, the default when no store is configured.

Using a NoOpStore rather than None lets the CLI always call store.save()
without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from presubmit_store.base import BaseStore

if TYPE_CHECKING:
    from presubmit_store.models import DispatchRecord


class NoOpStore(BaseStore):
    """Silently discards all records; zero configuration required.

    Teams that want history and stats switch to SQLiteStore
    (.presubmit.yml: store: sqlite).
    """

    def save(self, record: DispatchRecord) -> None:
        pass  # intentional no-op

    def list_dispatches(self, cl_number: int | None = None) -> list[DispatchRecord]:
        return []
