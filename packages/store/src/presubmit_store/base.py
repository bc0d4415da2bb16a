"""Abstract store interface.

Any storage backend for dispatch history (SQLite, Postgres, S3) implements
this interface. The CLI depends on BaseStore, not on a concrete backend,
so backends are swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from presubmit_store.models import DispatchRecord


class BaseStore(ABC):
    """Pluggable persistence layer for dispatch history.

    Implementations must work unattended on the Jenkins host running the
    poller: all configuration comes through constructor arguments.
    """

    @abstractmethod
    def save(self, record: DispatchRecord) -> None:
        """Persist one dispatch record."""

    @abstractmethod
    def list_dispatches(self, cl_number: int | None = None) -> list[DispatchRecord]:
        """Return dispatch records oldest first, optionally only those touching a CL.

        Returns an empty list if no records exist; never raises.
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup override this.
        """
