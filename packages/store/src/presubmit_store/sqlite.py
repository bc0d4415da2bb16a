"""SQLiteStore: local file-based dispatch history.

Why SQLite:
- Batteries included: ships with Python, no extra dependencies.
- The poller runs on a single Jenkins host; a file next to the snapshot is
  all the infrastructure history needs.

Schema:
  dispatches   one row per CL list handled by a poll round
  dispatch_cls one row per CL of that list, so history can be filtered
               by CL number with an index instead of a table scan
"""

from __future__ import annotations

import json
import sqlite3

from presubmit_store.base import BaseStore
from presubmit_store.models import DispatchRecord

_SCHEMA = """
CREATE TABLE IF NOT EXISTS dispatches (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    refs_json      TEXT NOT NULL DEFAULT '[]',
    projects_json  TEXT NOT NULL DEFAULT '[]',
    tests_json     TEXT NOT NULL DEFAULT '[]',
    outcome        TEXT NOT NULL,
    reason         TEXT,
    dispatched_at  TEXT
);
CREATE TABLE IF NOT EXISTS dispatch_cls (
    dispatch_id    INTEGER NOT NULL REFERENCES dispatches (id),
    cl_number      INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_dispatch_cls_cl ON dispatch_cls (cl_number);
"""


class SQLiteStore(BaseStore):
    """Stores dispatch history in a local SQLite database file.

    The database file path defaults to `.presubmit.db` in the current working
    directory. Configure via .presubmit.yml: `store_path: /path/to/presubmit.db`.
    """

    def __init__(self, db_path: str = ".presubmit.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, record: DispatchRecord) -> None:
        cursor = self._conn.execute(
            """
            INSERT INTO dispatches
              (refs_json, projects_json, tests_json, outcome, reason, dispatched_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                json.dumps(record.refs),
                json.dumps(record.projects),
                json.dumps(record.tests),
                record.outcome,
                record.reason,
                record.dispatched_at,
            ),
        )
        self._conn.executemany(
            "INSERT INTO dispatch_cls (dispatch_id, cl_number) VALUES (?, ?)",
            [(cursor.lastrowid, cl) for cl in record.cl_numbers],
        )
        self._conn.commit()

    def list_dispatches(self, cl_number: int | None = None) -> list[DispatchRecord]:
        if cl_number is not None:
            rows = self._conn.execute(
                """
                SELECT d.* FROM dispatches d
                JOIN dispatch_cls c ON c.dispatch_id = d.id
                WHERE c.cl_number = ?
                ORDER BY d.dispatched_at, d.id
                """,
                (cl_number,),
            ).fetchall()
        else:
            rows = self._conn.execute("SELECT * FROM dispatches ORDER BY dispatched_at, id").fetchall()

        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    def _row_to_record(self, row: sqlite3.Row) -> DispatchRecord:
        cl_rows = self._conn.execute(
            "SELECT cl_number FROM dispatch_cls WHERE dispatch_id = ? ORDER BY rowid",
            (row["id"],),
        ).fetchall()
        return DispatchRecord(
            refs=json.loads(row["refs_json"] or "[]"),
            cl_numbers=[r["cl_number"] for r in cl_rows],
            projects=json.loads(row["projects_json"] or "[]"),
            outcome=row["outcome"],
            reason=row["reason"] or "",
            dispatched_at=row["dispatched_at"] or "",
            tests=json.loads(row["tests_json"] or "[]"),
        )
