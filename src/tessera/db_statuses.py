"""StatusesMixin: the fixed status vocabulary used by task-like items."""

from __future__ import annotations

import sqlite3

from tessera.db_base import DBMixinProtocol
from tessera.errors import NotFoundError
from tessera.types.core import StatusRecord

DEFAULT_STATUS = "Open"

# (name, is_closed) in display order.
BUILTIN_STATUSES: tuple[tuple[str, bool], ...] = (
    ("Open", False),
    ("Specification", False),
    ("Waiting", False),
    ("Ready", False),
    ("In Progress", False),
    ("Review", False),
    ("Testing", False),
    ("Pending", False),
    ("Completed", True),
    ("Closed", True),
    ("Canceled", True),
    ("Rejected", True),
)


class StatusesMixin(DBMixinProtocol):
    def _seed_statuses(self) -> int:
        count = 0
        for order, (name, is_closed) in enumerate(BUILTIN_STATUSES, start=1):
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO statuses (id, name, is_closed, sort_order) VALUES (?, ?, ?, ?)",
                (order, name, int(is_closed), order),
            )
            count += cursor.rowcount
        return count

    @staticmethod
    def _status_record(row: sqlite3.Row) -> StatusRecord:
        return StatusRecord(
            id=row["id"],
            name=row["name"],
            is_closed=bool(row["is_closed"]),
            sort_order=row["sort_order"],
        )

    def get_statuses(self) -> list[StatusRecord]:
        rows = self.conn.execute("SELECT * FROM statuses ORDER BY sort_order, id").fetchall()
        return [self._status_record(r) for r in rows]

    def get_status_by_id(self, status_id: int) -> StatusRecord:
        row = self.conn.execute("SELECT * FROM statuses WHERE id = ?", (status_id,)).fetchone()
        if row is None:
            msg = f"Status not found: {status_id}"
            raise NotFoundError(msg, key=str(status_id))
        return self._status_record(row)

    def get_status_by_name(self, name: str) -> StatusRecord:
        row = self.conn.execute("SELECT * FROM statuses WHERE name = ?", (name,)).fetchone()
        if row is None:
            msg = f"Unknown status: '{name}'. Use the 'get_statuses' tool to see available statuses."
            raise NotFoundError(msg, key=name)
        return self._status_record(row)

    def get_closed_status_ids(self) -> list[int]:
        rows = self.conn.execute("SELECT id FROM statuses WHERE is_closed = 1 ORDER BY id").fetchall()
        return [r["id"] for r in rows]

    def is_closed_status(self, status_id: int) -> bool:
        return self.get_status_by_id(status_id)["is_closed"]
