import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import pandas as pd

from lenswatch.domain.models import Intervention
from lenswatch.exceptions import PersistenceError

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "machine",
    "date",
    "intervenant",
    "type",
    "lentille",
    "compteur_laser",
    "laser_on",
    "commentaire",
)


class InterventionBackend:
    """
    Persistence contract used by InterventionStore.
    Local backends are authoritative and synchronous (`live = False`); live backends push
    changes through `subscribe` and the store treats its collection as a read model.
    """

    live = False

    def list_all(self) -> list[Intervention]:  # pragma: no cover - interface
        raise NotImplementedError

    def add_one(self, record: Intervention) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def delete_one(self, intervention_id: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def clear_all(self) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def batch_add(self, records: list[Intervention]) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def subscribe(
        self,
        on_change: Callable[[list[Intervention]], None],
        on_error: Callable[[Exception], None],
    ) -> Callable[[], None]:
        raise NotImplementedError(f"{type(self).__name__} does not push changes")


class Database(InterventionBackend):
    """
    Thin wrapper over sqlite3 for intervention persistence.
    Keeps schema creation and batch inserts in one place.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self):
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self):
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS interventions (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    machine TEXT NOT NULL,
                    date TEXT NOT NULL,
                    intervenant TEXT NOT NULL,
                    type TEXT NOT NULL,
                    lentille TEXT,
                    compteur_laser TEXT,
                    laser_on TEXT,
                    commentaire TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_interventions_machine_date ON interventions (machine, date);")
            conn.commit()

    def list_all(self) -> list[Intervention]:
        # Newest stored rows first; the store applies the date ordering on top.
        query = f"SELECT {', '.join(_COLUMNS)} FROM interventions ORDER BY seq DESC"
        try:
            with self._connect() as conn:
                df = pd.read_sql_query(query, conn)
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            raise PersistenceError(f"Failed to read interventions: {exc}") from exc

        if df.empty:
            return []
        return [self._from_row(row) for row in df.to_dict("records")]

    def add_one(self, record: Intervention) -> None:
        self._write(lambda cur: self._insert(cur, [record]), f"insert {record.id}")

    def delete_one(self, intervention_id: str) -> bool:
        deleted = self._write(
            lambda cur: cur.execute("DELETE FROM interventions WHERE id = ?", (intervention_id,)).rowcount,
            f"delete {intervention_id}",
        )
        return bool(deleted)

    def clear_all(self) -> int:
        return self._write(lambda cur: cur.execute("DELETE FROM interventions").rowcount, "clear")

    def batch_add(self, records: list[Intervention]) -> None:
        # Single transaction: either every row lands or none does.
        self._write(lambda cur: self._insert(cur, records), f"batch insert of {len(records)}")

    def _write(self, action: Callable[[sqlite3.Cursor], Any], label: str) -> Any:
        conn = self._connect()
        try:
            with conn:
                return action(conn.cursor())
        except sqlite3.Error as exc:
            logger.error(f"SQLite write failed ({label}): {exc}")
            raise PersistenceError(f"Failed to {label}: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _insert(cur: sqlite3.Cursor, records: Iterable[Intervention]) -> int:
        now = datetime.now(UTC).isoformat()
        rows = [
            (
                r.id,
                r.machine,
                r.date.isoformat(),
                r.intervenant,
                r.type.value,
                r.lentille,
                r.compteur_laser,
                r.laser_on,
                r.commentaire,
                now,
            )
            for r in records
        ]
        cur.executemany(
            f"INSERT INTO interventions ({', '.join(_COLUMNS)}, created_at) VALUES ({', '.join('?' * (len(_COLUMNS) + 1))})",
            rows,
        )
        return len(rows)

    @staticmethod
    def _from_row(row: dict[str, Any]) -> Intervention:
        clean = {k: (None if _is_null(v) else v) for k, v in row.items()}
        return Intervention.model_validate(clean)


def _is_null(value: Optional[Any]) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
