"""
SQLite Output Store - File-Backed Versioned Audit Log

Persists ClinicalAIOutput records in a single sqlite3 table.

Table: clinical_ai_outputs
  - One row per (patient_id, task, version); UNIQUE on that triple.
  - JSON-encoded columns: input_context, output, model, document_ids,
    hallucination_flags.
  - Rows are never updated; updated_at == created_at.

Version assignment:
  Without an explicit version the row is written by one
  `INSERT ... SELECT COALESCE(MAX(version), 0) + 1` statement inside a
  BEGIN IMMEDIATE transaction. The UNIQUE constraint is the backstop; an
  IntegrityError on the auto path is retried a bounded number of times.

Blocking sqlite3 calls run in worker threads via asyncio.to_thread; each
call opens its own connection. Use a file path (":memory:" would give
every connection its own empty database).
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Union

from loguru import logger

from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.core.exceptions import PersistenceError, VersionConflictError
from clinical_ai_orchestration.core.models import ClinicalAIOutput
from clinical_ai_orchestration.store.output_store import BaseClinicalOutputStore, TaskLike

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------
_DDL = """
CREATE TABLE IF NOT EXISTS clinical_ai_outputs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id           TEXT    NOT NULL UNIQUE,

    -- Scope and version
    patient_id          TEXT    NOT NULL,
    task                TEXT    NOT NULL,
    version             INTEGER NOT NULL CHECK (version >= 1),

    -- Provenance (JSON)
    document_ids        TEXT    NOT NULL DEFAULT '[]',
    input_context       TEXT    NOT NULL,
    output              TEXT    NOT NULL,
    model               TEXT    NOT NULL,
    hallucination_flags TEXT    NOT NULL DEFAULT '[]',
    created_by          TEXT,

    -- Audit timestamps (ISO-8601 UTC)
    created_at          TEXT    NOT NULL,
    updated_at          TEXT    NOT NULL,

    UNIQUE (patient_id, task, version)
);

CREATE INDEX IF NOT EXISTS idx_cao_patient ON clinical_ai_outputs (patient_id, created_at);
"""

_COLUMNS = (
    "record_id, patient_id, task, version, document_ids, input_context, output, "
    "model, hallucination_flags, created_by, created_at, updated_at"
)

_INSERT_NEXT_VERSION = f"""
INSERT INTO clinical_ai_outputs ({_COLUMNS})
SELECT ?, ?, ?, COALESCE(MAX(version), 0) + 1, ?, ?, ?, ?, ?, ?, ?, ?
FROM clinical_ai_outputs
WHERE patient_id = ? AND task = ?
"""

_INSERT_EXPLICIT = f"""
INSERT INTO clinical_ai_outputs ({_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_MAX_VERSION = """
SELECT COALESCE(MAX(version), 0) AS max_version
FROM clinical_ai_outputs
WHERE patient_id = ? AND task = ?
"""

MAX_INSERT_RETRIES = 3


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class SQLiteClinicalOutputStore(BaseClinicalOutputStore):
    """
    sqlite3-backed store.

    Example:
        >>> store = SQLiteClinicalOutputStore("outputs.sqlite")
        >>> stored = await store.append(record)
        >>> [r.version for r in await store.history("P1", "soap_note")]
        [3, 2, 1]
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout: float = 5.0):
        """
        Args:
            db_path: SQLite file location; created if absent
            busy_timeout: Seconds to wait for a competing writer's lock
        """
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout
        self.init_db()
        logger.info(f"SQLiteClinicalOutputStore initialized | Path: {self._db_path}")

    # -------------------------------------------------------------------------
    # Lifecycle helpers
    # -------------------------------------------------------------------------

    def init_db(self) -> None:
        """Create the table and indexes if they do not exist. Idempotent."""
        try:
            with self.get_connection() as conn:
                conn.executescript(_DDL)
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to initialize output store: {e}", context={"path": str(self._db_path)}
            )

    @contextmanager
    def get_connection(self, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """
        Yield a connection that commits on clean exit and rolls back on error.

        Args:
            immediate: Take the write lock up front (BEGIN IMMEDIATE)
        """
        conn = sqlite3.connect(
            str(self._db_path), timeout=self._busy_timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Write operations
    # -------------------------------------------------------------------------

    def _row_values(self, record: ClinicalAIOutput, record_id: str) -> List[Any]:
        data = record.to_dict()
        created_at = record.created_at.isoformat()
        return [
            record_id,
            record.patient_id,
            record.task.value,
            _dumps(data["documentIds"]),
            _dumps(data["inputContext"]),
            _dumps(data["output"]),
            _dumps(data["model"]),
            _dumps(data["hallucinationFlags"]),
            record.created_by,
            created_at,
            created_at,
        ]

    def _append_sync(self, record: ClinicalAIOutput) -> ClinicalAIOutput:
        scope_patient, scope_task = self._scope(record.patient_id, record.task)
        record_id = record.record_id or self._new_record_id()
        values = self._row_values(record, record_id)

        if record.version is not None:
            try:
                with self.get_connection(immediate=True) as conn:
                    current_max = conn.execute(
                        _MAX_VERSION, (scope_patient, scope_task.value)
                    ).fetchone()["max_version"]
                    self._check_explicit_version(record, current_max)
                    conn.execute(_INSERT_EXPLICIT, values[:3] + [record.version] + values[3:])
            except sqlite3.IntegrityError as e:
                raise VersionConflictError(record.patient_id, scope_task.value, record.version) from e
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to store output: {e}") from e
            return record.with_version(record.version, record_id)

        last_error: Optional[Exception] = None
        for attempt in range(1, MAX_INSERT_RETRIES + 1):
            try:
                with self.get_connection(immediate=True) as conn:
                    conn.execute(_INSERT_NEXT_VERSION, values + [scope_patient, scope_task.value])
                    version = conn.execute(
                        "SELECT version FROM clinical_ai_outputs WHERE record_id = ?",
                        (record_id,),
                    ).fetchone()["version"]
                return record.with_version(version, record_id)
            except sqlite3.IntegrityError as e:
                logger.warning(
                    f"Version conflict on append, retrying | Patient: {scope_patient} | "
                    f"Task: {scope_task.value} | Attempt: {attempt}/{MAX_INSERT_RETRIES}"
                )
                last_error = e
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to store output: {e}") from e

        raise PersistenceError(
            f"Could not assign a version after {MAX_INSERT_RETRIES} attempts: {last_error}",
            context={"patient_id": scope_patient, "task": scope_task.value},
        )

    async def append(self, record: ClinicalAIOutput) -> ClinicalAIOutput:
        """
        Persist `record`, assigning the next version when none is set.

        Raises:
            VersionConflictError: If an explicit version is already taken
            PersistenceError: On I/O failure or exhausted retries
        """
        stored = await asyncio.to_thread(self._append_sync, record)
        logger.debug(
            f"Stored output | Patient: {stored.patient_id} | Task: {stored.task.value} | "
            f"Version: {stored.version}"
        )
        return stored

    # -------------------------------------------------------------------------
    # Read operations
    # -------------------------------------------------------------------------

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ClinicalAIOutput:
        data: Dict[str, Any] = {
            "id": row["record_id"],
            "patientId": row["patient_id"],
            "task": row["task"],
            "version": row["version"],
            "documentIds": json.loads(row["document_ids"]),
            "inputContext": json.loads(row["input_context"]),
            "output": json.loads(row["output"]),
            "model": json.loads(row["model"]),
            "hallucinationFlags": json.loads(row["hallucination_flags"]),
            "createdBy": row["created_by"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
        return ClinicalAIOutput.from_dict(data)

    def _query(self, sql: str, params: tuple) -> List[ClinicalAIOutput]:
        try:
            with self.get_connection() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read outputs: {e}") from e
        return [self._from_row(row) for row in rows]

    def _next_version_sync(self, patient_id: str, task: ClinicalTask) -> int:
        try:
            with self.get_connection() as conn:
                current_max = conn.execute(_MAX_VERSION, (patient_id, task.value)).fetchone()[
                    "max_version"
                ]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read outputs: {e}") from e
        return current_max + 1

    async def next_version(self, patient_id: str, task: TaskLike) -> int:
        patient_id, task = self._scope(patient_id, task)
        return await asyncio.to_thread(self._next_version_sync, patient_id, task)

    async def latest(self, patient_id: str, task: TaskLike) -> Optional[ClinicalAIOutput]:
        patient_id, task = self._scope(patient_id, task)
        rows = await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM clinical_ai_outputs "
            "WHERE patient_id = ? AND task = ? ORDER BY version DESC LIMIT 1",
            (patient_id, task.value),
        )
        return rows[0] if rows else None

    async def latest_per_task(self, patient_id: str) -> Dict[ClinicalTask, ClinicalAIOutput]:
        rows = await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM clinical_ai_outputs o "
            "WHERE patient_id = ? AND version = ("
            "  SELECT MAX(version) FROM clinical_ai_outputs i "
            "  WHERE i.patient_id = o.patient_id AND i.task = o.task"
            ") ORDER BY task",
            (str(patient_id),),
        )
        return {record.task: record for record in rows}

    async def history(self, patient_id: str, task: TaskLike) -> List[ClinicalAIOutput]:
        patient_id, task = self._scope(patient_id, task)
        return await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM clinical_ai_outputs "
            "WHERE patient_id = ? AND task = ? ORDER BY version DESC",
            (patient_id, task.value),
        )

    async def recent(
        self,
        patient_id: Optional[str] = None,
        task: Optional[TaskLike] = None,
        limit: int = 20,
    ) -> List[ClinicalAIOutput]:
        clauses: List[str] = []
        params: List[Any] = []
        if patient_id is not None:
            clauses.append("patient_id = ?")
            params.append(str(patient_id))
        if task is not None:
            clauses.append("task = ?")
            params.append(ClinicalTask.from_value(task).value)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        params.append(int(limit))
        return await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM clinical_ai_outputs {where}"
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            tuple(params),
        )
