"""
Clinical Output Store - Versioned, Append-Only Audit Log

This module defines the store interface for persisted AI outputs and an
in-process implementation.

Architecture:
    ClinicalOutputStore (Protocol)
    ├── InMemoryClinicalOutputStore → Dict-backed, per-scope asyncio.Lock
    └── SQLiteClinicalOutputStore   → sqlite3 file, UNIQUE version constraint
                                      (see sqlite_store.py)

Version Invariant:
    For every (patient_id, task) scope the stored versions are exactly
    1..N. Assignment is a read-and-increment performed atomically with
    the insert, so concurrent appends never compute the same version.

Usage:
    store = InMemoryClinicalOutputStore()
    stored = await store.append(record)        # version assigned
    latest = await store.latest("P1", "soap_note")
    history = await store.history("P1", "soap_note")  # version descending
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable

from loguru import logger

from clinical_ai_orchestration.core.enums import ClinicalTask
from clinical_ai_orchestration.core.exceptions import PersistenceError, VersionConflictError
from clinical_ai_orchestration.core.models import ClinicalAIOutput

TaskLike = Union[ClinicalTask, str]
Scope = Tuple[str, ClinicalTask]


# =============================================================================
# STAGE 1: STORE PROTOCOL (INTERFACE)
# =============================================================================


@runtime_checkable
class ClinicalOutputStore(Protocol):
    """
    Interface every output store implements.

    Required Methods:
        next_version(patient_id, task)   → Version the next append would get
        append(record)                   → Persist, assigning a version
        latest(patient_id, task)         → Highest version or None
        latest_per_task(patient_id)      → {task: latest record}
        history(patient_id, task)        → All versions, descending
        recent(patient_id, task, limit)  → Newest records by creation time
    """

    async def next_version(self, patient_id: str, task: TaskLike) -> int:
        ...

    async def append(self, record: ClinicalAIOutput) -> ClinicalAIOutput:
        ...

    async def latest(self, patient_id: str, task: TaskLike) -> Optional[ClinicalAIOutput]:
        ...

    async def latest_per_task(self, patient_id: str) -> Dict[ClinicalTask, ClinicalAIOutput]:
        ...

    async def history(self, patient_id: str, task: TaskLike) -> List[ClinicalAIOutput]:
        ...

    async def recent(
        self,
        patient_id: Optional[str] = None,
        task: Optional[TaskLike] = None,
        limit: int = 20,
    ) -> List[ClinicalAIOutput]:
        ...


# =============================================================================
# STAGE 2: SHARED BASE
# =============================================================================


class BaseClinicalOutputStore(ABC):
    """Scope normalization and explicit-version checks shared by stores."""

    @staticmethod
    def _scope(patient_id: str, task: TaskLike) -> Scope:
        if not patient_id:
            raise PersistenceError("patient_id is required")
        return str(patient_id), ClinicalTask.from_value(task)

    @staticmethod
    def _new_record_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _check_explicit_version(record: ClinicalAIOutput, current_max: int) -> None:
        """
        An explicit version must be free and must not leave a gap.

        Raises:
            VersionConflictError: If the version is already taken
            PersistenceError: If the version skips past max + 1
        """
        if record.version <= current_max:
            raise VersionConflictError(record.patient_id, record.task.value, record.version)
        if record.version > current_max + 1:
            raise PersistenceError(
                f"Version {record.version} would leave a gap after {current_max}",
                context={"patient_id": record.patient_id, "task": record.task.value},
            )

    @abstractmethod
    async def append(self, record: ClinicalAIOutput) -> ClinicalAIOutput:
        ...


# =============================================================================
# STAGE 3: IN-MEMORY IMPLEMENTATION
# =============================================================================


class InMemoryClinicalOutputStore(BaseClinicalOutputStore):
    """
    Dict-backed store for tests and single-process deployments.

    What it does:
        Keeps records per (patient_id, task) in version order. A lock per
        scope makes "read max, insert max + 1" one atomic step; different
        scopes never block each other.

    Example:
        >>> store = InMemoryClinicalOutputStore()
        >>> first = await store.append(record)
        >>> second = await store.append(record)
        >>> (first.version, second.version)
        (1, 2)
    """

    def __init__(self):
        self._records: Dict[Scope, List[ClinicalAIOutput]] = {}
        self._locks: Dict[Scope, asyncio.Lock] = {}
        logger.info("InMemoryClinicalOutputStore initialized")

    def _lock_for(self, scope: Scope) -> asyncio.Lock:
        lock = self._locks.get(scope)
        if lock is None:
            lock = self._locks.setdefault(scope, asyncio.Lock())
        return lock

    async def next_version(self, patient_id: str, task: TaskLike) -> int:
        scope = self._scope(patient_id, task)
        return len(self._records.get(scope, [])) + 1

    async def append(self, record: ClinicalAIOutput) -> ClinicalAIOutput:
        """
        Persist `record`, assigning the next version when none is set.

        Raises:
            VersionConflictError: If an explicit version is already taken
        """
        scope = self._scope(record.patient_id, record.task)
        async with self._lock_for(scope):
            records = self._records.setdefault(scope, [])
            current_max = len(records)
            if record.version is None:
                version = current_max + 1
            else:
                self._check_explicit_version(record, current_max)
                version = record.version

            stored = record.with_version(version, record.record_id or self._new_record_id())
            records.append(stored)

        logger.debug(
            f"Stored output | Patient: {stored.patient_id} | Task: {stored.task.value} | "
            f"Version: {stored.version}"
        )
        return stored

    async def latest(self, patient_id: str, task: TaskLike) -> Optional[ClinicalAIOutput]:
        records = self._records.get(self._scope(patient_id, task))
        return records[-1] if records else None

    async def latest_per_task(self, patient_id: str) -> Dict[ClinicalTask, ClinicalAIOutput]:
        patient_id = str(patient_id)
        return {
            task: records[-1]
            for (pid, task), records in self._records.items()
            if pid == patient_id and records
        }

    async def history(self, patient_id: str, task: TaskLike) -> List[ClinicalAIOutput]:
        records = self._records.get(self._scope(patient_id, task), [])
        return list(reversed(records))

    async def recent(
        self,
        patient_id: Optional[str] = None,
        task: Optional[TaskLike] = None,
        limit: int = 20,
    ) -> List[ClinicalAIOutput]:
        wanted_task = ClinicalTask.from_value(task) if task is not None else None
        selected = [
            record
            for (pid, scope_task), records in self._records.items()
            if (patient_id is None or pid == str(patient_id))
            and (wanted_task is None or scope_task is wanted_task)
            for record in records
        ]
        selected.sort(key=lambda r: (r.created_at, r.version), reverse=True)
        return selected[:limit]
