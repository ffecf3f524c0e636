"""
Store Layer - Versioned Clinical Output Persistence

Submodules:
    output_store.py → ClinicalOutputStore protocol and in-memory store
    sqlite_store.py → sqlite3-backed store
"""

from clinical_ai_orchestration.store.output_store import (
    ClinicalOutputStore,
    BaseClinicalOutputStore,
    InMemoryClinicalOutputStore,
)
from clinical_ai_orchestration.store.sqlite_store import SQLiteClinicalOutputStore

__all__ = [
    "ClinicalOutputStore",
    "BaseClinicalOutputStore",
    "InMemoryClinicalOutputStore",
    "SQLiteClinicalOutputStore",
]
