"""
Backing stores for learned corrections.

Every store is keyed twice: by ``id`` for point lookups and by
``CorrectionKey(pattern, match_type)`` for the dedup lookup done when a
pattern is taught. Writes use optimistic compare-and-swap on ``version``:

    put(rule)                       insert, fails if id or key exists
    put(rule, expected_version=n)   update, fails unless stored version == n

Both raise WriteConflict on failure; callers reload and retry.
"""
from __future__ import annotations

import json
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from tagledger.models.corrections import Correction, CorrectionKey, MatchType
from tagledger.services.db import DB
from tagledger.services.errors import WriteConflict


DB_PATH = os.getenv("TAGLEDGER_DB_PATH", os.path.join(os.getcwd(), "tagledger.db"))

Predicate = Callable[[Correction], bool]


class CorrectionBackend(ABC):
    """Durable keyed storage for corrections."""

    @abstractmethod
    def get(self, correction_id: str) -> Optional[Correction]:
        """Point lookup by id."""

    @abstractmethod
    def find(self, pattern: str, match_type: MatchType) -> Optional[Correction]:
        """Lookup by the (pattern, match_type) dedup key."""

    @abstractmethod
    def scan(self, predicate: Optional[Predicate] = None) -> List[Correction]:
        """Snapshot of every stored rule satisfying ``predicate``."""

    @abstractmethod
    def put(self, correction: Correction, expected_version: Optional[int] = None) -> Correction:
        """Insert or compare-and-swap a rule. Returns the stored record."""

    @abstractmethod
    def delete(self, correction_id: str, expected_version: Optional[int] = None) -> bool:
        """Remove a rule. Returns False if it was not stored."""


class InMemoryPatternStore(CorrectionBackend):
    """
    Process-local store. Each instance has its own state.

    Rules are copied on the way in and out, so callers never hold a
    reference to the stored record.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[str, Correction] = {}
        self._keys: Dict[CorrectionKey, str] = {}

    def get(self, correction_id: str) -> Optional[Correction]:
        with self._lock:
            return _detached(self._rows.get(correction_id))

    def find(self, pattern: str, match_type: MatchType) -> Optional[Correction]:
        with self._lock:
            correction_id = self._keys.get(CorrectionKey(pattern, MatchType(match_type)))
            return _detached(self._rows.get(correction_id)) if correction_id else None

    def scan(self, predicate: Optional[Predicate] = None) -> List[Correction]:
        with self._lock:
            rows = [_detached(row) for row in self._rows.values()]
        if predicate is None:
            return rows
        return [row for row in rows if predicate(row)]

    def put(self, correction: Correction, expected_version: Optional[int] = None) -> Correction:
        with self._lock:
            current = self._rows.get(correction.id)
            if expected_version is None:
                if current is not None or correction.key in self._keys:
                    raise WriteConflict(correction.id, "Correction already exists")
                stored = correction.model_copy(update={"version": 1}, deep=True)
                self._keys[stored.key] = stored.id
            else:
                if current is None or current.version != expected_version:
                    raise WriteConflict(correction.id)
                stored = correction.model_copy(
                    update={
                        "pattern": current.pattern,
                        "match_type": current.match_type,
                        "version": expected_version + 1,
                    },
                    deep=True,
                )
            self._rows[stored.id] = stored
            return _detached(stored)

    def delete(self, correction_id: str, expected_version: Optional[int] = None) -> bool:
        with self._lock:
            current = self._rows.get(correction_id)
            if current is None:
                return False
            if expected_version is not None and current.version != expected_version:
                raise WriteConflict(correction_id)
            del self._rows[correction_id]
            self._keys.pop(current.key, None)
            return True


_COLUMNS = (
    "id, pattern, match_type, tags, entity_id, entity_name, location, online, "
    "transaction_type, confidence, times_applied, created_at, updated_at, "
    "last_used_at, version"
)


class SQLPatternStore(CorrectionBackend):
    """Corrections table in SQLite (default) or Postgres (DATABASE_URL)."""

    def __init__(self, db_path: str = DB_PATH, dsn: Optional[str] = None) -> None:
        self.db = DB(sqlite_path=db_path, dsn=dsn)
        self._ensure_table()

    def _ensure_table(self) -> None:
        self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS transaction_corrections (
                id TEXT PRIMARY KEY,
                pattern TEXT NOT NULL,
                match_type TEXT NOT NULL CHECK(match_type IN ('exact', 'contains')),
                tags TEXT NOT NULL DEFAULT '[]',
                entity_id TEXT,
                entity_name TEXT,
                location TEXT,
                online INTEGER,
                transaction_type TEXT CHECK(transaction_type IN ('purchase', 'transfer', 'income')),
                confidence REAL NOT NULL DEFAULT 0.5 CHECK(confidence >= 0.0 AND confidence <= 1.0),
                times_applied INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                last_used_at TEXT,
                version INTEGER NOT NULL DEFAULT 1,
                UNIQUE(pattern, match_type)
            )
            """
        )
        self.db.execute(
            "CREATE INDEX IF NOT EXISTS idx_corrections_confidence "
            "ON transaction_corrections(confidence DESC)"
        )

    def get(self, correction_id: str) -> Optional[Correction]:
        row = self.db.fetchone_dict(
            f"SELECT {_COLUMNS} FROM transaction_corrections WHERE id = ?",
            (correction_id,),
        )
        return _from_row(row) if row else None

    def find(self, pattern: str, match_type: MatchType) -> Optional[Correction]:
        row = self.db.fetchone_dict(
            f"SELECT {_COLUMNS} FROM transaction_corrections WHERE pattern = ? AND match_type = ?",
            (pattern, MatchType(match_type).value),
        )
        return _from_row(row) if row else None

    def scan(self, predicate: Optional[Predicate] = None) -> List[Correction]:
        rows = self.db.fetchall_dict(f"SELECT {_COLUMNS} FROM transaction_corrections")
        corrections = [_from_row(row) for row in rows]
        if predicate is None:
            return corrections
        return [row for row in corrections if predicate(row)]

    def put(self, correction: Correction, expected_version: Optional[int] = None) -> Correction:
        if expected_version is None:
            stored = correction.model_copy(update={"version": 1})
            try:
                self.db.execute(
                    f"INSERT INTO transaction_corrections ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _to_params(stored),
                )
            except self.db.integrity_errors as exc:
                raise WriteConflict(correction.id, f"Correction already exists: {exc}") from exc
            return stored

        stored = correction.model_copy(update={"version": expected_version + 1})
        changed = self.db.execute(
            """
            UPDATE transaction_corrections
            SET tags = ?,
                entity_id = ?,
                entity_name = ?,
                location = ?,
                online = ?,
                transaction_type = ?,
                confidence = ?,
                times_applied = ?,
                updated_at = ?,
                last_used_at = ?,
                version = ?
            WHERE id = ? AND version = ?
            """,
            (
                json.dumps(stored.tags),
                stored.entity_id,
                stored.entity_name,
                stored.location,
                _bool_to_int(stored.online),
                stored.transaction_type.value if stored.transaction_type else None,
                stored.confidence,
                stored.times_applied,
                stored.updated_at.isoformat(),
                stored.last_used_at.isoformat() if stored.last_used_at else None,
                stored.version,
                stored.id,
                expected_version,
            ),
        )
        if changed == 0:
            raise WriteConflict(correction.id)
        # pattern and match_type are immutable; report what is actually stored
        return self.get(correction.id) or stored

    def delete(self, correction_id: str, expected_version: Optional[int] = None) -> bool:
        if expected_version is None:
            changed = self.db.execute(
                "DELETE FROM transaction_corrections WHERE id = ?",
                (correction_id,),
            )
            return changed > 0

        changed = self.db.execute(
            "DELETE FROM transaction_corrections WHERE id = ? AND version = ?",
            (correction_id, expected_version),
        )
        if changed:
            return True
        if self.get(correction_id) is None:
            return False
        raise WriteConflict(correction_id)


def _detached(correction: Optional[Correction]) -> Optional[Correction]:
    return correction.model_copy(deep=True) if correction is not None else None


def _bool_to_int(value: Optional[bool]) -> Optional[int]:
    if value is None:
        return None
    return 1 if value else 0


def _to_params(correction: Correction) -> tuple:
    return (
        correction.id,
        correction.pattern,
        correction.match_type.value,
        json.dumps(correction.tags),
        correction.entity_id,
        correction.entity_name,
        correction.location,
        _bool_to_int(correction.online),
        correction.transaction_type.value if correction.transaction_type else None,
        correction.confidence,
        correction.times_applied,
        correction.created_at.isoformat(),
        correction.updated_at.isoformat(),
        correction.last_used_at.isoformat() if correction.last_used_at else None,
        correction.version,
    )


def _from_row(row: Dict[str, Any]) -> Correction:
    tags = row.get("tags")
    online = row.get("online")
    last_used = row.get("last_used_at")
    return Correction(
        id=row["id"],
        pattern=row["pattern"],
        match_type=row["match_type"],
        tags=json.loads(tags) if tags else [],
        entity_id=row.get("entity_id"),
        entity_name=row.get("entity_name"),
        location=row.get("location"),
        online=None if online is None else bool(online),
        transaction_type=row.get("transaction_type"),
        confidence=row["confidence"],
        times_applied=row["times_applied"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        last_used_at=datetime.fromisoformat(last_used) if last_used else None,
        version=row["version"],
    )
