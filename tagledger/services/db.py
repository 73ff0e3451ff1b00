"""Lightweight DB helper that prefers Postgres when DATABASE_URL is set, falls back to SQLite."""
from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, List, Optional, Tuple

try:
    import psycopg  # type: ignore
except ImportError:  # pragma: no cover
    psycopg = None


def _is_postgres_dsn(dsn: Optional[str]) -> bool:
    value = (dsn or "").strip().lower()
    return value.startswith("postgres://") or value.startswith("postgresql://")


class DB:
    def __init__(self, sqlite_path: str = "tagledger.db", dsn: Optional[str] = None) -> None:
        self.dsn = dsn if dsn is not None else os.getenv("DATABASE_URL")
        self.sqlite_path = sqlite_path
        self.use_postgres = bool(psycopg and _is_postgres_dsn(self.dsn))

    @property
    def integrity_errors(self) -> Tuple[type, ...]:
        """Driver exceptions raised on unique/primary key violations."""
        if self.use_postgres:
            return (psycopg.IntegrityError,)  # type: ignore
        return (sqlite3.IntegrityError,)

    @contextmanager
    def connect(self):
        if self.use_postgres:
            conn = psycopg.connect(self.dsn)  # type: ignore
            try:
                yield conn
            finally:
                conn.close()
        else:
            conn = sqlite3.connect(self.sqlite_path, timeout=30)
            try:
                yield conn
            finally:
                conn.close()

    def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        """Run a write statement and commit. Returns the affected row count."""
        sql = self._prepare(sql)
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute(sql, params)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            return cur.rowcount

    def fetchall_dict(self, sql: str, params: Tuple[Any, ...] = ()) -> List[dict]:
        sql = self._prepare(sql)
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, params)
            columns = [col[0] for col in cur.description]
            return [dict(zip(columns, row)) for row in cur.fetchall()]

    def fetchone_dict(self, sql: str, params: Tuple[Any, ...] = ()) -> dict | None:
        sql = self._prepare(sql)
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, params)
            row = cur.fetchone()
            if not row:
                return None
            columns = [col[0] for col in cur.description]
            return dict(zip(columns, row))

    def _prepare(self, sql: str) -> str:
        """Normalize placeholders between SQLite (?) and Postgres (%s)."""
        if self.use_postgres:
            return sql.replace("?", "%s")
        return sql
