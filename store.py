"""Table-oriented storage collaborator.

Every backend exposes the same handful of row operations: equality filters,
single-column ordering, insert, update and delete. Callers never see SQL or
HTTP; they see rows as plain dicts, ``StorageFailure`` when the backend breaks
and ``NotFound`` when a single-row lookup matches nothing.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import database

logger = logging.getLogger(__name__)


class StorageFailure(Exception):
    """Transport or query error reported by the storage backend."""


class NotFound(LookupError):
    """A single-row lookup matched no rows.

    This is a normal outcome, not a storage failure.
    """


class Store:
    """Interface shared by the SQLite and hosted-backend stores."""

    def select(self, table: str, *, filters: Optional[Dict[str, Any]] = None,
               order_by: Optional[str] = None, descending: bool = False) -> List[dict]:
        raise NotImplementedError

    def select_single(self, table: str, *, filters: Dict[str, Any]) -> dict:
        raise NotImplementedError

    def insert(self, table: str, row: Dict[str, Any]) -> dict:
        raise NotImplementedError

    def update(self, table: str, values: Dict[str, Any], *, filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    def delete(self, table: str, *, filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    def close(self) -> None:
        return None


class SQLiteStore(Store):
    """Store backed by a local SQLite file (see database.py for the schema)."""

    def __init__(self, db_file: Optional[str] = None, seed: bool = False) -> None:
        self.db_file = db_file or database.DATABASE_FILE
        try:
            database.initialize_database(self.db_file, seed=seed)
        except sqlite3.Error as exc:
            logger.error("Could not initialize database %s: %s", self.db_file, exc)
            raise StorageFailure(f"Could not open database: {exc}") from exc

    # ------------------------- Row operations ------------------------- #
    def select(self, table: str, *, filters: Optional[Dict[str, Any]] = None,
               order_by: Optional[str] = None, descending: bool = False) -> List[dict]:
        columns = self._columns(table)
        where, params = self._where(table, filters or {})
        sql = f"SELECT * FROM {table}{where}"
        if order_by:
            if order_by not in columns:
                raise ValueError(f"Unknown column {order_by!r} for table {table!r}")
            # rowid keeps insertion order stable for equal sort keys
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {order_by} {direction}, rowid {direction}"
        rows = self._execute(sql, params, fetch=True)
        return [self._decode(table, dict(row)) for row in rows]

    def select_single(self, table: str, *, filters: Dict[str, Any]) -> dict:
        rows = self.select(table, filters=filters)
        if not rows:
            raise NotFound(f"No row in {table} matching {filters}")
        if len(rows) > 1:
            raise StorageFailure(f"Expected one row in {table} matching {filters}, got {len(rows)}")
        return rows[0]

    def insert(self, table: str, row: Dict[str, Any]) -> dict:
        columns = self._columns(table)
        payload = dict(row)
        payload.setdefault("id", str(uuid.uuid4()))
        if table in database.TIMESTAMPED_TABLES and "created_at" in columns:
            payload.setdefault("created_at", datetime.utcnow().isoformat(timespec="microseconds"))
        self._check_columns(table, payload)
        encoded = self._encode(table, payload)
        names = ", ".join(encoded)
        placeholders = ", ".join("?" for _ in encoded)
        self._execute(f"INSERT INTO {table} ({names}) VALUES ({placeholders})", tuple(encoded.values()))
        return self.select_single(table, filters={"id": payload["id"]})

    def update(self, table: str, values: Dict[str, Any], *, filters: Dict[str, Any]) -> int:
        if not values:
            raise ValueError("Nothing to update.")
        self._check_columns(table, values)
        encoded = self._encode(table, values)
        assignments = ", ".join(f"{name} = ?" for name in encoded)
        where, params = self._where(table, filters)
        return self._execute(f"UPDATE {table} SET {assignments}{where}", tuple(encoded.values()) + params)

    def delete(self, table: str, *, filters: Dict[str, Any]) -> int:
        if not filters:
            raise ValueError("Refusing to delete without filters.")
        where, params = self._where(table, filters)
        return self._execute(f"DELETE FROM {table}{where}", params)

    # ------------------------- Helpers ------------------------- #
    def _execute(self, sql: str, params: tuple, fetch: bool = False):
        try:
            conn = database.get_db_connection(self.db_file)
        except sqlite3.Error as exc:
            logger.error("Could not open database %s: %s", self.db_file, exc)
            raise StorageFailure(f"Could not open database: {exc}") from exc
        try:
            cursor = conn.execute(sql, params)
            if fetch:
                return cursor.fetchall()
            conn.commit()
            return cursor.rowcount
        except sqlite3.Error as exc:
            logger.error("Query failed (%s): %s", sql, exc)
            raise StorageFailure(str(exc)) from exc
        finally:
            conn.close()

    @staticmethod
    def _columns(table: str) -> tuple:
        try:
            return database.TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table {table!r}") from None

    def _check_columns(self, table: str, values: Dict[str, Any]) -> None:
        columns = self._columns(table)
        unknown = [name for name in values if name not in columns]
        if unknown:
            raise ValueError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

    def _where(self, table: str, filters: Dict[str, Any]) -> tuple:
        if not filters:
            return "", ()
        self._check_columns(table, filters)
        encoded = self._encode(table, filters)
        clause = " AND ".join(f"{name} = ?" for name in encoded)
        return f" WHERE {clause}", tuple(encoded.values())

    @staticmethod
    def _encode(table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        json_columns = database.JSON_COLUMNS.get(table, ())
        out = {}
        for name, value in values.items():
            if name in json_columns and value is not None and not isinstance(value, str):
                value = json.dumps(value)
            elif isinstance(value, bool):
                value = int(value)
            out[name] = value
        return out

    @staticmethod
    def _decode(table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        for name in database.JSON_COLUMNS.get(table, ()):
            value = row.get(name)
            if isinstance(value, str):
                try:
                    row[name] = json.loads(value)
                except json.JSONDecodeError:
                    logger.warning("Column %s.%s holds invalid JSON; leaving it as text", table, name)
        for name in database.BOOL_COLUMNS.get(table, ()):
            if name in row and row[name] is not None:
                row[name] = bool(row[name])
        return row


def create_store(backend: Optional[str] = None, **kwargs) -> Store:
    """Build the store selected by configuration."""
    from config import settings

    backend = (backend or settings.storage_backend).lower()
    if backend == "sqlite":
        kwargs.setdefault("seed", settings.seed_sample_rooms)
        return SQLiteStore(**kwargs)
    if backend == "rest":
        from rest_client import RestStore

        return RestStore(**kwargs)
    raise ValueError(f"Unknown storage backend {backend!r}")
