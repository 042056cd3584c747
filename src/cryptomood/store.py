"""SQLite-backed document store: JSON documents grouped into collections."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    seq        INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    doc_id     TEXT NOT NULL,
    body       TEXT NOT NULL,
    inserted_at TEXT NOT NULL,
    UNIQUE (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS documents_collection ON documents (collection);
"""

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OPERATORS = {"==": "=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}


class StorageError(Exception):
    """Raised when the underlying database cannot be read or written."""


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Top-level field values equal to this sentinel are replaced with the
# insertion time when the document is written.
SERVER_TIMESTAMP: Any = _ServerTimestamp()


def encode_timestamp(value: datetime) -> str:
    """Canonical text form for instants; sorts lexicographically by time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def to_instant(value: Any) -> datetime | None:
    """Normalize a stored timestamp to an aware UTC datetime; ``None`` if unreadable.

    Accepts datetimes, ISO-8601 strings with any offset, epoch seconds or
    milliseconds, and ``{"_seconds": ...}`` objects.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    try:
        if isinstance(value, (int, float)):
            # Epoch values above 1e11 are milliseconds.
            seconds = value / 1000 if value > 1e11 else value
            return datetime.fromtimestamp(seconds, tz=UTC)
        if isinstance(value, dict) and "_seconds" in value:
            return datetime.fromtimestamp(value["_seconds"], tz=UTC)
        if isinstance(value, str):
            return to_instant(datetime.fromisoformat(value))
    except (OverflowError, OSError, ValueError, TypeError):
        logger.debug("Unreadable timestamp: %r", value)
    return None


def _sql_instant(value: Any) -> str | None:
    # json_extract hands objects back as JSON text.
    if isinstance(value, str) and value.startswith("{"):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    instant = to_instant(value)
    return encode_timestamp(instant) if instant else None


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return encode_timestamp(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class DocumentStore:
    """Append-only document collections backed by SQLite.

    Every public method is a coroutine; the blocking sqlite3 work is pushed
    to a worker thread so callers on an event loop are never blocked. Each
    call opens its own connection, which keeps the store safe to share
    between the scheduler thread and request handlers.
    """

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._init_db()

    # ── public ──────────────────────────────────────────────────────────

    async def add(self, collection: str, document: dict[str, Any]) -> str:
        """Insert *document* and return its generated id."""
        return await asyncio.to_thread(self._add, collection, document)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get, collection, doc_id)

    async def query(
        self,
        collection: str,
        *,
        where: tuple[str, str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        temporal: bool = False,
    ) -> list[tuple[str, dict[str, Any]]]:
        """Return ``(doc_id, document)`` pairs matching a single-field filter.

        ``where`` is ``(field, op, value)`` with op one of ``==, <, <=, >, >=``.
        Ties on ``order_by`` fall back to insertion order in the same
        direction.

        With *temporal* the filtered and ordered fields are read as instants
        (see ``to_instant``) and compared on the UTC clock, so mixed
        timestamp shapes filter and sort correctly. Documents whose value is
        not a readable instant never match a temporal filter.
        """
        return await asyncio.to_thread(
            self._query, collection, where, order_by, descending, limit, temporal
        )

    async def count(self, collection: str) -> int:
        return await asyncio.to_thread(self._count, collection)

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        try:
            con = sqlite3.connect(str(self._db_path))
            con.create_function("instant", 1, _sql_instant, deterministic=True)
            return con
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open {self._db_path}: {exc}") from exc

    def _init_db(self) -> None:
        con = self._connect()
        try:
            con.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot initialise {self._db_path}: {exc}") from exc
        finally:
            con.close()

    def _add(self, collection: str, document: dict[str, Any]) -> str:
        now = datetime.now(UTC)
        body = {
            key: (now if value is SERVER_TIMESTAMP else value)
            for key, value in document.items()
        }
        doc_id = uuid.uuid4().hex
        try:
            payload = json.dumps(body, default=_json_default)
        except TypeError as exc:
            raise StorageError(f"document is not serializable: {exc}") from exc

        con = self._connect()
        try:
            con.execute(
                "INSERT INTO documents (collection, doc_id, body, inserted_at) VALUES (?, ?, ?, ?)",
                (collection, doc_id, payload, encode_timestamp(now)),
            )
            con.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"insert into {collection!r} failed: {exc}") from exc
        finally:
            con.close()
        logger.debug("Stored %s/%s", collection, doc_id)
        return doc_id

    def _get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        con = self._connect()
        try:
            row = con.execute(
                "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"read from {collection!r} failed: {exc}") from exc
        finally:
            con.close()
        return json.loads(row[0]) if row else None

    def _query(
        self,
        collection: str,
        where: tuple[str, str, Any] | None,
        order_by: str | None,
        descending: bool,
        limit: int | None,
        temporal: bool,
    ) -> list[tuple[str, dict[str, Any]]]:
        sql = ["SELECT doc_id, body FROM documents WHERE collection = ?"]
        params: list[Any] = [collection]

        if where is not None:
            field, op, value = where
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported operator: {op!r}")
            if temporal:
                instant = to_instant(value)
                if instant is None:
                    raise ValueError(f"Not a timestamp: {value!r}")
                sql.append(f"AND instant(json_extract(body, ?)) {_OPERATORS[op]} ?")
                params.extend([_json_path(field), encode_timestamp(instant)])
            else:
                sql.append(f"AND json_extract(body, ?) {_OPERATORS[op]} ?")
                params.extend([_json_path(field), _sql_value(value)])

        direction = "DESC" if descending else "ASC"
        if order_by is not None:
            key = "instant(json_extract(body, ?))" if temporal else "json_extract(body, ?)"
            sql.append(f"ORDER BY {key} {direction}, seq {direction}")
            params.append(_json_path(order_by))
        else:
            sql.append(f"ORDER BY seq {direction}")

        if limit is not None:
            sql.append("LIMIT ?")
            params.append(int(limit))

        con = self._connect()
        try:
            rows = con.execute(" ".join(sql), params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"query on {collection!r} failed: {exc}") from exc
        finally:
            con.close()
        return [(doc_id, json.loads(body)) for doc_id, body in rows]

    def _count(self, collection: str) -> int:
        con = self._connect()
        try:
            cur = con.execute("SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,))
            return cur.fetchone()[0]  # type: ignore[no-any-return]
        except sqlite3.Error as exc:
            raise StorageError(f"count on {collection!r} failed: {exc}") from exc
        finally:
            con.close()


def _json_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValueError(f"Invalid field name: {field!r}")
    return f"$.{field}"


def _sql_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return encode_timestamp(value)
    return value
