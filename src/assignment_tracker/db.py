from __future__ import annotations

import json
import os
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generator, List

from .documents import DocumentStore
from .errors import ConfigurationError, DocumentStoreError
from .models import Document

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class _Cols:
    table: str = "documents"
    collection: str = "collection"
    id: str = "id"
    created_at: str = "created_at"
    data: str = "data"


_COLS = _Cols()


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite-backed document store. Each document is one row holding its JSON data.

    Change notifications reach subscribers of this process only.
    """

    backend_name = "sqlite"

    def __init__(self, db_path: str) -> None:
        super().__init__()
        self._db_path = db_path
        try:
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
            self._init_db()
        except (OSError, DocumentStoreError) as e:
            raise ConfigurationError(f"Cannot open SQLite database at '{db_path}': {e}") from e

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise DocumentStoreError(str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise DocumentStoreError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.collection} TEXT NOT NULL,
                    {_COLS.id} TEXT NOT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.data} TEXT NOT NULL,
                    PRIMARY KEY ({_COLS.collection}, {_COLS.id})
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at})"
            )

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        return Document(
            id=str(row[_COLS.id]),
            created_at=datetime.fromisoformat(row[_COLS.created_at]),
            data=json.loads(row[_COLS.data]),
        )

    def readiness(self) -> bool:
        try:
            with self._conn() as conn:
                conn.execute("SELECT 1").fetchone()
        except DocumentStoreError:
            return False
        return True

    def _query(self, collection: str, order_by: str) -> List[Document]:
        if order_by == _COLS.created_at:
            order_sql = f"ORDER BY {_COLS.created_at} ASC, {_COLS.id} ASC"
            params: list = [collection]
        else:
            if not _FIELD_RE.match(order_by):
                raise DocumentStoreError(f"Invalid order field '{order_by}'")
            order_sql = f"ORDER BY json_extract({_COLS.data}, ?) ASC, {_COLS.id} ASC"
            params = [collection, f"$.{order_by}"]

        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                WHERE {_COLS.collection} = ?
                {order_sql}
                """,
                params,
            ).fetchall()
            return [self._row_to_document(r) for r in rows]

    def _insert(self, collection: str, doc: Document) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.collection}, {_COLS.id}, {_COLS.created_at}, {_COLS.data})
                VALUES (?, ?, ?, ?)
                """,
                (collection, doc.id, doc.created_at.isoformat(), json.dumps(doc.data)),
            )

    def _patch(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT * FROM {_COLS.table} WHERE {_COLS.collection} = ? AND {_COLS.id} = ?",
                (collection, doc_id),
            ).fetchone()
            if not row:
                return False
            data = {**json.loads(row[_COLS.data]), **fields}
            conn.execute(
                f"UPDATE {_COLS.table} SET {_COLS.data} = ? WHERE {_COLS.collection} = ? AND {_COLS.id} = ?",
                (json.dumps(data), collection, doc_id),
            )
            return True

    def _remove(self, collection: str, doc_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.collection} = ? AND {_COLS.id} = ?",
                (collection, doc_id),
            )
            return cur.rowcount > 0
