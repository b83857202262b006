"""
database.py
-----------

This module encapsulates all interactions with the SQLite file used to
persist journal data. The rest of the package only sees an opaque
document store: each entity kind (trades, planned trades, strategies,
capital adjustments, settings) is an ordered collection of JSON
documents, optionally scoped per user, with ``load``, ``save_all``,
``put`` and ``delete``. Swapping SQLite for another backend only means
reimplementing this module.
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from .logger import log

TRADES = "trades"
PLANNED_TRADES = "planned_trades"
STRATEGIES = "strategies"
CAPITAL_ADJUSTMENTS = "capital_adjustments"
SETTINGS = "settings"

KINDS = (TRADES, PLANNED_TRADES, STRATEGIES, CAPITAL_ADJUSTMENTS, SETTINGS)
SETTINGS_DOC_ID = "general"
DEFAULT_OWNER = "local"


class Collection:
    """One entity kind for one owner. Documents keep their stored order."""

    def __init__(self, db: "TradeJournalDB", kind: str, owner: str) -> None:
        if kind not in KINDS:
            raise ValueError(f"Unknown collection kind: {kind}")
        self.db = db
        self.kind = kind
        self.owner = owner

    def load(self) -> List[Dict[str, Any]]:
        """Return all documents in stored order."""
        cur = self.db.conn.execute(
            "SELECT body FROM documents WHERE owner = ? AND kind = ? ORDER BY position",
            (self.owner, self.kind),
        )
        return [json.loads(row["body"]) for row in cur.fetchall()]

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        cur = self.db.conn.execute(
            "SELECT body FROM documents WHERE owner = ? AND kind = ? AND id = ?",
            (self.owner, self.kind, doc_id),
        )
        row = cur.fetchone()
        return json.loads(row["body"]) if row else None

    def save_all(self, docs: List[Dict[str, Any]]) -> None:
        """Replace the whole collection; list order becomes stored order."""
        with self.db.conn:
            self.db.conn.execute(
                "DELETE FROM documents WHERE owner = ? AND kind = ?",
                (self.owner, self.kind),
            )
            self.db.conn.executemany(
                "INSERT INTO documents (owner, kind, id, position, body) VALUES (?, ?, ?, ?, ?)",
                [
                    (self.owner, self.kind, str(doc["id"]), position, json.dumps(doc))
                    for position, doc in enumerate(docs)
                ],
            )
        log.debug(f"Saved {len(docs)} {self.kind} for {self.owner}")

    def put(self, doc_id: str, doc: Dict[str, Any]) -> None:
        """Insert or replace one document. New documents go to the end."""
        with self.db.conn:
            self.db.conn.execute(
                """
                INSERT INTO documents (owner, kind, id, position, body)
                VALUES (?, ?, ?,
                    (SELECT COALESCE(MAX(position), -1) + 1 FROM documents WHERE owner = ? AND kind = ?),
                    ?)
                ON CONFLICT(owner, kind, id) DO UPDATE SET body = excluded.body
                """,
                (self.owner, self.kind, doc_id, self.owner, self.kind, json.dumps(doc)),
            )

    def delete(self, doc_id: str) -> bool:
        """Remove one document; returns False when it did not exist."""
        with self.db.conn:
            cur = self.db.conn.execute(
                "DELETE FROM documents WHERE owner = ? AND kind = ? AND id = ?",
                (self.owner, self.kind, doc_id),
            )
        return cur.rowcount > 0


class TradeJournalDB:
    """SQLite-backed document store for all journal collections."""

    def __init__(self, db_path: str = "tradejournal.db") -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    # ---------- schema ----------
    def _create_tables(self) -> None:
        """Create the documents table and its ordering index."""
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    owner TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    body TEXT NOT NULL, -- JSON
                    PRIMARY KEY (owner, kind, id)
                )
                """
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_order ON documents(owner, kind, position)"
            )

    def collection(self, kind: str, owner: str = DEFAULT_OWNER) -> Collection:
        return Collection(self, kind, owner)

    # ---------- settings singleton ----------
    def load_settings(self, owner: str = DEFAULT_OWNER) -> Optional[Dict[str, Any]]:
        return self.collection(SETTINGS, owner).get(SETTINGS_DOC_ID)

    def save_settings(self, settings: Dict[str, Any], owner: str = DEFAULT_OWNER) -> None:
        self.collection(SETTINGS, owner).put(SETTINGS_DOC_ID, {**settings, "id": SETTINGS_DOC_ID})

    # ---------- housekeeping ----------
    def close(self) -> None:
        self.conn.close()
