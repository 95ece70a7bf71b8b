#!/usr/bin/env python3
"""
Claim Store Persistence
=======================
SQLite-backed store. Claims are kept as their CCD case data JSON next to
indexed lookup columns; events, audit entries, stored documents and claim
reference sequences live in their own tables.

Usage:
    store = Store("claimstore.db")
    store.save_claim(case_data)
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("claimstore-store")

DEFAULT_DB_PATH = Path(__file__).parent / "claimstore.db"


def _get_db(db_path: str) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode for concurrency."""
    conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def _init_db(db_path: str):
    """Create tables if they don't exist. Safe to call multiple times."""
    conn = _get_db(db_path)
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS claims (
            external_id       TEXT PRIMARY KEY,
            reference_number  TEXT UNIQUE,
            submitter_id      TEXT,
            defendant_id      TEXT,
            letter_holder_id  TEXT,
            state             TEXT NOT NULL DEFAULT 'OPEN',
            data              TEXT NOT NULL,
            created_at        TEXT NOT NULL,
            updated_at        TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_claims_submitter ON claims(submitter_id);
        CREATE INDEX IF NOT EXISTS idx_claims_defendant ON claims(defendant_id);
        CREATE INDEX IF NOT EXISTS idx_claims_letter_holder ON claims(letter_holder_id);

        CREATE TABLE IF NOT EXISTS events (
            event_id    TEXT PRIMARY KEY,
            topic       TEXT NOT NULL,
            external_id TEXT,
            payload     TEXT NOT NULL,
            timestamp   TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_events_claim ON events(external_id);

        CREATE TABLE IF NOT EXISTS audit_log (
            audit_id   TEXT PRIMARY KEY,
            action     TEXT NOT NULL,
            actor      TEXT NOT NULL,
            detail     TEXT NOT NULL,
            timestamp  TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS documents (
            document_id    TEXT PRIMARY KEY,
            filename       TEXT NOT NULL,
            document_type  TEXT NOT NULL,
            mime_type      TEXT NOT NULL DEFAULT 'application/pdf',
            content        BLOB NOT NULL,
            sha256         TEXT NOT NULL,
            size           INTEGER NOT NULL,
            uploaded_by    TEXT,
            created_at     TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS reference_sequence (
            prefix  TEXT PRIMARY KEY,
            value   INTEGER NOT NULL
        );
    """)
    conn.commit()
    conn.close()


class Store:
    """SQLite-backed persistent store. Survives restarts."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = str(db_path or DEFAULT_DB_PATH)
        _init_db(self.db_path)
        self.start_time = datetime.utcnow()

    @contextmanager
    def _db(self):
        """Commit on success, roll back and re-raise on database errors."""
        conn = _get_db(self.db_path)
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    # ── Claims ──

    @property
    def claim_count(self) -> int:
        with self._db() as conn:
            return conn.execute("SELECT COUNT(*) FROM claims").fetchone()[0]

    def save_claim(self, case_data: Dict[str, Any]) -> str:
        """Insert a new claim keyed by its externalId."""
        now = datetime.utcnow().isoformat()
        respondent = self._first_respondent(case_data)
        with self._db() as conn:
            conn.execute(
                """INSERT INTO claims
                   (external_id, reference_number, submitter_id, defendant_id, letter_holder_id,
                    state, data, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    case_data["externalId"], case_data.get("referenceNumber"), case_data.get("submitterId"),
                    respondent.get("defendantId"), respondent.get("letterHolderId"),
                    case_data.get("state", "OPEN"), json.dumps(case_data), now, now,
                ),
            )
        logger.info(f"Claim saved: {case_data['externalId']} ({case_data.get('referenceNumber')})")
        return case_data["externalId"]

    def update_claim(self, case_data: Dict[str, Any]) -> bool:
        """Replace the stored case data. Returns False if the claim does not exist."""
        now = datetime.utcnow().isoformat()
        respondent = self._first_respondent(case_data)
        with self._db() as conn:
            cursor = conn.execute(
                """UPDATE claims
                   SET reference_number = ?, submitter_id = ?, defendant_id = ?, letter_holder_id = ?,
                       state = ?, data = ?, updated_at = ?
                   WHERE external_id = ?""",
                (
                    case_data.get("referenceNumber"), case_data.get("submitterId"),
                    respondent.get("defendantId"), respondent.get("letterHolderId"),
                    case_data.get("state", "OPEN"), json.dumps(case_data), now, case_data["externalId"],
                ),
            )
            return cursor.rowcount > 0

    def get_claim_by_external_id(self, external_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as conn:
            row = conn.execute("SELECT data FROM claims WHERE external_id = ?", (external_id,)).fetchone()
        return json.loads(row["data"]) if row else None

    def get_claim_by_reference(self, reference_number: str) -> Optional[Dict[str, Any]]:
        with self._db() as conn:
            row = conn.execute(
                "SELECT data FROM claims WHERE reference_number = ?", (reference_number,),
            ).fetchone()
        return json.loads(row["data"]) if row else None

    def list_claims_by_submitter(self, submitter_id: str) -> List[Dict[str, Any]]:
        return self._list_where("submitter_id = ?", (submitter_id,))

    def list_claims_by_defendant(self, defendant_id: str) -> List[Dict[str, Any]]:
        return self._list_where("defendant_id = ?", (defendant_id,))

    def list_claims_by_letter_holder(self, letter_holder_id: str) -> List[Dict[str, Any]]:
        return self._list_where("letter_holder_id = ?", (letter_holder_id,))

    def list_claims(self, state: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        if state:
            return self._list_where("state = ?", (state,), limit)
        return self._list_where("1 = 1", (), limit)

    def _list_where(self, clause: str, params: tuple, limit: int = 1000) -> List[Dict[str, Any]]:
        with self._db() as conn:
            rows = conn.execute(
                f"SELECT data FROM claims WHERE {clause} ORDER BY created_at DESC LIMIT ?",
                params + (limit,),
            ).fetchall()
        return [json.loads(r["data"]) for r in rows]

    @staticmethod
    def _first_respondent(case_data: Dict[str, Any]) -> Dict[str, Any]:
        respondents = case_data.get("respondents") or []
        return respondents[0].get("value", {}) if respondents else {}

    def next_reference_number(self, prefix: str) -> str:
        """Next claim reference for the prefix: 000MC001, 000MC002, ..."""
        with self._db() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO reference_sequence (prefix, value) VALUES (?, 0)", (prefix,),
            )
            conn.execute("UPDATE reference_sequence SET value = value + 1 WHERE prefix = ?", (prefix,))
            value = conn.execute(
                "SELECT value FROM reference_sequence WHERE prefix = ?", (prefix,),
            ).fetchone()[0]
        return f"{prefix}{value:03d}"

    # ── Events & audit ──

    def publish_event(self, topic: str, payload: Dict[str, Any], external_id: Optional[str] = None) -> str:
        """Persist event and log it."""
        eid = f"evt_{uuid.uuid4().hex[:12]}"
        now = datetime.utcnow().isoformat()
        with self._db() as conn:
            conn.execute(
                "INSERT INTO events (event_id, topic, external_id, payload, timestamp) VALUES (?, ?, ?, ?, ?)",
                (eid, topic, external_id, json.dumps(payload, default=str), now),
            )
        logger.info(f"Event published: {topic} -> {eid}")
        return eid

    def list_events(self, topic: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        with self._db() as conn:
            if topic:
                rows = conn.execute(
                    "SELECT * FROM events WHERE topic = ? ORDER BY rowid DESC LIMIT ?", (topic, limit),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM events ORDER BY rowid DESC LIMIT ?", (limit,)).fetchall()
        return [self._event_row(r) for r in rows]

    def get_claim_events(self, external_id: str) -> List[Dict[str, Any]]:
        """Events for one claim, oldest first."""
        with self._db() as conn:
            rows = conn.execute(
                "SELECT * FROM events WHERE external_id = ? ORDER BY rowid ASC", (external_id,),
            ).fetchall()
        return [self._event_row(r) for r in rows]

    @staticmethod
    def _event_row(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "event_id": row["event_id"],
            "topic": row["topic"],
            "external_id": row["external_id"],
            "payload": json.loads(row["payload"]),
            "timestamp": row["timestamp"],
        }

    def audit(self, action: str, detail: Dict[str, Any] = None, actor: str = "system"):
        """Write an immutable audit log entry."""
        aid = f"aud_{uuid.uuid4().hex[:12]}"
        now = datetime.utcnow().isoformat()
        with self._db() as conn:
            conn.execute(
                "INSERT INTO audit_log (audit_id, action, actor, detail, timestamp) VALUES (?, ?, ?, ?, ?)",
                (aid, action, actor, json.dumps(detail or {}, default=str), now),
            )
        logger.info(f"Audit: {action} by {actor} -> {aid}")

    def get_audit_log(self, action: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """Audit log entries, newest first."""
        with self._db() as conn:
            if action:
                rows = conn.execute(
                    "SELECT rowid, * FROM audit_log WHERE action = ? ORDER BY rowid DESC LIMIT ?",
                    (action, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT rowid, * FROM audit_log ORDER BY rowid DESC LIMIT ?", (limit,),
                ).fetchall()
        return [
            {
                "seq": r["rowid"],
                "audit_id": r["audit_id"],
                "action": r["action"],
                "actor": r["actor"],
                "detail": json.loads(r["detail"]),
                "timestamp": r["timestamp"],
            }
            for r in rows
        ]

    # ── Documents ──

    def save_document(self, filename: str, document_type: str, content: bytes,
                      mime_type: str = "application/pdf", uploaded_by: Optional[str] = None) -> Dict[str, Any]:
        did = f"doc_{uuid.uuid4().hex[:12]}"
        now = datetime.utcnow().isoformat()
        sha = hashlib.sha256(content).hexdigest()
        with self._db() as conn:
            conn.execute(
                """INSERT INTO documents
                   (document_id, filename, document_type, mime_type, content, sha256, size, uploaded_by, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (did, filename, document_type, mime_type, content, sha, len(content), uploaded_by, now),
            )
        logger.info(f"Document stored: {filename} -> {did} ({len(content)} bytes)")
        return {
            "document_id": did,
            "filename": filename,
            "document_type": document_type,
            "sha256": sha,
            "size": len(content),
            "created_at": now,
        }

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as conn:
            row = conn.execute("SELECT * FROM documents WHERE document_id = ?", (document_id,)).fetchone()
        if not row:
            return None
        return {
            "document_id": row["document_id"],
            "filename": row["filename"],
            "document_type": row["document_type"],
            "mime_type": row["mime_type"],
            "content": bytes(row["content"]),
            "sha256": row["sha256"],
            "size": row["size"],
            "created_at": row["created_at"],
        }
