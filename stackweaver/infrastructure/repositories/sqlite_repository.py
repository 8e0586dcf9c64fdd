"""
SQLite Repository

Architectural Intent:
- Persistent storage backend using SQLite (stdlib, zero external deps)
- Implements both the credential store port and the stack repository port
  so a single database file can back a complete host
- Uses WAL mode for concurrent read/write support

Design Decisions:
- Single database file at configurable path (default: stackweaver.db)
- Auto-creates tables on first use
- Thread-safe via sqlite3's check_same_thread=False
- Timestamps stored as ISO 8601 strings, structured values as JSON text
- sqlite3 errors surface as PersistenceError
"""

from __future__ import annotations
import sqlite3
import json
import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from stackweaver.domain.entities.credential import CredentialInfo, CredentialValue
from stackweaver.domain.entities.machine import MachineRecord, MachineUpdate
from stackweaver.domain.entities.stack import StackRecord, StackTemplate
from stackweaver.domain.errors import MachineNotFoundError, PersistenceError
from stackweaver.domain.ports.credential_store_port import CredentialStorePort
from stackweaver.domain.ports.stack_repository_port import StackRepositoryPort
from stackweaver.domain.value_objects.machine_state import MachineState

logger = logging.getLogger(__name__)


class SQLiteRepository(CredentialStorePort, StackRepositoryPort):
    """Persistent storage using SQLite."""

    def __init__(self, db_path: str = "stackweaver.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Open database connection and create tables."""
        try:
            self._conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.row_factory = sqlite3.Row
            self._create_tables()
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open database {self._db_path}: {e}") from e
        logger.info("SQLite repository connected: %s", self._db_path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        assert self._conn is not None
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS credentials (
                identifier TEXT PRIMARY KEY,
                provider TEXT NOT NULL,
                title TEXT DEFAULT '',
                owner TEXT DEFAULT '',
                group_name TEXT DEFAULT '',
                verified INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS credential_data (
                identifier TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                data TEXT NOT NULL DEFAULT '{}',
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stack_templates (
                id TEXT PRIMARY KEY,
                title TEXT DEFAULT '',
                content TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stacks (
                id TEXT PRIMARY KEY,
                template_id TEXT NOT NULL,
                group_name TEXT DEFAULT '',
                owner TEXT DEFAULT '',
                credentials TEXT DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS machines (
                id TEXT PRIMARY KEY,
                stack_id TEXT NOT NULL,
                label TEXT NOT NULL,
                provider TEXT NOT NULL,
                credential TEXT DEFAULT '',
                query_string TEXT DEFAULT '',
                ip_address TEXT DEFAULT '',
                state TEXT NOT NULL,
                state_reason TEXT DEFAULT '',
                modified_at TEXT,
                meta TEXT DEFAULT '{}'
            );

            CREATE INDEX IF NOT EXISTS idx_machines_stack ON machines(stack_id);
        """)

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        assert self._conn is not None
        try:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"database write failed: {e}") from e
        return cursor

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        assert self._conn is not None
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"database read failed: {e}") from e

    # -- Credentials ---------------------------------------------------------

    def add_credential(
        self,
        identifier: str,
        provider: str,
        owner: str,
        group_name: str = "",
        title: str = "",
        data: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Register credential metadata and, optionally, its secret data."""
        self._execute(
            """INSERT OR REPLACE INTO credentials
               (identifier, provider, title, owner, group_name, verified)
               VALUES (?, ?, ?, ?, ?, 0)""",
            (identifier, provider, title, owner, group_name),
        )
        if data is not None:
            self._write_data(owner, identifier, dict(data))

    def get_credential_info(self, identifier: str) -> Optional[CredentialInfo]:
        rows = self._query(
            "SELECT * FROM credentials WHERE identifier = ?", (identifier,)
        )
        if not rows:
            return None
        row = rows[0]
        return CredentialInfo(
            identifier=row["identifier"],
            provider=row["provider"],
            title=row["title"] or "",
            owner=row["owner"] or "",
            group_name=row["group_name"] or "",
            verified=bool(row["verified"]),
        )

    def set_credential_verified(self, identifier: str, verified: bool) -> None:
        self._execute(
            "UPDATE credentials SET verified = ? WHERE identifier = ?",
            (int(verified), identifier),
        )

    # -- Credential Data -----------------------------------------------------

    def _write_data(self, username: str, identifier: str, data: dict) -> None:
        self._execute(
            """INSERT OR REPLACE INTO credential_data
               (identifier, username, data, updated_at)
               VALUES (?, ?, ?, ?)""",
            (identifier, username, json.dumps(data), datetime.now().isoformat()),
        )

    def fetch(self, username: str, identifiers: Sequence[str]) -> dict[str, dict[str, Any]]:
        if not identifiers:
            return {}
        marks = ", ".join("?" for _ in identifiers)
        rows = self._query(
            f"SELECT identifier, data FROM credential_data WHERE identifier IN ({marks})",
            tuple(identifiers),
        )
        return {row["identifier"]: json.loads(row["data"]) for row in rows}

    def put(self, username: str, data: Mapping[str, CredentialValue]) -> None:
        for identifier, value in data.items():
            self._write_data(username, identifier, value.to_dict())
        logger.debug("Stored %d credential value(s) for %s", len(data), username)

    # -- Stack Templates -----------------------------------------------------

    def add_stack_template(self, template: StackTemplate) -> None:
        self._execute(
            "INSERT OR REPLACE INTO stack_templates (id, title, content) VALUES (?, ?, ?)",
            (template.id, template.title, template.content),
        )

    def get_stack_template(self, template_id: str) -> Optional[StackTemplate]:
        rows = self._query("SELECT * FROM stack_templates WHERE id = ?", (template_id,))
        if not rows:
            return None
        row = rows[0]
        return StackTemplate(id=row["id"], content=row["content"], title=row["title"] or "")

    # -- Stacks --------------------------------------------------------------

    def add_stack(self, stack: StackRecord) -> None:
        self._execute(
            """INSERT OR REPLACE INTO stacks
               (id, template_id, group_name, owner, credentials)
               VALUES (?, ?, ?, ?, ?)""",
            (stack.id, stack.template_id, stack.group_name, stack.owner,
             json.dumps(list(stack.credentials))),
        )

    def get_stack(self, stack_id: str) -> Optional[StackRecord]:
        rows = self._query("SELECT * FROM stacks WHERE id = ?", (stack_id,))
        if not rows:
            return None
        row = rows[0]
        return StackRecord(
            id=row["id"],
            template_id=row["template_id"],
            group_name=row["group_name"] or "",
            owner=row["owner"] or "",
            credentials=tuple(json.loads(row["credentials"] or "[]")),
        )

    # -- Machines ------------------------------------------------------------

    def add_machine(self, machine: MachineRecord) -> None:
        self._execute(
            """INSERT OR REPLACE INTO machines
               (id, stack_id, label, provider, credential, query_string,
                ip_address, state, state_reason, modified_at, meta)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (machine.id, machine.stack_id, machine.label, machine.provider,
             machine.credential, machine.query_string, machine.ip_address,
             str(machine.state), machine.state_reason,
             machine.modified_at.isoformat() if machine.modified_at else None,
             json.dumps(machine.meta)),
        )

    @staticmethod
    def _machine_from_row(row: sqlite3.Row) -> MachineRecord:
        modified = row["modified_at"]
        return MachineRecord(
            id=row["id"],
            label=row["label"],
            provider=row["provider"],
            stack_id=row["stack_id"],
            credential=row["credential"] or "",
            query_string=row["query_string"] or "",
            ip_address=row["ip_address"] or "",
            state=MachineState.parse(row["state"]),
            state_reason=row["state_reason"] or "",
            modified_at=datetime.fromisoformat(modified) if modified else None,
            meta=json.loads(row["meta"] or "{}"),
        )

    def get_stack_machines(self, stack_id: str) -> dict[str, MachineRecord]:
        rows = self._query(
            "SELECT * FROM machines WHERE stack_id = ? ORDER BY label", (stack_id,)
        )
        return {row["label"]: self._machine_from_row(row) for row in rows}

    def get_machine(self, machine_id: str) -> Optional[MachineRecord]:
        rows = self._query("SELECT * FROM machines WHERE id = ?", (machine_id,))
        return self._machine_from_row(rows[0]) if rows else None

    def update_machine(self, machine_id: str, update: MachineUpdate) -> None:
        current = self.get_machine(machine_id)
        if current is None:
            raise MachineNotFoundError(machine_id)

        meta = {**current.meta, **update.meta}
        self._execute(
            """UPDATE machines
               SET credential = ?, provider = ?, query_string = ?, ip_address = ?,
                   state = ?, state_reason = ?, modified_at = ?, meta = ?
               WHERE id = ?""",
            (update.credential, update.provider, update.query_string,
             update.ip_address, str(update.state), update.state_reason,
             update.modified_at.isoformat(), json.dumps(meta), machine_id),
        )
