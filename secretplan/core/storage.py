"""
SQLite-backed storage for SecretPlan.

One connection, one lock. Every credential or settings mutation runs inside a
single BEGIN IMMEDIATE transaction together with its audit entry, so a failure at
any step leaves neither the change nor the audit row behind.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Tuple, Union

from secretplan.constants import (
    AUDIT_CREDENTIAL_ADDED,
    AUDIT_CREDENTIAL_DELETED,
    AUDIT_CREDENTIAL_UPDATED,
    AUDIT_SETTINGS_UPDATED,
    DEFAULT_AUDIT_LIMIT,
)
from secretplan.core.errors import NotFound, StorageFailure
from secretplan.core.models import (
    AuditLogEntry,
    BreachState,
    Credential,
    CredentialFilter,
    from_timestamp,
    to_timestamp,
    utc_now,
)
from secretplan.core.repository import (
    AuditLog,
    CredentialStore,
    SettingsStore,
    breach_action,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    nonce BLOB
);
CREATE TABLE IF NOT EXISTS vault_items (
    uuid TEXT PRIMARY KEY,
    site TEXT NOT NULL,
    username TEXT NOT NULL,
    secret_enc TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    expires_at INTEGER,
    strength INTEGER NOT NULL DEFAULT 0,
    breach_state INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp INTEGER NOT NULL,
    action TEXT NOT NULL,
    item_uuid TEXT
);
CREATE INDEX IF NOT EXISTS idx_vault_site ON vault_items(site);
CREATE INDEX IF NOT EXISTS idx_vault_username ON vault_items(username);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
"""

CREDENTIAL_COLUMNS = (
    "uuid, site, username, secret_enc, tags, created_at, updated_at, "
    "expires_at, strength, breach_state"
)

SETTINGS_KEY = "settings"
MASTER_HASH_KEY = "master_password_hash"


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _row_to_credential(row) -> Credential:
    try:
        tags = json.loads(row[4])
    except (TypeError, ValueError) as e:
        raise StorageFailure(f"Corrupt tags for credential {row[0]}: {e}") from e
    try:
        breach_state = BreachState(row[9])
    except ValueError:
        breach_state = BreachState.UNKNOWN
    return Credential(
        uuid=row[0],
        site=row[1],
        username=row[2],
        secret_enc=row[3],
        tags=list(tags),
        created_at=from_timestamp(row[5]),
        updated_at=from_timestamp(row[6]),
        expires_at=from_timestamp(row[7]),
        strength=row[8],
        breach_state=breach_state,
    )


class SqliteRepository:
    """Owns the connection and hands out the three store views"""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False, timeout=5
            )
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.create_function("unicode_lower", 1, _unicode_lower)
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageFailure(f"Failed to open vault database: {e}") from e

        self.credentials = SqliteCredentialStore(self)
        self.settings = SqliteSettingsStore(self)
        self.audit_log = SqliteAuditLog(self)

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageFailure("Vault database is closed")
        return self._conn

    @contextmanager
    def transaction(self):
        """Serialize on the lock and run the block in one write transaction"""
        with self._lock:
            conn = self._require_conn()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageFailure(f"Failed to begin transaction: {e}") from e
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise StorageFailure(f"Database error: {e}") from e
            except BaseException:
                self._rollback(conn)
                raise

    @contextmanager
    def reader(self):
        with self._lock:
            conn = self._require_conn()
            try:
                yield conn
            except sqlite3.Error as e:
                raise StorageFailure(f"Database error: {e}") from e

    @staticmethod
    def _rollback(conn: sqlite3.Connection):
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error:
                logger.exception("Rollback failed")

    @staticmethod
    def append_audit(conn: sqlite3.Connection, action: str, item_uuid: Optional[str]) -> int:
        cur = conn.execute(
            "INSERT INTO audit_log (timestamp, action, item_uuid) VALUES (?, ?, ?)",
            (to_timestamp(utc_now()), action, item_uuid),
        )
        return cur.lastrowid


class SqliteCredentialStore(CredentialStore):
    def __init__(self, db: SqliteRepository):
        self._db = db

    def add(self, credential: Credential) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                f"INSERT INTO vault_items ({CREDENTIAL_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    credential.uuid,
                    credential.site,
                    credential.username,
                    credential.secret_enc,
                    json.dumps(credential.tags),
                    to_timestamp(credential.created_at),
                    to_timestamp(credential.updated_at),
                    to_timestamp(credential.expires_at),
                    credential.strength,
                    int(credential.breach_state),
                ),
            )
            self._db.append_audit(
                conn,
                AUDIT_CREDENTIAL_ADDED.format(site=credential.site),
                credential.uuid,
            )

    def update(self, credential: Credential) -> None:
        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE vault_items SET
                    site = ?, username = ?, secret_enc = ?, tags = ?,
                    updated_at = ?, expires_at = ?, strength = ?, breach_state = ?
                WHERE uuid = ?
                """,
                (
                    credential.site,
                    credential.username,
                    credential.secret_enc,
                    json.dumps(credential.tags),
                    to_timestamp(credential.updated_at),
                    to_timestamp(credential.expires_at),
                    credential.strength,
                    int(credential.breach_state),
                    credential.uuid,
                ),
            )
            if cur.rowcount == 0:
                raise NotFound(credential.uuid)
            self._db.append_audit(
                conn,
                AUDIT_CREDENTIAL_UPDATED.format(site=credential.site),
                credential.uuid,
            )

    def delete(self, uuid: str) -> str:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT site FROM vault_items WHERE uuid = ?", (uuid,)
            ).fetchone()
            if row is None:
                raise NotFound(uuid)
            site = row[0]
            conn.execute("DELETE FROM vault_items WHERE uuid = ?", (uuid,))
            self._db.append_audit(conn, AUDIT_CREDENTIAL_DELETED.format(site=site), uuid)
        return site

    def get(self, uuid: str) -> Credential:
        with self._db.reader() as conn:
            row = conn.execute(
                f"SELECT {CREDENTIAL_COLUMNS} FROM vault_items WHERE uuid = ?", (uuid,)
            ).fetchone()
        if row is None:
            raise NotFound(uuid)
        return _row_to_credential(row)

    def list(self, filter: Optional[CredentialFilter] = None) -> List[Credential]:
        query = f"SELECT {CREDENTIAL_COLUMNS} FROM vault_items"
        conditions = []
        params = []

        if filter is not None:
            if filter.search_term is not None:
                like = f"%{_escape_like(filter.search_term.lower())}%"
                conditions.append(
                    "(unicode_lower(site) LIKE ? ESCAPE '\\' "
                    "OR unicode_lower(username) LIKE ? ESCAPE '\\')"
                )
                params.extend([like, like])
            if filter.tag is not None:
                conditions.append(
                    "EXISTS (SELECT 1 FROM json_each(vault_items.tags) "
                    "WHERE json_each.value = ?)"
                )
                params.append(filter.tag)
            if filter.min_strength is not None:
                conditions.append("strength >= ?")
                params.append(int(filter.min_strength))
            if filter.breach_state is not None:
                conditions.append("breach_state = ?")
                params.append(int(filter.breach_state))

        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY site, username"

        with self._db.reader() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_credential(row) for row in rows]

    def update_breach_state(self, uuid: str, state: BreachState) -> None:
        with self._db.transaction() as conn:
            cur = conn.execute(
                "UPDATE vault_items SET breach_state = ? WHERE uuid = ?",
                (int(state), uuid),
            )
            if cur.rowcount == 0:
                raise NotFound(uuid)
            self._db.append_audit(conn, breach_action(state), uuid)

    def exists(self, uuid: str) -> bool:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM vault_items WHERE uuid = ?", (uuid,)
            ).fetchone()
        return row[0] > 0


class SqliteSettingsStore(SettingsStore):
    def __init__(self, db: SqliteRepository):
        self._db = db

    def get_encrypted_settings(self) -> Optional[Tuple[bytes, bytes]]:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT nonce, value FROM meta WHERE key = ?", (SETTINGS_KEY,)
            ).fetchone()
        if row is None or row[0] is None:
            return None
        return bytes(row[0]), bytes(row[1])

    def save_encrypted_settings(self, nonce: bytes, ciphertext: bytes) -> None:
        with self._db.transaction() as conn:
            self._upsert(conn, nonce, ciphertext)

    def update_settings(self, nonce: bytes, ciphertext: bytes) -> None:
        with self._db.transaction() as conn:
            self._upsert(conn, nonce, ciphertext)
            self._db.append_audit(conn, AUDIT_SETTINGS_UPDATED, None)

    @staticmethod
    def _upsert(conn: sqlite3.Connection, nonce: bytes, ciphertext: bytes):
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, nonce, value) VALUES (?, ?, ?)",
            (SETTINGS_KEY, bytes(nonce), bytes(ciphertext)),
        )

    def get_master_password_hash(self) -> Optional[str]:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT value FROM meta WHERE key = ?", (MASTER_HASH_KEY,)
            ).fetchone()
        if row is None:
            return None
        value = row[0]
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def save_master_password_hash(self, password_hash: str) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
                (MASTER_HASH_KEY, password_hash),
            )


class SqliteAuditLog(AuditLog):
    def __init__(self, db: SqliteRepository):
        self._db = db

    def add(self, action: str, item_uuid: Optional[str] = None) -> int:
        with self._db.transaction() as conn:
            return self._db.append_audit(conn, action, item_uuid)

    def get(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        limit = DEFAULT_AUDIT_LIMIT if limit is None else max(0, int(limit))
        with self._db.reader() as conn:
            rows = conn.execute(
                "SELECT id, timestamp, action, item_uuid FROM audit_log "
                "ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [
            AuditLogEntry(
                id=row[0],
                timestamp=from_timestamp(row[1]),
                action=row[2],
                item_uuid=row[3],
            )
            for row in rows
        ]
