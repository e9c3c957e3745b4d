"""
storage.py – Credential vault storage and retrieval.

This module contains VaultStore, the single class responsible for all
persistence of stored passwords:

  - Creating the SQLite vault file and its schema on first use, and storing
    a key-check token so a wrong key is rejected before any work begins.
  - Adding, reading, updating, deleting, listing, searching and counting
    credential records, each inside its own transaction.
  - Exporting the credential listing (never the secrets) to an Excel file.

VaultStore depends on KeyManager for transparent encryption of secrets: the
value handed to add()/update() is encrypted before it reaches SQL, and only
reveal() ever turns a stored token back into plaintext.

Every public method opens a fresh connection and runs one transaction, so
other processes using the same file observe a consistent, serialised view.
"""

import contextlib
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from openpyxl import Workbook

from crypto import Key, KeyManager
from errors import DecryptError, DuplicateLabel, NotFound, SecretError, VaultOpenError

logger = logging.getLogger("XPManager")

SCHEMA_VERSION = "1"

# Known plaintext sealed into vault_meta to verify the key at open time.
KEYCHECK_PLAINTEXT = b"keycheck"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS credentials (
        id         TEXT PRIMARY KEY,
        label      TEXT NOT NULL UNIQUE,
        secret     TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vault_meta (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)


@dataclass(frozen=True)
class Credential:
    """A stored record; *secret* is the ciphertext token, never plaintext."""

    id: str
    label: str
    secret: str
    created_at: str
    updated_at: str

    def __repr__(self) -> str:
        return f"Credential(id={self.id!r}, label={self.label!r})"


@dataclass(frozen=True)
class CredentialSummary:
    """What list() and find() return: everything except the secret."""

    id: str
    label: str
    created_at: str
    updated_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class VaultStore:
    """
    Manages the encrypted credential database.

    Parameters
    ----------
    path : str
        Location of the SQLite vault file (AppConfig.vault_path).
    keys : KeyManager
        Performs encryption/decryption of secrets at the store boundary.
    key : Key
        The key of the current operation.
    timeout : float
        Seconds to wait for a competing writer before giving up.

    Raises
    ------
    VaultOpenError
        If the file cannot be opened or is not a usable database.
    SecretError
        If the vault was created with a different key.
    """

    def __init__(self, path: str, keys: KeyManager, key: Key, timeout: float = 5.0) -> None:
        self.path = str(path)
        self.keys = keys
        self.key = key
        self.timeout = timeout
        self._initialise()

    # ------------------------------------------------------------------
    # Connection / transaction handling
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as exc:
            raise VaultOpenError(f"cannot open vault {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    @contextlib.contextmanager
    def _transaction(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection inside one transaction.

        Writers take the database lock up front (BEGIN IMMEDIATE) so two
        processes updating the same vault are serialised by SQLite instead
        of failing half-way through. A lock still held by someone else after
        self.timeout seconds surfaces as VaultOpenError.
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.OperationalError as exc:
            logger.warning("Vault %s unavailable: %s", self.path, exc)
            raise VaultOpenError(f"vault {self.path} is locked or unavailable: {exc}") from exc
        finally:
            conn.close()

    def _initialise(self) -> None:
        """
        Create the schema and key-check token on first use; otherwise verify
        that self.key opens this vault.
        """
        try:
            with self._transaction(write=True) as conn:
                for statement in _SCHEMA:
                    conn.execute(statement)
                row = conn.execute(
                    "SELECT value FROM vault_meta WHERE key = 'keycheck'"
                ).fetchone()
                if row is None:
                    token = self.keys.encrypt(self.key, KEYCHECK_PLAINTEXT).decode("ascii")
                    conn.executemany(
                        "INSERT INTO vault_meta (key, value) VALUES (?, ?)",
                        [
                            ("keycheck", token),
                            ("schema_version", SCHEMA_VERSION),
                            ("created_at", _now()),
                        ],
                    )
                    logger.info("Created vault at %s", self.path)
                    return
        except sqlite3.DatabaseError as exc:
            raise VaultOpenError(f"cannot open vault {self.path}: {exc}") from exc

        try:
            check = self.keys.decrypt(self.key, row["value"])
        except DecryptError:
            check = None
        if check != KEYCHECK_PLAINTEXT:
            logger.warning("Vault %s rejected the supplied key", self.path)
            raise SecretError("the key does not open this vault")

    # ------------------------------------------------------------------
    # Credential operations
    # ------------------------------------------------------------------

    def add(self, label: str, secret: str) -> str:
        """
        Encrypt *secret* and store it under *label*; return the new id.

        Raises DuplicateLabel if the label is taken (the existing record is
        left untouched).
        """
        token = self.keys.encrypt(self.key, secret).decode("ascii")
        credential_id = uuid.uuid4().hex
        now = _now()
        with self._transaction(write=True) as conn:
            if self._exists(conn, label):
                raise DuplicateLabel(f"a credential named '{label}' already exists")
            try:
                conn.execute(
                    "INSERT INTO credentials (id, label, secret, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?)",
                    (credential_id, label, token, now, now),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateLabel(f"a credential named '{label}' already exists") from exc
        logger.info("Credential added: %s", label)
        return credential_id

    def get(self, label: str) -> Credential:
        """Return the record stored under *label*; raises NotFound."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, label, secret, created_at, updated_at FROM credentials WHERE label = ?",
                (label,),
            ).fetchone()
        if row is None:
            raise NotFound(f"no credential named '{label}'")
        logger.info("Credential accessed: %s", label)
        return Credential(**dict(row))

    def reveal(self, credential: Credential) -> str:
        """Decrypt and return the plaintext secret of *credential*."""
        return self.keys.decrypt(self.key, credential.secret).decode("utf-8")

    def update(self, label: str, new_secret: Optional[str] = None, new_label: Optional[str] = None) -> None:
        """
        Replace the secret, the label, or both, of the record under *label*.

        Raises NotFound if *label* does not exist and DuplicateLabel if
        *new_label* is already used by another record.
        """
        if new_secret is None and new_label is None:
            raise ValueError("nothing to update: give a new secret and/or a new label")

        token = None
        if new_secret is not None:
            token = self.keys.encrypt(self.key, new_secret).decode("ascii")

        with self._transaction(write=True) as conn:
            if not self._exists(conn, label):
                raise NotFound(f"no credential named '{label}'")
            if new_label is not None and new_label != label and self._exists(conn, new_label):
                raise DuplicateLabel(f"a credential named '{new_label}' already exists")

            assignments = ["updated_at = ?"]
            params: list = [_now()]
            if token is not None:
                assignments.append("secret = ?")
                params.append(token)
            if new_label is not None:
                assignments.append("label = ?")
                params.append(new_label)
            params.append(label)
            conn.execute(
                f"UPDATE credentials SET {', '.join(assignments)} WHERE label = ?",
                params,
            )
        logger.info("Credential updated: %s", label if new_label is None else f"{label} -> {new_label}")

    def delete(self, label: str) -> None:
        """Remove the record under *label*; raises NotFound."""
        with self._transaction(write=True) as conn:
            cursor = conn.execute("DELETE FROM credentials WHERE label = ?", (label,))
            if cursor.rowcount == 0:
                raise NotFound(f"no credential named '{label}'")
        logger.info("Credential deleted: %s", label)

    def list(self) -> List[CredentialSummary]:
        """All records ordered by label, without their secrets."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT id, label, created_at, updated_at FROM credentials ORDER BY label"
            ).fetchall()
        return [CredentialSummary(**dict(row)) for row in rows]

    def find(self, fragment: str) -> List[CredentialSummary]:
        """Records whose label contains *fragment*, ignoring case."""
        needle = fragment.casefold()
        return [s for s in self.list() if needle in s.label.casefold()]

    def count(self) -> int:
        """Number of stored records."""
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM credentials").fetchone()[0]

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_summaries(self, out_path: str) -> int:
        """
        Write the credential listing (label, created, updated) to an Excel
        workbook at *out_path*. Secrets are never exported.

        Returns the number of exported rows.
        """
        summaries = self.list()
        wb = Workbook()
        ws = wb.active
        ws.title = "Credentials"
        ws.append(["Label", "Created", "Updated"])
        for summary in summaries:
            ws.append([summary.label, summary.created_at, summary.updated_at])
        for col, width in (("A", 40), ("B", 34), ("C", 34)):
            ws.column_dimensions[col].width = width
        wb.save(out_path)
        logger.info("Exported %d credential(s) to %s", len(summaries), out_path)
        return len(summaries)

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _exists(conn: sqlite3.Connection, label: str) -> bool:
        return conn.execute(
            "SELECT 1 FROM credentials WHERE label = ?", (label,)
        ).fetchone() is not None
