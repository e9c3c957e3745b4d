"""
activity.py – Activity log of the actions the user performed.

ActivityLog keeps a small SQLite database next to the vault
(<data dir>/data/xpm-log.db) with one row per completed action:

  - Vault changes:     "add password 'github'", "delete password 'github'".
  - File encryption:   "encrypt file at '/home/me/notes.txt'".
  - Wiped sources:     "file '/home/me/notes.txt' wiped".
  - Directory passes:  "encrypt directory at '/home/me/docs' (5 ok, 0 failed)".

Rows hold labels and paths only; secrets and keys never reach this file.
It is shown with `xpm log show` and emptied with `xpm log clear`.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from errors import IoError

logger = logging.getLogger("XPManager")

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS log (
        id         INTEGER PRIMARY KEY AUTOINCREMENT,
        log        TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
"""


@dataclass(frozen=True)
class LogEntry:
    id: int
    message: str
    created_at: str


class ActivityLog:
    """
    Append-only record of user actions.

    Parameters
    ----------
    path : str
        Location of the log database (AppConfig.activity_log_path).
    timeout : float
        Seconds to wait for another process writing to the same file.

    Raises
    ------
    IoError
        From every method, when the database cannot be opened or written.
    """

    def __init__(self, path: str, timeout: float = 5.0) -> None:
        self.path = str(path)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.path, timeout=self.timeout)
            conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise IoError(f"cannot open activity log {self.path}: {exc}") from exc
        return conn

    def register(self, message: str) -> None:
        """Append *message* with the current local time."""
        created_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        conn = self._connect()
        try:
            with conn:
                conn.execute("INSERT INTO log (log, created_at) VALUES (?, ?)", (message, created_at))
        except sqlite3.Error as exc:
            raise IoError(f"cannot write activity log {self.path}: {exc}") from exc
        finally:
            conn.close()
        logger.debug("Activity registered: %s", message)

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """
        Registered entries, oldest first.

        With *limit*, only the most recent *limit* entries are returned
        (still oldest first).
        """
        conn = self._connect()
        try:
            if limit is None:
                rows = conn.execute("SELECT id, log, created_at FROM log ORDER BY id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT id, log, created_at FROM"
                    " (SELECT id, log, created_at FROM log ORDER BY id DESC LIMIT ?)"
                    " ORDER BY id",
                    (max(0, limit),),
                ).fetchall()
        except sqlite3.Error as exc:
            raise IoError(f"cannot read activity log {self.path}: {exc}") from exc
        finally:
            conn.close()
        return [LogEntry(*row) for row in rows]

    def clear(self) -> int:
        """Delete every entry; return how many were removed."""
        conn = self._connect()
        try:
            with conn:
                removed = conn.execute("DELETE FROM log").rowcount
        except sqlite3.Error as exc:
            raise IoError(f"cannot clear activity log {self.path}: {exc}") from exc
        finally:
            conn.close()
        logger.info("Activity log cleared (%d entries)", removed)
        return removed
