"""
config.py – Application configuration and constants.

This module defines AppConfig, a central container for:
  - All application-wide constants (application name, version, generator
    limits, symbol set, …)
  - The user configuration (parallel directory passes, worker count, vault
    location, …) stored as a JSON file on disk and exposed through a simple
    dict-like interface.
  - The OS-appropriate data-directory resolution and logger setup shared by
    every other module.

No other application module is imported here, so config.py sits at the bottom
of the dependency graph and can be safely imported by any other module.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import List, Optional

import appdirs

# ---------------------------------------------------------------------------
# Application-level constants – these never change at runtime.
# ---------------------------------------------------------------------------

APP_NAME = "XPManager"

# Version reported by `xpm version`.
APP_VERSION = "2.3.0"

# Upper bound for the length of a generated password unless config.json
# overrides it.
MAX_PASSWORD_LENGTH = 512

# Range used when the user does not ask for a specific length.
RANDOM_LENGTH_RANGE = (32, 72)

# Special characters available for generated passwords.
SYMBOLS = "!@#$%^&()-+=~[]{}/|:;?,.<>"

# Default cap on the size of a file handed to encrypt/decrypt (256 MiB).
MAX_FILE_SIZE = 256 * 1024 * 1024

# Environment variable consulted for the secret before prompting.
SECRET_ENV_VAR = "XPM_KEY"

# ---------------------------------------------------------------------------
# Default values written to config.json on first run.
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: dict = {
    # Largest password the generator accepts.
    "max_password_length": MAX_PASSWORD_LENGTH,
    # Run directory passes on a worker pool unless --sequential is given.
    "parallel": True,
    # Worker pool size; None means one worker per CPU.
    "workers": None,
    # Vault database location; None means <data dir>/data/passwords.db.
    "vault_path": None,
    # Largest file encrypt/decrypt accepts, in bytes; files are processed
    # whole in memory. None removes the limit.
    "max_file_size": MAX_FILE_SIZE,
    # Register completed actions in data/xpm-log.db (`xpm log show`).
    "activity_log": True,
}


class AppConfig:
    """
    Manages application configuration, file paths and logging.

    On instantiation the class:
      1. Resolves the OS-appropriate user-data directory.
      2. Loads (or creates) the JSON configuration file.
      3. Derives all relevant file paths from that directory.
      4. Sets up a rotating log handler.

    Parameters
    ----------
    data_dir : str, optional
        Overrides the appdirs location (used by --data-dir and the tests).
    vault_path : str, optional
        Overrides the vault database location (used by --vault).

    Attributes
    ----------
    user_data_dir : str
        Absolute path of the directory that stores all persistent data.
    vault_path : str
        SQLite credential database.
    activity_log_path : str
        SQLite database of the activity log (data/xpm-log.db).
    salt_path : str
        16-byte random salt used for passphrase key derivation.
    config_path : str
        JSON configuration file.
    log_path : str
        Rotating application log.
    data : dict
        The currently loaded configuration values (mutable at runtime).
    logger : logging.Logger
        Shared Python logger for the whole application.
    """

    def __init__(self, data_dir: Optional[str] = None, vault_path: Optional[str] = None) -> None:
        # --- Resolve (and create) the persistent data directory ---
        self.user_data_dir: str = self._get_user_data_dir(data_dir)

        self.config_path: str = os.path.join(self.user_data_dir, "config.json")
        self.salt_path:   str = os.path.join(self.user_data_dir, "salt.bin")
        self.log_path:    str = os.path.join(self.user_data_dir, "app.log")

        # --- Configure the rotating log handler ---
        self.logger: logging.Logger = self._setup_logger()

        # --- Load or create the JSON configuration ---
        self.data: dict = self._load()

        # --- The vault location may come from the caller or config.json ---
        configured = vault_path or self.data.get("vault_path")
        if configured:
            self.vault_path: str = os.path.abspath(os.path.expanduser(configured))
        else:
            self.vault_path = os.path.join(self.user_data_dir, "data", "passwords.db")
        self.activity_log_path: str = os.path.join(self.user_data_dir, "data", "xpm-log.db")
        os.makedirs(os.path.dirname(self.vault_path), exist_ok=True)
        os.makedirs(os.path.dirname(self.activity_log_path), exist_ok=True)

        self.logger.info("AppConfig initialised; data dir: %s", self.user_data_dir)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_user_data_dir(override: Optional[str] = None) -> str:
        """
        Return (and create if necessary) the OS-appropriate user-data
        directory, e.g. ~/.local/share/XPManager on Linux.
        """
        if override:
            path = os.path.abspath(os.path.expanduser(override))
        else:
            path = appdirs.user_data_dir(APP_NAME, appauthor=False)

        os.makedirs(path, exist_ok=True)
        return path

    def _setup_logger(self) -> logging.Logger:
        """
        Create and configure a rotating file logger for the whole application.

        The log rotates at 2 MB and keeps up to 3 backup files.
        Duplicate handlers are avoided if the logger already exists
        (e.g. when several AppConfig objects are created in one process).
        """
        logger = logging.getLogger(APP_NAME)
        logger.setLevel(logging.DEBUG)

        if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
            handler = RotatingFileHandler(
                self.log_path,
                maxBytes=2_000_000,
                backupCount=3,
                encoding="utf-8",
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
            )
            logger.addHandler(handler)

        return logger

    def _load(self) -> dict:
        """
        Read config.json from disk.

        Missing keys are back-filled from DEFAULT_CONFIG so that new
        settings introduced in later versions are always present.
        A corrupted file is logged and replaced by the defaults in memory.
        """
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, "r", encoding="utf-8") as fh:
                    cfg: dict = json.load(fh)
                for key, value in DEFAULT_CONFIG.items():
                    cfg.setdefault(key, value)
                return cfg
        except (OSError, ValueError):
            self.logger.exception("Failed to load config; using defaults")

        return dict(DEFAULT_CONFIG)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration dictionary to disk as JSON."""
        with open(self.config_path, "w", encoding="utf-8") as fh:
            json.dump(self.data, fh, indent=2)
        self.logger.info("Config saved")

    def get(self, key: str, default=None):
        """Return a configuration value by key, or *default* if not found."""
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        """
        Update a configuration value in memory.

        Call save() afterwards to persist the change to disk.
        """
        self.data[key] = value

    @property
    def workers(self) -> int:
        """Worker pool size for parallel directory passes."""
        configured = self.get("workers")
        if configured:
            return max(1, int(configured))
        return os.cpu_count() or 1

    def protected_paths(self) -> List[str]:
        """Files that a recursive encrypt/decrypt pass must never touch."""
        return [self.salt_path, self.config_path]

    def protected_families(self) -> List[str]:
        """
        Protected files that grow siblings named after them: SQLite's
        -wal, -shm and -journal files next to the two databases, and the
        rotated app.log.1 .. app.log.3.
        """
        return [self.vault_path, self.activity_log_path, self.log_path]
