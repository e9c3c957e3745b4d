"""
file_cipher.py – Encryption and decryption of single files.

FileCipher turns one file into a Fernet token (or back) and writes the result
atomically:

  1. The new content is written to a temporary file in the destination
     directory, flushed and fsync'ed.
  2. The original permission bits are copied onto the temporary file.
  3. os.replace() swaps it into place in one step.

A crash at any point before step 3 leaves the original file exactly as it
was; only a stray temporary file can remain, never half-written content at
the original path.

process() never raises for per-file problems – it reports them in the
returned FileOutcome, which is what DirectoryCipher needs to keep one bad
file from aborting its siblings. encrypt_file()/decrypt_file() are the
raising variants used by the single-file CLI commands.
"""

import enum
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Optional

from crypto import Key, KeyManager, looks_like_token
from errors import AlreadyInTargetState, InvalidToken, IoError, XPMError

logger = logging.getLogger("XPManager")

# Overwrite patterns applied by wipe_delete(), in order; None means random.
WIPE_PASSES = (b"\xff", None, None, b"\x00")
WIPE_CHUNK = 1024 * 1024


class Mode(enum.Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


class Status(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FileOutcome:
    """Result of processing one file."""

    path: str
    mode: Mode
    destination: str
    status: Status
    error: Optional[XPMError] = None

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCEEDED

    @property
    def reason(self) -> str:
        """Short text for summaries: ok, cancelled, or "<ErrorKind>: <message>"."""
        if self.status is Status.SUCCEEDED:
            return "ok"
        if self.status is Status.CANCELLED:
            return "cancelled"
        if self.error is None:
            return "failed"
        return f"{self.error.kind}: {self.error}"


# ----------------------------------------------------------------------
# Filesystem helpers
# ----------------------------------------------------------------------

def atomic_write(destination: str, data: bytes, mode_from: Optional[str] = None) -> None:
    """
    Write *data* to *destination* through a temporary file and os.replace().

    When *mode_from* names an existing file its permission bits are copied
    onto the new file. On any failure the temporary file is removed and the
    exception propagates; *destination* is left as it was.
    """
    directory = os.path.dirname(os.path.abspath(destination))
    fd, tmp_path = tempfile.mkstemp(
        dir=directory, prefix=f".{os.path.basename(destination)}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if mode_from is not None and os.path.exists(mode_from):
            shutil.copymode(mode_from, tmp_path)
        os.replace(tmp_path, destination)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def wipe_delete(path: str) -> None:
    """
    Overwrite *path* with 1s, random bytes twice and 0s, then unlink it.

    On SSDs and copy-on-write filesystems the old blocks may survive; this
    only makes casual recovery harder.
    """
    size = os.path.getsize(path)
    with open(path, "r+b") as fh:
        for pattern in WIPE_PASSES:
            fh.seek(0)
            remaining = size
            while remaining > 0:
                chunk = min(remaining, WIPE_CHUNK)
                fh.write(os.urandom(chunk) if pattern is None else pattern * chunk)
                remaining -= chunk
            fh.flush()
            os.fsync(fh.fileno())
    os.remove(path)
    logger.debug("Wiped and removed %s", path)


def _read(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except OSError as exc:
        raise IoError(f"cannot read {path}: {exc.strerror}") from exc


def _check_size(path: str, limit: int) -> None:
    try:
        size = os.path.getsize(path)
    except OSError as exc:
        raise IoError(f"cannot read {path}: {exc.strerror}") from exc
    if size > limit:
        raise IoError(f"{path} is {size} bytes, over the {limit} byte limit (max_file_size)")


def _write(destination: str, data: bytes, source: str) -> None:
    try:
        atomic_write(destination, data, mode_from=source)
    except OSError as exc:
        raise IoError(f"cannot write {destination}: {exc.strerror or exc}") from exc


# ----------------------------------------------------------------------
# FileCipher
# ----------------------------------------------------------------------

class FileCipher:
    """
    Encrypts or decrypts one file at a time.

    Parameters
    ----------
    keys : KeyManager
        Every encrypt/decrypt call goes through it.
    max_size : int, optional
        Largest file, in bytes, that is accepted. A file is held in memory
        whole, together with its token (about three times its size at the
        peak), so this bounds what each worker of a directory pass can use.
        None means no limit.
    """

    def __init__(self, keys: KeyManager, max_size: Optional[int] = None) -> None:
        self.keys = keys
        self.max_size = max_size

    def process(
        self,
        path: str,
        mode: Mode,
        key: Key,
        destination: Optional[str] = None,
        remove_source: bool = False,
    ) -> FileOutcome:
        """
        Run *mode* on *path* and report the outcome instead of raising.

        *destination* defaults to *path* (in place). *remove_source* wipes
        and deletes the source afterwards; it is ignored for in-place runs.
        """
        destination = destination or path
        try:
            self._run(path, mode, key, destination, remove_source)
        except XPMError as exc:
            logger.warning("%s failed for %s: %s", mode.value, path, exc)
            return FileOutcome(path, mode, destination, Status.FAILED, exc)
        return FileOutcome(path, mode, destination, Status.SUCCEEDED)

    def encrypt_file(self, path: str, key: Key, destination: Optional[str] = None,
                     remove_source: bool = False) -> str:
        """Encrypt *path*; return the destination. Raises on failure."""
        destination = destination or path
        self._run(path, Mode.ENCRYPT, key, destination, remove_source)
        return destination

    def decrypt_file(self, path: str, key: Key, destination: Optional[str] = None,
                     remove_source: bool = False) -> str:
        """Decrypt *path*; return the destination. Raises on failure."""
        destination = destination or path
        self._run(path, Mode.DECRYPT, key, destination, remove_source)
        return destination

    # ------------------------------------------------------------------

    def _run(self, path: str, mode: Mode, key: Key, destination: str, remove_source: bool) -> None:
        if self.max_size is not None:
            _check_size(path, self.max_size)
        data = _read(path)

        if mode is Mode.ENCRYPT:
            if looks_like_token(data):
                raise AlreadyInTargetState(f"{path} is already encrypted")
            output = self.keys.encrypt(key, data)
        else:
            if not looks_like_token(data):
                raise InvalidToken(f"{path} is not an encrypted file")
            output = self.keys.decrypt(key, data.strip())

        _write(destination, output, source=path)

        if remove_source and not _same_file(path, destination):
            try:
                wipe_delete(path)
            except OSError as exc:
                raise IoError(f"cannot remove {path}: {exc.strerror}") from exc

        logger.info("%s %s -> %s", "Encrypted" if mode is Mode.ENCRYPT else "Decrypted", path, destination)


def _same_file(a: str, b: str) -> bool:
    return os.path.abspath(a) == os.path.abspath(b)
