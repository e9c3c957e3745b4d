"""
crypto.py – Cryptographic operations for XPManager.

This module contains KeyManager, which is the single place responsible
for every cryptographic concern in the application:

  - Turning the user's secret input into a Key: a Fernet key is used as-is,
    anything else is treated as a passphrase and stretched with
    PBKDF2-HMAC-SHA256 using the salt stored in the data directory.
  - Generating fresh random keys for users who do not bring their own.
  - Encrypting and decrypting byte strings with Fernet
    (AES-128-CBC + HMAC-SHA256, versioned base64 tokens, provided by the
    'cryptography' package).

Key material only ever lives inside a Key object that the caller owns and
passes explicitly; nothing here keeps a module-level or per-instance key.
"""

import base64
import binascii
import logging
import os
from typing import Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from errors import DecryptError, IoError, SecretError

logger = logging.getLogger("XPManager")

# Raw Fernet keys are 32 bytes: 16 for signing, 16 for encryption.
RAW_KEY_LENGTH = 32
SALT_LENGTH = 16

# Fernet token layout: version(1) | timestamp(8) | IV(16) | ciphertext | HMAC(32)
TOKEN_VERSION = 0x80
TOKEN_OVERHEAD = 1 + 8 + 16 + 32
BLOCK_SIZE = 16


class Key:
    """
    In-memory symmetric key handed from KeyManager to the operations that
    need it.

    The material is wrapped in a Fernet instance and never exposed; repr()
    only shows how the key was obtained so a stray log line cannot leak it.
    """

    __slots__ = ("_fernet", "source")

    def __init__(self, material: bytes, source: str) -> None:
        self._fernet = Fernet(material)
        self.source = source

    def __repr__(self) -> str:
        return f"<Key source={self.source}>"


def is_fernet_key(secret: str) -> bool:
    """Return True if *secret* is URL-safe base64 of exactly 32 bytes."""
    try:
        raw = base64.b64decode(secret.encode("ascii"), altchars=b"-_", validate=True)
    except (UnicodeEncodeError, binascii.Error, ValueError):
        return False
    return len(raw) == RAW_KEY_LENGTH and len(secret) == 44


def looks_like_token(data: bytes) -> bool:
    """
    Cheap structural check: is *data* shaped like a Fernet token?

    Used to tell "already encrypted" content apart from plaintext without
    needing the key. It never authenticates anything.
    """
    try:
        raw = base64.b64decode(data.strip(), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        return False
    if len(raw) < TOKEN_OVERHEAD + BLOCK_SIZE or raw[0] != TOKEN_VERSION:
        return False
    return (len(raw) - TOKEN_OVERHEAD) % BLOCK_SIZE == 0


class KeyManager:
    """
    Handles all cryptographic operations for XPManager.

    Parameters
    ----------
    config : AppConfig
        Application configuration object, used for the salt file location.
    """

    # PBKDF2 work factor for passphrase-derived keys.
    KDF_ITERATIONS = 390_000

    def __init__(self, config) -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Key acquisition
    # ------------------------------------------------------------------

    def load_or_derive(self, secret_input: str) -> Key:
        """
        Build a Key from whatever the user supplied.

        A well-formed Fernet key is used directly. Any other non-empty
        string is a passphrase and goes through derive_key() with the
        stored salt (created on first use).

        Raises SecretError when *secret_input* is missing or empty.
        """
        if secret_input is None or not secret_input.strip():
            raise SecretError("a key or passphrase is required")

        secret_input = secret_input.strip()
        if is_fernet_key(secret_input):
            return Key(secret_input.encode("ascii"), source="key")

        return Key(self.derive_key(secret_input, self.load_or_create_salt()), source="passphrase")

    def derive_key(self, passphrase: str, salt: bytes) -> bytes:
        """
        Derive a 32-byte Fernet-compatible key from *passphrase* and *salt*
        using PBKDF2-HMAC-SHA256.

        The raw 32 bytes are URL-safe base64-encoded so they can be passed
        directly to Fernet().
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=RAW_KEY_LENGTH,
            salt=salt,
            iterations=self.KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))

    @staticmethod
    def generate_key() -> str:
        """Return a fresh random Fernet key as text, for the user to keep."""
        return Fernet.generate_key().decode("ascii")

    # ------------------------------------------------------------------
    # Salt management
    # ------------------------------------------------------------------

    def load_or_create_salt(self) -> bytes:
        """
        Return the passphrase salt, generating and storing a new random
        16-byte salt the first time a passphrase is used.

        The file is created with O_EXCL so two processes racing on first use
        end up sharing whichever salt was written first.
        """
        path = self.config.salt_path
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            return self._read_salt(path)
        except OSError as exc:
            raise SecretError(f"cannot create salt file {path}: {exc.strerror}") from exc

        salt = os.urandom(SALT_LENGTH)
        with os.fdopen(fd, "wb") as fh:
            fh.write(salt)
            fh.flush()
            os.fsync(fh.fileno())
        logger.info("Created passphrase salt at %s", path)
        return salt

    @staticmethod
    def _read_salt(path: str) -> bytes:
        try:
            with open(path, "rb") as fh:
                salt = fh.read()
        except OSError as exc:
            raise SecretError(f"cannot read salt file {path}: {exc.strerror}") from exc
        if len(salt) != SALT_LENGTH:
            raise SecretError(f"salt file {path} is corrupted")
        return salt

    # ------------------------------------------------------------------
    # Encrypt / decrypt
    # ------------------------------------------------------------------

    @staticmethod
    def encrypt(key: Key, plaintext: Union[bytes, str]) -> bytes:
        """
        Encrypt *plaintext* with *key* and return the Fernet token (bytes,
        URL-safe base64 text). Strings are UTF-8 encoded first.
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        return key._fernet.encrypt(plaintext)

    @staticmethod
    def decrypt(key: Key, token: Union[bytes, str]) -> bytes:
        """
        Authenticate and decrypt *token* with *key*.

        Raises DecryptError for every failure – wrong key, tampering,
        unknown version or malformed input – with one fixed message. The
        underlying cause is only logged at DEBUG level.
        """
        if isinstance(token, str):
            try:
                token = token.encode("ascii")
            except UnicodeEncodeError:
                logger.debug("Token rejected: non-ascii input")
                raise DecryptError("token is not valid for this key") from None
        try:
            return key._fernet.decrypt(token)
        except (InvalidToken, TypeError, ValueError) as exc:
            logger.debug("Token rejected: %s", type(exc).__name__)
            raise DecryptError("token is not valid for this key") from None


def read_key_file(path: str) -> str:
    """Return the secret stored in a key file (first non-empty line)."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                if line.strip():
                    return line.strip()
    except OSError as exc:
        raise IoError(f"cannot read key file {path}: {exc.strerror}") from exc
    raise SecretError(f"key file {path} is empty")
