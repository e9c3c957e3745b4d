"""
errors.py – Error kinds shared by every XPManager module.

Each exception carries the process exit code the CLI uses when the error
reaches the top level, so the command-line layer never has to guess which
failure it is looking at:

  - NotFound / DuplicateLabel      – credential vault lookups and writes.
  - InvalidPolicy                  – password generation parameters.
  - IoError                        – a file could not be read or written.
  - DecryptError                   – wrong key or corrupted/tampered token.
  - AlreadyInTargetState           – file is already encrypted / decrypted.
  - InvalidToken                   – content is not a ciphertext token at all.
  - SecretError / VaultOpenError   – fatal conditions raised before any work.
  - InvalidEncoding                – input of `xpm decode` is not binary text.
"""

# Exit codes ---------------------------------------------------------------

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_NOT_FOUND = 2
EXIT_DUPLICATE = 3
EXIT_IO = 4
EXIT_DECRYPT = 5
EXIT_POLICY = 6
EXIT_TOKEN = 7
EXIT_SECRET = 8
EXIT_VAULT = 9
EXIT_ENCODING = 10
EXIT_INTERRUPTED = 130


class XPMError(Exception):
    """Base class of every error the application reports to the user."""

    exit_code: int = EXIT_UNEXPECTED

    @property
    def kind(self) -> str:
        """Short error-kind name used in summaries (the class name)."""
        return type(self).__name__


class NotFound(XPMError):
    """No credential is stored under the requested label."""

    exit_code = EXIT_NOT_FOUND


class DuplicateLabel(XPMError):
    """A credential with the requested label already exists."""

    exit_code = EXIT_DUPLICATE


class InvalidPolicy(XPMError):
    """Password length or character classes are not acceptable."""

    exit_code = EXIT_POLICY


class IoError(XPMError):
    """A path could not be read, written or replaced."""

    exit_code = EXIT_IO


class DecryptError(XPMError):
    """
    The token could not be authenticated with the given key.

    Deliberately raised with the same message for a wrong key, a tampered
    token and an unsupported token version.
    """

    exit_code = EXIT_DECRYPT


class AlreadyInTargetState(XPMError):
    """The file is already in the state the operation would produce."""

    exit_code = EXIT_TOKEN


class InvalidToken(AlreadyInTargetState):
    """The content is not a ciphertext token, so there is nothing to decrypt."""


class SecretError(XPMError):
    """No usable secret was supplied, or the vault rejected it."""

    exit_code = EXIT_SECRET


class VaultOpenError(XPMError):
    """The vault database file cannot be opened, created or locked in time."""

    exit_code = EXIT_VAULT


class InvalidEncoding(XPMError):
    """Text handed to the binary decoder is not space-separated binary digits."""

    exit_code = EXIT_ENCODING
