"""
auth.py – Acquisition of the user's secret.

This module contains AuthManager, which turns whatever the user supplied on
the command line or in the environment into a Key:

  - An explicit secret (--key) or a key file (--key-file) wins.
  - Otherwise the XPM_KEY environment variable is consulted.
  - Otherwise the user is prompted without echo; for secrets that will
    protect new data the prompt asks for a confirmation.
  - Encryption commands may instead ask for a freshly generated key, which
    is returned so the CLI can show it to the user once.

AuthManager depends on KeyManager (key derivation) and AppConfig (secret
environment variable name) but never prints anything itself – all output is
in cli.py.
"""

import getpass
import logging
import os
from typing import Callable, Mapping, Optional, Tuple

from config import SECRET_ENV_VAR
from crypto import Key, KeyManager, read_key_file
from errors import SecretError

logger = logging.getLogger("XPManager")


class AuthManager:
    """
    Resolves the secret of one CLI invocation.

    Parameters
    ----------
    keys : KeyManager
        Turns secret input into a Key.
    prompt : callable, optional
        No-echo prompt function; getpass.getpass by default.
    environ : mapping, optional
        Environment to read XPM_KEY from; os.environ by default.
    """

    def __init__(
        self,
        keys: KeyManager,
        prompt: Optional[Callable[[str], str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.keys = keys
        self.prompt = prompt or getpass.getpass
        self.environ = os.environ if environ is None else environ

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def secret_input(self, key: Optional[str] = None, key_file: Optional[str] = None,
                     confirm: bool = False) -> str:
        """
        Return the raw secret text from the first source that has one.

        Raises SecretError if the prompt is aborted, left empty or the
        confirmation does not match.
        """
        if key:
            logger.debug("Secret taken from --key")
            return key
        if key_file:
            logger.debug("Secret taken from key file %s", key_file)
            return read_key_file(key_file)

        from_env = self.environ.get(SECRET_ENV_VAR)
        if from_env:
            logger.debug("Secret taken from %s", SECRET_ENV_VAR)
            return from_env

        return self._prompt_secret(confirm)

    def acquire(self, key: Optional[str] = None, key_file: Optional[str] = None,
                confirm: bool = False) -> Key:
        """Resolve the secret and derive the Key for this operation."""
        return self.keys.load_or_derive(self.secret_input(key, key_file, confirm))

    def acquire_or_generate(self, key: Optional[str] = None, key_file: Optional[str] = None,
                            generate: bool = False) -> Tuple[Key, Optional[str]]:
        """
        Like acquire(), but with *generate* a new random key is created.

        Returns (key, generated_text); generated_text is None unless a key
        was generated, in which case the caller must show it to the user.
        """
        if generate:
            if key or key_file:
                raise SecretError("--new-key cannot be combined with --key or --key-file")
            text = self.keys.generate_key()
            logger.info("Generated a new encryption key")
            return self.keys.load_or_derive(text), text
        return self.acquire(key, key_file, confirm=True), None

    # ------------------------------------------------------------------
    # Prompting
    # ------------------------------------------------------------------

    def _prompt_secret(self, confirm: bool) -> str:
        try:
            secret = self.prompt("Key or passphrase: ")
            if not secret:
                raise SecretError("a key or passphrase is required")
            if confirm and self.prompt("Confirm key or passphrase: ") != secret:
                raise SecretError("the two entries did not match")
        except EOFError:
            raise SecretError("no key or passphrase was entered") from None
        return secret
