"""Tests for AuthManager secret acquisition."""

import pytest

from auth import AuthManager
from errors import SecretError


class _Prompt:
    """Scripted replacement for getpass.getpass."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []

    def __call__(self, text):
        self.asked.append(text)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


class TestSources:
    def test_option_wins(self, keys, key_text):
        prompt = _Prompt()
        auth = AuthManager(keys, prompt=prompt, environ={"XPM_KEY": "from-env"})
        assert auth.secret_input(key=key_text) == key_text
        assert prompt.asked == []

    def test_key_file(self, keys, key_text, tmp_path):
        path = tmp_path / "key.txt"
        path.write_text(key_text + "\n")
        auth = AuthManager(keys, prompt=_Prompt(), environ={"XPM_KEY": "from-env"})
        assert auth.secret_input(key_file=str(path)) == key_text

    def test_environment(self, keys):
        auth = AuthManager(keys, prompt=_Prompt(), environ={"XPM_KEY": "from-env"})
        assert auth.secret_input() == "from-env"

    def test_prompt(self, keys):
        prompt = _Prompt("typed")
        auth = AuthManager(keys, prompt=prompt, environ={})
        assert auth.secret_input() == "typed"
        assert len(prompt.asked) == 1

    def test_prompt_with_confirmation(self, keys):
        prompt = _Prompt("typed", "typed")
        auth = AuthManager(keys, prompt=prompt, environ={})
        assert auth.secret_input(confirm=True) == "typed"
        assert len(prompt.asked) == 2

    def test_confirmation_mismatch(self, keys):
        auth = AuthManager(keys, prompt=_Prompt("one", "two"), environ={})
        with pytest.raises(SecretError):
            auth.secret_input(confirm=True)

    def test_empty_prompt(self, keys):
        auth = AuthManager(keys, prompt=_Prompt(""), environ={})
        with pytest.raises(SecretError):
            auth.secret_input()

    def test_no_input_available(self, keys):
        auth = AuthManager(keys, prompt=_Prompt(), environ={})
        with pytest.raises(SecretError):
            auth.acquire()


class TestAcquire:
    def test_acquire_key(self, keys, key_text):
        auth = AuthManager(keys, prompt=_Prompt(), environ={})
        assert auth.acquire(key=key_text).source == "key"

    def test_acquire_passphrase(self, keys):
        auth = AuthManager(keys, prompt=_Prompt(), environ={})
        assert auth.acquire(key="a passphrase").source == "passphrase"

    def test_generate(self, keys):
        auth = AuthManager(keys, prompt=_Prompt(), environ={})
        key, text = auth.acquire_or_generate(generate=True)
        assert text is not None
        token = keys.encrypt(key, b"data")
        assert keys.decrypt(keys.load_or_derive(text), token) == b"data"

    def test_generate_conflicts_with_key(self, keys, key_text):
        auth = AuthManager(keys, prompt=_Prompt(), environ={})
        with pytest.raises(SecretError):
            auth.acquire_or_generate(key=key_text, generate=True)

    def test_without_generate(self, keys, key_text):
        auth = AuthManager(keys, prompt=_Prompt(), environ={})
        key, text = auth.acquire_or_generate(key=key_text)
        assert text is None
        assert key.source == "key"
