"""
Shared pytest fixtures for the XPManager test suite.

Every fixture works inside ``tmp_path`` so no test touches the real
per-user data directory. PBKDF2 is made cheap for the whole run.
"""

import pytest

from activity import ActivityLog
from config import AppConfig
from crypto import KeyManager
from file_cipher import FileCipher
from storage import VaultStore


@pytest.fixture(autouse=True)
def _fast_kdf(monkeypatch):
    """Passphrase derivation at full strength makes the suite crawl."""
    monkeypatch.setattr(KeyManager, "KDF_ITERATIONS", 1_000)


@pytest.fixture(autouse=True)
def _no_env_secret(monkeypatch):
    monkeypatch.delenv("XPM_KEY", raising=False)


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(data_dir=str(tmp_path / "appdata"))


@pytest.fixture
def keys(app_config):
    return KeyManager(app_config)


@pytest.fixture
def key_text(keys):
    return keys.generate_key()


@pytest.fixture
def key(keys, key_text):
    return keys.load_or_derive(key_text)


@pytest.fixture
def other_key(keys):
    return keys.load_or_derive(keys.generate_key())


@pytest.fixture
def vault(app_config, keys, key):
    return VaultStore(app_config.vault_path, keys, key)


@pytest.fixture
def activity_log(app_config):
    return ActivityLog(app_config.activity_log_path)


@pytest.fixture
def file_cipher(keys):
    return FileCipher(keys)


@pytest.fixture
def sample_tree(tmp_path):
    """A small tree with nested directories, text and binary files."""
    root = tmp_path / "tree"
    (root / "docs" / "deep").mkdir(parents=True)
    (root / "media").mkdir()
    (root / "notes.txt").write_text("top level notes\n")
    (root / "docs" / "report.md").write_text("# Report\n\nquarterly numbers\n")
    (root / "docs" / "deep" / "secret.txt").write_text("the launch codes")
    (root / "docs" / "empty.txt").write_bytes(b"")
    (root / "media" / "image.bin").write_bytes(bytes(range(256)) * 40)
    return root


@pytest.fixture
def snapshot():
    """Return a function mapping relative path -> bytes for files under a root."""

    def take(root):
        return {
            str(p.relative_to(root)): p.read_bytes()
            for p in sorted(root.rglob("*"))
            if p.is_file() and not p.is_symlink()
        }

    return take
