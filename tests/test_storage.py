"""Tests for VaultStore."""

import sqlite3
import threading
from pathlib import Path

import pytest
from openpyxl import load_workbook

from errors import DuplicateLabel, NotFound, SecretError, VaultOpenError
from storage import VaultStore


class TestCredentials:
    def test_add_get_reveal(self, vault):
        credential_id = vault.add("email", "s3cret!")
        credential = vault.get("email")
        assert credential.id == credential_id
        assert credential.label == "email"
        assert vault.reveal(credential) == "s3cret!"

    def test_secret_not_stored_in_plaintext(self, vault, app_config):
        vault.add("bank", "PlainTextNeverOnDisk")
        with sqlite3.connect(app_config.vault_path) as conn:
            stored = conn.execute("SELECT secret FROM credentials").fetchone()[0]
        assert "PlainTextNeverOnDisk" not in stored
        raw = Path(app_config.vault_path).read_bytes()
        assert b"PlainTextNeverOnDisk" not in raw

    def test_duplicate_add_leaves_record(self, vault):
        vault.add("email", "first")
        before = vault.get("email")
        with pytest.raises(DuplicateLabel):
            vault.add("email", "second")
        after = vault.get("email")
        assert after == before
        assert vault.reveal(after) == "first"
        assert vault.count() == 1

    def test_labels_are_case_sensitive(self, vault):
        vault.add("Email", "a")
        vault.add("email", "b")
        assert vault.count() == 2

    def test_get_missing(self, vault):
        with pytest.raises(NotFound):
            vault.get("nothing")

    def test_delete_then_get(self, vault):
        vault.add("temp", "x")
        vault.delete("temp")
        with pytest.raises(NotFound):
            vault.get("temp")

    def test_delete_missing(self, vault):
        with pytest.raises(NotFound):
            vault.delete("nothing")

    def test_repr_hides_secret(self, vault):
        vault.add("email", "pw")
        assert vault.get("email").secret not in repr(vault.get("email"))


class TestUpdate:
    def test_rename_scenario(self, vault):
        vault.add("github", "Tr0ub4dor&3")
        assert vault.reveal(vault.get("github")) == "Tr0ub4dor&3"

        vault.update("github", new_label="github-work")

        with pytest.raises(NotFound):
            vault.get("github")
        assert vault.reveal(vault.get("github-work")) == "Tr0ub4dor&3"

    def test_new_secret_bumps_updated_at(self, vault):
        credential_id = vault.add("email", "old")
        before = vault.get("email")
        vault.update("email", new_secret="new")
        after = vault.get("email")
        assert vault.reveal(after) == "new"
        assert after.id == credential_id
        assert after.created_at == before.created_at
        assert after.updated_at >= before.updated_at

    def test_secret_and_label_together(self, vault):
        vault.add("a", "1")
        vault.update("a", new_secret="2", new_label="b")
        assert vault.reveal(vault.get("b")) == "2"

    def test_update_missing(self, vault):
        with pytest.raises(NotFound):
            vault.update("nothing", new_secret="x")

    def test_rename_onto_existing(self, vault):
        vault.add("a", "1")
        vault.add("b", "2")
        with pytest.raises(DuplicateLabel):
            vault.update("a", new_label="b")
        assert vault.reveal(vault.get("a")) == "1"
        assert vault.reveal(vault.get("b")) == "2"

    def test_nothing_to_update(self, vault):
        vault.add("a", "1")
        with pytest.raises(ValueError):
            vault.update("a")


class TestListing:
    def test_list_ordered_without_secrets(self, vault):
        for label in ("zeta", "alpha", "Mid"):
            vault.add(label, "pw")
        summaries = vault.list()
        assert [s.label for s in summaries] == ["Mid", "alpha", "zeta"]
        assert not hasattr(summaries[0], "secret")

    def test_find_is_case_insensitive(self, vault):
        for label in ("GitHub", "github-work", "gitlab", "email"):
            vault.add(label, "pw")
        assert [s.label for s in vault.find("GITHUB")] == ["GitHub", "github-work"]
        assert vault.find("nothing") == []

    def test_count(self, vault):
        assert vault.count() == 0
        vault.add("a", "1")
        vault.add("b", "2")
        assert vault.count() == 2

    def test_export(self, vault, tmp_path):
        vault.add("email", "TopSecret")
        vault.add("bank", "AlsoSecret")
        out = tmp_path / "export.xlsx"
        assert vault.export_summaries(str(out)) == 2

        ws = load_workbook(out).active
        rows = [[c.value for c in row] for row in ws.iter_rows()]
        assert rows[0] == ["Label", "Created", "Updated"]
        assert [r[0] for r in rows[1:]] == ["bank", "email"]
        assert all("Secret" not in str(v) for row in rows for v in row)


class TestOpening:
    def test_reopen_with_same_key(self, app_config, keys, key, vault):
        vault.add("email", "pw")
        reopened = VaultStore(app_config.vault_path, keys, key)
        assert reopened.reveal(reopened.get("email")) == "pw"

    def test_reopen_with_other_key(self, app_config, keys, other_key, vault):
        with pytest.raises(SecretError):
            VaultStore(app_config.vault_path, keys, other_key)

    def test_not_a_database(self, tmp_path, keys, key):
        path = tmp_path / "junk.db"
        path.write_bytes(b"this is definitely not sqlite" * 100)
        with pytest.raises(VaultOpenError):
            VaultStore(str(path), keys, key)

    def test_unopenable_path(self, tmp_path, keys, key):
        with pytest.raises(VaultOpenError):
            VaultStore(str(tmp_path / "missing-dir" / "vault.db"), keys, key)

    def test_concurrent_writers(self, app_config, keys, key, vault):
        errors = []

        def writer(prefix):
            store = VaultStore(app_config.vault_path, keys, key)
            try:
                for i in range(10):
                    store.add(f"{prefix}-{i}", "pw")
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b", "c")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert vault.count() == 30


class TestLocked:
    @pytest.fixture
    def held_lock(self, app_config, vault):
        """Another connection holding the vault's write lock."""
        conn = sqlite3.connect(app_config.vault_path, isolation_level=None)
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("ROLLBACK")
        conn.close()

    def test_write_times_out_as_vault_error(self, vault, held_lock):
        vault.timeout = 0.05
        with pytest.raises(VaultOpenError, match="locked"):
            vault.add("email", "pw")

    def test_open_times_out_as_vault_error(self, app_config, keys, key, held_lock):
        with pytest.raises(VaultOpenError):
            VaultStore(app_config.vault_path, keys, key, timeout=0.05)

    def test_readers_not_blocked(self, vault, held_lock):
        vault.timeout = 0.05
        assert vault.count() == 0

    def test_usable_after_release(self, vault, held_lock):
        vault.timeout = 0.05
        with pytest.raises(VaultOpenError):
            vault.delete("email")
        held_lock.execute("ROLLBACK")
        held_lock.execute("BEGIN")
        vault.add("email", "pw")
        assert vault.count() == 1
