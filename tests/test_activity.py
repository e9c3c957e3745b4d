"""Tests for ActivityLog."""

import re
import sqlite3

import pytest

from activity import ActivityLog
from errors import IoError


class TestRegister:
    def test_entries_in_order(self, activity_log):
        activity_log.register("add password 'github'")
        activity_log.register("encrypt file at '/tmp/a.txt'")
        entries = activity_log.entries()
        assert [e.message for e in entries] == ["add password 'github'", "encrypt file at '/tmp/a.txt'"]
        assert entries[0].id < entries[1].id
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", entries[0].created_at)

    def test_empty_log(self, activity_log):
        assert activity_log.entries() == []

    def test_limit_keeps_most_recent(self, activity_log):
        for n in range(5):
            activity_log.register(f"event {n}")
        assert [e.message for e in activity_log.entries(limit=2)] == ["event 3", "event 4"]

    def test_table_layout(self, activity_log, app_config):
        activity_log.register("x")
        with sqlite3.connect(app_config.activity_log_path) as conn:
            assert conn.execute("SELECT log FROM log").fetchall() == [("x",)]

    def test_persists_across_instances(self, activity_log, app_config):
        activity_log.register("first run")
        assert ActivityLog(app_config.activity_log_path).entries()[0].message == "first run"


class TestClear:
    def test_clear(self, activity_log):
        activity_log.register("a")
        activity_log.register("b")
        assert activity_log.clear() == 2
        assert activity_log.entries() == []

    def test_ids_keep_growing_after_clear(self, activity_log):
        activity_log.register("a")
        first = activity_log.entries()[0].id
        activity_log.clear()
        activity_log.register("b")
        assert activity_log.entries()[0].id > first


class TestErrors:
    def test_unopenable_path(self, tmp_path):
        broken = ActivityLog(str(tmp_path / "missing-dir" / "xpm-log.db"))
        with pytest.raises(IoError):
            broken.register("x")

    def test_not_a_database(self, tmp_path):
        path = tmp_path / "garbage.db"
        path.write_bytes(b"this is not sqlite" * 100)
        with pytest.raises(IoError):
            ActivityLog(str(path)).entries()
