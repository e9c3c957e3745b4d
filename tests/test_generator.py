"""Tests for PasswordGenerator."""

import string

import pytest

from config import SYMBOLS
from errors import InvalidPolicy
from generator import ALL_CLASSES, DIGITS, HEX, LOWERCASE, SYMBOLS_CLASS, UPPERCASE, PasswordGenerator

CLASS_CHARS = {
    LOWERCASE: set(string.ascii_lowercase),
    UPPERCASE: set(string.ascii_uppercase),
    DIGITS: set(string.digits),
    SYMBOLS_CLASS: set(SYMBOLS),
}


class TestGenerate:
    @pytest.mark.parametrize("length", [4, 5, 16, 64, 512])
    def test_length_and_every_class(self, length):
        gen = PasswordGenerator()
        for _ in range(50):
            password = gen.generate(length, ALL_CLASSES)
            assert len(password) == length
            for chars in CLASS_CHARS.values():
                assert set(password) & chars

    @pytest.mark.parametrize("classes", [{LOWERCASE}, {DIGITS, SYMBOLS_CLASS}, {UPPERCASE, LOWERCASE, DIGITS}])
    def test_only_requested_classes(self, classes):
        allowed = set().union(*(CLASS_CHARS[c] for c in classes))
        password = PasswordGenerator().generate(40, classes)
        assert set(password) <= allowed
        for name in classes:
            assert set(password) & CLASS_CHARS[name]

    def test_shorter_than_class_count(self):
        password = PasswordGenerator().generate(2, ALL_CLASSES)
        assert len(password) == 2
        assert set(password) <= set().union(*CLASS_CHARS.values())

    def test_hex_only(self):
        password = PasswordGenerator().generate(64, {HEX})
        assert len(password) == 64
        assert set(password) <= set("0123456789ABCDEF")

    def test_hex_not_in_defaults(self):
        assert HEX not in ALL_CLASSES
        assert ALL_CLASSES == set(CLASS_CHARS)

    def test_random_length_in_range(self):
        gen = PasswordGenerator()
        for _ in range(100):
            assert 32 <= len(gen.generate()) <= 72

    def test_random_length_capped(self):
        assert PasswordGenerator(max_length=10).random_length() <= 10

    def test_passwords_differ(self):
        gen = PasswordGenerator()
        assert len({gen.generate(24) for _ in range(20)}) == 20


class TestPolicyErrors:
    @pytest.mark.parametrize("length", [0, -3, 513, True, 2.5, "8"])
    def test_bad_length(self, length):
        with pytest.raises(InvalidPolicy):
            PasswordGenerator().generate(length)

    def test_configured_maximum(self):
        with pytest.raises(InvalidPolicy):
            PasswordGenerator(max_length=20).generate(21)

    def test_empty_classes(self):
        with pytest.raises(InvalidPolicy):
            PasswordGenerator().generate(10, set())

    def test_unknown_class(self):
        with pytest.raises(InvalidPolicy, match="emoji"):
            PasswordGenerator().generate(10, {LOWERCASE, "emoji"})
