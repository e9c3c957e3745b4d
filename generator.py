"""
generator.py – Random password generation.

PasswordGenerator draws every character from the operating system's CSPRNG
(secrets.SystemRandom). A policy is a length plus a non-empty set of
character classes; whenever the length allows it, the password contains at
least one character from each requested class.

The default classes are lowercase, uppercase, digits and symbols; "hex"
(0-9, A-F) is available for keys and tokens that must be hexadecimal.
"""

import secrets
import string
from typing import Dict, Iterable, Optional

from config import MAX_PASSWORD_LENGTH, RANDOM_LENGTH_RANGE, SYMBOLS
from errors import InvalidPolicy

LOWERCASE = "lowercase"
UPPERCASE = "uppercase"
DIGITS = "digits"
SYMBOLS_CLASS = "symbols"
HEX = "hex"

CHARACTER_CLASSES: Dict[str, str] = {
    LOWERCASE: string.ascii_lowercase,
    UPPERCASE: string.ascii_uppercase,
    DIGITS: string.digits,
    SYMBOLS_CLASS: SYMBOLS,
    HEX: "0123456789ABCDEF",
}

# The hex class overlaps digits and uppercase, so it is only used on request.
ALL_CLASSES = frozenset({LOWERCASE, UPPERCASE, DIGITS, SYMBOLS_CLASS})


class PasswordGenerator:
    """
    Produces passwords from a character-class policy.

    Parameters
    ----------
    max_length : int
        Largest length generate() accepts (config "max_password_length").
    """

    def __init__(self, max_length: int = MAX_PASSWORD_LENGTH) -> None:
        self.max_length = max_length
        self._random = secrets.SystemRandom()

    def generate(self, length: Optional[int] = None, character_classes: Iterable[str] = ALL_CLASSES) -> str:
        """
        Return a random password of *length* characters.

        One character is picked from every requested class first, the rest
        is filled from the union of the classes, and the result is shuffled,
        so each class is represented whenever length >= number of classes.
        With a shorter length the password is drawn from the union only.

        When *length* is None a length is chosen with random_length().

        Raises InvalidPolicy for an empty or unknown class set, or a length
        that is not between 1 and max_length.
        """
        classes = sorted(set(character_classes))
        if not classes:
            raise InvalidPolicy("at least one character class is required")
        unknown = [name for name in classes if name not in CHARACTER_CLASSES]
        if unknown:
            raise InvalidPolicy(f"unknown character class: {', '.join(unknown)}")

        if length is None:
            length = self.random_length()
        if isinstance(length, bool) or not isinstance(length, int) or length < 1:
            raise InvalidPolicy("password length must be a positive integer")
        if length > self.max_length:
            raise InvalidPolicy(f"password length must not exceed {self.max_length}")

        pool = "".join(CHARACTER_CLASSES[name] for name in classes)
        chars = []
        if length >= len(classes):
            chars = [self._random.choice(CHARACTER_CLASSES[name]) for name in classes]
        chars.extend(self._random.choice(pool) for _ in range(length - len(chars)))
        self._random.shuffle(chars)
        return "".join(chars)

    def random_length(self) -> int:
        """A length drawn uniformly from RANDOM_LENGTH_RANGE, capped at max_length."""
        low, high = RANDOM_LENGTH_RANGE
        return min(self._random.randint(low, high), self.max_length)
