"""
binary_text.py – Text to binary digits and back.

encode() writes every character as the binary form of its Unicode code
point, separated by single spaces:

    encode("xpm")                   -> "1111000 1110000 1101101"
    decode("1111000 1110000 1101101") -> "xpm"

This is a readable transformation, not encryption: anyone can reverse it.
"""

from errors import InvalidEncoding

_MAX_CODE_POINT = 0x10FFFF


def encode(text: str) -> str:
    """Space-separated binary code points of *text* (empty text -> "")."""
    return " ".join(format(ord(char), "b") for char in text)


def decode(bits: str) -> str:
    """
    Reverse encode(). Any run of whitespace separates two characters.

    Raises InvalidEncoding for a group that is not binary or does not name
    a Unicode character.
    """
    chars = []
    for group in bits.split():
        if set(group) - {"0", "1"}:
            raise InvalidEncoding(f"'{group}' is not a binary number")
        code_point = int(group, 2)
        if code_point > _MAX_CODE_POINT or 0xD800 <= code_point <= 0xDFFF:
            raise InvalidEncoding(f"'{group}' is not a Unicode character")
        chars.append(chr(code_point))
    return "".join(chars)
