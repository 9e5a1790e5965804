"""Player name decoding from packed per-character codes."""
from __future__ import annotations

import string
from typing import Any, Iterable, Mapping, Optional

from dynastytdb.config import FIRST_NAME_PREFIX, LAST_NAME_PREFIX, NAME_MAX_CHARS


def build_alphabet() -> tuple[str, ...]:
    """Code -> character table. Code 0 is the terminator."""
    return ("", *string.ascii_lowercase, *string.ascii_uppercase, "-", "'", ".", " ", "@", "ñ")


ALPHABET = build_alphabet()


def _to_code(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def decode_codes(codes: Iterable[Any], alphabet: tuple[str, ...] = ALPHABET) -> str:
    """Decode codes left to right, stopping at the first empty or zero code."""
    out = []
    for value in codes:
        code = _to_code(value)
        if not code:
            break
        if 0 < code < len(alphabet):
            out.append(alphabet[code])
    return "".join(out)


def decode_name(row: Mapping[str, Any], prefix: str, max_chars: int = NAME_MAX_CHARS,
                alphabet: tuple[str, ...] = ALPHABET) -> str:
    """Decode ``<prefix>01`` .. ``<prefix><max_chars>`` fields of a row."""
    return decode_codes(
        (row.get(f"{prefix}{i:02d}") for i in range(1, max_chars + 1)),
        alphabet,
    )


def decode_player_name(row: Mapping[str, Any], max_chars: int = NAME_MAX_CHARS) -> dict[str, str]:
    return {
        "FirstName": decode_name(row, FIRST_NAME_PREFIX, max_chars),
        "LastName": decode_name(row, LAST_NAME_PREFIX, max_chars),
    }
