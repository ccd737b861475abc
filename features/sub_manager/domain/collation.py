"""zh-CN style collation keys for node display names.

Ordering follows the CLDR script order used by Chinese locales: symbols and
punctuation, then digits, then Latin letters, then other scripts, then Han
characters ordered by their pinyin reading.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Tuple

from pypinyin import Style, lazy_pinyin


_SYMBOL, _DIGIT, _LATIN, _OTHER, _HAN = range(5)


def _is_han(ch: str) -> bool:
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FFF
        or 0x3400 <= code <= 0x4DBF
        or 0xF900 <= code <= 0xFAFF
        or 0x20000 <= code <= 0x2FA1F
    )


@lru_cache(maxsize=4096)
def _han_reading(ch: str) -> str:
    return lazy_pinyin(ch, style=Style.TONE3, neutral_tone_with_five=True)[0]


def _weight(ch: str) -> Tuple[int, str]:
    if _is_han(ch):
        return _HAN, _han_reading(ch)
    if ch.isdigit():
        return _DIGIT, ch
    if ch.isalpha():
        return (_LATIN if ch.isascii() else _OTHER), ch.casefold()
    return _SYMBOL, ch


def collation_key(text: str) -> Tuple[Tuple[Tuple[int, str], ...], str]:
    """Return a sort key; the raw text breaks ties so the order is total."""
    return tuple(_weight(ch) for ch in text), text
