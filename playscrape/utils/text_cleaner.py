"""Helpers to normalise text pulled out of listing markup."""

import html
import re
import unicodedata

_CONTROL_CHARS = {
    "\u200b",  # zero-width space
    "\u200c",  # zero-width non-joiner
    "\u200d",  # zero-width joiner
    "\u200e",  # left-to-right mark
    "\u200f",  # right-to-left mark
    "\ufeff",  # zero-width no-break space / BOM
}

_WHITESPACE_RUN = re.compile(r"\s+")


def _strip_control_chars(text: str) -> str:
    for char in _CONTROL_CHARS:
        text = text.replace(char, "")
    return text


def clean_text(raw_text: str | None) -> str:
    """Unescape entities, drop invisible characters and trim."""
    if not raw_text:
        return ""

    text = html.unescape(raw_text)
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("\u00a0", " ")
    text = _strip_control_chars(text)
    return text.strip()


def collapse_whitespace(raw_text: str | None) -> str:
    """Clean text and squeeze every whitespace run (newlines included) to one space."""
    return _WHITESPACE_RUN.sub(" ", clean_text(raw_text)).strip()
