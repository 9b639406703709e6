from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import parse_qs, urlparse

from playscrape.models.app_record import (
    NO_DESCRIPTION,
    NOT_AVAILABLE,
    UNKNOWN_DEVELOPER,
    AppRecord,
)
from playscrape.services.exceptions import ExtractionError
from playscrape.utils.text_cleaner import clean_text, collapse_whitespace

DEFAULT_MAX_SCREENSHOTS = 5

_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")
_COUNT = re.compile(r"(\d[\d.,]*)\s*([KMB])?(?![a-z])", re.IGNORECASE)
_COUNT_MULTIPLIERS = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}
_PACKAGE_ID = re.compile(r"^[A-Za-z][\w]*(?:\.[\w]+)+$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.([A-Za-z]{2,})$")
# Asset names such as "logo@2x.png" look like addresses.
_FILE_SUFFIXES = {"png", "jpg", "jpeg", "gif", "webp", "svg", "ico", "bmp"}

TEXT_DEFAULTS: dict[str, str] = {
    "icon": NOT_AVAILABLE,
    "developer": UNKNOWN_DEVELOPER,
    "developer_email": NOT_AVAILABLE,
    "developer_website": NOT_AVAILABLE,
    "category": NOT_AVAILABLE,
    "installs": NOT_AVAILABLE,
    "last_updated": NOT_AVAILABLE,
    "current_version": NOT_AVAILABLE,
    "android_version": NOT_AVAILABLE,
}

def as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, str):
        value = str(value)
    return clean_text(value) or None


def as_long_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    return collapse_whitespace(str(value)) or None


def as_rating(value: Any) -> Optional[float]:
    """Coerce ``4.5``, ``"4.5"`` or ``"Rated 4,5 stars"`` to a positive float."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        rating = float(value)
    else:
        match = _NUMBER.search(str(value))
        if not match:
            return None
        rating = float(match.group(0).replace(",", "."))
    if not math.isfinite(rating) or rating <= 0:
        return None
    return round(rating, 1)


def as_count(value: Any) -> Optional[int]:
    """Coerce ``1200``, ``"1,234"``, ``"1.2K reviews"`` or ``"3M"`` to an int."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        return int(value)
    match = _COUNT.search(str(value))
    if not match:
        return None
    digits, suffix = match.group(1).rstrip(".,"), match.group(2)
    if suffix:
        try:
            base = float(digits.replace(",", ""))
        except ValueError:
            return None
        count = int(round(base * _COUNT_MULTIPLIERS[suffix.upper()]))
    else:
        count = int(re.sub(r"[.,]", "", digits))
    return count or None


def as_installs(value: Any) -> Optional[str]:
    text = as_text(value)
    if not text or not any(char.isdigit() for char in text):
        return None
    return text


def as_identifier(value: Any) -> Optional[str]:
    """Accept a bare package id or pull the ``id`` parameter out of a listing URL."""
    text = as_text(value)
    if not text:
        return None
    if _PACKAGE_ID.match(text):
        return text
    parsed = urlparse(text)
    if parsed.scheme in {"http", "https"}:
        candidates = parse_qs(parsed.query).get("id") or []
        for candidate in candidates:
            candidate = candidate.strip()
            if _PACKAGE_ID.match(candidate):
                return candidate
    return None


def as_url(value: Any) -> Optional[str]:
    text = as_text(value)
    if not text:
        return None
    if text.startswith("//"):
        text = f"https:{text}"
    if urlparse(text).scheme not in {"http", "https"}:
        return None
    return text


def as_email(value: Any) -> Optional[str]:
    text = as_text(value)
    if not text:
        return None
    if text.lower().startswith("mailto:"):
        text = text[len("mailto:"):]
    text = text.split("?", 1)[0].strip()
    match = _EMAIL.match(text)
    if not match or match.group(1).lower() in _FILE_SUFFIXES:
        return None
    return text


def dedupe_screenshots(urls: Iterable[Any], limit: int = DEFAULT_MAX_SCREENSHOTS) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for url in urls:
        if len(ordered) >= limit:
            break
        candidate = as_url(url)
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        ordered.append(candidate)
    return tuple(ordered)


def normalize(
    partial: Mapping[str, Any],
    *,
    identifier: Optional[str] = None,
    max_screenshots: int = DEFAULT_MAX_SCREENSHOTS,
) -> AppRecord:
    """Turn resolved raw field values into a fully populated AppRecord.

    Every text field is trimmed; summary and description additionally get
    their internal whitespace collapsed. Fields still empty take the sentinel
    defaults, and the summary falls back to the description. The title is the
    only field without a default.

    Raises:
        ExtractionError: when no title survives normalisation.
    """
    title = as_text(partial.get("title"))
    if not title:
        raise ExtractionError(
            "App not found on the storefront",
            identifier=identifier,
            reason=ExtractionError.NOT_FOUND,
        )

    values: dict[str, Any] = {}
    for name, default in TEXT_DEFAULTS.items():
        values[name] = as_text(partial.get(name)) or default

    description = as_long_text(partial.get("description")) or NO_DESCRIPTION
    summary = as_long_text(partial.get("summary")) or description

    resolved_identifier = (
        as_identifier(partial.get("identifier"))
        or clean_text(identifier)
        or NOT_AVAILABLE
    )

    return AppRecord(
        identifier=resolved_identifier,
        title=title,
        rating=as_rating(partial.get("rating")) or 0.0,
        rating_count=as_count(partial.get("rating_count")) or 0,
        free=bool(partial.get("free")),
        ad_supported=bool(partial.get("ad_supported")),
        in_app_purchases=bool(partial.get("in_app_purchases")),
        summary=summary,
        description=description,
        screenshots=dedupe_screenshots(partial.get("screenshots") or (), max_screenshots),
        **values,
    )
