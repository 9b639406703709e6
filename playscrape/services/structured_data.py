"""Typed access to the JSON-LD block a listing page embeds about its app."""

from __future__ import annotations

import json
import math
from typing import Any, Iterable, Optional

import structlog
from bs4 import BeautifulSoup

logger = structlog.get_logger(__name__)

APPLICATION_TYPES = frozenset(
    {"SoftwareApplication", "MobileApplication", "VideoGame", "WebApplication"}
)

_MISSING = object()


def _type_matches(node: dict[str, Any]) -> bool:
    declared = node.get("@type")
    if isinstance(declared, str):
        return declared in APPLICATION_TYPES
    if isinstance(declared, list):
        return any(isinstance(item, str) and item in APPLICATION_TYPES for item in declared)
    return False


def _candidate_nodes(payload: Any) -> Iterable[dict[str, Any]]:
    if isinstance(payload, list):
        for item in payload:
            yield from _candidate_nodes(item)
        return
    if not isinstance(payload, dict):
        return
    yield payload
    graph = payload.get("@graph")
    if isinstance(graph, list):
        for item in graph:
            yield from _candidate_nodes(item)


class StructuredData:
    """Loosely typed JSON-LD node with typed accessors.

    Payloads are decoded once; every accessor walks a key path and returns
    ``None`` when the path is missing or the leaf has the wrong shape, so
    callers never switch on runtime types themselves. A list met along the
    path resolves to its first element.
    """

    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload

    @classmethod
    def from_document(cls, document: BeautifulSoup) -> Optional["StructuredData"]:
        for script in document.find_all("script", attrs={"type": "application/ld+json"}):
            raw = (script.string or script.get_text() or "").strip()
            if not raw:
                continue
            try:
                payload = json.loads(raw)
            except ValueError as exc:
                logger.debug("structured_data.invalid_json", error=str(exc))
                continue
            for node in _candidate_nodes(payload):
                if _type_matches(node):
                    return cls(node)
        return None

    def _lookup(self, *path: str) -> Any:
        node: Any = self._payload
        for key in path:
            if isinstance(node, list):
                node = node[0] if node else _MISSING
            if not isinstance(node, dict):
                return _MISSING
            node = node.get(key, _MISSING)
            if node is _MISSING or node is None:
                return _MISSING
        if isinstance(node, list):
            node = node[0] if node else _MISSING
        return node

    def text(self, *path: str) -> Optional[str]:
        value = self._lookup(*path)
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        if isinstance(value, dict):
            # {"@type": "ImageObject", "url": ...} style nodes.
            for key in ("url", "name", "@id"):
                nested = value.get(key)
                if isinstance(nested, str) and nested.strip():
                    return nested.strip()
        return None

    def number(self, *path: str) -> Optional[float]:
        value = self._lookup(*path)
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            result = float(value)
        elif isinstance(value, str):
            try:
                result = float(value.strip().replace(",", ""))
            except ValueError:
                return None
        else:
            return None
        return result if math.isfinite(result) else None

    def integer(self, *path: str) -> Optional[int]:
        value = self.number(*path)
        if value is None:
            return None
        return int(value)
