import os
import re
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup
from bs4.element import PreformattedString, Tag

from playscrape.models.app_record import AppRecord
from playscrape.services.exceptions import ExtractionError
from playscrape.services.normalizer import (
    DEFAULT_MAX_SCREENSHOTS,
    as_count,
    as_email,
    as_identifier,
    as_installs,
    as_long_text,
    as_rating,
    as_text,
    as_url,
    normalize,
)
from playscrape.services.structured_data import StructuredData

logger = structlog.get_logger(__name__)

TIER_STRUCTURED = "structured_data"
TIER_ACCESSIBILITY = "accessibility"
TIER_DOM = "dom"
TIER_TEXT = "text_pattern"
TIER_META = "meta_tag"

TIER_ORDER = (TIER_STRUCTURED, TIER_ACCESSIBILITY, TIER_DOM, TIER_TEXT, TIER_META)

BLOCKED_PAGE_PHRASES = [
    phrase.strip().lower()
    for phrase in os.getenv(
        "BLOCKED_PAGE_PHRASES",
        "unusual traffic,not a robot,captcha,before you continue",
    ).split(",")
    if phrase.strip()
]

TITLE_SUFFIXES = (" - Apps on Google Play", " - Google Play")

SCREENSHOT_HOST = re.compile(r"^https?://play-lh\.googleusercontent\.com/", re.IGNORECASE)

# The storefront has renamed these classes across revisions; every known
# variant is tried.
DETAIL_BLOCK_SELECTOR = (
    "div.VfPpkd-A7Ei6b, div.VfPpkd-qRZikd, div.qRZikd, div.UCQdA, div.sMUprd"
)
DETAIL_LABEL_SELECTORS = ("div.BgcNfc", "div.wVqUob", "div.qQjadf", "div.q078ud")
DETAIL_VALUE_SELECTORS = ("span.htlgb", "div.reAt0", "div.Uc9Gjf")
STAT_BLOCK_SELECTOR = "div.wVqUob"

AD_PHRASES = ("contains ads", "contains advertising")
IN_APP_PHRASES = ("in-app purchases", "in-app billing")
FREE_PRICES = {"0", "0.0", "0.00", "free"}

_NON_CONTENT_TAGS = {"script", "style", "noscript", "template"}
_STOREFRONT_HOSTS = (
    "google.com",
    "googleusercontent.com",
    "gstatic.com",
    "googleapis.com",
    "youtube.com",
)

_INSTALLS_SCRIPT_KEY = re.compile(
    r"""["'](?:numDownloads|num_downloads|downloads)["']\s*[:=]\s*["']([^"']+)["']""",
    re.IGNORECASE,
)
_INSTALLS_LOOSE = re.compile(
    r"(\d[\d.,]*\s?(?:[KMB]|cr|lakh)?\+?)\s*(?:downloads|installs)\b",
    re.IGNORECASE,
)
_RATING_TEXT = re.compile(r"\bRated\s+(\d+(?:[.,]\d+)?)\s+(?:stars?|out of)", re.IGNORECASE)
_RATING_COUNT_TEXT = re.compile(
    r"(\d[\d.,]*\s?[KMB]?)\s+(?:reviews|ratings)\b", re.IGNORECASE
)
_UPDATED_TEXT = re.compile(
    r"\bUpdated on\s+([A-Z][a-z]{2,8}\.? \d{1,2}, \d{4})", re.IGNORECASE
)
_ANDROID_TEXT = re.compile(
    r"\bRequires Android\s+(\d+(?:\.\d+)*(?:\s+and up)?|Varies with device)",
    re.IGNORECASE,
)
_VERSION_TEXT = re.compile(r"\b(?:Current )?Version\s+(\d+(?:\.[\w-]+)+)", re.IGNORECASE)
_EMAIL_TEXT = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[A-Za-z]{2,}\b")
_FREE_WORD = re.compile(r"\bfree\b", re.IGNORECASE)


@dataclass
class ExtractionContext:
    """Request-scoped view over one parsed listing page.

    ``values`` holds the partially resolved record and ``sources`` the
    strategy that supplied each value. Derived views of the document are
    computed on first use and shared by every strategy.
    """

    document: BeautifulSoup
    identifier: Optional[str] = None
    values: dict[str, Any] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)

    @cached_property
    def structured(self) -> Optional[StructuredData]:
        return StructuredData.from_document(self.document)

    @cached_property
    def page_text(self) -> str:
        chunks: list[str] = []
        for string in self.document.find_all(string=True):
            parent = string.parent
            if isinstance(string, PreformattedString):
                continue
            if parent is not None and parent.name in _NON_CONTENT_TAGS:
                continue
            text = str(string).strip()
            if text:
                chunks.append(text)
        return " ".join(chunks)

    @cached_property
    def page_text_lower(self) -> str:
        return self.page_text.lower()

    @cached_property
    def scripts(self) -> list[str]:
        payloads: list[str] = []
        for script in self.document.find_all("script"):
            if (script.get("type") or "").lower() == "application/ld+json":
                continue
            payload = script.string
            if payload and payload.strip():
                payloads.append(str(payload))
        return payloads

    @cached_property
    def details(self) -> dict[str, str]:
        """Field name -> value from the label/value details panel, first wins."""
        found: dict[str, str] = {}
        for block in self.document.select(DETAIL_BLOCK_SELECTOR):
            label = _first_text(block, DETAIL_LABEL_SELECTORS)
            if not label:
                label = _node_text(block.find("span"))
            value = _first_text(block, DETAIL_VALUE_SELECTORS)
            if not value:
                spans = block.find_all("span")
                value = _node_text(spans[-1]) if spans else ""
            target = _classify_detail_label(label)
            if target and value and value != label:
                found.setdefault(target, value)
        return found

    @cached_property
    def stats(self) -> dict[str, str]:
        """Label -> value pairs from the headline stat strip (downloads, reviews)."""
        found: dict[str, str] = {}
        for block in self.document.select(STAT_BLOCK_SELECTOR):
            value = _node_text(block.select_one("div.ClM7O"))
            label = _node_text(block.select_one("div.g1rdde")).lower()
            if label and value:
                found.setdefault(label, value)
        return found


Resolver = Callable[[ExtractionContext], Any]
Coercer = Callable[[Any], Any]


@dataclass(frozen=True)
class FieldStrategy:
    name: str
    tier: str
    resolver: Resolver

    def resolve(self, context: ExtractionContext) -> Any:
        return self.resolver(context)


@dataclass(frozen=True)
class FieldChain:
    """Ordered strategies for one output field; the first usable value wins."""

    field: str
    strategies: tuple[FieldStrategy, ...]
    coerce: Coercer = as_text

    def resolve(self, context: ExtractionContext) -> tuple[Any, Optional[str]]:
        for strategy in self.strategies:
            started = time.perf_counter()
            try:
                raw = strategy.resolve(context)
                value = self.coerce(raw) if raw is not None else None
            except Exception as exc:
                logger.warning(
                    "extractor.attempt",
                    field=self.field,
                    strategy=strategy.name,
                    tier=strategy.tier,
                    status="exception",
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                )
                continue

            logger.debug(
                "extractor.attempt",
                field=self.field,
                strategy=strategy.name,
                tier=strategy.tier,
                status="hit" if value not in (None, "") else "miss",
                elapsed_ms=int((time.perf_counter() - started) * 1000),
            )
            if value not in (None, ""):
                return value, strategy.name
        return None, None

    def apply(self, context: ExtractionContext) -> bool:
        value, strategy_name = self.resolve(context)
        if strategy_name is None:
            _record_miss(self.field)
            return False
        context.values[self.field] = value
        context.sources[self.field] = strategy_name
        _record_win(self.field, strategy_name)
        logger.debug(
            "extractor.field_resolved",
            field=self.field,
            strategy=strategy_name,
            identifier=context.identifier,
        )
        return True


class FieldChainRegistry:
    def __init__(self, chains: Iterable[FieldChain]):
        self._chains: dict[str, FieldChain] = {chain.field: chain for chain in chains}

    def get(self, field_name: str) -> Optional[FieldChain]:
        return self._chains.get(field_name)

    def fields(self) -> list[str]:
        return list(self._chains)

    def all(self) -> list[FieldChain]:
        return list(self._chains.values())

    def override(self, field_name: str, *strategies: FieldStrategy) -> "FieldChainRegistry":
        """Return a copy whose chain for ``field_name`` uses ``strategies``."""
        current = self.get(field_name)
        coerce = current.coerce if current else as_text
        replacement = FieldChain(field_name, tuple(strategies), coerce)
        chains = [
            replacement if chain.field == field_name else chain
            for chain in self._chains.values()
        ]
        if current is None:
            chains.append(replacement)
        return FieldChainRegistry(chains)


_metrics_lock = threading.Lock()
_STRATEGY_WINS: Counter[tuple[str, str]] = Counter()
_FIELD_MISSES: Counter[str] = Counter()


def _record_win(field_name: str, strategy: str) -> None:
    with _metrics_lock:
        _STRATEGY_WINS[(field_name, strategy)] += 1


def _record_miss(field_name: str) -> None:
    with _metrics_lock:
        _FIELD_MISSES[field_name] += 1


def get_strategy_metrics() -> dict[str, dict[str, Any]]:
    """Per field: how often each strategy supplied the value and how often none did."""
    with _metrics_lock:
        wins = dict(_STRATEGY_WINS)
        misses = dict(_FIELD_MISSES)
    snapshot: dict[str, dict[str, Any]] = {}
    for (field_name, strategy), count in wins.items():
        entry = snapshot.setdefault(field_name, {"wins": {}, "misses": 0})
        entry["wins"][strategy] = count
    for field_name, count in misses.items():
        entry = snapshot.setdefault(field_name, {"wins": {}, "misses": 0})
        entry["misses"] = count
    return snapshot


def reset_strategy_metrics() -> None:
    with _metrics_lock:
        _STRATEGY_WINS.clear()
        _FIELD_MISSES.clear()


def _node_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return node.get_text(" ", strip=True)


def _first_text(scope: Tag, selectors: Iterable[str]) -> str:
    for selector in selectors:
        text = _node_text(scope.select_one(selector))
        if text:
            return text
    return ""


def _select_text(context: ExtractionContext, *selectors: str) -> Optional[str]:
    return _first_text(context.document, selectors) or None


def _select_attr(context: ExtractionContext, attrs: Iterable[str], *selectors: str) -> Optional[str]:
    for selector in selectors:
        for node in context.document.select(selector):
            for attr in attrs:
                value = (node.get(attr) or "").strip()
                if value:
                    return value
    return None


def _meta_content(context: ExtractionContext, **attrs: str) -> Optional[str]:
    tag = context.document.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def _link_href(context: ExtractionContext, rel: str) -> Optional[str]:
    for tag in context.document.find_all("link", href=True):
        rels = tag.get("rel") or []
        if isinstance(rels, str):
            rels = rels.split()
        if rel in (value.lower() for value in rels):
            return tag["href"].strip() or None
    return None


def _sibling_after_label(context: ExtractionContext, *labels: str) -> Optional[str]:
    """Value rendered as the div right after a div holding only the label."""
    for label in labels:
        pattern = re.compile(rf"^\s*{re.escape(label)}\s*$", re.IGNORECASE)
        for node in context.document.find_all("div", string=pattern):
            sibling = node.find_next_sibling("div")
            text = _node_text(sibling)
            if text:
                return text
    return None


def _classify_detail_label(label: str) -> Optional[str]:
    lowered = label.lower().strip()
    if not lowered:
        return None
    if "updated" in lowered:
        return "last_updated"
    if "requires" in lowered:
        return "android_version"
    if "version" in lowered:
        return "current_version"
    if "installs" in lowered or "downloads" in lowered:
        return "installs"
    return None


def _is_storefront_host(url: str) -> bool:
    host = urlparse(url).netloc.lower()
    return any(host == domain or host.endswith("." + domain) for domain in _STOREFRONT_HOSTS)


def _strip_title_suffix(title: Optional[str]) -> Optional[str]:
    if not title:
        return title
    for suffix in TITLE_SUFFIXES:
        if title.endswith(suffix):
            return title[: -len(suffix)]
    return title


def _text_search(pattern: re.Pattern[str], text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    return match.group(1).strip()


def _structured(*path: str, kind: str = "text") -> Resolver:
    def resolver(context: ExtractionContext) -> Any:
        data = context.structured
        if data is None:
            return None
        return getattr(data, kind)(*path)

    resolver.__name__ = f"structured_{'_'.join(path)}"
    return resolver


def _rating_from_aria_label(context: ExtractionContext) -> Optional[str]:
    # "Rated 4.5 stars out of five stars": the rating is the second token.
    # Content ratings such as "Rated for 3+" share the prefix and are skipped.
    for node in context.document.select("[aria-label^='Rated']"):
        parts = (node.get("aria-label") or "").split()
        if len(parts) > 1 and as_rating(parts[1]) is not None:
            return parts[1]
    return None


def _title_from_aria_heading(context: ExtractionContext) -> Optional[str]:
    node = context.document.select_one("[role='heading'][aria-level='1']")
    return _node_text(node) or None


def _detail(field_name: str) -> Resolver:
    def resolver(context: ExtractionContext) -> Optional[str]:
        return context.details.get(field_name)

    resolver.__name__ = f"detail_{field_name}"
    return resolver


def _installs_from_stats(context: ExtractionContext) -> Optional[str]:
    for label, value in context.stats.items():
        if "download" in label or "install" in label:
            return value
    return None


def _installs_from_alternate_blocks(context: ExtractionContext) -> Optional[str]:
    nodes = context.document.select("div.Uc9Gjf, div.reAt0, div.VfPpkd-A7Ei6b")
    for node in reversed(nodes):
        text = _node_text(node)
        if text and _INSTALLS_LOOSE.search(text):
            return _text_search(_INSTALLS_LOOSE, text)
    return None


def _rating_count_from_stats(context: ExtractionContext) -> Optional[str]:
    for node in context.document.select("div.g1rdde"):
        text = _node_text(node)
        lowered = text.lower()
        if "review" in lowered or "rating" in lowered:
            return text
    return None


def _developer_website_from_links(context: ExtractionContext) -> Optional[str]:
    for node in context.document.select("a[href*='developer']"):
        href = (node.get("href") or "").strip()
        if href.startswith("http") and not _is_storefront_host(href):
            return href
    for node in context.document.select("a[href^='http']"):
        href = (node.get("href") or "").strip()
        if href and not _is_storefront_host(href):
            return href
    return None


def _email_from_mailto(context: ExtractionContext) -> Optional[str]:
    return _select_attr(context, ("href",), "a[href^='mailto:']")


def _title_from_dom(context: ExtractionContext) -> Optional[str]:
    return _select_text(context, "h1 span", "h1[itemprop='name']", "h1")


def _page_pattern(pattern: re.Pattern[str]) -> Resolver:
    def resolver(context: ExtractionContext) -> Optional[str]:
        return _text_search(pattern, context.page_text)

    resolver.__name__ = f"page_pattern_{pattern.pattern[:24]}"
    return resolver


def _installs_from_scripts(context: ExtractionContext) -> Optional[str]:
    for payload in context.scripts:
        lowered = payload.lower()
        if "downloads" not in lowered and "num_downloads" not in lowered:
            continue
        found = _text_search(_INSTALLS_SCRIPT_KEY, payload)
        if found:
            return found
        found = _text_search(_INSTALLS_LOOSE, payload)
        if found:
            return found
    return None


def _email_from_text(context: ExtractionContext) -> Optional[str]:
    for match in _EMAIL_TEXT.finditer(context.page_text):
        if as_email(match.group(0)):
            return match.group(0)
    return None


def _title_from_meta(context: ExtractionContext) -> Optional[str]:
    title = _meta_content(context, property="og:title")
    if not title and context.document.title is not None:
        title = context.document.title.get_text(strip=True)
    return _strip_title_suffix(title)


def _identifier_from_links(context: ExtractionContext) -> Optional[str]:
    for candidate in (
        _link_href(context, "canonical"),
        _meta_content(context, property="og:url"),
    ):
        if as_identifier(candidate):
            return candidate
    return None


def _summary_from_meta(context: ExtractionContext) -> Optional[str]:
    return _meta_content(context, name="description") or _meta_content(
        context, property="og:description"
    )


def _strategy(tier: str, resolver: Resolver, name: Optional[str] = None) -> FieldStrategy:
    return FieldStrategy(name or f"{tier}:{resolver.__name__.lstrip('_')}", tier, resolver)


FIELD_CHAINS = FieldChainRegistry(
    [
        FieldChain(
            "title",
            (
                _strategy(TIER_STRUCTURED, _structured("name")),
                _strategy(TIER_ACCESSIBILITY, _title_from_aria_heading),
                _strategy(TIER_DOM, _title_from_dom),
                _strategy(TIER_META, _title_from_meta),
            ),
        ),
        FieldChain(
            "identifier",
            (
                _strategy(TIER_STRUCTURED, _structured("url")),
                _strategy(TIER_META, _identifier_from_links),
            ),
            as_identifier,
        ),
        FieldChain(
            "icon",
            (
                _strategy(TIER_STRUCTURED, _structured("image")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _select_attr(
                        ctx, ("src", "data-src"), "img.T75of", "img[itemprop='image']"
                    ),
                    "dom:icon_img",
                ),
                _strategy(
                    TIER_META,
                    lambda ctx: _meta_content(ctx, property="og:image"),
                    "meta_tag:og_image",
                ),
            ),
            as_url,
        ),
        FieldChain(
            "developer",
            (
                _strategy(TIER_STRUCTURED, _structured("author", "name")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _select_text(
                        ctx,
                        "a.hrTbp.R8zArc",
                        "div.Vbfug a span",
                        "a[href*='/store/apps/dev'] span",
                    ),
                    "dom:developer_link",
                ),
            ),
        ),
        FieldChain(
            "developer_email",
            (
                _strategy(TIER_DOM, _email_from_mailto),
                _strategy(TIER_TEXT, _email_from_text),
            ),
            as_email,
        ),
        FieldChain(
            "developer_website",
            (
                _strategy(TIER_STRUCTURED, _structured("author", "url")),
                _strategy(TIER_DOM, _developer_website_from_links),
            ),
            as_url,
        ),
        FieldChain(
            "category",
            (
                _strategy(TIER_STRUCTURED, _structured("applicationCategory")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _select_text(
                        ctx,
                        "a[itemprop='genre']",
                        "span[itemprop='genre']",
                        "a[href*='/store/apps/category/']",
                    ),
                    "dom:genre",
                ),
            ),
        ),
        FieldChain(
            "rating",
            (
                _strategy(TIER_STRUCTURED, _structured("aggregateRating", "ratingValue", kind="number")),
                _strategy(TIER_ACCESSIBILITY, _rating_from_aria_label),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _select_text(ctx, "div.TT9eCd", "div.BHMmbe"),
                    "dom:rating_badge",
                ),
                _strategy(TIER_TEXT, _page_pattern(_RATING_TEXT), "text_pattern:rated_stars"),
            ),
            as_rating,
        ),
        FieldChain(
            "rating_count",
            (
                _strategy(TIER_STRUCTURED, _structured("aggregateRating", "ratingCount", kind="integer")),
                _strategy(TIER_DOM, _rating_count_from_stats),
                _strategy(TIER_TEXT, _page_pattern(_RATING_COUNT_TEXT), "text_pattern:reviews"),
            ),
            as_count,
        ),
        FieldChain(
            "installs",
            (
                _strategy(TIER_DOM, _detail("installs")),
                _strategy(TIER_DOM, _installs_from_stats),
                _strategy(TIER_DOM, _installs_from_alternate_blocks),
                _strategy(TIER_TEXT, _installs_from_scripts),
                _strategy(TIER_TEXT, _page_pattern(_INSTALLS_LOOSE), "text_pattern:downloads"),
            ),
            as_installs,
        ),
        FieldChain(
            "last_updated",
            (
                _strategy(TIER_DOM, _detail("last_updated")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _sibling_after_label(ctx, "Updated on", "Updated"),
                    "dom:updated_sibling",
                ),
                _strategy(TIER_TEXT, _page_pattern(_UPDATED_TEXT), "text_pattern:updated_on"),
            ),
        ),
        FieldChain(
            "current_version",
            (
                _strategy(TIER_DOM, _detail("current_version")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _sibling_after_label(ctx, "Current Version", "Version"),
                    "dom:version_sibling",
                ),
                _strategy(TIER_TEXT, _page_pattern(_VERSION_TEXT), "text_pattern:version"),
            ),
        ),
        FieldChain(
            "android_version",
            (
                _strategy(TIER_DOM, _detail("android_version")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _sibling_after_label(ctx, "Requires Android", "Requires"),
                    "dom:requires_sibling",
                ),
                _strategy(TIER_TEXT, _page_pattern(_ANDROID_TEXT), "text_pattern:requires_android"),
            ),
        ),
        FieldChain(
            "description",
            (
                _strategy(TIER_STRUCTURED, _structured("description")),
                _strategy(
                    TIER_DOM,
                    lambda ctx: _select_text(
                        ctx,
                        "div[jsname='sngebd']",
                        "div[data-g-id='description']",
                        "div.bARER",
                    ),
                    "dom:description_block",
                ),
            ),
            as_long_text,
        ),
        FieldChain(
            "summary",
            (_strategy(TIER_META, _summary_from_meta),),
            as_long_text,
        ),
    ]
)


def _image_source(node: Tag) -> Optional[str]:
    src = (node.get("src") or "").strip() or (node.get("data-src") or "").strip()
    if src:
        return src
    srcset = (node.get("srcset") or "").strip()
    if srcset:
        first = srcset.split(",")[0].strip().split()
        if first:
            return first[0]
    return None


def collect_screenshots(
    context: ExtractionContext, limit: int = DEFAULT_MAX_SCREENSHOTS
) -> list[str]:
    """Storefront-hosted image URLs in document order, deduplicated, capped."""
    screenshots: list[str] = []
    seen: set[str] = set()
    if limit <= 0:
        return screenshots
    for node in context.document.find_all("img"):
        url = as_url(_image_source(node))
        if not url or not SCREENSHOT_HOST.match(url) or url in seen:
            continue
        seen.add(url)
        screenshots.append(url)
        if len(screenshots) >= limit:
            break
    return screenshots


def _detect_free(context: ExtractionContext) -> bool:
    price = _meta_content(context, itemprop="price")
    if price is None and context.structured is not None:
        price = context.structured.text("offers", "price")
    if price is not None:
        return price.strip().lower() in FREE_PRICES
    return bool(_FREE_WORD.search(context.page_text))


def detect_flags(context: ExtractionContext) -> dict[str, bool]:
    text = context.page_text_lower
    return {
        "ad_supported": any(phrase in text for phrase in AD_PHRASES),
        "in_app_purchases": any(phrase in text for phrase in IN_APP_PHRASES),
        "free": _detect_free(context),
    }


def looks_blocked(context: ExtractionContext) -> bool:
    text = context.page_text_lower
    return any(phrase in text for phrase in BLOCKED_PAGE_PHRASES)


def resolve_fields(
    document: BeautifulSoup,
    *,
    identifier: Optional[str] = None,
    registry: Optional[FieldChainRegistry] = None,
    max_screenshots: int = DEFAULT_MAX_SCREENSHOTS,
) -> ExtractionContext:
    """Run every field chain plus the screenshot and flag rules over ``document``."""
    context = ExtractionContext(document=document, identifier=identifier)
    for chain in (registry or FIELD_CHAINS).all():
        chain.apply(context)
    context.values["screenshots"] = collect_screenshots(context, max_screenshots)
    context.values.update(detect_flags(context))
    return context


def extract(
    document: BeautifulSoup,
    *,
    identifier: Optional[str] = None,
    registry: Optional[FieldChainRegistry] = None,
    max_screenshots: int = DEFAULT_MAX_SCREENSHOTS,
) -> AppRecord:
    """Resolve a listing document into a normalised AppRecord.

    Raises:
        ExtractionError: when no strategy can resolve the title. The reason
            is ``blocked`` when the page reads like an anti-bot interstitial
            and ``not_found`` otherwise.
    """
    started = time.perf_counter()
    context = resolve_fields(
        document,
        identifier=identifier,
        registry=registry,
        max_screenshots=max_screenshots,
    )
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    if not context.values.get("title"):
        blocked = looks_blocked(context)
        reason = ExtractionError.BLOCKED if blocked else ExtractionError.NOT_FOUND
        logger.warning(
            "extractor.pipeline",
            identifier=identifier,
            status="failure",
            reason=reason,
            resolved=sorted(context.sources),
            elapsed_ms=elapsed_ms,
        )
        message = (
            "Storefront served an interstitial page instead of the listing"
            if blocked
            else "App not found on the storefront"
        )
        raise ExtractionError(message, identifier=identifier, reason=reason)

    record = normalize(
        context.values, identifier=identifier, max_screenshots=max_screenshots
    )
    logger.info(
        "extractor.pipeline",
        identifier=record.identifier,
        status="success",
        sources=dict(context.sources),
        missing=[name for name in (registry or FIELD_CHAINS).fields() if name not in context.sources],
        screenshots=len(record.screenshots),
        elapsed_ms=elapsed_ms,
    )
    return record
