import time
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from playscrape.config import ScraperSettings, settings
from playscrape.models.app_record import AppRecord
from playscrape.services.cache import ResultCache
from playscrape.services.exceptions import (
    AppLookupError,
    ExtractionError,
    FetchError,
    InvalidInputError,
)
from playscrape.services.fetch import (
    FETCH_MAX_ATTEMPTS,
    FETCH_RETRY_INTERVAL_SECONDS,
    FetchFn,
    SleepFn,
    fetch_document,
    fetch_with_retry,
)
from playscrape.services.normalizer import DEFAULT_MAX_SCREENSHOTS
from playscrape.services.parser import FieldChainRegistry, extract
from playscrape.utils.correlation import bind_lookup_context

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LookupResult:
    record: AppRecord
    from_cache: bool
    elapsed_ms: int


class AppLookupPipeline:
    """Cache check, fetch with retry, extract and normalise, then cache store.

    Only successful records are cached. Fetch failures surface once the
    retry budget is spent; extraction failures are never retried.
    """

    def __init__(
        self,
        cache: Optional[ResultCache] = None,
        *,
        fetcher: FetchFn = fetch_document,
        attempts: int = FETCH_MAX_ATTEMPTS,
        interval: float = FETCH_RETRY_INTERVAL_SECONDS,
        sleep: SleepFn = time.sleep,
        max_screenshots: int = DEFAULT_MAX_SCREENSHOTS,
        registry: Optional[FieldChainRegistry] = None,
    ) -> None:
        self.cache = cache if cache is not None else ResultCache()
        self._fetcher = fetcher
        self._attempts = attempts
        self._interval = interval
        self._sleep = sleep
        self._max_screenshots = max_screenshots
        self._registry = registry

    @classmethod
    def from_settings(
        cls, config: ScraperSettings = settings, **overrides: Any
    ) -> "AppLookupPipeline":
        options: dict[str, Any] = {
            "attempts": config.FETCH_MAX_ATTEMPTS,
            "interval": config.FETCH_RETRY_INTERVAL_SECONDS,
            "max_screenshots": config.MAX_SCREENSHOTS,
        }
        options.update(overrides)
        cache = options.pop("cache", None)
        if cache is None:
            cache = ResultCache(config.CACHE_TTL_SECONDS)
        return cls(cache, **options)

    def lookup(self, identifier: Any, *, use_cache: bool = True) -> LookupResult:
        """Return the record for ``identifier``, from cache when fresh.

        Raises:
            InvalidInputError: blank or non-string identifier.
            FetchError: the listing could not be fetched within the retry budget.
            ExtractionError: the listing had no resolvable title.
        """
        if not isinstance(identifier, str) or not identifier.strip():
            raise InvalidInputError("Package identifier is required", identifier=None)

        identifier = identifier.strip()
        bind_lookup_context(identifier)
        started = time.perf_counter()

        if use_cache:
            cached = self.cache.get(identifier)
            if cached is not None:
                elapsed_ms = _elapsed_ms(started)
                logger.info(
                    "lookup.cache_hit",
                    identifier=identifier,
                    status="success",
                    elapsed_ms=elapsed_ms,
                )
                return LookupResult(record=cached, from_cache=True, elapsed_ms=elapsed_ms)
            logger.info("lookup.cache_miss", identifier=identifier)

        try:
            document = fetch_with_retry(
                identifier,
                fetcher=self._fetcher,
                attempts=self._attempts,
                interval=self._interval,
                sleep=self._sleep,
            )
            record = extract(
                document,
                identifier=identifier,
                registry=self._registry,
                max_screenshots=self._max_screenshots,
            )
        except AppLookupError as exc:
            logger.warning(
                "lookup.failed",
                identifier=identifier,
                status="failure",
                error_type=exc.__class__.__name__,
                reason=_failure_reason(exc),
                error=str(exc),
                elapsed_ms=_elapsed_ms(started),
            )
            raise

        if use_cache:
            self.cache.put(identifier, record)
        elapsed_ms = _elapsed_ms(started)
        logger.info(
            "lookup.success",
            identifier=identifier,
            status="success",
            title=record.title,
            elapsed_ms=elapsed_ms,
        )
        return LookupResult(record=record, from_cache=False, elapsed_ms=elapsed_ms)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _failure_reason(exc: AppLookupError) -> str:
    if isinstance(exc, ExtractionError):
        return exc.reason
    if isinstance(exc, FetchError):
        return "fetch_failed"
    return "invalid_input"
