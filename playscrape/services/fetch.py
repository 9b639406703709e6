import threading
import time
from typing import Callable, Optional

import requests
import structlog
from bs4 import BeautifulSoup
from bs4 import FeatureNotFound
from requests.adapters import HTTPAdapter

from playscrape.config import settings
from playscrape.services.exceptions import FetchError

logger = structlog.get_logger(__name__)

DETAILS_URL = settings.STORE_DETAILS_URL
STORE_LANGUAGE = settings.STORE_LANGUAGE
STORE_COUNTRY = settings.STORE_COUNTRY
USER_AGENT = settings.FETCH_USER_AGENT
ACCEPT_LANGUAGE = settings.FETCH_ACCEPT_LANGUAGE
REFERER = settings.FETCH_REFERER
REQUEST_TIMEOUT_SECONDS = settings.FETCH_TIMEOUT_SECONDS
FETCH_MAX_ATTEMPTS = settings.FETCH_MAX_ATTEMPTS
FETCH_RETRY_INTERVAL_SECONDS = settings.FETCH_RETRY_INTERVAL_SECONDS

SleepFn = Callable[[float], None]
FetchFn = Callable[[str], BeautifulSoup]

_session_lock = threading.Lock()
_session: requests.Session | None = None


def _plain_adapter() -> HTTPAdapter:
    # Retries belong to fetch_with_retry; the transport makes exactly one call.
    return HTTPAdapter(max_retries=0, pool_connections=16, pool_maxsize=32)


def _get_session() -> requests.Session:
    global _session
    if _session is not None:
        return _session
    with _session_lock:
        if _session is not None:
            return _session
        sess = requests.Session()
        adapter = _plain_adapter()
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        _session = sess
    return _session


def build_headers(user_agent: Optional[str] = None) -> dict[str, str]:
    """Browser-like headers; the storefront rejects default client agents."""
    return {
        "User-Agent": user_agent or USER_AGENT,
        "Accept-Language": ACCEPT_LANGUAGE,
        "Accept": "text/html",
        "Referer": REFERER,
    }


def listing_params(identifier: str) -> dict[str, str]:
    return {"id": identifier, "hl": STORE_LANGUAGE, "gl": STORE_COUNTRY}


def parse_document(html: str) -> BeautifulSoup:
    """Parse listing markup into a queryable tree."""
    try:
        return BeautifulSoup(html, "lxml")
    except FeatureNotFound:
        return BeautifulSoup(html, "html.parser")


def fetch_document(
    identifier: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    user_agent: Optional[str] = None,
) -> BeautifulSoup:
    """Issue one GET for the listing page of ``identifier``.

    Raises:
        FetchError: on any transport error, timeout or non-2xx response.
    """
    session = session or _get_session()
    headers = build_headers(user_agent)
    started = time.perf_counter()

    try:
        logger.debug("fetch.request", identifier=identifier, url=DETAILS_URL)
        response = session.get(
            DETAILS_URL,
            params=listing_params(identifier),
            headers=headers,
            timeout=timeout or REQUEST_TIMEOUT_SECONDS,
            allow_redirects=True,
        )
    except requests.RequestException as exc:
        logger.warning(
            "fetch.request_exception",
            identifier=identifier,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        raise FetchError(
            f"Failed to fetch listing page: {exc}",
            identifier=identifier,
            cause=exc,
        ) from exc

    if not 200 <= response.status_code < 300:
        logger.warning(
            "fetch.bad_status",
            identifier=identifier,
            status_code=response.status_code,
        )
        raise FetchError(
            f"Storefront returned HTTP {response.status_code}",
            identifier=identifier,
            status_code=response.status_code,
        )

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.debug(
        "fetch.success",
        identifier=identifier,
        url=getattr(response, "url", DETAILS_URL),
        status_code=response.status_code,
        chars=len(response.text or ""),
        elapsed_ms=elapsed_ms,
    )
    return parse_document(response.text or "")


def fetch_with_retry(
    identifier: str,
    *,
    fetcher: FetchFn = fetch_document,
    attempts: int = FETCH_MAX_ATTEMPTS,
    interval: float = FETCH_RETRY_INTERVAL_SECONDS,
    sleep: SleepFn = time.sleep,
) -> BeautifulSoup:
    """Call ``fetcher`` up to ``attempts`` times, pausing ``interval`` between tries.

    The first success short-circuits. After the final failure the last
    FetchError is re-raised with its ``attempts`` set. Any other exception
    propagates immediately.
    """
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            document = fetcher(identifier)
        except FetchError as exc:
            if attempt >= attempts:
                exc.attempts = attempts
                logger.warning(
                    "fetch.exhausted",
                    identifier=identifier,
                    attempts=attempts,
                    error=str(exc),
                    status_code=exc.status_code,
                )
                raise
            logger.info(
                "fetch.retry_sleep",
                identifier=identifier,
                attempt=attempt,
                max_attempts=attempts,
                sleep_seconds=interval,
                error=str(exc),
            )
            sleep(interval)
            continue

        if attempt > 1:
            logger.info(
                "fetch.recovered", identifier=identifier, attempts=attempt
            )
        return document

    raise FetchError("No fetch attempt was made", identifier=identifier)
