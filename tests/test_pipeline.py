import pytest

from conftest import StubFetcher, structured_listing
from playscrape.services.cache import ResultCache
from playscrape.services.exceptions import ExtractionError, FetchError, InvalidInputError
from playscrape.services.pipeline import AppLookupPipeline

BLOCKED_PAGE = "<html><body><p>Please confirm you are not a robot.</p></body></html>"
EMPTY_PAGE = "<html><body><p>Nothing here</p></body></html>"


def _pipeline(fetcher, clock):
    waits = []
    pipeline = AppLookupPipeline(ResultCache(clock=clock), fetcher=fetcher, sleep=waits.append)
    return pipeline, waits


def test_second_lookup_is_served_from_cache(pipeline, fetcher):
    first = pipeline.lookup("com.example.sample")
    second = pipeline.lookup("com.example.sample")

    assert first.from_cache is False
    assert second.from_cache is True
    assert second.record == first.record
    assert fetcher.calls == ["com.example.sample"]


def test_expired_entry_triggers_refetch(pipeline, fetcher, clock):
    pipeline.lookup("com.example.sample")
    clock.advance(6 * 60 * 60 + 1)

    result = pipeline.lookup("com.example.sample")

    assert result.from_cache is False
    assert len(fetcher.calls) == 2


def test_use_cache_false_bypasses_cache(pipeline, fetcher):
    pipeline.lookup("com.example.sample")
    result = pipeline.lookup("com.example.sample", use_cache=False)

    assert result.from_cache is False
    assert len(fetcher.calls) == 2


@pytest.mark.parametrize("identifier", ["", "   ", None, 42])
def test_blank_or_non_string_identifier_rejected(pipeline, fetcher, identifier):
    with pytest.raises(InvalidInputError):
        pipeline.lookup(identifier)
    assert fetcher.calls == []


def test_identifier_is_trimmed(pipeline, fetcher):
    pipeline.lookup("  com.example.sample ")
    assert fetcher.calls == ["com.example.sample"]


def test_transient_fetch_failures_are_retried(clock):
    failure = FetchError("HTTP 503", status_code=503)
    fetcher = StubFetcher(pages={"com.example.sample": [failure, failure, structured_listing()]})
    pipeline, waits = _pipeline(fetcher, clock)

    result = pipeline.lookup("com.example.sample")

    assert result.record.title == "Sample App"
    assert len(fetcher.calls) == 3
    assert waits == [1.0, 1.0]


def test_exhausted_fetch_is_not_cached(clock):
    fetcher = StubFetcher()
    pipeline, waits = _pipeline(fetcher, clock)

    with pytest.raises(FetchError) as excinfo:
        pipeline.lookup("com.example.missing")

    assert excinfo.value.attempts == 3
    assert len(fetcher.calls) == 3
    assert len(waits) == 2
    assert len(pipeline.cache) == 0


def test_not_found_is_neither_retried_nor_cached(clock):
    fetcher = StubFetcher(default=EMPTY_PAGE)
    pipeline, waits = _pipeline(fetcher, clock)

    with pytest.raises(ExtractionError) as excinfo:
        pipeline.lookup("com.example.empty")

    assert excinfo.value.reason == ExtractionError.NOT_FOUND
    assert fetcher.calls == ["com.example.empty"]
    assert waits == []
    assert "com.example.empty" not in pipeline.cache


def test_blocked_page_surfaces_blocked_reason(clock):
    fetcher = StubFetcher(default=BLOCKED_PAGE)
    pipeline, _ = _pipeline(fetcher, clock)

    with pytest.raises(ExtractionError) as excinfo:
        pipeline.lookup("com.example.sample")

    assert excinfo.value.blocked


def test_from_settings_uses_configured_ttl():
    pipeline = AppLookupPipeline.from_settings(fetcher=StubFetcher())

    assert pipeline.cache.ttl_seconds == 6 * 60 * 60
