import json

import pytest

from playscrape import create_app
from playscrape.services.cache import ResultCache
from playscrape.services.exceptions import FetchError
from playscrape.services.fetch import parse_document
from playscrape.services.parser import reset_strategy_metrics
from playscrape.services.pipeline import AppLookupPipeline

SAMPLE_STRUCTURED = {
    "@context": "https://schema.org",
    "@type": "SoftwareApplication",
    "name": "Sample App",
    "url": "https://play.google.com/store/apps/details?id=com.example.sample",
    "image": "https://play-lh.googleusercontent.com/sample-icon",
    "applicationCategory": "PRODUCTIVITY",
    "author": {"@type": "Person", "name": "Example Labs", "url": "https://example.com"},
    "aggregateRating": {
        "@type": "AggregateRating",
        "ratingValue": "4.5",
        "ratingCount": "1200",
    },
    "offers": [{"@type": "Offer", "price": "0", "priceCurrency": "USD"}],
}


def structured_listing(payload=None, body=""):
    """Listing page carrying a JSON-LD block and an optional body."""
    data = json.dumps(payload if payload is not None else SAMPLE_STRUCTURED)
    return (
        "<html><head>"
        f'<script type="application/ld+json">{data}</script>'
        f"</head><body>{body}</body></html>"
    )


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class StubFetcher:
    """Serves canned listing pages; a FetchError in the queue is raised instead."""

    def __init__(self, pages=None, default=None):
        self.pages = {key: list(value) for key, value in (pages or {}).items()}
        self.default = default
        self.calls = []

    def __call__(self, identifier):
        self.calls.append(identifier)
        queue = self.pages.get(identifier)
        outcome = queue.pop(0) if queue else self.default
        if outcome is None:
            raise FetchError("Storefront returned HTTP 404", identifier=identifier, status_code=404)
        if isinstance(outcome, Exception):
            raise outcome
        return parse_document(outcome)


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_strategy_metrics()
    yield
    reset_strategy_metrics()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def fetcher():
    return StubFetcher(default=structured_listing())


@pytest.fixture()
def pipeline(clock, fetcher):
    waits = []
    built = AppLookupPipeline(
        ResultCache(clock=clock),
        fetcher=fetcher,
        sleep=waits.append,
    )
    built.waits = waits
    return built


@pytest.fixture()
def app(pipeline):
    app = create_app(
        pipeline=pipeline,
        config={"TESTING": True, "RATELIMIT_ENABLED": False},
    )
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()
