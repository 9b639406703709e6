import logging
import time
from typing import Optional

import flask_limiter
import structlog
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from limits.storage import storage_from_string

from playscrape.config import settings
from playscrape.extensions import limiter
from playscrape.utils.correlation import (
    clear_correlation_context,
    ensure_correlation_id,
)
from playscrape.utils.logging_config import setup_logging

PIPELINE_EXTENSION = "app_lookup_pipeline"

access_logger = structlog.get_logger("playscrape.access")


def init_extensions(app: Flask) -> None:
    """Configure the rate limiter and its storage backend."""
    limiter_version = getattr(flask_limiter, "__version__", "0")
    app.logger.info("Flask-Limiter version: %s", limiter_version)

    storage_uri = (app.config.get("RATELIMIT_STORAGE_URI") or "").strip() or "memory://"
    try:
        storage_from_string(storage_uri)
    except Exception as exc:
        app.logger.error(
            "Failed to initialize rate limiter storage '%s': %s. Falling back to memory://",
            storage_uri,
            exc,
        )
        storage_uri = "memory://"

    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    limiter.init_app(app)
    app.logger.info("Rate limiter storage: %s", storage_uri)


def create_app(pipeline=None, config: Optional[dict] = None):
    """Create and configure an instance of the Flask application.

    ``pipeline`` replaces the default settings-driven AppLookupPipeline,
    which tests use to inject a stub fetcher or a controlled cache.
    """
    load_dotenv()

    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Application starting with configuration:")
    logger.info(f"  ENV: {settings.ENV}")
    logger.info(f"  STORE_DETAILS_URL: {settings.STORE_DETAILS_URL}")
    logger.info(f"  CACHE_TTL_SECONDS: {settings.CACHE_TTL_SECONDS}")
    logger.info(f"  RATELIMIT_DEFAULT: {settings.RATELIMIT_DEFAULT}")

    app = Flask(__name__)
    app.config.from_mapping(
        ENV=settings.ENV,
        RATELIMIT_DEFAULT=settings.RATELIMIT_DEFAULT,
        RATELIMIT_STORAGE_URI=settings.RATELIMIT_STORAGE_URI,
        RATELIMIT_HEADERS_ENABLED=True,
    )
    if config:
        app.config.update(config)
    app.json.sort_keys = False

    init_extensions(app)

    if pipeline is None:
        from playscrape.services.pipeline import AppLookupPipeline

        pipeline = AppLookupPipeline.from_settings()
    app.extensions[PIPELINE_EXTENSION] = pipeline

    from .routes import lookup, utility

    if "lookup" not in app.blueprints:
        app.register_blueprint(lookup.bp)
    if "utility" not in app.blueprints:
        app.register_blueprint(utility.bp)

    @app.before_request
    def bind_request_context():
        clear_correlation_context()
        correlation_id = ensure_correlation_id(request.headers.get("X-Correlation-ID"))
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id, path=request.path
        )
        g.request_started = time.perf_counter()

    @app.after_request
    def log_response(response):
        started = getattr(g, "request_started", None)
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else None
        correlation_id = ensure_correlation_id()
        response.headers.setdefault("X-Correlation-ID", correlation_id)
        access_logger.info(
            "http.response",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"found": False, "error": "Rate limit exceeded"}), 429

    @app.errorhandler(500)
    def internal_server_error(e):
        logger.error("An internal server error occurred: %s", e, exc_info=True)
        return jsonify({"found": False, "error": "Internal server error"}), 500

    return app
