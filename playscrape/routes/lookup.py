import structlog
from flask import Blueprint, current_app, jsonify, request

from playscrape import PIPELINE_EXTENSION
from playscrape.config import settings
from playscrape.extensions import limiter
from playscrape.services.exceptions import (
    AppLookupError,
    ExtractionError,
    FetchError,
    InvalidInputError,
)
from playscrape.services.sanitize import sanitize_package

logger = structlog.get_logger(__name__)

bp = Blueprint("lookup", __name__)


def _error(message: str, status_code: int):
    return jsonify({"found": False, "error": message}), status_code


def _status_for(exc: AppLookupError) -> int:
    if isinstance(exc, InvalidInputError):
        return 400
    if isinstance(exc, ExtractionError):
        return 503 if exc.blocked else 404
    if isinstance(exc, FetchError):
        return 503
    return 500


@bp.route("/app-info")
@limiter.limit(settings.RATELIMIT_DEFAULT)
def app_info():
    """Look up one storefront listing by its ``package`` query parameter."""
    pipeline = current_app.extensions[PIPELINE_EXTENSION]
    try:
        package = sanitize_package(request.args.get("package"))
        result = pipeline.lookup(package)
    except AppLookupError as exc:
        status_code = _status_for(exc)
        logger.info(
            "http.lookup_error",
            identifier=exc.identifier,
            status_code=status_code,
            error_type=exc.__class__.__name__,
        )
        if isinstance(exc, FetchError):
            return _error("Could not reach the app store, try again later", status_code)
        if isinstance(exc, ExtractionError) and exc.blocked:
            return _error("The app store is temporarily refusing requests", status_code)
        return _error(str(exc), status_code)

    return jsonify(
        {
            "found": True,
            "cached": result.from_cache,
            "app": result.record.to_dict(),
        }
    )
