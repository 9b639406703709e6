from flask import Blueprint, current_app, jsonify

from playscrape import PIPELINE_EXTENSION
from playscrape.extensions import limiter
from playscrape.services.parser import get_strategy_metrics

bp = Blueprint("utility", __name__)


@bp.route("/healthz")
@limiter.exempt
def healthz():
    """Lightweight liveness check."""
    return "ok", 200


@bp.route("/stats")
@limiter.exempt
def stats():
    """Cache counters plus how often each extraction strategy supplied a field."""
    pipeline = current_app.extensions[PIPELINE_EXTENSION]
    return jsonify(
        {
            "cache": pipeline.cache.stats(),
            "strategies": get_strategy_metrics(),
        }
    )
