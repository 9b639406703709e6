from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from playscrape.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATELIMIT_DEFAULT],
)
