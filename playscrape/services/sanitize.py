import re
from typing import Any

from playscrape.services.exceptions import InvalidInputError

MAX_PACKAGE_LENGTH = 60

_PACKAGE_CHARS = re.compile(r"^[a-z0-9._]+$")


def sanitize_package(raw: Any) -> str:
    """Normalise a user supplied package id, e.g. ``" Com.Example.App "``.

    Raises:
        InvalidInputError: empty, longer than 60 characters, missing a dot or
            containing anything outside ``[a-z0-9._]``.
    """
    if not isinstance(raw, str):
        raise InvalidInputError("Package parameter is required")

    package = raw.strip().lower()
    if not package:
        raise InvalidInputError("Package parameter is required")
    if len(package) > MAX_PACKAGE_LENGTH:
        raise InvalidInputError(
            f"Package name must be at most {MAX_PACKAGE_LENGTH} characters",
            identifier=package,
        )
    if "." not in package:
        raise InvalidInputError(
            "Package name must contain a dot, e.g. com.example.app",
            identifier=package,
        )
    if not _PACKAGE_CHARS.match(package):
        raise InvalidInputError(
            "Package name may only contain letters, digits, dots and underscores",
            identifier=package,
        )
    return package
