from dataclasses import dataclass, field
from typing import Any

NOT_AVAILABLE = "N/A"
UNKNOWN_DEVELOPER = "Unknown"
NO_DESCRIPTION = "No description available"


@dataclass(frozen=True)
class AppRecord:
    identifier: str
    title: str
    icon: str = NOT_AVAILABLE
    developer: str = UNKNOWN_DEVELOPER
    developer_email: str = NOT_AVAILABLE
    developer_website: str = NOT_AVAILABLE
    category: str = NOT_AVAILABLE
    rating: float = 0.0
    rating_count: int = 0
    installs: str = NOT_AVAILABLE
    free: bool = False
    ad_supported: bool = False
    in_app_purchases: bool = False
    last_updated: str = NOT_AVAILABLE
    current_version: str = NOT_AVAILABLE
    android_version: str = NOT_AVAILABLE
    summary: str = NO_DESCRIPTION
    description: str = NO_DESCRIPTION
    screenshots: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Render the record with the storefront scraper's public JSON keys."""
        return {
            "appId": self.identifier,
            "title": self.title,
            "icon": self.icon,
            "developer": self.developer,
            "developerEmail": self.developer_email,
            "developerWebsite": self.developer_website,
            "genre": self.category,
            "rating": self.rating,
            "ratingCount": self.rating_count,
            "installs": self.installs,
            "free": self.free,
            "adSupported": self.ad_supported,
            "inAppPurchases": self.in_app_purchases,
            "updated": self.last_updated,
            "version": self.current_version,
            "androidVersion": self.android_version,
            "summary": self.summary,
            "description": self.description,
            "screenshots": list(self.screenshots),
        }


@dataclass(frozen=True)
class CacheEntry:
    record: AppRecord
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return self.age(now) > ttl_seconds
