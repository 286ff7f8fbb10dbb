from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import urlparse

from analytics.repo import AnalyticsRepo

from .catalog import get_official, list_officials
from .types import InvalidImageUrlError, Official

logger = logging.getLogger(__name__)

MAX_IMAGE_URL_LENGTH = 2048


def validate_image_url(url: object) -> str:
    """Accept http(s) URLs and absolute site paths ("/images/x.jpg")."""
    s = str(url or "").strip()
    if not s:
        raise InvalidImageUrlError("image url is required")
    if len(s) > MAX_IMAGE_URL_LENGTH:
        raise InvalidImageUrlError(f"image url is too long (max {MAX_IMAGE_URL_LENGTH})")
    if s.startswith("/") and not s.startswith("//"):
        return s
    parsed = urlparse(s)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return s
    raise InvalidImageUrlError(f"image url must be http(s) or an absolute path (got {s!r})")


class OfficialsService:
    """Catalog lookups with stored image overrides applied."""

    def __init__(self, repo: AnalyticsRepo):
        self.repo = repo

    def image_overrides(self) -> Dict[str, str]:
        return self.repo.image_overrides()

    @staticmethod
    def _apply(official: Official, overrides: Dict[str, str]) -> Official:
        url = overrides.get(official.id)
        return official.with_image(url) if url else official

    def list_with_images(self, category: Optional[str] = None) -> List[Official]:
        overrides = self.image_overrides()
        return [self._apply(o, overrides) for o in list_officials(category)]

    def get_with_image(self, official_id: str) -> Official:
        return self._apply(get_official(official_id), self.image_overrides())

    def set_image_override(self, official_id: str, url: str) -> Official:
        official = get_official(official_id)
        clean = validate_image_url(url)
        self.repo.set_image_override(official.id, clean)
        logger.info("image override set: official=%s", official.id)
        return official.with_image(clean)

    def clear_image_override(self, official_id: str) -> Official:
        official = get_official(official_id)
        self.repo.set_image_override(official.id, None)
        logger.info("image override cleared: official=%s", official.id)
        return official
