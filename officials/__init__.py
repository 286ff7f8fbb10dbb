"""Officials catalog (static reference data) and image overrides."""

from .catalog import (
    DEFAULT_IMAGE,
    DEFAULT_OFFICIALS,
    get_official,
    has_official,
    list_categories,
    list_officials,
    normalize_official_id,
)
from .types import InvalidImageUrlError, Official, UnknownOfficialError

__all__ = [
    "DEFAULT_IMAGE",
    "DEFAULT_OFFICIALS",
    "InvalidImageUrlError",
    "Official",
    "UnknownOfficialError",
    "get_official",
    "has_official",
    "list_categories",
    "list_officials",
    "normalize_official_id",
]
