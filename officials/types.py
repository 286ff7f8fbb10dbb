from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict


class UnknownOfficialError(KeyError):
    def __str__(self) -> str:  # KeyError repr-quotes its message otherwise
        return str(self.args[0]) if self.args else "unknown official"


class InvalidImageUrlError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Official:
    """A public figure that can be rated."""

    id: str
    name: str
    full_name: str
    position: str
    category: str
    image: str

    def with_image(self, url: str) -> "Official":
        return replace(self, image=url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "position": self.position,
            "category": self.category,
            "image": self.image,
        }
