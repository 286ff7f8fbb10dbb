from __future__ import annotations

"""Static reference data: the federal cabinet officials visitors can rate.

Entries are ordered the way the site lists them. Image URLs here are
placeholders; real portraits are applied as overrides (see officials.service).
"""

from typing import Dict, List, Optional, Tuple

from .types import Official, UnknownOfficialError

DEFAULT_IMAGE = "/placeholder.svg?height=120&width=120"


def _o(official_id: str, name: str, full_name: str, position: str, category: str) -> Official:
    return Official(
        id=official_id,
        name=name,
        full_name=full_name,
        position=position,
        category=category,
        image=DEFAULT_IMAGE,
    )


DEFAULT_OFFICIALS: Tuple[Official, ...] = (
    _o("president", "President", "Bola Ahmed Tinubu", "President of Nigeria", "Executive"),
    _o("vp", "Vice President", "Kashim Shettima", "Vice President of Nigeria", "Executive"),
    _o("finance", "Minister of Finance", "Wale Edun", "Minister of Finance & Coordinating Minister of the Economy", "Economic Team"),
    _o("budget", "Minister of Budget", "Atiku Bagudu", "Minister of Budget & Economic Planning", "Economic Team"),
    _o("industry", "Minister of Industry", "Doris Uzoka-Anite", "Minister of Industry, Trade & Investment", "Economic Team"),
    _o("petroleum", "Minister of Petroleum", "Heineken Lokpobiri", "Minister of State for Petroleum Resources (Oil)", "Economic Team"),
    _o("petroleum_gas", "Minister of Petroleum (Gas)", "Ekperikpe Ekpo", "Minister of State for Petroleum Resources (Gas)", "Economic Team"),
    _o("agriculture", "Minister of Agriculture", "Abubakar Kyari", "Minister of Agriculture & Food Security", "Economic Team"),
    _o("education", "Minister of Education", "Prof. Tahir Mamman", "Minister of Education", "Social Services"),
    _o("health", "Minister of Health", "Prof. Muhammad Ali Pate", "Coordinating Minister of Health & Social Welfare", "Social Services"),
    _o("women_affairs", "Minister of Women Affairs", "Uju Kennedy-Ohanenye", "Minister of Women Affairs", "Social Services"),
    _o("humanitarian", "Minister of Humanitarian Affairs", "Dr. Betta Edu", "Minister of Humanitarian Affairs & Poverty Reduction", "Social Services"),
    _o("youth", "Minister of Youth", "Dr. Jamila Bio Ibrahim", "Minister of Youth Development", "Social Services"),
    _o("sports", "Minister of Sports", "John Enoh", "Minister of Sports Development", "Social Services"),
    _o("works", "Minister of Works", "Dave Umahi", "Minister of Works", "Infrastructure"),
    _o("power", "Minister of Power", "Adebayo Adelabu", "Minister of Power", "Infrastructure"),
    _o("housing", "Minister of Housing", "Ahmed Musa Dangiwa", "Minister of Housing & Urban Development", "Infrastructure"),
    _o("transport", "Minister of Transportation", "Said Alkali", "Minister of Transportation", "Infrastructure"),
    _o("aviation", "Minister of Aviation", "Festus Keyamo", "Minister of Aviation & Aerospace Development", "Infrastructure"),
    _o("innovation", "Minister of Innovation", "Uche Nnaji", "Minister of Innovation, Science & Technology", "Infrastructure"),
    _o("communications", "Minister of Communications", "Dr. Bosun Tijani", "Minister of Communications, Innovation & Digital Economy", "Infrastructure"),
    _o("interior", "Minister of Interior", "Olubunmi Tunji-Ojo", "Minister of Interior", "Security"),
    _o("defense", "Minister of Defense", "Mohammed Badaru", "Minister of Defense", "Security"),
    _o("police_affairs", "Minister of Police Affairs", "Ibrahim Geidam", "Minister of Police Affairs", "Security"),
    _o("foreign_affairs", "Minister of Foreign Affairs", "Yusuf Tuggar", "Minister of Foreign Affairs", "Security"),
    _o("justice", "Minister of Justice", "Lateef Fagbemi", "Minister of Justice & Attorney General", "Security"),
)

_BY_ID: Dict[str, Official] = {o.id: o for o in DEFAULT_OFFICIALS}


def normalize_official_id(value: object) -> str:
    return str(value or "").strip().lower()


def has_official(official_id: object) -> bool:
    return normalize_official_id(official_id) in _BY_ID


def get_official(official_id: object) -> Official:
    oid = normalize_official_id(official_id)
    try:
        return _BY_ID[oid]
    except KeyError:
        raise UnknownOfficialError(f"unknown official: {official_id!r}") from None


def list_officials(category: Optional[str] = None) -> List[Official]:
    if not category:
        return list(DEFAULT_OFFICIALS)
    want = category.strip().lower()
    return [o for o in DEFAULT_OFFICIALS if o.category.lower() == want]


def list_categories() -> List[str]:
    """Categories in first-seen order."""
    out: List[str] = []
    for o in DEFAULT_OFFICIALS:
        if o.category not in out:
            out.append(o.category)
    return out
