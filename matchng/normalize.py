from typing import Iterable, List

from .constants import SKILL_ALIASES


def normalize_text(s: str) -> str:
    return " ".join((s or "").strip().lower().split())


def same_place(a: str, b: str) -> bool:
    """Case-insensitive comparison of city or state names."""
    return normalize_text(a) == normalize_text(b)


def dedupe(items: Iterable[str]) -> List[str]:
    """Drop duplicates while preserving first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def normalize_skills(skills: Iterable[str]) -> List[str]:
    """Map aliases to canonical skill ids and de-duplicate."""
    canonical = []
    for s in skills:
        s = (s or "").strip()
        if not s:
            continue
        canonical.append(SKILL_ALIASES.get(s, s))
    return dedupe(canonical)


def add_unique(items: List[str], value: str) -> bool:
    """Append value if absent. Returns True when the list changed."""
    if value in items:
        return False
    items.append(value)
    return True


def toggle(items: List[str], value: str) -> bool:
    """Remove value if present, else append it. Returns the new membership."""
    if value in items:
        items[:] = [i for i in items if i != value]
        return False
    items.append(value)
    return True
