from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.engine import BadgeDefinition

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_CATALOG_CACHE: dict[Path, list[BadgeDefinition]] = {}


def _catalog_path(path: str | Path | None = None) -> Path:
    candidate = Path(path or settings.badge_catalog_path)
    if not candidate.is_absolute():
        candidate = _PROJECT_ROOT / candidate
    return candidate


def load_badge_catalog(path: str | Path | None = None) -> list[BadgeDefinition]:
    """Load badge definitions from the catalog YAML and cache them per path."""
    catalog_path = _catalog_path(path)
    cached = _CATALOG_CACHE.get(catalog_path)
    if cached is not None:
        return list(cached)

    if not catalog_path.exists():
        raise RuntimeError(
            f"Badge catalog not found at '{catalog_path}'. "
            "Expected file: config/badges.yaml"
        )

    try:
        raw = catalog_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"Failed to read badge catalog '{catalog_path}': {exc}") from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Invalid YAML in badge catalog '{catalog_path}': {exc}") from exc

    entries = parsed.get("badges") if isinstance(parsed, dict) else None
    if not isinstance(entries, list):
        raise RuntimeError(
            f"Invalid badge catalog '{catalog_path}': expected a top-level 'badges' list."
        )

    badges: list[BadgeDefinition] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        try:
            badge = BadgeDefinition.model_validate(entry)
        except ValidationError as exc:
            raise RuntimeError(f"Invalid badge #{index} in '{catalog_path}': {exc}") from exc
        if badge.id in seen:
            raise RuntimeError(f"Duplicate badge id '{badge.id}' in '{catalog_path}'.")
        seen.add(badge.id)
        badges.append(badge)

    _CATALOG_CACHE[catalog_path] = badges
    return list(badges)
