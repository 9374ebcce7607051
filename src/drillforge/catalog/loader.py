"""YAML drill catalog parser for DrillForge."""

from __future__ import annotations

from pathlib import Path

import yaml

from drillforge.engine.errors import InvalidInput
from drillforge.engine.models import Drill, DrillContent

DEFAULT_CATEGORY_TAGS: dict[str, list[str]] = {
    "shooting": ["footwork", "release", "arc", "balance"],
    "passing": ["vision", "timing", "accuracy", "movement"],
    "defense": ["positioning", "reaction", "angles", "balance"],
}


def _normalize(raw: dict) -> dict:
    """Accept both camelCase and snake_case keys in catalog files."""
    data = dict(raw)
    if "difficulty_score" in data and "difficultyScore" not in data:
        data["difficultyScore"] = data.pop("difficulty_score")
    return data


def parse_catalog(raw) -> list[Drill]:
    """Build drills from a parsed YAML document.

    The document is either a list of drills or a mapping with a ``drills`` key.
    Duplicate ids are rejected.
    """
    if isinstance(raw, dict):
        raw = raw.get("drills", [])
    if not isinstance(raw, list):
        raise InvalidInput("Catalog must be a list of drills or a mapping with 'drills'")

    drills: list[Drill] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            raise InvalidInput(f"Catalog entry must be a mapping, got {item!r}")
        drill = Drill.from_dict(_normalize(item))
        if drill.id in seen:
            raise InvalidInput(f"Duplicate drill id in catalog: {drill.id}")
        seen.add(drill.id)
        drills.append(drill)
    return drills


def load_catalog(catalog_file: Path) -> list[Drill]:
    """Load drills from a single catalog YAML file."""
    with open(catalog_file) as f:
        raw = yaml.safe_load(f)
    return parse_catalog(raw or [])


def build_default_catalog(per_category: int = 80) -> list[Drill]:
    """Generated starter catalog: difficulties 9..88 per category, two rotating tags."""
    drills: list[Drill] = []
    for category, tags in DEFAULT_CATEGORY_TAGS.items():
        for index in range(1, per_category + 1):
            primary = tags[index % len(tags)]
            secondary = tags[(index + 1) % len(tags)]
            drills.append(Drill(
                id=f"{category}_drill_{index}",
                title=f"{category.capitalize()} Drill {index}",
                category=category,
                difficulty_score=max(5, min(95, 8 + index)),
                content=DrillContent(data={
                    "summary": f"Practice {category} with emphasis on {primary} and {secondary}.",
                    "durationMinutes": 10,
                }),
                tags=frozenset({primary, secondary}),
            ))
    return drills
