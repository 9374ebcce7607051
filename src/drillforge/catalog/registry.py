"""Drill catalog discovery and lookup."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from drillforge.catalog.loader import build_default_catalog, load_catalog
from drillforge.engine.models import Drill


class CatalogRegistry:
    """Holds the drill catalog in file order.

    ``catalog_path`` may be a YAML file or a directory of ``*.yaml`` files
    (read in sorted order). Without a path the generated default catalog is used.
    """

    def __init__(self, catalog_path: Optional[Path] = None):
        self.catalog_path = catalog_path
        self._drills: Optional[list[Drill]] = None

    def _load(self) -> list[Drill]:
        path = self.catalog_path
        if path is None:
            return build_default_catalog()
        if path.is_dir():
            drills: list[Drill] = []
            for catalog_file in sorted(path.glob("*.yaml")):
                drills.extend(load_catalog(catalog_file))
            return drills
        return load_catalog(path)

    def list_drills(self) -> list[Drill]:
        if self._drills is None:
            self._drills = self._load()
        return list(self._drills)

    def list_categories(self) -> list[str]:
        categories: list[str] = []
        for drill in self.list_drills():
            if drill.category not in categories:
                categories.append(drill.category)
        return categories

    def for_category(self, category: str) -> list[Drill]:
        return [d for d in self.list_drills() if d.category == category]

    def get_drill(self, drill_id: str) -> Drill | None:
        for drill in self.list_drills():
            if drill.id == drill_id:
                return drill
        return None
