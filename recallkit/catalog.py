"""
Course Catalog: reviewable item identifiers supplied by the authoring side.

Loads item ids and their module grouping from a course's content tree:
- content/exercises/module<N>-variants.yaml (generated exercise variants)
- content/flashcards/module<N>.json (flashcard decks)

Only identifiers and grouping metadata are read. Question and answer text
is never inspected.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger

_MODULE_RE = re.compile(r"module[_-]?(\d+)")

# Exercise groups in a variants file, keyed by YAML section -> item kind
EXERCISE_SECTIONS = {"warmups": "warmup", "challenges": "challenge"}


@dataclass(frozen=True)
class CatalogItem:
    """
    One reviewable unit as listed by the catalog.

    item_id is stable across regenerations of the content files:
    module<N>/<group id>/<variant id> for exercises, module<N>/card/<id>
    for flashcards.
    """

    item_id: str
    course_id: str
    module_id: int
    kind: str  # warmup, challenge, flashcard
    group_id: str
    concept: str | None = None


def _module_number(path: Path) -> int | None:
    match = _MODULE_RE.search(path.stem)
    return int(match.group(1)) if match else None


class CourseCatalog:
    """
    Ordered collection of a course's reviewable item ids.

    Items keep file order within a module; modules are loaded in
    ascending number so "study by module" and "shuffle across modules"
    both start from a deterministic sequence.
    """

    def __init__(self, course_id: str, content_root: Path | None = None):
        """
        Args:
            course_id: Course slug (directory name under content_root)
            content_root: Root of authored content (defaults to Settings.content_root)
        """
        if content_root is None:
            from .config import get_settings

            content_root = get_settings().content_root
        self.course_id = course_id
        self.content_root = Path(content_root)

        self._items: dict[str, CatalogItem] = {}
        self._by_module: dict[int, list[str]] = {}
        self._files_loaded: list[Path] = []

    @classmethod
    def from_items(cls, course_id: str, items: Iterable[CatalogItem]) -> CourseCatalog:
        """Build a catalog from already-known items (no file access)."""
        catalog = cls(course_id, content_root=Path("."))
        for item in items:
            catalog._add(item)
        return catalog

    @property
    def course_dir(self) -> Path:
        return self.content_root / self.course_id / "content"

    @property
    def total_items(self) -> int:
        return len(self._items)

    @property
    def modules(self) -> list[int]:
        """Module numbers that contain items."""
        return sorted(self._by_module)

    @property
    def files_loaded(self) -> list[Path]:
        return list(self._files_loaded)

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self) -> int:
        """
        Load item ids from every exercise and flashcard file of the course.

        Returns:
            Number of items loaded
        """
        self._items.clear()
        self._by_module.clear()
        self._files_loaded.clear()

        sources = [
            (path, self._load_exercise_file)
            for path in (self.course_dir / "exercises").glob("module*-variants.yaml")
        ] + [
            (path, self._load_flashcard_file)
            for path in (self.course_dir / "flashcards").glob("module*.json")
        ]

        if not sources:
            logger.warning(f"No catalog files found in {self.course_dir}")
            return 0

        for path, loader in sorted(sources, key=lambda s: (_module_number(s[0]) or 0, s[0].name)):
            module_id = _module_number(path)
            if module_id is None:
                logger.warning(f"Skipping {path.name}: no module number in file name")
                continue
            loader(path, module_id)

        logger.info(
            f"Catalog {self.course_id}: {self.total_items} items in "
            f"{len(self.modules)} modules from {len(self._files_loaded)} files"
        )
        return self.total_items

    def _load_exercise_file(self, path: Path, module_id: int) -> int:
        """Load warmup and challenge variant ids from a generated YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return 0

        variants = data.get("variants", {}) if isinstance(data, dict) else {}
        loaded = 0

        for section, kind in EXERCISE_SECTIONS.items():
            for group in variants.get(section) or []:
                try:
                    group_id = str(group["id"])
                    for variant in group.get("variants") or []:
                        item = CatalogItem(
                            item_id=f"module{module_id}/{group_id}/{variant['id']}",
                            course_id=self.course_id,
                            module_id=module_id,
                            kind=kind,
                            group_id=group_id,
                            concept=group.get("concept"),
                        )
                        loaded += self._add(item)
                except (KeyError, TypeError, AttributeError) as e:
                    logger.warning(f"Invalid {kind} group in {path}: {e}")
                    continue

        self._files_loaded.append(path)
        logger.debug(f"Loaded {loaded} exercise variants from {path.name}")
        return loaded

    def _load_flashcard_file(self, path: Path, module_id: int) -> int:
        """Load flashcard ids from a JSON deck."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return 0

        cards = data if isinstance(data, list) else data.get("cards", [])
        loaded = 0

        for card in cards:
            try:
                item = CatalogItem(
                    item_id=f"module{module_id}/card/{card['id']}",
                    course_id=self.course_id,
                    module_id=module_id,
                    kind="flashcard",
                    group_id="card",
                    concept=card.get("concept"),
                )
                loaded += self._add(item)
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Invalid flashcard in {path}: {e}")
                continue

        self._files_loaded.append(path)
        logger.debug(f"Loaded {loaded} flashcards from {path.name}")
        return loaded

    def _add(self, item: CatalogItem) -> int:
        if item.item_id in self._items:
            logger.warning(f"Duplicate catalog id {item.item_id}, keeping the first")
            return 0
        self._items[item.item_id] = item
        self._by_module.setdefault(item.module_id, []).append(item.item_id)
        return 1

    # =========================================================================
    # Access Methods
    # =========================================================================

    def get(self, item_id: str) -> CatalogItem | None:
        return self._items.get(item_id)

    def item_ids(self, module_id: int | None = None) -> list[str]:
        """All item ids in catalog order, optionally limited to one module."""
        if module_id is None:
            return list(self._items)
        return list(self._by_module.get(module_id, []))

    def get_by_module(self, module_id: int) -> list[CatalogItem]:
        return [self._items[iid] for iid in self._by_module.get(module_id, [])]

    def get_by_ids(self, item_ids: Iterable[str]) -> list[CatalogItem]:
        """Get items by id, skipping ids the catalog does not know."""
        return [self._items[iid] for iid in item_ids if iid in self._items]

    def filter_new(self, reviewed_ids: set[str]) -> list[CatalogItem]:
        """Items that have never been reviewed."""
        return [item for item in self._items.values() if item.item_id not in reviewed_ids]

    def __iter__(self) -> Iterator[CatalogItem]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def get_stats(self) -> dict:
        """Counts per module and per kind."""
        by_kind: dict[str, int] = {}
        for item in self._items.values():
            by_kind[item.kind] = by_kind.get(item.kind, 0) + 1

        return {
            "course_id": self.course_id,
            "files_loaded": len(self._files_loaded),
            "total_items": self.total_items,
            "modules": {mod: len(ids) for mod, ids in sorted(self._by_module.items())},
            "by_kind": dict(sorted(by_kind.items())),
        }
