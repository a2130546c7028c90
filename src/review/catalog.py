"""
Catalog: Learning Item Loader.

Loads vocabulary items from a JSON file. The file holds either a list of
item records or an object with an ``items`` list. Records missing a
required field are skipped with a warning.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from pathlib import Path

from loguru import logger

from .models import LearningItem


class Catalog:
    """
    Ordered collection of learning items.

    Order is the catalog order used for introducing new items. Lookups are
    by item id; a repeated id keeps its first occurrence.
    """

    def __init__(self, items: Iterable[LearningItem] = ()):
        self._items: list[LearningItem] = []
        self._by_id: dict[str, LearningItem] = {}
        for item in items:
            self.add(item)

    def add(self, item: LearningItem) -> bool:
        """Append an item. Returns False if the id is already present."""
        if item.id in self._by_id:
            logger.debug(f"Duplicate catalog id ignored: {item.id}")
            return False
        self._items.append(item)
        self._by_id[item.id] = item
        return True

    def __iter__(self) -> Iterator[LearningItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def get(self, item_id: str) -> LearningItem | None:
        return self._by_id.get(item_id)

    def get_by_ids(self, item_ids: Iterable[str]) -> list[LearningItem]:
        """Get items by id, skipping unknown ids."""
        return [self._by_id[i] for i in item_ids if i in self._by_id]

    @property
    def categories(self) -> list[str]:
        return sorted({item.category for item in self._items if item.category})

    @classmethod
    def load(cls, path: str | Path) -> Catalog:
        """
        Load a catalog from a JSON file.

        Args:
            path: Path to the catalog JSON

        Returns:
            Catalog with every valid record

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not valid JSON or has no item list
        """
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Catalog {path} is not valid JSON: {e}") from e

        records = data.get("items") if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise ValueError(f"Catalog {path} has no item list")

        catalog = cls()
        skipped = 0
        for record in records:
            try:
                catalog.add(LearningItem.from_dict(record))
            except (KeyError, TypeError, AttributeError) as e:
                skipped += 1
                logger.warning(f"Skipping malformed catalog record {record!r}: {e}")

        logger.info(f"Loaded {len(catalog)} items from {path} ({skipped} skipped)")
        return catalog
