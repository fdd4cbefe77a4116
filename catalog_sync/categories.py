"""Category list holder and slug resolution.

Provides read-only helpers to resolve categories by slug, id or name. The
list is supplied by the category provider and may not be loaded yet; callers
check ``loaded`` before trusting a negative lookup.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .const import CATEGORY_ALL, DOMAIN
from .exceptions import ValidationError
from .models import Category

LOGGER = logging.getLogger(__name__)


def category_from_dict(data: Mapping[str, Any]) -> Category:
    """Build a Category from a provider record (``_id`` or ``id``)."""

    if not isinstance(data, Mapping):
        raise ValidationError("category record must be a mapping")
    raw_id = data.get("_id", data.get("id"))
    if raw_id is None or not str(raw_id).strip():
        raise ValidationError("category record requires an id")
    name = str(data.get("name") or "").strip()
    slug = str(data.get("slug") or "").strip()
    position = data.get("position", 0)
    if isinstance(position, bool) or not isinstance(position, int):
        position = 0
    return Category(id=str(raw_id).strip(), slug=slug, name=name, position=position)


class CategoryIndex:
    """Ordered category list with slug/id/name lookups."""

    def __init__(self, categories: Iterable[Category | Mapping[str, Any]] | None = None) -> None:
        self._categories: list[Category] = []
        self._loaded = False
        if categories is not None:
            self.load(categories)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def load(self, categories: Iterable[Category | Mapping[str, Any]]) -> None:
        """Replace the list; entries are ordered by ``position`` then name.

        An empty list still counts as loaded.
        """

        items = [c if isinstance(c, Category) else category_from_dict(c) for c in categories]
        items.sort(key=lambda c: (c.position, c.name.casefold()))
        self._categories = items
        self._loaded = True
        LOGGER.debug(
            "Categories loaded",
            extra={"domain": DOMAIN, "op": "categories_loaded", "count": len(items)},
        )

    def get(self, category_id: str | None) -> Category | None:
        if not category_id:
            return None
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    def resolve(self, value: str | None) -> str | None:
        """Resolve a URL value to a category id.

        ``None``, empty and ``"all"`` resolve to ``"all"``. Otherwise a slug
        match wins, then a raw id, then a case-insensitive name. Returns None
        when nothing matches.
        """

        if value is None:
            return CATEGORY_ALL
        text = value.strip()
        if not text or text.casefold() == CATEGORY_ALL:
            return CATEGORY_ALL

        folded = text.casefold()
        for category in self._categories:
            if category.slug and category.slug.casefold() == folded:
                return category.id
        direct = self.get(text)
        if direct is not None:
            return direct.id
        for category in self._categories:
            if category.name.casefold() == folded:
                return category.id
        return None

    def slug_for(self, category_id: str | None) -> str | None:
        """Return the URL slug of ``category_id``; None for ``"all"``.

        Unknown ids fall back to the raw id so the URL still round-trips.
        """

        if not category_id or category_id == CATEGORY_ALL:
            return None
        category = self.get(category_id)
        if category is None or not category.slug:
            return category_id
        return category.slug
