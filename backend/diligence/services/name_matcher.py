"""Tiered name matching between model output and the canonical rubric.

The reasoning service may rename, reformat, or reorder categories and
criteria. ``NameMatcher`` maps a canonical name onto a model item:

  exact  ->  normalized key (case / punctuation-insensitive)
         ->  key containment (either direction)
         ->  positional fallback (same index)
"""

from __future__ import annotations

import re
from typing import Any, Callable, Optional, Sequence

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_key(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _NON_ALNUM_RE.sub("", value.lower())


class NameMatcher:
    """Resolve model items for canonical names.

    Items are dicts straight from model JSON; *field* names the label key
    ("category" for categories, "name" for criteria).
    """

    def __init__(self, field: str):
        self.field = field

    def _label(self, item: Any) -> Any:
        return item.get(self.field) if isinstance(item, dict) else None

    def find_by_name(self, items: Sequence[Any], target: str) -> Optional[Any]:
        if not items:
            return None
        target_key = normalize_key(target)
        if not target_key:
            return None

        tiers: list[Callable[[Any], bool]] = [
            lambda item: self._label(item) == target,
            lambda item: normalize_key(self._label(item)) == target_key,
            lambda item: _contains_either_way(normalize_key(self._label(item)), target_key),
        ]
        for matches in tiers:
            for item in items:
                if matches(item):
                    return item
        return None

    def match(self, items: Sequence[Any], target: str, position: int) -> Optional[Any]:
        """Name-based match, else the item at *position*, else None."""
        found = self.find_by_name(items, target)
        if found is not None:
            return found
        if 0 <= position < len(items):
            return items[position]
        return None


def _contains_either_way(item_key: str, target_key: str) -> bool:
    if not item_key:
        return False
    return target_key in item_key or item_key in target_key
