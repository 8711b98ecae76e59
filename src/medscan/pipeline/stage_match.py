"""Entity Matching Stage - Reconcile extracted names with the catalog.

Matching precedence, first hit wins:
1. Case-insensitive exact match on the canonical name
2. Whole-word containment in either direction ("Fasting Glucose Level"
   matches "Glucose", "Metformin" matches "Metformin Hydrochloride")
3. No match

The rule is deliberately permissive; every extracted item goes through
human review before it becomes a real record.
"""

import re
from typing import Generic, Iterable, Optional, Sequence, TypeVar

from medscan.models import CatalogEntry

EntryT = TypeVar("EntryT", bound=CatalogEntry)


def _normalize(name: str) -> str:
    return " ".join(name.split()).casefold()


def _contains_word(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    pattern = r"(?<!\w)" + re.escape(needle) + r"(?!\w)"
    return re.search(pattern, haystack) is not None


class EntityMatcher(Generic[EntryT]):
    """Matches extracted names against one catalog (drugs or biomarkers)."""

    def __init__(self, catalog: Iterable[EntryT]):
        """Initialize matcher.

        Args:
            catalog: Catalog entries in lookup order. Earlier entries win ties.
        """
        self.entries: Sequence[EntryT] = tuple(catalog)
        self._keys = [(entry, _normalize(entry.name)) for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def match(self, name: Optional[str]) -> Optional[EntryT]:
        """Find the catalog entry for an extracted name.

        Args:
            name: Name as read from the document

        Returns:
            Matched entry, or None. Never raises on odd input.
        """
        if not isinstance(name, str):
            return None
        query = _normalize(name)
        if not query:
            return None

        for entry, key in self._keys:
            if key == query:
                return entry

        for entry, key in self._keys:
            if _contains_word(query, key) or _contains_word(key, query):
                return entry

        return None
