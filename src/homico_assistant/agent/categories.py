import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal

from ..services.marketplace import MarketplaceReader

logger = logging.getLogger(__name__)

MatchLevel = Literal["category", "subcategory", "unresolved"]

# Role words people type instead of category keys.
CATEGORY_ALIASES: Dict[str, str] = {
    "architect": "architecture",
    "architects": "architecture",
    "interior designer": "interior",
    "designer": "design",
    "electrician": "electricity",
    "electricians": "electricity",
    "electrical": "electricity",
    "plumber": "plumbing",
    "plumbers": "plumbing",
    "painter": "mural",
    "painters": "mural",
    "painting": "mural",
    "არქიტექტორი": "architecture",
    "არქიტექტორები": "architecture",
    "დიზაინერი": "design",
    "ინტერიერის დიზაინი": "interior",
    "ელექტრიკოსი": "electricity",
    "სანტექნიკოსი": "plumbing",
    "მხატვარი": "mural",
    "архитектор": "architecture",
    "архитектура": "architecture",
    "дизайнер": "design",
    "электрик": "electricity",
    "сантехник": "plumbing",
    "маляр": "mural",
}

_SEPARATORS = re.compile(r"[_/\-]+")
_PUNCTUATION = re.compile(r"[^\w\s]+")
_WHITESPACE = re.compile(r"\s+")


def normalize_category_query(value: str | None) -> str:
    text = _SEPARATORS.sub(" ", str(value or "").lower().strip())
    text = _PUNCTUATION.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


@dataclass(frozen=True)
class CategoryMatch:
    level: MatchLevel
    category_key: str | None = None
    subcategory_key: str | None = None

    @property
    def is_top_level(self) -> bool:
        return self.level == "category"


def _matches(node: Dict[str, Any], key_lower: str, norm: str) -> bool:
    if str(node.get("key", "")).lower() == key_lower:
        return True
    names: Iterable[str] = (node.get("name"), node.get("name_ka"), *(node.get("keywords") or []))
    return any(normalize_category_query(name) == norm for name in names if name)


def match_category_tree(key: str, categories: List[Dict[str, Any]]) -> CategoryMatch | None:
    """Walk category -> subcategory -> sub-subcategory and return the first hit."""
    key_lower = key.strip().lower()
    norm = normalize_category_query(key)
    if not norm:
        return None
    for category in categories:
        if _matches(category, key_lower, norm):
            return CategoryMatch("category", category["key"])
        for sub in category.get("subcategories") or []:
            if _matches(sub, key_lower, norm):
                return CategoryMatch("subcategory", category["key"], sub["key"])
            for child in sub.get("children") or []:
                if _matches(child, key_lower, norm):
                    return CategoryMatch("subcategory", category["key"], child["key"])
    return None


class CategoryResolver:
    """Maps free text ("plumber", "სანტექნიკა", "plumbing") onto the category tree."""

    def __init__(self, marketplace: MarketplaceReader) -> None:
        self._marketplace = marketplace

    async def resolve(self, key: str) -> CategoryMatch:
        """Resolve key to a category or subcategory.

        Unmatched keys come back as ``unresolved`` with the raw key in
        ``subcategory_key``; callers filter by it and must tolerate no results.
        """
        query = str(key or "").strip()
        categories = await self._marketplace.find_categories()

        # Role-word aliases win over a structural match of the raw text.
        alias = CATEGORY_ALIASES.get(normalize_category_query(query))
        match = match_category_tree(alias, categories) if alias else None
        if match is None:
            match = match_category_tree(query, categories)
        if match is None:
            logger.debug("Category %r unresolved; using it as a subcategory filter", query)
            return CategoryMatch("unresolved", None, query)
        return match

    async def display_names(self, key: str) -> tuple:
        """English and Georgian names for a category or subcategory key, or the key itself."""
        category = await self._marketplace.find_category(key)
        if category:
            return category["name"], category.get("name_ka") or category["name"]
        for category in await self._marketplace.find_categories():
            for sub in category.get("subcategories") or []:
                for node in (sub, *(sub.get("children") or [])):
                    if node.get("key") == key:
                        return node["name"], node.get("name_ka") or node["name"]
        return key, key
