"""Read-only queries against marketplace data (professionals, reviews, categories).

The assistant never writes marketplace data. ``SqliteMarketplace`` backs the
queries with a local SQLite database; any object implementing
``MarketplaceReader`` can stand in for it.
"""

import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Protocol

from ..settings import get_settings
from .marketplace_seed import init_schema_and_data

logger = logging.getLogger(__name__)

SortOrder = Literal["rating", "reviews", "price-low", "price-high", "newest"]

_ORDER_BY: Dict[str, str] = {
    "rating": "is_premium DESC, avg_rating DESC",
    "reviews": "is_premium DESC, total_reviews DESC",
    "price-low": "is_premium DESC, base_price ASC",
    "price-high": "is_premium DESC, base_price DESC",
    "newest": "is_premium DESC, created_at DESC",
}
_DEFAULT_ORDER_BY = "is_premium DESC, avg_rating DESC, total_reviews DESC"


@dataclass
class ProFilters:
    category: str | None = None
    subcategory: str | None = None
    min_rating: float | None = None
    min_price: float | None = None
    max_price: float | None = None
    sort: SortOrder | None = None
    page: int = 1
    limit: int = 6


class MarketplaceReader(Protocol):
    async def find_pros(self, filters: ProFilters) -> List[Dict[str, Any]]: ...

    async def get_pro(self, pro_id: str) -> Dict[str, Any] | None: ...

    async def find_reviews(self, pro_id: str, limit: int) -> List[Dict[str, Any]]: ...

    async def find_categories(self) -> List[Dict[str, Any]]: ...

    async def find_category(self, key: str) -> Dict[str, Any] | None: ...

    async def find_categories_by_keys(self, keys: List[str]) -> List[Dict[str, Any]]: ...


def _pro_row(row: sqlite3.Row) -> Dict[str, Any]:
    pro = dict(row)
    pro["categories"] = json.loads(pro.get("categories") or "[]")
    pro["subcategories"] = json.loads(pro.get("subcategories") or "[]")
    pro["is_premium"] = bool(pro.get("is_premium"))
    return pro


def _category_row(row: sqlite3.Row) -> Dict[str, Any]:
    category = dict(row)
    category["keywords"] = json.loads(category.get("keywords") or "[]")
    category["subcategories"] = json.loads(category.get("subcategories") or "[]")
    return category


class SqliteMarketplace:
    """MarketplaceReader over SQLite, one short-lived connection per query."""

    def __init__(self, db_path: Path, seed: bool = True) -> None:
        self._db_path = Path(db_path)
        if seed:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            init_schema_and_data(self._db_path)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_all(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchone()
        finally:
            conn.close()

    def _query_pros(self, filters: ProFilters) -> List[Dict[str, Any]]:
        where = [
            "is_available = 1",
            "is_deactivated = 0",
        ]
        params: List[Any] = []
        if filters.category:
            where.append("EXISTS (SELECT 1 FROM json_each(pros.categories) WHERE value = ?)")
            params.append(filters.category)
        if filters.subcategory:
            where.append("EXISTS (SELECT 1 FROM json_each(pros.subcategories) WHERE value = ?)")
            params.append(filters.subcategory)
        if filters.min_rating:
            where.append("avg_rating >= ?")
            params.append(filters.min_rating)
        if filters.min_price is not None:
            where.append("base_price >= ?")
            params.append(filters.min_price)
        if filters.max_price is not None:
            where.append("base_price <= ?")
            params.append(filters.max_price)

        order_by = _ORDER_BY.get(filters.sort or "", _DEFAULT_ORDER_BY)
        limit = max(1, filters.limit)
        offset = (max(1, filters.page) - 1) * limit
        sql = (
            f"SELECT * FROM pros WHERE {' AND '.join(where)} "
            f"ORDER BY {order_by}, id LIMIT ? OFFSET ?"
        )
        rows = self._fetch_all(sql, (*params, limit, offset))
        return [_pro_row(r) for r in rows]

    async def find_pros(self, filters: ProFilters) -> List[Dict[str, Any]]:
        """Available professionals matching the filters, premium first."""
        pros = await asyncio.to_thread(self._query_pros, filters)
        logger.debug("find_pros %s -> %d rows", filters, len(pros))
        return pros

    async def get_pro(self, pro_id: str) -> Dict[str, Any] | None:
        row = await asyncio.to_thread(
            self._fetch_one,
            "SELECT * FROM pros WHERE (id = ? OR CAST(uid AS TEXT) = ?) AND is_deactivated = 0",
            (pro_id, pro_id),
        )
        return _pro_row(row) if row else None

    async def find_reviews(self, pro_id: str, limit: int) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._fetch_all,
            """
            SELECT reviews.* FROM reviews
            JOIN pros ON pros.id = reviews.pro_id
            WHERE pros.id = ? OR CAST(pros.uid AS TEXT) = ?
            ORDER BY reviews.created_at DESC
            LIMIT ?
            """,
            (pro_id, pro_id, limit),
        )
        reviews = [dict(r) for r in rows]
        for review in reviews:
            review["is_anonymous"] = bool(review.get("is_anonymous"))
            review["is_verified"] = bool(review.get("is_verified"))
        return reviews

    async def find_categories(self) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._fetch_all,
            "SELECT * FROM categories WHERE is_active = 1 ORDER BY sort_order, name",
        )
        return [_category_row(r) for r in rows]

    async def find_category(self, key: str) -> Dict[str, Any] | None:
        row = await asyncio.to_thread(
            self._fetch_one,
            "SELECT * FROM categories WHERE key = ? AND is_active = 1",
            (key,),
        )
        return _category_row(row) if row else None

    async def find_categories_by_keys(self, keys: List[str]) -> List[Dict[str, Any]]:
        if not keys:
            return []
        placeholders = ", ".join("?" for _ in keys)
        rows = await asyncio.to_thread(
            self._fetch_all,
            f"SELECT * FROM categories WHERE key IN ({placeholders}) AND is_active = 1",
            tuple(keys),
        )
        return [_category_row(r) for r in rows]


_marketplace_instance: SqliteMarketplace | None = None


def get_marketplace() -> SqliteMarketplace:
    """Return the SQLite marketplace reader configured by db_sqlite_path. Cached."""
    global _marketplace_instance
    if _marketplace_instance is None:
        _marketplace_instance = SqliteMarketplace(get_settings().db_sqlite_path)
    return _marketplace_instance
