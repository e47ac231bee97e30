# src/db/catalog.py
from __future__ import annotations

import sqlite3
import time
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import aiosqlite

from db.database import connect, fetch_all, fetch_one, transaction
from db.errors import ConflictError, NotFoundError, ValidationError
from db.models import Category, Division, Page, Product
from utils.config import get_settings
from utils.logger import get_logger
from utils.pure import dump_list, is_valid_slug, like_pattern, normalize_tags, now_ts, to_cents

_logger = get_logger(__name__)

PRODUCT_SELECT = """
    SELECT p.*, c.name AS category_name, c.slug AS category_slug
    FROM products p
    JOIN categories c ON c.id = p.category_id
"""

_ORDER_BY = {
    "price_asc": "p.price ASC, p.id",
    "price_desc": "p.price DESC, p.id",
    "newest": "p.created_at DESC, p.id DESC",
    "title": "p.title COLLATE NOCASE, p.id",
}


def _order_by(sort: str) -> str:
    return _ORDER_BY.get(sort, _ORDER_BY["newest"])


class RevalidatingCache:
    """
    Memo for storefront reads that expires entries after a fixed interval.

    Expired entries are swept on every ``put`` and at most ``max_entries`` are
    kept; when full, the oldest insertion is evicted.
    """

    def __init__(self, ttl: float, max_entries: int = 256):
        self.ttl = ttl
        self.max_entries = max(max_entries, 1)
        self._entries: Dict[tuple, Tuple[float, object]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: tuple):
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: tuple, value) -> None:
        now = time.monotonic()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now + self.ttl, value)

    def clear(self) -> None:
        self._entries.clear()


_page_cache = RevalidatingCache(
    get_settings().catalog_revalidate_seconds, get_settings().catalog_cache_size
)


def invalidate_catalog() -> None:
    """Drop memoised storefront pages; called after every catalog write."""
    _page_cache.clear()


# ---------------------------
# Products (read)
# ---------------------------


async def get_products(
    division: Division,
    category_slug: Optional[str] = None,
    include_inactive: bool = False,
    query: str = "",
    sort: str = "newest",
    page: int = 1,
    page_size: Optional[int] = None,
) -> Page:
    """
    One page of a division's products with the category joined.

    Storefront reads (``include_inactive=False``) are served from a memo that
    revalidates every ``catalog_revalidate_seconds``; admin reads always hit
    the database.
    """
    division = Division(division)
    page_size = page_size or get_settings().page_size
    page = max(page, 1)
    key = (division.value, category_slug, query.strip().lower(), sort, page, page_size)
    if not include_inactive:
        cached = _page_cache.get(key)
        if cached is not None:
            return cached

    where = ["p.division = ?"]
    params: List = [division.value]
    if not include_inactive:
        where.append("p.is_available = 1")
    if category_slug:
        where.append("c.slug = ?")
        params.append(category_slug)
    phrase = query.strip().lower()
    if phrase:
        like = like_pattern(phrase)
        where.append(
            "(LOWER(p.title) LIKE ? ESCAPE '\\' OR LOWER(p.description) LIKE ? ESCAPE '\\'"
            " OR EXISTS (SELECT 1 FROM json_each(p.tags) WHERE json_each.value = ?))"
        )
        params.extend([like, like, phrase])
    where_clause = " AND ".join(where)

    async with connect() as conn:
        row = await fetch_one(
            conn,
            f"SELECT COUNT(*) FROM products p JOIN categories c ON c.id = p.category_id WHERE {where_clause};",
            tuple(params),
        )
        total = row[0]
        rows = await fetch_all(
            conn,
            f"{PRODUCT_SELECT} WHERE {where_clause} ORDER BY {_order_by(sort)} LIMIT ? OFFSET ?;",
            tuple(params + [page_size, (page - 1) * page_size]),
        )

    result = Page(
        items=[Product.from_row(r) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
    )
    if not include_inactive:
        _page_cache.put(key, result)
    return result


async def fetch_products(conn: aiosqlite.Connection, ids: Iterable[int]) -> Dict[int, Product]:
    """Load products by id on an existing connection (used inside order transactions)."""
    ids = sorted(set(ids))
    if not ids:
        return {}
    marks = ", ".join("?" * len(ids))
    rows = await fetch_all(conn, f"{PRODUCT_SELECT} WHERE p.id IN ({marks});", tuple(ids))
    return {r["id"]: Product.from_row(r) for r in rows}


async def get_product(product_id: int) -> Optional[Product]:
    async with connect() as conn:
        row = await fetch_one(conn, f"{PRODUCT_SELECT} WHERE p.id = ?;", (product_id,))
    return Product.from_row(row) if row else None


async def get_product_by_slug(slug: str) -> Optional[Product]:
    """Storefront detail lookup; unavailable products are treated as missing."""
    async with connect() as conn:
        row = await fetch_one(
            conn,
            f"{PRODUCT_SELECT} WHERE p.slug = ? AND p.is_available = 1;",
            (slug,),
        )
    return Product.from_row(row) if row else None


async def get_products_by_category(
    category_slug: str, sort: str = "newest"
) -> Optional[Tuple[Category, List[Product]]]:
    async with connect() as conn:
        cat_row = await fetch_one(conn, "SELECT * FROM categories WHERE slug = ?;", (category_slug,))
        if not cat_row:
            return None
        rows = await fetch_all(
            conn,
            f"{PRODUCT_SELECT} WHERE p.category_id = ? AND p.is_available = 1 ORDER BY {_order_by(sort)};",
            (cat_row["id"],),
        )
    return Category.from_row(cat_row), [Product.from_row(r) for r in rows]


async def get_products_by_tag(
    tag: str, take: int = 8, division: Optional[Division] = None
) -> List[Product]:
    """Newest available products carrying ``tag``; both divisions when ``division`` is None."""
    params: List = [tag.strip().lower()]
    division_clause = ""
    if division is not None:
        division_clause = "AND p.division = ?"
        params.append(Division(division).value)
    params.append(take)
    async with connect() as conn:
        rows = await fetch_all(
            conn,
            f"""
            {PRODUCT_SELECT}
            WHERE p.is_available = 1
              AND EXISTS (SELECT 1 FROM json_each(p.tags) WHERE json_each.value = ?)
              {division_clause}
            ORDER BY p.created_at DESC, p.id DESC
            LIMIT ?;
            """,
            tuple(params),
        )
    return [Product.from_row(r) for r in rows]


async def search_pos_products(
    query: str, division: Optional[Division] = None, limit: int = 20
) -> List[Product]:
    """
    Product lookup for the point of sale. Only available products are returned.

    Rules:
    - Empty query: available products ordered by title.
    - Numeric query: exact barcode or id match first, then keyword matches.
    - Otherwise: the whole phrase first, then each word; results de-duplicated.
    """
    phrase = (query or "").strip().lower()
    base_where = "p.is_available = 1"
    base_params: List = []
    if division is not None:
        base_where += " AND p.division = ?"
        base_params.append(Division(division).value)

    results: List[Product] = []
    seen: set[int] = set()

    def add_rows(rows) -> None:
        for row in rows:
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            results.append(Product.from_row(row))

    async def keyword(conn, term: str) -> None:
        like = like_pattern(term)
        add_rows(
            await fetch_all(
                conn,
                f"""
                {PRODUCT_SELECT}
                WHERE {base_where}
                  AND (LOWER(p.title) LIKE ? ESCAPE '\\' OR LOWER(p.description) LIKE ? ESCAPE '\\')
                ORDER BY p.title COLLATE NOCASE
                LIMIT ?;
                """,
                tuple(base_params + [like, like, limit]),
            )
        )

    async with connect() as conn:
        if not phrase:
            add_rows(
                await fetch_all(
                    conn,
                    f"{PRODUCT_SELECT} WHERE {base_where} ORDER BY p.title COLLATE NOCASE LIMIT ?;",
                    tuple(base_params + [limit]),
                )
            )
            return results

        if phrase.isdigit():
            add_rows(
                await fetch_all(
                    conn,
                    f"{PRODUCT_SELECT} WHERE {base_where} AND (p.barcode = ? OR p.id = ?) ORDER BY p.id;",
                    tuple(base_params + [phrase, int(phrase) if len(phrase) < 16 else -1]),
                )
            )
            await keyword(conn, phrase)
            return results[:limit]

        await keyword(conn, phrase)
        words = phrase.split()
        if len(words) > 1:
            for word in dict.fromkeys(words):
                await keyword(conn, word)
    return results[:limit]


# ---------------------------
# Products (write)
# ---------------------------


async def save_product(data: Dict, product_id: Optional[int] = None) -> Product:
    """
    Create a product, or update ``product_id`` when given.

    ``data`` carries validated fields; money values are Decimal. Raises
    ConflictError on a duplicate slug or barcode and ValidationError when the
    category belongs to a different division.
    """
    division = Division(data["division"])
    if not is_valid_slug(data["slug"]):
        raise ValidationError("invalid slug", {"slug": "invalid"})

    values = {
        "title": data["title"],
        "slug": data["slug"],
        "description": data.get("description", ""),
        "price": to_cents(data["price"]),
        "stock": int(data["stock"]),
        "is_available": 1 if data.get("is_available", True) else 0,
        "division": division.value,
        "category_id": int(data["category_id"]),
        "images": dump_list(data.get("images") or []),
        "tags": dump_list(normalize_tags(data.get("tags"))),
        "wholesale_price": (
            to_cents(data["wholesale_price"]) if data.get("wholesale_price") else None
        ),
        "wholesale_min_count": data.get("wholesale_min_count") or None,
        "discount_percentage": int(data.get("discount_percentage") or 0),
        "barcode": data.get("barcode") or None,
        "updated_at": now_ts(),
    }

    async with connect() as conn:
        category = await fetch_one(conn, "SELECT division FROM categories WHERE id = ?;", (values["category_id"],))
        if not category:
            raise ValidationError("unknown category", {"category_id": "not found"})
        if category["division"] != division.value:
            raise ValidationError("category division mismatch", {"category_id": "division mismatch"})

        clash = await fetch_one(
            conn,
            "SELECT id FROM products WHERE slug = ? AND id IS NOT ?;",
            (values["slug"], product_id),
        )
        if clash:
            raise ConflictError(f"slug {values['slug']} already exists", field="slug")

        try:
            if product_id is None:
                values["created_at"] = values["updated_at"]
                cols = ", ".join(values)
                marks = ", ".join("?" * len(values))
                cur = await conn.execute(
                    f"INSERT INTO products ({cols}) VALUES ({marks});",
                    tuple(values.values()),
                )
                product_id = cur.lastrowid
                await cur.close()
                _logger.info(f"Product {product_id} created ({values['slug']})")
            else:
                assignments = ", ".join(f"{k} = ?" for k in values)
                cur = await conn.execute(
                    f"UPDATE products SET {assignments} WHERE id = ?;",
                    tuple(values.values()) + (product_id,),
                )
                updated = cur.rowcount
                await cur.close()
                if not updated:
                    raise NotFoundError(f"product {product_id} not found")
                _logger.info(f"Product {product_id} updated")
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"product conflicts with an existing one: {exc}") from exc

        row = await fetch_one(conn, f"{PRODUCT_SELECT} WHERE p.id = ?;", (product_id,))

    invalidate_catalog()
    return Product.from_row(row)


async def delete_product(product_id: int) -> None:
    """Soft delete: hide the product and free its slug for reuse.

    Order lines keep referencing the row, so it is never physically removed.
    """
    async with connect() as conn:
        cur = await conn.execute(
            """
            UPDATE products
            SET is_available = 0,
                slug = id || '-deleted-' || CAST(strftime('%s', 'now') AS TEXT),
                barcode = NULL,
                updated_at = ?
            WHERE id = ?;
            """,
            (now_ts(), product_id),
        )
        updated = cur.rowcount
        await cur.close()
    if not updated:
        raise NotFoundError(f"product {product_id} not found")
    invalidate_catalog()
    _logger.info(f"Product {product_id} deleted")


async def update_price_stock(
    product_id: int,
    new_price: Optional[Decimal],
    new_stock: Optional[int],
) -> bool:
    """
    Update price and/or stock (only the provided fields). Return True if a row was updated.
    """
    if new_price is None and new_stock is None:
        return False
    if new_stock is not None and new_stock < 0:
        raise ValidationError("stock cannot be negative", {"stock": "negative"})
    if new_price is not None and new_price < 0:
        raise ValidationError("price cannot be negative", {"price": "negative"})

    async with connect() as conn:
        cur = await conn.execute(
            """
            UPDATE products
            SET price = COALESCE(?, price),
                stock = COALESCE(?, stock),
                updated_at = ?
            WHERE id = ?;
            """,
            (
                to_cents(new_price) if new_price is not None else None,
                new_stock,
                now_ts(),
                product_id,
            ),
        )
        updated = cur.rowcount > 0
        await cur.close()
    if updated:
        invalidate_catalog()
    return updated


# ---------------------------
# Categories
# ---------------------------

_CATEGORY_WITH_COUNT = """
    SELECT c.*, (SELECT COUNT(*) FROM products p WHERE p.category_id = c.id) AS product_count
    FROM categories c
"""


async def list_categories(division: Optional[Division] = None) -> List[Category]:
    async with connect() as conn:
        if division is None:
            rows = await fetch_all(conn, f"{_CATEGORY_WITH_COUNT} ORDER BY c.name;")
        else:
            rows = await fetch_all(
                conn,
                f"{_CATEGORY_WITH_COUNT} WHERE c.division = ? ORDER BY c.name;",
                (Division(division).value,),
            )
    return [Category.from_row(r) for r in rows]


async def get_category(category_id: int) -> Optional[Category]:
    async with connect() as conn:
        row = await fetch_one(conn, f"{_CATEGORY_WITH_COUNT} WHERE c.id = ?;", (category_id,))
    return Category.from_row(row) if row else None


async def save_category(data: Dict, category_id: Optional[int] = None) -> Category:
    if not is_valid_slug(data["slug"]):
        raise ValidationError("invalid slug", {"slug": "invalid"})
    params = (
        data["name"],
        data["slug"],
        Division(data["division"]).value,
        data.get("image") or None,
    )
    async with connect() as conn:
        try:
            if category_id is None:
                cur = await conn.execute(
                    """
                    INSERT INTO categories (name, slug, division, image, created_at)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    params + (now_ts(),),
                )
                category_id = cur.lastrowid
            else:
                cur = await conn.execute(
                    "UPDATE categories SET name = ?, slug = ?, division = ?, image = ? WHERE id = ?;",
                    params + (category_id,),
                )
                if not cur.rowcount:
                    raise NotFoundError(f"category {category_id} not found")
            await cur.close()
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"slug {data['slug']} already exists", field="slug") from exc
        row = await fetch_one(conn, f"{_CATEGORY_WITH_COUNT} WHERE c.id = ?;", (category_id,))
    invalidate_catalog()
    return Category.from_row(row)


async def delete_category(category_id: int) -> None:
    """Delete a category that no product references (available or not)."""
    async with connect() as conn, transaction(conn):
        row = await fetch_one(conn, f"{_CATEGORY_WITH_COUNT} WHERE c.id = ?;", (category_id,))
        if not row:
            raise NotFoundError(f"category {category_id} not found")
        if row["product_count"] > 0:
            _logger.warning(
                f"Refusing to delete category {category_id}: {row['product_count']} products"
            )
            raise ConflictError(
                f"category {category_id} has {row['product_count']} products",
                product_count=row["product_count"],
            )
        await conn.execute("DELETE FROM categories WHERE id = ?;", (category_id,))
    invalidate_catalog()
    _logger.info(f"Category {category_id} deleted")
