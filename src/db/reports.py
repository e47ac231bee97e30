# src/db/reports.py
# read-only rollups for the admin dashboard
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from db.database import connect, fetch_all, fetch_one
from db.models import Order
from db.orders import list_orders
from utils.config import get_settings
from utils.pure import from_cents


@dataclass(frozen=True)
class DashboardStats:
    orders_count: int
    products_count: int
    total_revenue: Decimal
    low_stock_products: int


@dataclass(frozen=True)
class CustomerStats:
    total_customers: int
    external_users: int
    new_customers: int


async def _scalar(sql: str, params=()):
    async with connect() as conn:
        row = await fetch_one(conn, sql, params)
    return row[0] if row and row[0] is not None else 0


async def _all_or_nothing(*coros):
    """Run the queries concurrently; on the first failure cancel the rest and re-raise it."""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def dashboard_stats(low_stock_threshold: Optional[int] = None) -> DashboardStats:
    """
    Orders, live products, paid revenue and low-stock count.

    The four queries run concurrently; if any of them fails the others are
    cancelled and the whole call raises instead of returning partial numbers.
    """
    threshold = (
        low_stock_threshold
        if low_stock_threshold is not None
        else get_settings().low_stock_threshold
    )
    orders_count, products_count, revenue, low_stock = await _all_or_nothing(
        _scalar("SELECT COUNT(*) FROM orders;"),
        _scalar("SELECT COUNT(*) FROM products WHERE is_available = 1;"),
        _scalar("SELECT COALESCE(SUM(total_amount), 0) FROM orders WHERE is_paid = 1;"),
        _scalar(
            "SELECT COUNT(*) FROM products WHERE is_available = 1 AND stock <= ?;",
            (threshold,),
        ),
    )
    return DashboardStats(
        orders_count=int(orders_count),
        products_count=int(products_count),
        total_revenue=from_cents(revenue),
        low_stock_products=int(low_stock),
    )


async def customer_stats(now: Optional[datetime] = None, provider: str = "google") -> CustomerStats:
    """Registered customers, those signed up through ``provider``, and new ones this month."""
    now = now or datetime.now()
    first_day = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    total, external, new = await _all_or_nothing(
        _scalar("SELECT COUNT(*) FROM users WHERE role = 'USER';"),
        _scalar(
            "SELECT COUNT(*) FROM users WHERE role = 'USER' AND auth_provider = ?;",
            (provider,),
        ),
        _scalar(
            "SELECT COUNT(*) FROM users WHERE role = 'USER' AND created_at >= ?;",
            (first_day.isoformat(sep=" ", timespec="seconds"),),
        ),
    )
    return CustomerStats(
        total_customers=int(total),
        external_users=int(external),
        new_customers=int(new),
    )


async def recent_sales(limit: int = 5) -> List[Order]:
    page = await list_orders(page=1, page_size=limit)
    return page.items


async def monthly_revenue(year: int) -> List[Decimal]:
    """Paid revenue per calendar month of ``year`` (12 buckets, January first)."""
    async with connect() as conn:
        rows = await fetch_all(
            conn,
            """
            SELECT CAST(strftime('%m', created_at) AS INTEGER) AS month,
                   SUM(total_amount) AS revenue
            FROM orders
            WHERE is_paid = 1 AND strftime('%Y', created_at) = ?
            GROUP BY month;
            """,
            (f"{year:04d}",),
        )
    buckets = [0] * 12
    for row in rows:
        buckets[row["month"] - 1] = row["revenue"]
    return [from_cents(cents) for cents in buckets]
