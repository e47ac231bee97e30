# src/db/store.py
# store-wide configuration row and discount coupons
from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Dict, List, Optional

from db.database import connect, fetch_all, fetch_one
from db.errors import ConflictError, NotFoundError
from db.models import Coupon, CouponType
from utils.logger import get_logger
from utils.pure import apply_percentage_discount, from_cents, now_ts, to_cents

_logger = get_logger(__name__)

DEFAULT_STORE_CONFIG: Dict[str, object] = {
    "whatsapp_phone": "51999999999",
    "welcome_message": "Hola FiestasYa...",
    "local_delivery_price": Decimal("0.00"),
    "hero_image": "",
    "hero_title": "",
    "hero_subtitle": "",
    "hero_button_text": "",
    "hero_button_link": "",
    "hero_btn_color": "#fb3099",
}

_COLUMNS = tuple(DEFAULT_STORE_CONFIG)


async def get_store_config() -> Dict[str, object]:
    """The stored configuration overlaid on the defaults; blank optional fields fall back too."""
    async with connect() as conn:
        row = await fetch_one(conn, "SELECT * FROM store_config WHERE id = 1;")
    config = dict(DEFAULT_STORE_CONFIG)
    if row:
        for key in _COLUMNS:
            value = row[key]
            if value is None or value == "":
                continue
            config[key] = from_cents(value) if key == "local_delivery_price" else value
    return config


async def update_store_config(data: Dict[str, object]) -> Dict[str, object]:
    """Find-or-create the single configuration row with the given fields."""
    values = {key: data[key] for key in _COLUMNS if key in data}
    if "local_delivery_price" in values:
        values["local_delivery_price"] = to_cents(values["local_delivery_price"])
    current = await get_store_config()
    merged = {
        key: values.get(
            key,
            to_cents(current[key]) if key == "local_delivery_price" else current[key],
        )
        for key in _COLUMNS
    }
    cols = ", ".join(_COLUMNS)
    marks = ", ".join("?" * len(_COLUMNS))
    updates = ", ".join(f"{k} = excluded.{k}" for k in _COLUMNS)
    async with connect() as conn:
        await conn.execute(
            f"""
            INSERT INTO store_config (id, {cols}) VALUES (1, {marks})
            ON CONFLICT (id) DO UPDATE SET {updates};
            """,
            tuple(merged[k] for k in _COLUMNS),
        )
    _logger.info("Store configuration saved")
    return await get_store_config()


# ---------------------------
# Coupons
# ---------------------------


async def get_active_coupon(code: str) -> Optional[Coupon]:
    async with connect() as conn:
        row = await fetch_one(
            conn,
            "SELECT * FROM coupons WHERE code = ? AND is_active = 1;",
            (code.strip().upper(),),
        )
    return Coupon.from_row(row) if row else None


async def list_coupons() -> List[Coupon]:
    async with connect() as conn:
        rows = await fetch_all(conn, "SELECT * FROM coupons ORDER BY created_at DESC, id DESC;")
    return [Coupon.from_row(r) for r in rows]


async def create_coupon(code: str, discount: int, coupon_type: CouponType) -> Coupon:
    """``discount`` is cents for FIXED coupons and a whole percentage for PERCENTAGE ones."""
    code = code.strip().upper()
    async with connect() as conn:
        try:
            cur = await conn.execute(
                """
                INSERT INTO coupons (code, discount, type, is_active, created_at)
                VALUES (?, ?, ?, 1, ?);
                """,
                (code, discount, CouponType(coupon_type).value, now_ts()),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"coupon {code} already exists", field="code") from exc
        coupon_id = cur.lastrowid
        await cur.close()
        row = await fetch_one(conn, "SELECT * FROM coupons WHERE id = ?;", (coupon_id,))
    _logger.info(f"Coupon {code} created")
    return Coupon.from_row(row)


async def delete_coupon(coupon_id: int) -> None:
    async with connect() as conn:
        cur = await conn.execute("DELETE FROM coupons WHERE id = ?;", (coupon_id,))
        deleted = cur.rowcount
        await cur.close()
    if not deleted:
        raise NotFoundError(f"coupon {coupon_id} not found")


def apply_coupon(total: Decimal, coupon: Coupon) -> Decimal:
    """Discounted total, never below zero."""
    cents = to_cents(total)
    if coupon.type is CouponType.PERCENTAGE:
        cents = apply_percentage_discount(cents, min(coupon.discount, 100))
    else:
        cents = max(cents - coupon.discount, 0)
    return from_cents(cents)
