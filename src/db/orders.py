# src/db/orders.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import aiosqlite

from db.catalog import fetch_products, invalidate_catalog
from db.database import connect, fetch_all, fetch_one, transaction
from db.errors import (
    IllegalTransition,
    InsufficientStock,
    NotFoundError,
    ProductNotFound,
    ValidationError,
)
from db.models import (
    DeliveryMethod,
    Order,
    OrderItem,
    OrderStatus,
    Page,
    PaymentMethod,
    Product,
)
from utils.logger import get_logger
from utils.pure import now_ts, to_cents

_logger = get_logger(__name__)

# Allowed status moves. DELIVERED and CANCELLED are terminal.
TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

POS_CLIENT_NAME = "Cliente Mostrador"
POS_CLIENT_PHONE = "999999999"


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


@dataclass(frozen=True)
class LineRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class ClientInfo:
    name: str
    phone: str
    user_id: Optional[int] = None
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    shipping_address: str = ""
    shipping_cost: Decimal = Decimal("0.00")
    notes: Optional[str] = None


@dataclass(frozen=True)
class PosCustomer:
    name: str = ""
    dni: str = ""
    address: str = ""


@dataclass(frozen=True)
class PricedLine:
    product: Product
    quantity: int
    unit_price: int  # cents


def _merge_lines(items: Sequence[LineRequest]) -> Dict[int, int]:
    merged: Dict[int, int] = {}
    for item in items:
        if item.quantity <= 0:
            raise ValidationError(
                f"quantity for product {item.product_id} must be positive",
                {"quantity": "must be positive"},
            )
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


async def _price_lines(
    conn: aiosqlite.Connection, items: Sequence[LineRequest]
) -> Tuple[List[PricedLine], int, int]:
    """Check every requested product against the catalog and snapshot its price.

    Returns (lines, total cents, total units).
    """
    if not items:
        raise ValidationError("an order needs at least one item", {"items": "empty"})
    wanted = _merge_lines(items)
    products = await fetch_products(conn, wanted)

    lines: List[PricedLine] = []
    for product_id, qty in wanted.items():
        product = products.get(product_id)
        if product is None or not product.is_available:
            raise ProductNotFound(product_id)
        if qty > product.stock:
            raise InsufficientStock(product_id, product.title, qty, product.stock)
        lines.append(PricedLine(product, qty, to_cents(product.unit_price(qty))))

    total = sum(line.unit_price * line.quantity for line in lines)
    units = sum(line.quantity for line in lines)
    return lines, total, units


async def _insert_order(
    conn: aiosqlite.Connection,
    client: ClientInfo,
    lines: List[PricedLine],
    total: int,
    units: int,
    status: OrderStatus,
    is_paid: bool,
    stock_applied: bool,
) -> str:
    order_id = str(uuid.uuid4())
    now = now_ts()
    await conn.execute(
        """
        INSERT INTO orders (id, user_id, client_name, client_phone, status, is_paid,
                            total_amount, total_items, delivery_method, shipping_address,
                            shipping_cost, notes, stock_applied, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            order_id,
            client.user_id,
            client.name,
            client.phone,
            status.value,
            int(is_paid),
            total,
            units,
            DeliveryMethod(client.delivery_method).value,
            client.shipping_address,
            to_cents(client.shipping_cost),
            client.notes,
            int(stock_applied),
            now,
            now,
        ),
    )
    await conn.executemany(
        "INSERT INTO order_items (order_id, product_id, quantity, price) VALUES (?, ?, ?, ?);",
        [(order_id, line.product.id, line.quantity, line.unit_price) for line in lines],
    )
    return order_id


async def _decrement_stock(conn: aiosqlite.Connection, order_id: str) -> None:
    """Conditionally take each line's quantity out of stock.

    A line whose product no longer has enough units raises InsufficientStock;
    the caller's transaction then rolls every decrement back.
    """
    lines = await fetch_all(
        conn,
        "SELECT product_id, quantity FROM order_items WHERE order_id = ? ORDER BY product_id;",
        (order_id,),
    )
    now = now_ts()
    for line in lines:
        cur = await conn.execute(
            """
            UPDATE products
            SET stock = stock - ?, updated_at = ?
            WHERE id = ? AND stock >= ?;
            """,
            (line["quantity"], now, line["product_id"], line["quantity"]),
        )
        decremented = cur.rowcount
        await cur.close()
        if not decremented:
            product = await fetch_one(
                conn, "SELECT title, stock FROM products WHERE id = ?;", (line["product_id"],)
            )
            raise InsufficientStock(
                line["product_id"],
                product["title"] if product else "",
                line["quantity"],
                product["stock"] if product else 0,
            )


async def _restore_stock(conn: aiosqlite.Connection, order_id: str) -> None:
    now = now_ts()
    lines = await fetch_all(
        conn, "SELECT product_id, quantity FROM order_items WHERE order_id = ?;", (order_id,)
    )
    for line in lines:
        await conn.execute(
            "UPDATE products SET stock = stock + ?, updated_at = ? WHERE id = ?;",
            (line["quantity"], now, line["product_id"]),
        )


async def _load_items(
    conn: aiosqlite.Connection, order_ids: Sequence[str]
) -> Dict[str, List[OrderItem]]:
    if not order_ids:
        return {}
    marks = ", ".join("?" * len(order_ids))
    rows = await fetch_all(
        conn,
        f"""
        SELECT oi.*, p.title AS product_title
        FROM order_items oi
        JOIN products p ON p.id = oi.product_id
        WHERE oi.order_id IN ({marks})
        ORDER BY oi.id;
        """,
        tuple(order_ids),
    )
    items: Dict[str, List[OrderItem]] = {oid: [] for oid in order_ids}
    for row in rows:
        items[row["order_id"]].append(OrderItem.from_row(row))
    return items


async def _load_order(conn: aiosqlite.Connection, order_id: str) -> Optional[Order]:
    row = await fetch_one(conn, "SELECT * FROM orders WHERE id = ?;", (order_id,))
    if not row:
        return None
    items = await _load_items(conn, [order_id])
    return Order.from_row(row, items[order_id])


async def _current_status(conn: aiosqlite.Connection, order_id: str):
    row = await fetch_one(
        conn, "SELECT status, stock_applied FROM orders WHERE id = ?;", (order_id,)
    )
    if not row:
        raise NotFoundError(f"order {order_id} not found", order_id=order_id)
    return OrderStatus(row["status"]), bool(row["stock_applied"])


# ---------------------------
# Lifecycle
# ---------------------------


async def create_order(client: ClientInfo, items: Sequence[LineRequest]) -> Order:
    """
    Persist a PENDING, unpaid order and its lines in one transaction.

    Unit prices are snapshotted from the catalog; the order total is the sum of
    snapshot price x quantity. Stock is checked but not taken until the order
    is paid.
    """
    async with connect() as conn:
        async with transaction(conn):
            lines, total, units = await _price_lines(conn, items)
            order_id = await _insert_order(
                conn,
                client,
                lines,
                total,
                units,
                status=OrderStatus.PENDING,
                is_paid=False,
                stock_applied=False,
            )
        order = await _load_order(conn, order_id)
    _logger.info(f"Order {order_id} created for {client.name}: {order.total_amount} ({units} items)")
    return order


async def mark_paid(order_id: str) -> Order:
    """
    Move a PENDING order to PAID and take its lines out of stock exactly once.

    Calling it again on a PAID or DELIVERED order changes nothing and returns
    the order. The status claim and the decrements share one write-locked
    transaction, so concurrent calls serialize and only the first one
    decrements.
    """
    async with connect() as conn:
        async with transaction(conn):
            status, _ = await _current_status(conn, order_id)
            if status in (OrderStatus.PAID, OrderStatus.DELIVERED):
                _logger.debug(f"Order {order_id} already paid; nothing to do")
            elif status is not OrderStatus.PENDING:
                raise IllegalTransition(order_id, status.value, OrderStatus.PAID.value)
            else:
                cur = await conn.execute(
                    """
                    UPDATE orders
                    SET status = 'PAID', is_paid = 1, stock_applied = 1, updated_at = ?
                    WHERE id = ? AND status = 'PENDING' AND stock_applied = 0;
                    """,
                    (now_ts(), order_id),
                )
                claimed = cur.rowcount
                await cur.close()
                if claimed:
                    await _decrement_stock(conn, order_id)
                    _logger.info(f"Order {order_id} marked as paid; stock decremented")
        order = await _load_order(conn, order_id)
    invalidate_catalog()
    return order


async def update_status(order_id: str, new_status: OrderStatus) -> Order:
    """
    Apply an admin status change after checking the transition table.

    PAID goes through :func:`mark_paid`. Cancelling a paid order puts its
    units back in stock once. Setting the current status again is a no-op.
    """
    target = OrderStatus(new_status)
    if target is OrderStatus.PAID:
        async with connect() as conn:
            current, _ = await _current_status(conn, order_id)
        if current is OrderStatus.DELIVERED:
            raise IllegalTransition(order_id, current.value, target.value)
        return await mark_paid(order_id)

    restored = False
    async with connect() as conn:
        async with transaction(conn):
            current, stock_applied = await _current_status(conn, order_id)
            if current is not target:
                if not can_transition(current, target):
                    _logger.warning(
                        f"Rejected status change for order {order_id}: {current.value} -> {target.value}"
                    )
                    raise IllegalTransition(order_id, current.value, target.value)
                restored = target is OrderStatus.CANCELLED and stock_applied
                await conn.execute(
                    """
                    UPDATE orders
                    SET status = ?, stock_applied = ?, updated_at = ?
                    WHERE id = ? AND status = ?;
                    """,
                    (
                        target.value,
                        0 if restored else int(stock_applied),
                        now_ts(),
                        order_id,
                        current.value,
                    ),
                )
                if restored:
                    await _restore_stock(conn, order_id)
                _logger.info(f"Order {order_id}: {current.value} -> {target.value}")
        order = await _load_order(conn, order_id)
    if restored:
        invalidate_catalog()
        _logger.info(f"Order {order_id} cancelled after payment; stock restored")
    return order


async def process_pos_sale(
    items: Sequence[LineRequest],
    payment_method: PaymentMethod,
    customer: PosCustomer,
) -> Order:
    """Counter sale: paid, delivered and taken out of stock in one transaction."""
    payment_method = PaymentMethod(payment_method)
    notes = (
        f"Venta POS - Pago: {payment_method.value} | DNI: {customer.dni or 'S/D'}"
        f" | Dirección: {customer.address or '-'}"
    )
    client = ClientInfo(
        name=customer.name or POS_CLIENT_NAME,
        phone=POS_CLIENT_PHONE,
        delivery_method=DeliveryMethod.PICKUP,
        shipping_address=customer.address or "",
        notes=notes,
    )
    async with connect() as conn:
        async with transaction(conn):
            lines, total, units = await _price_lines(conn, items)
            order_id = await _insert_order(
                conn,
                client,
                lines,
                total,
                units,
                status=OrderStatus.DELIVERED,
                is_paid=True,
                stock_applied=True,
            )
            await _decrement_stock(conn, order_id)
        order = await _load_order(conn, order_id)
    invalidate_catalog()
    _logger.info(f"POS sale {order_id} ({payment_method.value}) total {order.total_amount}")
    return order


# ---------------------------
# Reads
# ---------------------------


async def get_order(order_id: str) -> Optional[Order]:
    async with connect() as conn:
        return await _load_order(conn, order_id)


async def list_orders(
    status: Optional[OrderStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> Page:
    """Orders newest first, optionally filtered by status, with their lines."""
    where, params = "", []
    if status is not None:
        where = "WHERE status = ?"
        params.append(OrderStatus(status).value)
    page = max(page, 1)
    async with connect() as conn:
        total = (await fetch_one(conn, f"SELECT COUNT(*) FROM orders {where};", tuple(params)))[0]
        rows = await fetch_all(
            conn,
            f"SELECT * FROM orders {where} ORDER BY created_at DESC, id LIMIT ? OFFSET ?;",
            tuple(params + [page_size, (page - 1) * page_size]),
        )
        items = await _load_items(conn, [r["id"] for r in rows])
    orders = [Order.from_row(r, items[r["id"]]) for r in rows]
    return Page(items=orders, total=total, page=page, page_size=page_size)


async def list_user_orders(user_id: int, limit: int = 5) -> List[Order]:
    async with connect() as conn:
        rows = await fetch_all(
            conn,
            "SELECT * FROM orders WHERE user_id = ? ORDER BY created_at DESC LIMIT ?;",
            (user_id, limit),
        )
        items = await _load_items(conn, [r["id"] for r in rows])
    return [Order.from_row(r, items[r["id"]]) for r in rows]
