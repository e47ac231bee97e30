# order actions: storefront checkout, admin lifecycle and point of sale
from typing import Optional

import db.orders as orders
from actions.result import ActionResult, action
from actions.schemas import CheckoutIn, CreateOrderIn, PosSaleIn
from db.accounts import require_identity, require_staff
from db.models import DeliveryMethod, Identity, Order, OrderStatus
from db.store import get_store_config
from utils.config import get_settings
from utils.logger import get_logger
from utils.notify import Mailer, NotificationItem, OrderNotification, notify_new_order

_logger = get_logger(__name__)


def _line_requests(payload) -> list:
    return [orders.LineRequest(i.product_id, i.quantity) for i in payload.items]


def _notify(order: Order, mailer: Optional[Mailer]) -> None:
    notification = OrderNotification(
        order_id=order.id,
        customer_name=order.client_name,
        customer_phone=order.client_phone,
        total_amount=order.grand_total,
        items=[NotificationItem(i.product_title, i.quantity, i.price) for i in order.items],
        panel_url=f"{get_settings().panel_url.rstrip('/')}/{order.id}",
    )
    try:
        notify_new_order(notification, mailer)
    except Exception:
        _logger.exception(f"Could not schedule notification for order {order.id}")


@action("Error interno del servidor")
async def create_order(
    data: dict,
    identity: Optional[Identity] = None,
    mailer: Optional[Mailer] = None,
) -> ActionResult:
    """Guest or customer order from the cart; staff are emailed once it is stored."""
    payload = CreateOrderIn.model_validate(data)
    client = orders.ClientInfo(
        name=payload.name,
        phone=payload.phone,
        user_id=identity.user_id if identity else None,
    )
    order = await orders.create_order(client, _line_requests(payload))
    _notify(order, mailer)
    return ActionResult(True, "Pedido registrado", data={"orderId": order.id, "order": order})


@action("No se pudo registrar el pedido")
async def create_checkout_order(
    identity: Identity,
    data: dict,
    mailer: Optional[Mailer] = None,
) -> ActionResult:
    """Checkout for a signed-in customer; local delivery is charged from the store config."""
    identity = require_identity(identity)
    payload = CheckoutIn.model_validate(data)
    shipping_cost = 0
    if payload.delivery_method is DeliveryMethod.DELIVERY:
        shipping_cost = (await get_store_config())["local_delivery_price"]
    client = orders.ClientInfo(
        name=payload.name,
        phone=payload.phone,
        user_id=identity.user_id,
        delivery_method=payload.delivery_method,
        shipping_address=payload.shipping_address,
        shipping_cost=shipping_cost,
        notes=payload.notes,
    )
    order = await orders.create_order(client, _line_requests(payload))
    _notify(order, mailer)
    return ActionResult(True, "Pedido registrado", data={"orderId": order.id, "order": order})


@action("No se pudo registrar el pago")
async def mark_paid(identity: Identity, order_id: str) -> ActionResult:
    require_staff(identity)
    order = await orders.mark_paid(order_id)
    return ActionResult(True, "Pedido marcado como pagado", data=order)


@action("No se pudo actualizar el estado")
async def update_status(identity: Identity, order_id: str, status: str) -> ActionResult:
    require_staff(identity)
    try:
        target = OrderStatus(status)
    except ValueError:
        return ActionResult(False, "Estado inválido", errors={"status": "invalid"})
    order = await orders.update_status(order_id, target)
    return ActionResult(True, f"Pedido actualizado a {target.value}", data=order)


@action("Error interno al procesar la venta.")
async def process_pos_sale(identity: Identity, data: dict) -> ActionResult:
    require_staff(identity)
    payload = PosSaleIn.model_validate(data)
    order = await orders.process_pos_sale(
        _line_requests(payload),
        payload.payment_method,
        orders.PosCustomer(
            name=payload.customer.name,
            dni=payload.customer.dni,
            address=payload.customer.address,
        ),
    )
    return ActionResult(
        True, "¡Venta registrada con éxito!", data={"orderId": order.id, "order": order}
    )


@action("Error al obtener órdenes", default=lambda: {"orders": [], "total": 0})
async def get_orders(
    identity: Identity,
    status: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> ActionResult:
    require_staff(identity)
    result = await orders.list_orders(
        OrderStatus(status) if status else None, page=page, page_size=page_size
    )
    return ActionResult(True, data={"orders": result.items, "total": result.total})


@action("Error al obtener el pedido")
async def get_order(identity: Identity, order_id: str) -> ActionResult:
    """Staff see any order; customers only their own."""
    identity = require_identity(identity)
    order = await orders.get_order(order_id)
    if order is None or (not identity.is_staff and order.user_id != identity.user_id):
        # someone else's order looks exactly like a missing one
        return ActionResult(False, "Pedido no encontrado")
    return ActionResult(True, data=order)


@action("Error al obtener tus pedidos", default=list)
async def get_my_orders(identity: Identity, limit: int = 5) -> ActionResult:
    identity = require_identity(identity)
    return ActionResult(True, data=await orders.list_user_orders(identity.user_id, limit))

