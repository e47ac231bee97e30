# store configuration and coupon actions
from decimal import Decimal

import db.store as store
from actions.result import ActionResult, action
from actions.schemas import CouponIn, StoreConfigIn
from db.accounts import require_admin, require_staff
from db.models import CouponType, Identity
from utils.logger import get_logger
from utils.pure import to_cents

_logger = get_logger(__name__)


async def get_store_config() -> dict:
    """Configuration for the storefront; falls back to the defaults if it cannot be read."""
    try:
        return await store.get_store_config()
    except Exception:
        _logger.exception("Could not read store configuration; using defaults")
        return dict(store.DEFAULT_STORE_CONFIG)


@action("Error al guardar configuración")
async def update_store_config(identity: Identity, data: dict) -> ActionResult:
    require_admin(identity)
    payload = StoreConfigIn.model_validate(data)
    config = await store.update_store_config(payload.model_dump(exclude_none=True))
    return ActionResult(True, "Configuración guardada", data=config)


@action("Error al validar")
async def validate_coupon(code: str) -> ActionResult:
    coupon = await store.get_active_coupon(code or "")
    if coupon is None:
        return ActionResult(False, "Cupón inválido o expirado")
    discount = (
        Decimal(coupon.discount)
        if coupon.type is CouponType.PERCENTAGE
        else Decimal(coupon.discount) / 100
    )
    return ActionResult(
        True,
        data={"code": coupon.code, "discount": float(discount), "type": coupon.type.value},
    )


@action("Error al cargar cupones", default=list)
async def list_coupons(identity: Identity) -> ActionResult:
    require_staff(identity)
    return ActionResult(True, data=await store.list_coupons())


@action("Error al crear cupón", messages={"conflict": "Este código ya existe"})
async def create_coupon(identity: Identity, data: dict) -> ActionResult:
    require_staff(identity)
    payload = CouponIn.model_validate(data)
    discount = (
        int(payload.discount)
        if payload.type is CouponType.PERCENTAGE
        else to_cents(payload.discount)
    )
    coupon = await store.create_coupon(payload.code, discount, payload.type)
    return ActionResult(True, data=coupon)


@action("Error al eliminar")
async def delete_coupon(identity: Identity, coupon_id: int) -> ActionResult:
    require_staff(identity)
    await store.delete_coupon(coupon_id)
    return ActionResult(True)
