# account actions: registration, login, addresses and staff administration
from typing import Optional

import db.accounts as accounts
from actions.result import ActionResult, action
from actions.schemas import AddressIn, CustomerProfileIn, RegisterIn, StaffUserIn
from db.models import DEFAULT_DIVISION, Division, Identity
from utils.logger import get_logger

_logger = get_logger(__name__)


@action("Error al crear el usuario", messages={"conflict": "El correo ya está registrado"})
async def register_user(data: dict) -> ActionResult:
    payload = RegisterIn.model_validate(data)
    user = await accounts.register_user(payload.name, payload.email, payload.password)
    return ActionResult(True, "Usuario creado correctamente", data={"id": user.id})


@action("Algo salió mal.")
async def login(email: str, password: str) -> ActionResult:
    identity = await accounts.authenticate(email, password)
    if identity is None:
        return ActionResult(False, "Credenciales inválidas.")
    user = await accounts.get_user(identity.user_id)
    return ActionResult(True, data={"identity": identity, "name": user.name})


@action("No se pudo cargar la dirección.")
async def get_user_address(identity: Identity) -> ActionResult:
    return ActionResult(True, data=await accounts.get_user_address(identity))


@action("No se pudo guardar la dirección.")
async def set_user_address(identity: Identity, data: dict) -> ActionResult:
    accounts.require_identity(identity)
    payload = AddressIn.model_validate(data)
    address, created = await accounts.set_user_address(identity, payload.model_dump())
    message = "Dirección guardada correctamente" if created else "Dirección actualizada correctamente"
    return ActionResult(True, message, data=address)


@action("Error al eliminar", messages={"not_found": "Dirección no encontrada"})
async def delete_user_address(identity: Identity, address_id: int) -> ActionResult:
    await accounts.delete_user_address(identity, address_id)
    return ActionResult(True, "Dirección eliminada")


@action("Error al cargar el equipo", default=list)
async def list_staff(identity: Identity) -> ActionResult:
    accounts.require_admin(identity)
    return ActionResult(True, data=await accounts.list_staff())


@action("Error al guardar", messages={"conflict": "El correo ya existe"})
async def save_staff_user(
    identity: Identity, data: dict, user_id: Optional[int] = None
) -> ActionResult:
    accounts.require_admin(identity)
    payload = StaffUserIn.model_validate(data)
    user = await accounts.save_staff_user(payload.model_dump(), user_id)
    return ActionResult(True, "Usuario guardado", data={"id": user.id})


@action("No se puede eliminar (tiene datos asociados)")
async def delete_user(identity: Identity, user_id: int) -> ActionResult:
    identity = accounts.require_admin(identity)
    if user_id == identity.user_id:
        return ActionResult(False, "No puedes eliminar tu propia cuenta")
    await accounts.delete_user(user_id)
    return ActionResult(True, "Usuario eliminado")


@action("Error al buscar clientes", default=list)
async def search_customers(identity: Identity, query: str) -> ActionResult:
    accounts.require_staff(identity)
    return ActionResult(True, data=await accounts.search_customers(query))


@action("No se pudo actualizar la contraseña")
async def admin_reset_password(identity: Identity, user_id: int, new_password: str) -> ActionResult:
    accounts.require_admin(identity)
    if len(new_password or "") < 6:
        return ActionResult(False, "Datos inválidos", errors={"password": "min 6"})
    await accounts.admin_reset_password(user_id, new_password)
    return ActionResult(True, "Contraseña actualizada correctamente")


@action(
    "El correo ya está en uso o hubo un error",
    messages={"conflict": "El correo ya está en uso o hubo un error"},
)
async def update_customer_profile(identity: Identity, user_id: int, data: dict) -> ActionResult:
    accounts.require_admin(identity)
    payload = CustomerProfileIn.model_validate(data)
    await accounts.update_customer_profile(user_id, payload.name, payload.email)
    return ActionResult(True, "Datos del cliente actualizados")


async def get_admin_division(identity: Identity) -> Division:
    """Never fails: any problem reading the preference yields the default division."""
    try:
        return await accounts.get_admin_division(identity.user_id)
    except Exception:
        _logger.exception("Could not read the division preference; using the default")
        return DEFAULT_DIVISION


@action("No se pudo guardar la preferencia")
async def set_admin_division(identity: Identity, division: str) -> ActionResult:
    accounts.require_staff(identity)
    try:
        value = Division(division)
    except ValueError:
        return ActionResult(False, "División inválida", errors={"division": "invalid"})
    await accounts.set_admin_division(identity.user_id, value)
    return ActionResult(True, data=value)
