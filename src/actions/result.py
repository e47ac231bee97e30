"""The uniform result returned by every action, and the decorator that produces it."""

from __future__ import annotations

import functools
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from db.errors import ShopError
from utils.logger import get_logger

_logger = get_logger(__name__)

# user-facing messages (es-PE), keyed by ShopError.code
MESSAGES: Dict[str, str] = {
    "validation": "Datos inválidos",
    "not_found": "No se encontró lo que buscabas.",
    "product_not_found": (
        "Uno o más productos de tu carrito ya no están disponibles. "
        "Por favor actualiza la página."
    ),
    "conflict": "Ya existe un registro con esos datos.",
    "insufficient_stock": 'Stock insuficiente para "{title}". Quedan: {available}',
    "illegal_transition": "No se puede pasar el pedido de {current} a {target}.",
    "unauthorized": "No autorizado",
    "error": "Ocurrió un error inesperado.",
}


@dataclass
class ActionResult:
    success: bool
    message: str = ""
    data: Any = None
    errors: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def field_errors(exc: PydanticValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into ``{"items.0.quantity": "message"}``."""
    errors: Dict[str, str] = {}
    for error in exc.errors():
        key = ".".join(str(part) for part in error["loc"]) or "__root__"
        errors.setdefault(key, error["msg"])
    return errors


def localize(exc: ShopError, overrides: Optional[Dict[str, str]] = None) -> str:
    template = (overrides or {}).get(exc.code) or MESSAGES.get(exc.code) or MESSAGES["error"]
    try:
        return template.format(**exc.context)
    except (KeyError, IndexError):
        return template


def action(
    failure_message: str,
    default: Optional[Callable[[], Any]] = None,
    messages: Optional[Dict[str, str]] = None,
):
    """
    Wrap an async action so it always returns an ActionResult.

    :param failure_message: shown when something unexpected breaks; the
        exception itself is logged with its traceback.
    :param default: factory for ``data`` on failure, so reads degrade to an
        empty value.
    :param messages: per-action overrides of :data:`MESSAGES`.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> ActionResult:
            fallback = default() if default else None
            try:
                return await fn(*args, **kwargs)
            except PydanticValidationError as exc:
                return ActionResult(
                    False, MESSAGES["validation"], data=fallback, errors=field_errors(exc)
                )
            except ShopError as exc:
                _logger.warning(f"{fn.__name__} rejected: {exc.message}")
                return ActionResult(
                    False,
                    localize(exc, messages),
                    data=fallback,
                    errors=getattr(exc, "errors", None) or None,
                )
            except Exception:
                _logger.exception(f"{fn.__name__} failed")
                return ActionResult(False, failure_message, data=fallback)

        return wrapper

    return decorator
