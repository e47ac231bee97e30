# catalog actions: storefront reads, admin product/category management
from typing import Optional

import db.catalog as catalog
from actions.result import ActionResult, action
from actions.schemas import CategoryIn, ProductIn
from db.accounts import require_staff
from db.models import Division, Identity


@action("No se pudieron cargar los productos.", default=list)
async def get_products(
    division: Division = Division.JUGUETERIA,
    category_slug: Optional[str] = None,
    include_inactive: bool = False,
    query: str = "",
    sort: str = "newest",
    page: int = 1,
    page_size: Optional[int] = None,
) -> ActionResult:
    result = await catalog.get_products(
        division,
        category_slug=category_slug,
        include_inactive=include_inactive,
        query=query,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    return ActionResult(
        True,
        message=f"{result.total} productos",
        data=[p.to_public() for p in result.items],
    )


@action("No se pudo cargar el producto.")
async def get_product_by_slug(slug: str) -> ActionResult:
    product = await catalog.get_product_by_slug(slug)
    if product is None:
        return ActionResult(False, "Producto no encontrado")
    return ActionResult(True, data=product.to_public())


@action("No se pudo cargar la categoría.")
async def get_products_by_category(category_slug: str, sort: str = "newest") -> ActionResult:
    found = await catalog.get_products_by_category(category_slug, sort)
    if found is None:
        return ActionResult(False, "Categoría no encontrada")
    category, products = found
    return ActionResult(
        True,
        data={
            "categoryName": category.name,
            "division": category.division.value,
            "products": [p.to_public() for p in products],
        },
    )


@action("No se pudieron cargar los productos.", default=list)
async def get_products_by_tag(
    tag: str, take: int = 8, division: Optional[Division] = None
) -> ActionResult:
    products = await catalog.get_products_by_tag(tag, take, division)
    return ActionResult(True, data=[p.to_public() for p in products])


@action("Error al buscar productos", default=list)
async def search_pos_products(
    identity: Identity, query: str, division: Optional[Division] = None
) -> ActionResult:
    require_staff(identity)
    products = await catalog.search_pos_products(query, division)
    return ActionResult(True, data=[p.to_public() for p in products])


@action(
    "Error interno al guardar el producto",
    messages={"conflict": "El slug ya existe, usa otro."},
)
async def save_product(
    identity: Identity, data: dict, product_id: Optional[int] = None
) -> ActionResult:
    require_staff(identity)
    payload = ProductIn.model_validate(data)
    product = await catalog.save_product(payload.model_dump(), product_id)
    return ActionResult(True, "Producto guardado", data=product.to_public())


@action("No se pudo eliminar el producto")
async def delete_product(identity: Identity, product_id: int) -> ActionResult:
    require_staff(identity)
    await catalog.delete_product(product_id)
    return ActionResult(True, "Producto eliminado")


@action("No se pudo actualizar el producto")
async def update_price_stock(
    identity: Identity, product_id: int, price=None, stock: Optional[int] = None
) -> ActionResult:
    require_staff(identity)
    updated = await catalog.update_price_stock(product_id, price, stock)
    if not updated:
        return ActionResult(False, "Nada que actualizar")
    return ActionResult(True, "Producto actualizado")


@action("Error al cargar categorías", default=list)
async def list_categories(division: Optional[Division] = None) -> ActionResult:
    return ActionResult(True, data=await catalog.list_categories(division))


@action(
    "Error al guardar la categoría",
    messages={"conflict": "El slug ya existe, usa otro."},
)
async def save_category(
    identity: Identity, data: dict, category_id: Optional[int] = None
) -> ActionResult:
    require_staff(identity)
    payload = CategoryIn.model_validate(data)
    category = await catalog.save_category(payload.model_dump(), category_id)
    return ActionResult(True, "Categoría guardada", data=category)


@action(
    "Error al eliminar la categoría",
    messages={"conflict": "No se puede eliminar: Tiene {product_count} productos asociados."},
)
async def delete_category(identity: Identity, category_id: int) -> ActionResult:
    require_staff(identity)
    await catalog.delete_category(category_id)
    return ActionResult(True, "Categoría eliminada")
