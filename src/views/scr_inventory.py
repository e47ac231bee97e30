from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer, OptionList
from textual.widgets.option_list import Option

import actions.catalog as catalog_actions
from utils.config import get_settings
from utils.messages import DivisionSwitchedMessage
from utils.pure import generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class InventoryScreen(BaseScreen):
    """
    Staff search the current division's products (hidden ones included) and
    adjust price and stock, or retire a product.
    """

    current_pid: Optional[int] = None

    def __init__(self) -> None:
        super().__init__()
        self._products: Dict[int, dict] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Buscar producto...")
            yield OptionList(id="optlist-prods")
            yield MarkdownViewer(id="md-prod", show_table_of_contents=False)
            with Horizontal(id="hort-controls"):
                with Horizontal(id="div-new-inputs"):
                    with Vertical():
                        yield Label("Nuevo precio (S/):")
                        yield Input(
                            placeholder="vacío para mantener",
                            id="input-price",
                            type="number",
                            validators=[Number(minimum=0.0)],
                        )

                    with Vertical():
                        yield Label("Nuevo stock:")
                        yield Input(
                            placeholder="vacío para mantener",
                            id="input-stock",
                            type="integer",
                            validators=[Number(minimum=0)],
                        )
                with Horizontal(id="div-button"):
                    yield Button("Actualizar", id="btn-update", variant="success")
                    yield Button("Eliminar", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        self.query_one("#input-search", Input).focus()
        self.query_one("#md-prod").add_class("hidden")
        self.query_one("#hort-controls").add_class("hidden")
        self.update_optlist("")

    @on(Input.Changed, "#input-search")
    def handle_search(self, message: Input.Changed) -> None:
        self.query_one("#optlist-prods").remove_class("hidden")
        self.update_optlist(message.value)

    @on(DivisionSwitchedMessage)
    def handle_division_switched(self) -> None:
        self.current_pid = None
        self.query_one("#md-prod").add_class("hidden")
        self.query_one("#hort-controls").add_class("hidden")
        self.update_optlist(self.query_one("#input-search", Input).value)

    @on(OptionList.OptionSelected, "#optlist-prods")
    def handle_select(self, message: OptionList.OptionSelected):
        self.current_pid = int(message.option.id)
        self.render_product()

        self.query_one("#optlist-prods").add_class("hidden")
        self.query_one("#md-prod").remove_class("hidden")
        self.query_one("#hort-controls").remove_class("hidden")

    @work(exclusive=True, group="inventory-search")
    async def update_optlist(self, query: str):
        await self._fill_optlist(query)

    async def _fill_optlist(self, query: str) -> None:
        """
        fill option list with the division's products matching ``query``
        """
        result = await catalog_actions.get_products(
            self.division, include_inactive=True, query=query, sort="title", page_size=50
        )
        if not result.success:
            self.notify(result.message, severity="error")
        self._products = {p["id"]: p for p in result.data}

        low = get_settings().low_stock_threshold
        opt_list = self.query_one("#optlist-prods", OptionList)
        opt_list.clear_options()
        opt_list.add_options(
            [
                Option(
                    f"{p['id']} {p['title']}"
                    + ("  (oculto)" if not p["isAvailable"] else "")
                    + ("  (stock bajo)" if p["stock"] <= low else ""),
                    id=str(p["id"]),
                )
                for p in result.data
            ]
        )

    @work(exclusive=True, group="inventory-detail")
    async def render_product(self) -> None:
        prod = self._products.get(self.current_pid)
        if prod is None:
            return

        rows = [
            ["ID", prod["id"]],
            ["Slug", prod["slug"]],
            ["Categoría", prod["category"]["name"]],
            ["Precio", f"S/ {prod['price']:.2f}"],
            ["Descuento", f"{prod['discountPercentage']}%"],
            ["Mayorista", f"S/ {prod['wholesalePrice']:.2f} desde {prod['wholesaleMinCount']}"
             if prod["wholesaleMinCount"] else "-"],
            ["Stock", prod["stock"]],
            ["Código de barras", prod["barcode"] or "-"],
            ["Etiquetas", ", ".join(prod["tags"]) or "-"],
            ["Disponible", "Sí" if prod["isAvailable"] else "No"],
        ]
        md_table = generate_markdown_table(["Campo", "Valor"], rows, ["l", "l"])
        await self.query_one("#md-prod", MarkdownViewer).document.update(
            f"### {prod['title']}\n\n" + md_table
        )

        # prefill inputs with current values for convenience
        self.query_one("#input-price", Input).value = f"{prod['price']:.2f}"
        self.query_one("#input-stock", Input).value = str(prod["stock"])

    @on(Button.Pressed, "#btn-update")
    @work(exclusive=True, group="inventory-write")
    async def handle_update(self) -> None:
        prod = self._products.get(self.current_pid)
        if prod is None:
            return

        price_input = self.query_one("#input-price", Input)
        stock_input = self.query_one("#input-stock", Input)

        try:
            new_price = Decimal(price_input.value) if price_input.value.strip() else None
        except InvalidOperation:
            price_input.focus()
            price_input.add_class("-invalid")
            return
        new_stock = int(stock_input.value) if stock_input.value.strip() else None

        if new_price is not None and new_price == Decimal(str(prod["price"])):
            new_price = None
        if new_stock == prod["stock"]:
            new_stock = None

        result = await catalog_actions.update_price_stock(
            self.identity, prod["id"], price=new_price, stock=new_stock
        )
        if result.success:
            self.notify(result.message)
        else:
            self.notify(result.message, severity="warning")
        await self._reload()

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True, group="inventory-write")
    async def handle_delete(self) -> None:
        prod = self._products.get(self.current_pid)
        if prod is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(f"¿Eliminar \"{prod['title']}\"?", "Sí", "No", "error")
        ):
            return
        result = await catalog_actions.delete_product(self.identity, prod["id"])
        self.notify(result.message, severity="information" if result.success else "error")
        await self._reload()

    async def _reload(self) -> None:
        await self._fill_optlist(self.query_one("#input-search", Input).value)
        self.render_product()
