from decimal import Decimal
from typing import Dict

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, DataTable, Input, Label, OptionList, Select
from textual.widgets.option_list import Option

import actions.catalog as catalog_actions
import actions.orders as order_actions
from db.models import PaymentMethod
from utils.messages import DivisionSwitchedMessage, OrdersChangedMessage
from utils.pure import format_money, short_id
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class PosScreen(BaseScreen):
    """
    Point of sale: look products up by name, id or barcode, build a ticket
    and register a paid, delivered sale.
    """

    BINDINGS = [
        Binding("ctrl+s", "sell", "Cobrar", show=True),
        Binding("delete", "remove_line", "Quitar línea", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        # product id -> {"title", "price", "stock", "quantity"}
        self._ticket: Dict[int, dict] = {}
        self._results: Dict[int, dict] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="div-pos"):
            with Vertical(id="div-pos-search"):
                yield Input(id="input-search", placeholder="Nombre, código o código de barras...")
                yield OptionList(id="optlist-prods")
            with Vertical(id="div-pos-ticket"):
                yield DataTable(id="table-ticket")
                yield Label("Total: S/ 0.00", id="label-total")
                yield Select(
                    [(m.value.title(), m.value) for m in PaymentMethod],
                    value=PaymentMethod.EFECTIVO.value,
                    allow_blank=False,
                    id="select-payment",
                )
                yield Input(placeholder="Cliente (opcional)", id="input-customer")
                yield Input(placeholder="DNI (opcional)", id="input-dni", type="integer")
                yield Input(placeholder="Dirección (opcional)", id="input-address")
                with Horizontal(id="div-pos-btns"):
                    yield Button("Vaciar", id="btn-clear")
                    yield Button("Cobrar", id="btn-sell", variant="success")

    def on_mount(self) -> None:
        table = self.query_one("#table-ticket", DataTable)
        table.cursor_type = "row"
        table.add_columns("ID", "Producto", "Cant.", "P. Unit.", "Subtotal")
        self.query_one("#input-search", Input).focus()
        self.update_optlist("")

    @on(Input.Changed, "#input-search")
    def handle_search(self, message: Input.Changed) -> None:
        self.update_optlist(message.value)

    @on(DivisionSwitchedMessage)
    def handle_division_switched(self) -> None:
        self.update_optlist(self.query_one("#input-search", Input).value)

    @work(exclusive=True, group="pos-search")
    async def update_optlist(self, query: str):
        """
        fill option list with search results of the current division
        """
        result = await catalog_actions.search_pos_products(self.identity, query, self.division)
        self._results = {p["id"]: p for p in result.data}
        opt_list = self.query_one("#optlist-prods", OptionList)
        opt_list.clear_options()
        opt_list.add_options(
            [
                Option(f"{p['id']} {p['title']}  S/ {p['price']:.2f}  (stock {p['stock']})", id=str(p["id"]))
                for p in result.data
            ]
        )

    @on(OptionList.OptionSelected, "#optlist-prods")
    def handle_add(self, message: OptionList.OptionSelected) -> None:
        product = self._results.get(int(message.option.id))
        if product is None:
            return
        line = self._ticket.get(product["id"])
        quantity = (line["quantity"] if line else 0) + 1
        if quantity > product["stock"]:
            self.notify(f"Stock insuficiente para \"{product['title']}\"", severity="warning")
            return
        self._ticket[product["id"]] = {
            "title": product["title"],
            "price": Decimal(str(product["price"])),
            "stock": product["stock"],
            "quantity": quantity,
        }
        self._render_ticket()

    def action_remove_line(self) -> None:
        table = self.query_one("#table-ticket", DataTable)
        if table.row_count == 0 or table.cursor_row is None:
            return
        product_id = int(table.get_row_at(table.cursor_row)[0])
        line = self._ticket[product_id]
        line["quantity"] -= 1
        if line["quantity"] <= 0:
            del self._ticket[product_id]
        self._render_ticket()

    def _render_ticket(self) -> None:
        table = self.query_one("#table-ticket", DataTable)
        table.clear()
        total = Decimal("0.00")
        for product_id, line in self._ticket.items():
            subtotal = line["price"] * line["quantity"]
            total += subtotal
            table.add_row(
                product_id, line["title"], line["quantity"], format_money(line["price"]), format_money(subtotal)
            )
        # list prices; the sale itself applies wholesale and discount pricing
        self.query_one("#label-total", Label).update(f"Total: {format_money(total)}")

    @on(Button.Pressed, "#btn-clear")
    def handle_clear(self) -> None:
        self._ticket.clear()
        self._render_ticket()
        for input_id in ("#input-customer", "#input-dni", "#input-address"):
            self.query_one(input_id, Input).value = ""

    @on(Button.Pressed, "#btn-sell")
    @work(exclusive=True, group="pos-sell")
    async def action_sell(self) -> None:
        if not self._ticket:
            self.notify("El ticket está vacío", severity="warning")
            return
        payment_method = self.query_one("#select-payment", Select).value
        if not await self.app.push_screen_wait(
            DialogModal(f"¿Registrar venta con pago {payment_method}?", "Sí", "No", "positive")
        ):
            return

        result = await order_actions.process_pos_sale(
            self.identity,
            {
                "items": [
                    {"product_id": pid, "quantity": line["quantity"]} for pid, line in self._ticket.items()
                ],
                "payment_method": payment_method,
                "customer": {
                    "name": self.query_one("#input-customer", Input).value,
                    "dni": self.query_one("#input-dni", Input).value,
                    "address": self.query_one("#input-address", Input).value,
                },
            },
        )
        if not result.success:
            self.notify(result.message, severity="error")
            return

        order = result.data["order"]
        self.notify(f"{result.message} #{short_id(order.id)} {format_money(order.total_amount)}")
        self.handle_clear()
        self.update_optlist(self.query_one("#input-search", Input).value)
        self.app.post_message(OrdersChangedMessage())
