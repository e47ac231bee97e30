import asyncio
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select

import actions.orders as order_actions
from db.models import Order, OrderStatus
from utils.export import default_export_name, write_orders_xlsx
from utils.messages import ModeSwitchedMessage, OrdersChangedMessage
from utils.pure import format_money, generate_markdown_table, short_id
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, PromptModal

PAGE_SIZE = 10
EXPORT_LIMIT = 10_000

STATUS_LABELS = {
    OrderStatus.PENDING: "Pendiente",
    OrderStatus.PAID: "Pagado",
    OrderStatus.DELIVERED: "Entregado",
    OrderStatus.CANCELLED: "Cancelado",
}


class OrdersScreen(BaseScreen):
    """
    Every order, newest first, filterable by status.

    Layout:
    - Markdown detail of the highlighted order at the top.
    - Orders table below, PAGE_SIZE per page with Prev/Next.
    - Actions: mark paid, deliver, cancel, export to a spreadsheet.
    """

    BINDINGS = [
        Binding("p", "pay", "Marcar pagado", show=True),
        Binding("d", "deliver", "Entregar", show=True),
        Binding("x", "cancel_order", "Cancelar", show=True),
        Binding("e", "export", "Exportar Excel", show=True),
    ]

    page_idx = reactive(1)
    page_cnt = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-table-control"):
            yield Select(
                [(label, status.value) for status, label in STATUS_LABELS.items()],
                prompt="Todos",
                id="select-status",
            )
            yield Button("<", id="btn-prev")
            yield Label(" 1 / 1 ", id="label-page")
            yield Button(">", id="btn-next")
            yield Button("Pagado", id="btn-pay", variant="success")
            yield Button("Entregado", id="btn-deliver", variant="primary")
            yield Button("Cancelar", id="btn-cancel", variant="error")
            yield Button("Exportar", id="btn-export")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Pedido", "Fecha", "Cliente", "Estado", "Pagado", "Total")

    @property
    def status_filter(self) -> Optional[str]:
        value = self.query_one("#select-status", Select).value
        return None if value is Select.BLANK else value

    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(OrdersChangedMessage)
    def handle_refresh(self):
        self._load_orders(self.page_idx)

    @on(Select.Changed, "#select-status")
    def handle_filter(self):
        self._load_orders(1)

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self) -> None:
        self._render_detail(self.selected_order)

    @property
    def selected_order(self) -> Optional[Order]:
        table = self.query_one(DataTable)
        if table.row_count == 0 or table.cursor_row is None:
            return None
        if table.cursor_row >= len(self._orders):
            return None
        return self._orders[table.cursor_row]

    def _refresh_buttons(self) -> None:
        self.query_one("#btn-prev", Button).disabled = self.page_idx <= 1
        self.query_one("#btn-next", Button).disabled = self.page_idx >= self.page_cnt
        self.query_one("#label-page", Label).update(f" {self.page_idx} / {self.page_cnt} ")

    @on(Button.Pressed, "#btn-prev")
    def handle_prev(self) -> None:
        if self.page_idx > 1:
            self._load_orders(self.page_idx - 1)

    @on(Button.Pressed, "#btn-next")
    def handle_next(self) -> None:
        if self.page_idx < self.page_cnt:
            self._load_orders(self.page_idx + 1)

    @work(exclusive=True, group="orders")
    async def _load_orders(self, page: int) -> None:
        result = await order_actions.get_orders(
            self.identity, self.status_filter, page=page, page_size=PAGE_SIZE
        )
        if not result.success:
            self.notify(result.message, severity="error")
        orders, total = result.data["orders"], result.data["total"]

        table = self.query_one(DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                short_id(o.id),
                o.created_at.strftime("%d/%m/%Y %H:%M"),
                o.client_name,
                STATUS_LABELS[o.status],
                "SI" if o.is_paid else "NO",
                format_money(o.grand_total),
            )
        self._orders = orders
        self.page_cnt = max((total + PAGE_SIZE - 1) // PAGE_SIZE, 1)
        self.page_idx = min(page, self.page_cnt)
        self._refresh_buttons()
        if orders:
            table.cursor_coordinate = (0, 0)
        self._render_detail(self.selected_order)

    def _render_detail(self, order: Optional[Order]) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if not order:
            viewer.document.update("### Selecciona un pedido para ver el detalle.")
            return

        header = (
            f"### Pedido #{short_id(order.id)} ({STATUS_LABELS[order.status]})\n"
            f"Cliente: {order.client_name} ({order.client_phone})  \n"
            f"Entrega: {order.delivery_method.value} {order.shipping_address}  \n"
            f"Notas: {order.notes or '-'}\n\n"
        )
        rows = [
            [i.product_title, i.quantity, format_money(i.price), format_money(i.line_total)]
            for i in order.items
        ]
        table = generate_markdown_table(
            ["Producto", "Cant.", "P. Unit.", "Subtotal"], rows, ["l", "r", "r", "r"]
        )
        footer = (
            f"\n\nSubtotal: {format_money(order.total_amount)}  \n"
            f"Envío: {format_money(order.shipping_cost)}  \n"
            f"**Total:** {format_money(order.grand_total)}"
        )
        viewer.document.update(header + table + footer)

    @on(Button.Pressed, "#btn-pay")
    def action_pay(self) -> None:
        self._change_status(OrderStatus.PAID)

    @on(Button.Pressed, "#btn-deliver")
    def action_deliver(self) -> None:
        self._change_status(OrderStatus.DELIVERED)

    @on(Button.Pressed, "#btn-cancel")
    def action_cancel_order(self) -> None:
        self._change_status(OrderStatus.CANCELLED)

    @work(exclusive=True, group="order-status")
    async def _change_status(self, target: OrderStatus) -> None:
        order = self.selected_order
        if order is None:
            self.notify("Selecciona un pedido", severity="warning")
            return
        if target is OrderStatus.CANCELLED and not await self.app.push_screen_wait(
            DialogModal(
                f"¿Cancelar el pedido #{short_id(order.id)}?",
                primary_text="Sí",
                secondary_text="No",
                tone="error",
            )
        ):
            return

        if target is OrderStatus.PAID:
            result = await order_actions.mark_paid(self.identity, order.id)
        else:
            result = await order_actions.update_status(self.identity, order.id, target.value)

        if result.success:
            self.notify(result.message)
            self.app.post_message(OrdersChangedMessage())
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-export")
    @work(exclusive=True, group="export")
    async def action_export(self) -> None:
        path = await self.app.push_screen_wait(
            PromptModal("Exportar pedidos a Excel (.xlsx)", value=default_export_name())
        )
        if not path:
            return
        result = await order_actions.get_orders(
            self.identity, self.status_filter, page=1, page_size=EXPORT_LIMIT
        )
        if not result.success:
            self.notify(result.message, severity="error")
            return
        try:
            written = await asyncio.to_thread(write_orders_xlsx, result.data["orders"], path)
        except OSError as exc:
            self.notify(f"No se pudo exportar: {exc}", severity="error")
            return
        self.notify(f"Exportado: {written}")
