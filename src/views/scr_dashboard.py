import asyncio
from datetime import date
from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import MarkdownViewer

import actions.reports as reports
from db.models import Order
from utils.messages import DivisionSwitchedMessage, ModeSwitchedMessage, OrdersChangedMessage
from utils.pure import format_money, generate_markdown_table, short_id
from views.base_screen import BaseScreen

MONTHS = ["Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic"]


class DashboardScreen(BaseScreen):
    """
    Store overview: headline stats, customer stats, recent sales and this
    year's revenue by month.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-dashboard", show_table_of_contents=False)

    def on_mount(self) -> None:
        self.handle_reload()

    @on(OrdersChangedMessage)
    @on(DivisionSwitchedMessage)
    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        if self.identity is None:
            return
        year = date.today().year
        stats, customers, recent, revenue = await asyncio.gather(
            reports.get_dashboard_stats(self.identity),
            reports.get_customer_stats(self.identity),
            reports.get_recent_sales(self.identity),
            reports.get_monthly_revenue(self.identity, year),
        )

        if stats.success:
            s = stats.data
            stats_md = (
                "### Resumen\n\n"
                f"- Pedidos: {s.orders_count}\n"
                f"- Productos: {s.products_count}\n"
                f"- Ingresos (pagados): {format_money(s.total_revenue)}\n"
                f"- Productos con stock bajo: {s.low_stock_products}\n\n"
            )
        else:
            stats_md = f"### Resumen\n\n{stats.message}\n\n"

        if customers.success:
            c = customers.data
            customers_md = (
                "### Clientes\n\n"
                f"- Total: {c.total_customers}\n"
                f"- Con cuenta externa: {c.external_users}\n"
                f"- Nuevos este mes: {c.new_customers}\n\n"
            )
        else:
            customers_md = f"### Clientes\n\n{customers.message}\n\n"

        md = (
            stats_md
            + customers_md
            + "### Ventas recientes\n\n"
            + self._recent_table(recent.data)
            + f"\n\n### Ingresos {year}\n\n"
            + generate_markdown_table(
                ["Mes", "Ingresos"],
                [[m, format_money(v)] for m, v in zip(MONTHS, revenue.data)],
                ["l", "r"],
            )
        )
        self.query_one("#md-dashboard", MarkdownViewer).document.update(md)

    @staticmethod
    def _recent_table(orders: List[Order]) -> str:
        if not orders:
            return "_Sin pedidos todavía._"
        rows = [
            [short_id(o.id), o.client_name, o.status.value, format_money(o.grand_total)]
            for o in orders
        ]
        return generate_markdown_table(["Pedido", "Cliente", "Estado", "Total"], rows, ["l", "l", "l", "r"])
