import asyncio
import os
import tempfile
import unittest
from datetime import date, datetime
from decimal import Decimal
from xml.etree import ElementTree

from openpyxl import load_workbook

from helpers import PAID_ORDER_ID, PENDING_ORDER_ID, DbTestCase

from db import catalog, orders
from utils import export, notify, pure, sitemap


class FailingMailer:
    async def send(self, email):
        raise ConnectionError("smtp down")


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, email):
        self.sent.append(email)


class ExportTestCase(DbTestCase):
    async def test_export_rows(self):
        page = await orders.list_orders()
        rows = export.order_export_rows(page.items)
        self.assertEqual(list(rows[0]), export.EXPORT_COLUMNS)
        by_id = {r["ID"]: r for r in rows}
        paid = by_id["5F0C2A1E"]
        self.assertEqual(paid["Fecha"], "20/01/2025")
        self.assertEqual(paid["Cliente"], "Lucía Ramos")
        self.assertEqual(paid["Estado"], "PAID")
        self.assertEqual(paid["Pagado"], "SI")
        self.assertEqual(paid["Total"], 144.9)
        self.assertEqual(paid["Items"], 2)
        self.assertEqual(by_id["9B4E7D20"]["Pagado"], "NO")

    async def test_write_workbook_to_directory(self):
        page = await orders.list_orders()
        with tempfile.TemporaryDirectory() as out_dir:
            path = export.write_orders_xlsx(page.items, out_dir)
            self.assertEqual(os.path.dirname(path), out_dir)
            self.assertTrue(os.path.basename(path).startswith("Reporte_Ventas_"))
            self.assertTrue(path.endswith(".xlsx"))
            workbook = load_workbook(path)
            self.assertEqual(workbook.sheetnames, ["Ventas"])
            rows = list(workbook["Ventas"].iter_rows(values_only=True))
            workbook.close()
        self.assertEqual(list(rows[0]), export.EXPORT_COLUMNS)
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[1][0], "9B4E7D20")
        total = rows[2][export.EXPORT_COLUMNS.index("Total")]
        self.assertIsInstance(total, float)
        self.assertEqual(total, 144.9)

    def test_default_export_name(self):
        self.assertEqual(export.default_export_name(date(2025, 3, 9)), "Reporte_Ventas_2025-03-09.xlsx")


class SitemapTestCase(DbTestCase):
    async def test_sitemap_order_and_priorities(self):
        now = datetime(2025, 5, 1, 8, 0)
        entries = await sitemap.build_sitemap("https://tienda.pe/", now=now)

        self.assertEqual(entries[0].url, "https://tienda.pe")
        self.assertEqual((entries[0].change_frequency, entries[0].priority), ("daily", 1.0))

        categories = [e for e in entries if "/category/" in e.url]
        products = [e for e in entries if "/product/" in e.url]
        self.assertEqual(len(categories), 5)
        self.assertEqual(len(products), 6)
        self.assertEqual(entries[1 : 1 + len(categories)], categories)
        self.assertTrue(all(e.priority == 0.9 and e.change_frequency == "weekly" for e in categories))
        self.assertTrue(all(e.priority == 0.8 for e in products))
        self.assertEqual(products[0].url, "https://tienda.pe/product/castillo-medieval-bloques")
        self.assertEqual(products[0].last_modified, datetime(2025, 1, 10, 10, 0))

    async def test_sitemap_skips_hidden_products_and_renders_xml(self):
        await catalog.delete_product(203)
        entries = await sitemap.build_sitemap("https://tienda.pe", now=datetime(2025, 5, 1))
        self.assertNotIn("https://tienda.pe/product/kit-decoracion-dinosaurios", [e.url for e in entries])

        xml = sitemap.render_sitemap_xml(entries)
        root = ElementTree.fromstring(xml.split("?>", 1)[1].strip())
        ns = {"s": "http://www.sitemaps.org/schemas/sitemap/0.9"}
        self.assertEqual(len(root.findall("s:url", ns)), len(entries))
        self.assertEqual(root.find("s:url/s:lastmod", ns).text, "2025-05-01")


class NotifyTestCase(unittest.IsolatedAsyncioTestCase):
    def _notification(self):
        return notify.OrderNotification(
            order_id=PAID_ORDER_ID,
            customer_name="Lucía Ramos",
            customer_phone="987654321",
            total_amount=Decimal("154.90"),
            items=[
                notify.NotificationItem("Castillo Medieval", 1, Decimal("129.90")),
                notify.NotificationItem("Pack Globos Dorados", 1, Decimal("15.00")),
            ],
            panel_url="https://www.festamas.com/admin/orders/x",
        )

    def test_compose_order_email(self):
        email = notify.compose_order_email(self._notification(), "ventas@festamas.com")
        self.assertEqual(email.to, "ventas@festamas.com")
        self.assertEqual(email.subject, "🛍️ Nuevo pedido de Lucía Ramos - S/ 154.90")
        self.assertIn("Nuevo pedido #5F0C2A1E", email.body)
        self.assertIn("  - 1 x Castillo Medieval (S/ 129.90)", email.body)
        self.assertIn("Ver en el panel: https://www.festamas.com/admin/orders/x", email.body)

    async def test_notify_sends_in_background(self):
        mailer = RecordingMailer()
        task = notify.notify_new_order(self._notification(), mailer)
        self.assertIn(task, notify._pending)
        await task
        await asyncio.sleep(0)
        self.assertEqual(len(mailer.sent), 1)
        self.assertNotIn(task, notify._pending)

    async def test_notify_failure_is_logged_not_raised(self):
        with self.assertLogs("utils.notify", level="ERROR") as logs:
            await notify.notify_new_order(self._notification(), FailingMailer())
        self.assertIn(PAID_ORDER_ID, logs.output[0])


class PureHelpersTestCase(unittest.TestCase):
    def test_money(self):
        self.assertEqual(pure.to_cents("25.505"), 2551)
        self.assertEqual(pure.to_cents(0.1 + 0.2), 30)
        self.assertEqual(pure.from_cents(2550), Decimal("25.50"))
        self.assertIsNone(pure.from_cents(None))
        self.assertEqual(pure.format_money(Decimal("5.5")), "S/ 5.50")
        self.assertEqual(pure.apply_percentage_discount(8900, 10), 8010)
        self.assertEqual(pure.apply_percentage_discount(999, 0), 999)

    def test_tags_and_ids(self):
        self.assertEqual(pure.normalize_tags(" Fiesta, globos,fiesta ,"), ["fiesta", "globos"])
        self.assertEqual(pure.short_id(PENDING_ORDER_ID), "9B4E7D20")
        self.assertTrue(pure.is_valid_slug("globos-2"))
        self.assertFalse(pure.is_valid_slug("Globos 2"))

    def test_markdown_table(self):
        table = pure.generate_markdown_table(["A", "B"], [[1, 2]], ["l", "r"])
        self.assertEqual(table, "| A | B |\n| :--- | ---: |\n| 1 | 2 |")
        with self.assertRaises(ValueError):
            pure.generate_markdown_table(["A"], [[1]], ["l", "r"])


if __name__ == "__main__":
    unittest.main()
