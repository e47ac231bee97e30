import asyncio
import unittest
from decimal import Decimal
from unittest import mock

from helpers import ADMIN, DIEGO, LUCIA, PAID_ORDER_ID, PENDING_ORDER_ID, SELLER, DbTestCase

import actions.accounts as account_actions
import actions.catalog as catalog_actions
import actions.orders as order_actions
import actions.reports as report_actions
import actions.store as store_actions
from actions.result import ActionResult, action, localize
from db import catalog
from db.errors import InsufficientStock
from db.models import Division, OrderStatus
from utils import notify


async def settle_notifications():
    """Let fire-and-forget notification tasks run."""
    if notify._pending:
        await asyncio.gather(*list(notify._pending))


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, email):
        self.sent.append(email)


class ActionResultTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_unexpected_errors_become_failures(self):
        @action("Algo falló", default=list)
        async def broken():
            raise RuntimeError("boom")

        with self.assertLogs("actions.result", level="ERROR"):
            result = await broken()
        self.assertFalse(result.success)
        self.assertEqual(result.message, "Algo falló")
        self.assertEqual(result.data, [])

    def test_localize_formats_context(self):
        exc = InsufficientStock(7, "Pelota", 3, 1)
        self.assertEqual(localize(exc), 'Stock insuficiente para "Pelota". Quedan: 1')
        self.assertEqual(localize(exc, {"insufficient_stock": "Sin stock"}), "Sin stock")

    def test_to_dict_drops_empty_fields(self):
        self.assertEqual(ActionResult(True, "ok").to_dict(), {"success": True, "message": "ok"})


class OrderActionsTestCase(DbTestCase):
    async def test_guest_order_is_validated(self):
        result = await order_actions.create_order({"name": "A1", "phone": "123", "items": []})
        self.assertFalse(result.success)
        self.assertEqual(result.message, "Datos inválidos")
        self.assertIn("name", result.errors)
        self.assertIn("phone", result.errors)
        self.assertIn("items", result.errors)

    async def test_guest_order_notifies_staff(self):
        mailer = RecordingMailer()
        result = await order_actions.create_order(
            {"name": "Ana Torres", "phone": "987654321", "items": [{"product_id": 101, "quantity": 2}]},
            mailer=mailer,
        )
        self.assertTrue(result.success)
        order = result.data["order"]
        self.assertEqual(result.data["orderId"], order.id)
        self.assertEqual(order.total_amount, Decimal("259.80"))
        self.assertIsNone(order.user_id)

        await settle_notifications()
        self.assertEqual(len(mailer.sent), 1)
        self.assertIn("Ana Torres", mailer.sent[0].subject)

    async def test_out_of_stock_message(self):
        result = await order_actions.create_order(
            {"name": "Ana Torres", "phone": "987654321", "items": [{"product_id": 103, "quantity": 9}]},
            mailer=RecordingMailer(),
        )
        self.assertFalse(result.success)
        self.assertEqual(result.message, 'Stock insuficiente para "Pista de Carreras Turbo". Quedan: 3')

    async def test_missing_product_message(self):
        result = await order_actions.create_order(
            {"name": "Ana Torres", "phone": "987654321", "items": [{"product_id": 999, "quantity": 1}]},
            mailer=RecordingMailer(),
        )
        self.assertFalse(result.success)
        self.assertIn("ya no están disponibles", result.message)

    async def test_checkout_charges_local_delivery(self):
        await store_actions.update_store_config(
            ADMIN,
            {"whatsapp_phone": "51988888888", "welcome_message": "Hola!!", "local_delivery_price": "7.50"},
        )
        result = await order_actions.create_checkout_order(
            LUCIA,
            {
                "name": "Lucia Ramos",
                "phone": "987654321",
                "delivery_method": "DELIVERY",
                "shipping_address": "Av. Larco 123",
                "items": [{"product_id": 201, "quantity": 1}],
            },
            mailer=RecordingMailer(),
        )
        self.assertTrue(result.success, result.message)
        order = result.data["order"]
        self.assertEqual(order.user_id, LUCIA.user_id)
        self.assertEqual(order.shipping_cost, Decimal("7.50"))
        self.assertEqual(order.total_amount, Decimal("15.00"))
        self.assertEqual(order.grand_total, Decimal("22.50"))

        missing_address = await order_actions.create_checkout_order(
            LUCIA,
            {"name": "Lucia Ramos", "phone": "987654321", "items": [{"product_id": 201, "quantity": 1}]},
        )
        self.assertFalse(missing_address.success)

        anonymous = await order_actions.create_checkout_order(None, {})
        self.assertEqual(anonymous.message, "No autorizado")

    async def test_staff_only_lifecycle(self):
        denied = await order_actions.mark_paid(LUCIA, PENDING_ORDER_ID)
        self.assertFalse(denied.success)
        self.assertEqual(denied.message, "No autorizado")

        paid = await order_actions.mark_paid(SELLER, PENDING_ORDER_ID)
        self.assertTrue(paid.success)
        self.assertEqual(paid.data.status, OrderStatus.PAID)

        bad = await order_actions.update_status(SELLER, PENDING_ORDER_ID, "SHIPPED")
        self.assertFalse(bad.success)
        self.assertEqual(bad.message, "Estado inválido")

        illegal = await order_actions.update_status(SELLER, PENDING_ORDER_ID, "PENDING")
        self.assertFalse(illegal.success)
        self.assertEqual(illegal.message, "No se puede pasar el pedido de PAID a PENDING.")

    async def test_pos_sale_action(self):
        result = await order_actions.process_pos_sale(
            SELLER,
            {"items": [{"product_id": 202, "quantity": 1}], "payment_method": "PLIN"},
        )
        self.assertTrue(result.success)
        self.assertEqual(result.message, "¡Venta registrada con éxito!")
        self.assertEqual(result.data["order"].status, OrderStatus.DELIVERED)

        invalid = await order_actions.process_pos_sale(
            SELLER, {"items": [{"product_id": 202, "quantity": 1}], "payment_method": "BITCOIN"}
        )
        self.assertFalse(invalid.success)
        self.assertIn("payment_method", invalid.errors)

    async def test_order_reads_are_scoped(self):
        own = await order_actions.get_order(LUCIA, PAID_ORDER_ID)
        self.assertTrue(own.success)
        other = await order_actions.get_order(DIEGO, PAID_ORDER_ID)
        self.assertFalse(other.success)
        self.assertEqual(other.message, "Pedido no encontrado")
        staff = await order_actions.get_order(SELLER, PAID_ORDER_ID)
        self.assertTrue(staff.success)

        listing = await order_actions.get_orders(LUCIA)
        self.assertFalse(listing.success)
        self.assertEqual(listing.data, {"orders": [], "total": 0})

        mine = await order_actions.get_my_orders(DIEGO)
        self.assertEqual([o.id for o in mine.data], [PENDING_ORDER_ID])

    async def test_unexpected_db_failure_degrades_read(self):
        with mock.patch.object(order_actions.orders, "list_orders", side_effect=RuntimeError("io")):
            with self.assertLogs("actions.result", level="ERROR"):
                result = await order_actions.get_orders(ADMIN)
        self.assertFalse(result.success)
        self.assertEqual(result.message, "Error al obtener órdenes")
        self.assertEqual(result.data, {"orders": [], "total": 0})


class CatalogActionsTestCase(DbTestCase):
    async def test_public_products_are_plain_numbers(self):
        result = await catalog_actions.get_products(Division.FIESTAS)
        self.assertTrue(result.success)
        prices = {p["id"]: p["price"] for p in result.data}
        self.assertEqual(prices[201], 15.0)
        self.assertIsInstance(prices[201], float)

    async def test_save_product_messages(self):
        payload = {
            "title": "Castillo Copia",
            "slug": "castillo-medieval-bloques",
            "description": "Una copia del castillo",
            "price": "10.00",
            "stock": 1,
            "category_id": 1,
            "images": ["https://example.com/a.jpg"],
            "division": "JUGUETERIA",
        }
        clash = await catalog_actions.save_product(SELLER, payload)
        self.assertFalse(clash.success)
        self.assertEqual(clash.message, "El slug ya existe, usa otro.")

        invalid = await catalog_actions.save_product(SELLER, {**payload, "slug": "Con Espacios", "price": "-1"})
        self.assertIn("slug", invalid.errors)
        self.assertIn("price", invalid.errors)

        created = await catalog_actions.save_product(SELLER, {**payload, "slug": "castillo-copia"})
        self.assertTrue(created.success)
        self.assertEqual(created.data["slug"], "castillo-copia")

        denied = await catalog_actions.save_product(LUCIA, payload)
        self.assertEqual(denied.message, "No autorizado")

    async def test_delete_category_message(self):
        result = await catalog_actions.delete_category(ADMIN, 4)
        self.assertFalse(result.success)
        self.assertEqual(result.message, "No se puede eliminar: Tiene 2 productos asociados.")

    async def test_category_page(self):
        result = await catalog_actions.get_products_by_category("decoracion")
        self.assertEqual(result.data["categoryName"], "Decoración Temática")
        self.assertEqual(result.data["division"], "FIESTAS")
        missing = await catalog_actions.get_products_by_category("nada")
        self.assertFalse(missing.success)

    async def test_update_price_stock_action(self):
        result = await catalog_actions.update_price_stock(SELLER, 101, stock=4)
        self.assertTrue(result.success)
        self.assertEqual((await catalog.get_product(101)).stock, 4)
        nothing = await catalog_actions.update_price_stock(SELLER, 101)
        self.assertFalse(nothing.success)


class AccountActionsTestCase(DbTestCase):
    async def test_register_and_login(self):
        created = await account_actions.register_user(
            {"name": "Rosa", "email": "rosa@example.com", "password": "rosa1234"}
        )
        self.assertTrue(created.success)
        duplicate = await account_actions.register_user(
            {"name": "Rosa", "email": "rosa@example.com", "password": "rosa1234"}
        )
        self.assertEqual(duplicate.message, "El correo ya está registrado")

        ok = await account_actions.login("rosa@example.com", "rosa1234")
        self.assertTrue(ok.success)
        self.assertEqual(ok.data["name"], "Rosa")
        bad = await account_actions.login("rosa@example.com", "nope")
        self.assertEqual(bad.message, "Credenciales inválidas.")

    async def test_address_messages(self):
        data = {
            "first_name": "Lucía",
            "last_name": "Ramos",
            "address": "Av. Larco 123",
            "phone": "987654321",
        }
        first = await account_actions.set_user_address(LUCIA, data)
        self.assertEqual(first.message, "Dirección guardada correctamente")
        second = await account_actions.set_user_address(LUCIA, data)
        self.assertEqual(second.message, "Dirección actualizada correctamente")

        foreign = await account_actions.delete_user_address(DIEGO, first.data.id)
        self.assertEqual(foreign.message, "Dirección no encontrada")
        mine = await account_actions.delete_user_address(LUCIA, first.data.id)
        self.assertEqual(mine.message, "Dirección eliminada")

    async def test_admin_cannot_delete_self(self):
        result = await account_actions.delete_user(ADMIN, ADMIN.user_id)
        self.assertFalse(result.success)
        denied = await account_actions.list_staff(SELLER)
        self.assertEqual(denied.data, [])

    async def test_division_switch(self):
        self.assertEqual(await account_actions.get_admin_division(SELLER), Division.JUGUETERIA)
        result = await account_actions.set_admin_division(SELLER, "FIESTAS")
        self.assertTrue(result.success)
        self.assertEqual(await account_actions.get_admin_division(SELLER), Division.FIESTAS)
        bad = await account_actions.set_admin_division(SELLER, "ROPA")
        self.assertFalse(bad.success)

    async def test_unreadable_division_is_logged_and_defaults(self):
        broken = mock.AsyncMock(side_effect=RuntimeError("disk I/O error"))
        with mock.patch("db.accounts.get_admin_division", broken):
            with self.assertLogs("actions.accounts", level="ERROR") as logs:
                division = await account_actions.get_admin_division(SELLER)
        self.assertEqual(division, Division.JUGUETERIA)
        self.assertIn("division preference", logs.output[0])


class StoreAndReportActionsTestCase(DbTestCase):
    async def test_store_config_defaults_and_update(self):
        config = await store_actions.get_store_config()
        self.assertEqual(config["hero_btn_color"], "#fb3099")
        self.assertEqual(config["local_delivery_price"], Decimal("0.00"))

        denied = await store_actions.update_store_config(SELLER, {})
        self.assertEqual(denied.message, "No autorizado")

    async def test_store_config_falls_back_on_error(self):
        with mock.patch.object(store_actions.store, "get_store_config", side_effect=RuntimeError("io")):
            with self.assertLogs("actions.store", level="ERROR"):
                config = await store_actions.get_store_config()
        self.assertEqual(config["whatsapp_phone"], "51999999999")

    async def test_coupons(self):
        valid = await store_actions.validate_coupon("bienvenida")
        self.assertEqual(valid.data, {"code": "BIENVENIDA", "discount": 10.0, "type": "PERCENTAGE"})
        fixed = await store_actions.validate_coupon("FIESTA5")
        self.assertEqual(fixed.data["discount"], 5.0)
        expired = await store_actions.validate_coupon("VENCIDO")
        self.assertEqual(expired.message, "Cupón inválido o expirado")

        created = await store_actions.create_coupon(SELLER, {"code": "verano", "discount": "7.50", "type": "FIXED"})
        self.assertTrue(created.success)
        self.assertEqual(created.data.discount, 750)
        duplicate = await store_actions.create_coupon(SELLER, {"code": "VERANO", "discount": 5, "type": "FIXED"})
        self.assertEqual(duplicate.message, "Este código ya existe")
        too_much = await store_actions.create_coupon(SELLER, {"code": "MEGA", "discount": 150, "type": "PERCENTAGE"})
        self.assertFalse(too_much.success)

    async def test_dashboard_action_fails_as_a_whole(self):
        ok = await report_actions.get_dashboard_stats(SELLER)
        self.assertTrue(ok.success)
        self.assertEqual(ok.data.orders_count, 2)

        with mock.patch.object(report_actions.reports, "_scalar", side_effect=RuntimeError("io")):
            with self.assertLogs("actions.result", level="ERROR"):
                failed = await report_actions.get_dashboard_stats(SELLER)
        self.assertFalse(failed.success)
        self.assertEqual(failed.message, "Error al calcular estadísticas")
        self.assertIsNone(failed.data)


if __name__ == "__main__":
    unittest.main()
