import unittest
from decimal import Decimal

from helpers import ADMIN, DbTestCase

from db import store
from db.errors import ConflictError, NotFoundError
from db.models import CouponType, Division
from utils.state import AdminState


class StoreConfigTestCase(DbTestCase):
    async def test_defaults_until_saved(self):
        config = await store.get_store_config()
        self.assertEqual(config, store.DEFAULT_STORE_CONFIG)

    async def test_partial_update_keeps_other_fields(self):
        await store.update_store_config({"local_delivery_price": Decimal("8.00"), "hero_title": "Cumpleaños"})
        config = await store.update_store_config({"welcome_message": "Bienvenidos"})
        self.assertEqual(config["local_delivery_price"], Decimal("8.00"))
        self.assertEqual(config["hero_title"], "Cumpleaños")
        self.assertEqual(config["welcome_message"], "Bienvenidos")
        self.assertEqual(config["hero_btn_color"], "#fb3099")


class CouponTestCase(DbTestCase):
    async def test_active_coupons_only(self):
        self.assertEqual((await store.get_active_coupon(" fiesta5 ")).discount, 500)
        self.assertIsNone(await store.get_active_coupon("VENCIDO"))
        self.assertIsNone(await store.get_active_coupon("NADA"))

    async def test_create_list_delete(self):
        coupon = await store.create_coupon("navidad", 15, CouponType.PERCENTAGE)
        self.assertEqual(coupon.code, "NAVIDAD")
        self.assertIn("NAVIDAD", [c.code for c in await store.list_coupons()])
        with self.assertRaises(ConflictError):
            await store.create_coupon("NAVIDAD", 10, CouponType.PERCENTAGE)
        await store.delete_coupon(coupon.id)
        with self.assertRaises(NotFoundError):
            await store.delete_coupon(coupon.id)

    async def test_apply_coupon(self):
        percent = await store.get_active_coupon("BIENVENIDA")
        fixed = await store.get_active_coupon("FIESTA5")
        self.assertEqual(store.apply_coupon(Decimal("25.50"), percent), Decimal("22.95"))
        self.assertEqual(store.apply_coupon(Decimal("25.50"), fixed), Decimal("20.50"))
        self.assertEqual(store.apply_coupon(Decimal("3.00"), fixed), Decimal("0.00"))


class AdminStateTestCase(DbTestCase):
    async def test_division_persists_per_admin(self):
        state = AdminState(identity=ADMIN, name="Admin")
        self.assertEqual(await state.load_division(), Division.JUGUETERIA)
        self.assertTrue(await state.switch_division(Division.FIESTAS))
        self.assertEqual(state.division, Division.FIESTAS)

        fresh = AdminState(identity=ADMIN)
        self.assertEqual(await fresh.load_division(), Division.FIESTAS)

        fresh.clear()
        self.assertFalse(fresh.logged_in)
        self.assertEqual(fresh.division, Division.JUGUETERIA)


if __name__ == "__main__":
    unittest.main()
