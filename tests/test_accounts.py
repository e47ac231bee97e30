import asyncio
import unittest

from helpers import ADMIN, DIEGO, LUCIA, SELLER, DbTestCase

from db import accounts
from db.database import connect, fetch_one
from db.errors import ConflictError, NotFoundError, Unauthorized, ValidationError
from db.models import DEFAULT_DIVISION, Division, Identity, Role

ADDRESS = {
    "first_name": "Lucía",
    "last_name": "Ramos",
    "address": "Av. Larco 123",
    "phone": "987654321",
    "department": "Lima",
    "province": "Lima",
    "district": "Miraflores",
}


class AccountsTestCase(DbTestCase):
    # ---------- Auth & registration ----------

    async def test_register_and_authenticate(self):
        self.assertFalse(await accounts.email_available("LUCIA@example.com"))
        self.assertTrue(await accounts.email_available("nuevo@example.com"))

        user = await accounts.register_user("Nuevo Cliente", " Nuevo@Example.com ", "secreto1")
        self.assertEqual(user.email, "nuevo@example.com")
        self.assertEqual(user.role, Role.USER)
        self.assertNotEqual(user.password, "secreto1")

        identity = await accounts.authenticate("NUEVO@example.com", "secreto1")
        self.assertEqual(identity, Identity(user.id, Role.USER))
        self.assertIsNone(await accounts.authenticate("nuevo@example.com", "otra"))
        # seeded accounts have no password and cannot sign in with one
        self.assertIsNone(await accounts.authenticate("lucia@example.com", ""))

        with self.assertRaises(ConflictError):
            await accounts.register_user("Otra", "nuevo@example.com", "secreto2")

    async def test_ensure_admin_is_idempotent(self):
        first = await accounts.ensure_admin("Jefa", "jefa@festamas.pe", "clave123")
        second = await accounts.ensure_admin("Otra", "JEFA@festamas.pe", "otra-clave")
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.name, "Jefa")
        identity = await accounts.authenticate("jefa@festamas.pe", "clave123")
        self.assertTrue(identity.is_staff)
        self.assertEqual(identity.role, Role.ADMIN)

    def test_role_guards(self):
        with self.assertRaises(Unauthorized):
            accounts.require_identity(None)
        with self.assertRaises(Unauthorized):
            accounts.require_staff(LUCIA)
        self.assertIs(accounts.require_staff(SELLER), SELLER)
        with self.assertRaises(Unauthorized):
            accounts.require_admin(SELLER)
        self.assertIs(accounts.require_admin(ADMIN), ADMIN)

    # ---------- Addresses ----------

    async def test_address_create_then_update(self):
        address, created = await accounts.set_user_address(LUCIA, ADDRESS)
        self.assertTrue(created)
        self.assertEqual(address.user_id, LUCIA.user_id)
        self.assertEqual(address.city, "Miraflores")
        self.assertEqual(address.province, "Lima - Lima")
        self.assertEqual(address.country, "Perú")

        updated, created = await accounts.set_user_address(LUCIA, {**ADDRESS, "address": "Jr. Union 456"})
        self.assertFalse(created)
        self.assertEqual(updated.id, address.id)
        self.assertEqual(updated.address, "Jr. Union 456")

    async def test_address_isolation_between_users(self):
        lucia_address, _ = await accounts.set_user_address(LUCIA, ADDRESS)
        self.assertIsNone(await accounts.get_user_address(DIEGO))

        with self.assertRaises(NotFoundError):
            await accounts.delete_user_address(DIEGO, lucia_address.id)
        self.assertIsNotNone(await accounts.get_user_address(LUCIA))

        # Diego's own upsert never touches Lucía's row
        diego_address, created = await accounts.set_user_address(DIEGO, {**ADDRESS, "first_name": "Diego"})
        self.assertTrue(created)
        self.assertNotEqual(diego_address.id, lucia_address.id)
        self.assertEqual((await accounts.get_user_address(LUCIA)).first_name, "Lucía")

        await accounts.delete_user_address(LUCIA, lucia_address.id)
        self.assertIsNone(await accounts.get_user_address(LUCIA))

        with self.assertRaises(Unauthorized):
            await accounts.get_user_address(None)

    async def test_concurrent_address_saves_keep_one_row(self):
        results = await asyncio.gather(
            *(
                accounts.set_user_address(LUCIA, {**ADDRESS, "address": f"Av. Larco {n}"})
                for n in range(5)
            )
        )
        self.assertEqual(sum(created for _, created in results), 1)
        self.assertEqual(len({address.id for address, _ in results}), 1)

        async with connect() as conn:
            row = await fetch_one(
                conn, "SELECT COUNT(*) FROM addresses WHERE user_id = ?;", (LUCIA.user_id,)
            )
        self.assertEqual(row[0], 1)

    def test_derive_location(self):
        self.assertEqual(
            accounts.derive_location({"department": "Cusco", "province": "Urubamba", "district": "Ollantaytambo"}),
            {"city": "Ollantaytambo", "province": "Cusco - Urubamba"},
        )
        self.assertEqual(
            accounts.derive_location({"province": "Lima - Lima", "city": "Lima"}),
            {"city": "Lima", "province": "Lima - Lima"},
        )

    # ---------- Staff & customers ----------

    async def test_staff_management(self):
        staff = await accounts.list_staff()
        self.assertEqual({u.id for u in staff}, {ADMIN.user_id, SELLER.user_id})

        with self.assertRaises(ValidationError):
            await accounts.save_staff_user({"name": "Sin Clave", "email": "x@festamas.pe"})

        seller = await accounts.save_staff_user(
            {"name": "Caja Dos", "email": "caja2@festamas.pe", "password": "caja123", "role": "SELLER"}
        )
        old_hash = seller.password
        edited = await accounts.save_staff_user(
            {"name": "Caja 2", "email": "caja2@festamas.pe", "password": "", "role": "ADMIN"}, seller.id
        )
        self.assertEqual(edited.role, Role.ADMIN)
        self.assertEqual(edited.password, old_hash)

        with self.assertRaises(ConflictError):
            await accounts.save_staff_user(
                {"name": "Copia", "email": "caja2@festamas.pe", "password": "x"}
            )

        await accounts.delete_user(seller.id)
        self.assertIsNone(await accounts.get_user(seller.id))
        with self.assertRaises(NotFoundError):
            await accounts.delete_user(seller.id)

    async def test_search_customers(self):
        self.assertEqual(await accounts.search_customers("lu"), [])
        found = await accounts.search_customers("LUC")
        self.assertEqual([u.id for u in found], [1])
        # staff are never returned as customers
        self.assertEqual(await accounts.search_customers("vendedor"), [])
        # LIKE wildcards are matched literally
        self.assertEqual(await accounts.search_customers("%%%"), [])
        self.assertEqual(await accounts.search_customers("___"), [])

    async def test_reset_password_and_profile(self):
        await accounts.admin_reset_password(2, "nueva123")
        self.assertIsNotNone(await accounts.authenticate("diego@example.com", "nueva123"))

        user = await accounts.update_customer_profile(2, "Diego S.", "DIEGO.S@example.com")
        self.assertEqual(user.email, "diego.s@example.com")
        with self.assertRaises(ConflictError):
            await accounts.update_customer_profile(2, "Diego", "lucia@example.com")
        with self.assertRaises(NotFoundError):
            await accounts.admin_reset_password(424242, "x")

    # ---------- Division preference ----------

    async def test_division_preference(self):
        self.assertEqual(await accounts.get_admin_division(ADMIN.user_id), DEFAULT_DIVISION)
        await accounts.set_admin_division(ADMIN.user_id, Division.FIESTAS)
        self.assertEqual(await accounts.get_admin_division(ADMIN.user_id), Division.FIESTAS)
        await accounts.set_admin_division(ADMIN.user_id, Division.JUGUETERIA)
        self.assertEqual(await accounts.get_admin_division(ADMIN.user_id), Division.JUGUETERIA)

    async def test_unknown_stored_division_falls_back(self):
        async with connect() as conn:
            await conn.execute(
                "INSERT INTO admin_preferences (user_id, key, value) VALUES (?, ?, 'ROPA');",
                (ADMIN.user_id, accounts.DIVISION_PREF_KEY),
            )
        self.assertEqual(await accounts.get_admin_division(ADMIN.user_id), DEFAULT_DIVISION)


if __name__ == "__main__":
    unittest.main()
