import asyncio
import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import catalog  # noqa: E402
from db import database as db_database  # noqa: E402
from db.models import Division, Identity, Role  # noqa: E402

ADMIN = Identity(user_id=900, role=Role.ADMIN)
SELLER = Identity(user_id=3, role=Role.SELLER)
LUCIA = Identity(user_id=1, role=Role.USER)
DIEGO = Identity(user_id=2, role=Role.USER)

PAID_ORDER_ID = "5f0c2a1e-8b7d-4c33-9a51-0d6c1f2b3a10"
PENDING_ORDER_ID = "9b4e7d20-1f3a-4e8c-b2d6-7a5c3e9f1b22"


class DbTestCase(unittest.IsolatedAsyncioTestCase):
    """Each test gets a fresh seeded database in a temporary directory."""

    def setUp(self):
        # Point the DB to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.DB_PATH = self.db_path
        db_database._initialized = False
        db_database._init_lock = asyncio.Lock()
        catalog.invalidate_catalog()

    async def asyncSetUp(self):
        # Touch initialization by opening a connection
        async with db_database.connect() as conn:
            await conn.execute(
                "INSERT INTO users (id, name, email, role) VALUES (?, 'Admin', 'admin@test.pe', 'ADMIN');",
                (ADMIN.user_id,),
            )

    def tearDown(self):
        catalog.invalidate_catalog()
        self.temp_dir.cleanup()

    async def stock_of(self, product_id: int) -> int:
        async with db_database.connect() as conn:
            row = await db_database.fetch_one(
                conn, "SELECT stock FROM products WHERE id = ?;", (product_id,)
            )
        return row["stock"]

    async def make_product(self, title: str, price: str, stock: int, **extra):
        """Create a JUGUETERIA product in category 1 and return it."""
        data = {
            "title": title,
            "slug": extra.pop("slug", title.lower().replace(" ", "-")),
            "description": f"{title} de prueba",
            "price": price,
            "stock": stock,
            "category_id": 1,
            "division": Division.JUGUETERIA,
            "images": ["https://example.com/img.jpg"],
        }
        data.update(extra)
        return await catalog.save_product(data)
