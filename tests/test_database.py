import gc
import os

from _support import MarketTestCase

from db.database import Database
from db.errors import NotFound, PersistenceFailure


class DatabaseTestCase(MarketTestCase):
    with_accounts = False

    async def test_open_creates_schema(self):
        tables = set()
        async with self.db.connect() as conn:
            cur = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table';")
            tables = {row[0] for row in await cur.fetchall()}
            await cur.close()
        self.assertTrue({"users", "products", "cart", "orders", "order_items"} <= tables)
        self.assertTrue(self.db.is_open)

    async def test_open_is_idempotent_and_survives_reopen(self):
        await self.db.open()
        async with self.db.connect() as conn:
            await conn.execute(
                "INSERT INTO users(username, email, pwd_hash, role, created_at) "
                "VALUES ('kim', 'kim@example.com', 'x', 'user', '2024-01-01T00:00:00.000+00:00');"
            )
        await self.db.close()
        self.assertFalse(self.db.is_open)

        again = Database(self.db_path)
        async with again:
            async with again.connect() as conn:
                cur = await conn.execute("SELECT COUNT(*) FROM users;")
                (count,) = await cur.fetchone()
                await cur.close()
        self.assertEqual(count, 1)

    async def test_open_creates_missing_folder(self):
        nested = os.path.join(self.temp_dir.name, "a", "b", "market.sqlite")
        db = Database(nested)
        await db.open()
        await db.close()
        self.assertTrue(os.path.exists(nested))

    async def test_connect_requires_open(self):
        closed = Database(os.path.join(self.temp_dir.name, "closed.sqlite"))
        with self.assertRaises(PersistenceFailure):
            async with closed.connect():
                pass

    async def test_foreign_keys_enforced(self):
        with self.assertRaises(PersistenceFailure):
            async with self.db.connect() as conn:
                await conn.execute(
                    "INSERT INTO products(title, price_cents, seller_id, created_at) "
                    "VALUES ('orphan', 100, 999, '2024-01-01T00:00:00.000+00:00');"
                )

    async def test_transaction_commits(self):
        async with self.db.transaction() as conn:
            await conn.execute(
                "INSERT INTO users(username, email, pwd_hash, role, created_at) "
                "VALUES ('kim', 'kim@example.com', 'x', 'user', '2024-01-01T00:00:00.000+00:00');"
            )
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM users;"), 1)

    async def test_transaction_rolls_back_on_domain_error(self):
        with self.assertRaises(NotFound):
            async with self.db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO users(username, email, pwd_hash, role, created_at) "
                    "VALUES ('kim', 'kim@example.com', 'x', 'user', '2024-01-01T00:00:00.000+00:00');"
                )
                raise NotFound("gone")
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM users;"), 0)

    async def test_transaction_storage_error_becomes_persistence_failure(self):
        with self.assertRaises(PersistenceFailure):
            async with self.db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO users(username, email, pwd_hash, role, created_at) "
                    "VALUES ('kim', 'kim@example.com', 'x', 'user', '2024-01-01T00:00:00.000+00:00');"
                )
                await conn.execute("INSERT INTO no_such_table VALUES (1);")
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM users;"), 0)

    async def test_unbindable_integer_becomes_persistence_failure(self):
        with self.assertRaises(PersistenceFailure):
            async with self.db.connect() as conn:
                await conn.execute("SELECT ?;", (10**19,))

    async def test_user_lock_is_per_user(self):
        self.assertIs(self.db.user_lock(1), self.db.user_lock(1))
        self.assertIsNot(self.db.user_lock(1), self.db.user_lock(2))

    async def test_user_lock_released_when_unused(self):
        lock = self.db.user_lock(5)
        async with lock:
            self.assertIn(5, self.db._user_locks)
        del lock
        gc.collect()
        self.assertNotIn(5, self.db._user_locks)

