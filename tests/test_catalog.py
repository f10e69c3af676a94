from decimal import Decimal

from _support import MarketTestCase

from db import catalog
from db.errors import NotFound, ValidationError
from db.seed import create_product


class CatalogTestCase(MarketTestCase):
    async def test_get_product_and_availability(self):
        pid = await self.add_product("Desk Lamp", "19.995")
        product = await catalog.get_product(self.db, pid)
        self.assertEqual(product.title, "Desk Lamp")
        # rounded half up on the way in
        self.assertEqual(product.price, Decimal("20.00"))
        self.assertEqual(product.seller_id, self.seller_id)
        self.assertEqual(product.views, 0)

        avail = await catalog.get_availability(self.db, pid)
        self.assertTrue(avail.is_available)
        self.assertEqual(avail.price, Decimal("20.00"))

        with self.assertRaises(NotFound):
            await catalog.get_product(self.db, 424242)
        with self.assertRaises(NotFound):
            await catalog.get_availability(self.db, 424242)

    async def test_invalid_price_rejected(self):
        with self.assertRaises(ValidationError):
            await create_product(self.db, self.seller_id, "Bad", "abc")
        with self.assertRaises(ValidationError):
            await create_product(self.db, self.seller_id, "Bad", "-1.00")

    async def test_mark_sold_is_conditional_and_idempotent(self):
        a = await self.add_product("A")
        b = await self.add_product("B")

        self.assertEqual(await catalog.mark_sold_now(self.db, [a]), {a})
        self.assertEqual(await catalog.mark_sold_now(self.db, [a, b, b]), {b})
        self.assertEqual(await catalog.mark_sold_now(self.db, [a, b]), set())
        self.assertEqual(await catalog.mark_sold_now(self.db, []), set())

        self.assertFalse((await catalog.get_availability(self.db, a)).is_available)
        self.assertEqual(await self.product_status(b), "sold")

    async def test_list_available_products(self):
        first = await self.add_product("Oak Table")
        second = await self.add_product("Blue Vase")
        sold = await self.add_product("Old Radio", status="sold")
        own = await self.add_product("Buyer Bike", seller_id=self.buyer_id)

        listed = [p.pid for p in await catalog.list_available_products(self.db)]
        self.assertEqual(listed, [own, second, first])
        self.assertNotIn(sold, listed)

        listed = [
            p.pid
            for p in await catalog.list_available_products(
                self.db, exclude_seller=self.buyer_id
            )
        ]
        self.assertEqual(listed, [second, first])

        found = await catalog.list_available_products(self.db, query="  VASE ")
        self.assertEqual([p.pid for p in found], [second])
        # description and category are searched too
        found = await catalog.list_available_products(self.db, query="used oak")
        self.assertEqual([p.pid for p in found], [first])
        self.assertEqual(len(await catalog.list_available_products(self.db, query="misc")), 3)

    async def test_record_view(self):
        pid = await self.add_product()
        await catalog.record_view(self.db, pid)
        await catalog.record_view(self.db, pid)
        self.assertEqual((await catalog.get_product(self.db, pid)).views, 2)
        with self.assertRaises(NotFound):
            await catalog.record_view(self.db, 424242)
