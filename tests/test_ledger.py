import asyncio
import sqlite3
from decimal import Decimal
from unittest import mock

from _support import MarketTestCase, delivery

from db import cart, catalog, ledger
from db.errors import (
    EmptyCart,
    PersistenceFailure,
    ProductNoLongerAvailable,
    Unauthorized,
    ValidationError,
)
from db.ledger import CheckoutPipeline, CheckoutState


class CheckoutTestCase(MarketTestCase):
    # ---------- happy path ----------

    async def test_checkout_scenario_two_lines(self):
        jacket = await self.add_product("Vintage Leather Jacket", "89.99")
        mugs = await self.add_product("Coffee Mugs", "20.00")
        await cart.add_item(self.db, self.buyer, jacket, 1)
        await cart.add_item(self.db, self.buyer, mugs, 2)

        receipt = await ledger.checkout(self.db, self.buyer, delivery())

        self.assertEqual(receipt.total_amount, Decimal("129.99"))
        self.assertEqual(receipt.item_count, 2)
        self.assertEqual(receipt.customer_name, "Jane Doe")
        self.assertEqual(receipt.delivery_address, "789 User Blvd")
        self.assertRegex(receipt.order_number, r"^ECO-\d+-[A-Z0-9]{5}$")

        detail = await ledger.order_detail(self.db, self.buyer, receipt.order_id)
        self.assertEqual(len(detail.lines), 2)
        self.assertEqual(
            sum(ln.line.uprice * ln.line.qty for ln in detail.lines),
            receipt.total_amount,
        )
        self.assertEqual(detail.order.total_amount, receipt.total_amount)
        self.assertEqual(detail.order.status, "completed")

        self.assertEqual(await self.product_status(jacket), "sold")
        self.assertEqual(await self.product_status(mugs), "sold")
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 0)

    async def test_pipeline_walks_every_state(self):
        pid = await self.add_product()
        await cart.add_item(self.db, self.buyer, pid)
        pipeline = CheckoutPipeline(self.db, self.buyer, delivery())
        self.assertIs(pipeline.state, CheckoutState.STARTED)

        seen = []
        original = pipeline._advance

        def record(state):
            seen.append(state)
            original(state)

        pipeline._advance = record
        receipt = await pipeline.run()

        self.assertEqual(
            seen,
            [
                CheckoutState.VALIDATED,
                CheckoutState.PRICED,
                CheckoutState.PERSISTED,
                CheckoutState.FINALIZED,
            ],
        )
        self.assertIs(pipeline.receipt, receipt)
        self.assertIsNone(pipeline.error)
        with self.assertRaises(RuntimeError):
            await pipeline.run()

    async def test_price_is_frozen_at_checkout(self):
        pid = await self.add_product("Lamp", "15.50")
        await cart.add_item(self.db, self.buyer, pid)
        receipt = await ledger.checkout(self.db, self.buyer, delivery())

        async with self.db.connect() as conn:
            await conn.execute("UPDATE products SET price_cents = 99999 WHERE id = ?;", (pid,))

        detail = await ledger.order_detail(self.db, self.buyer, receipt.order_id)
        self.assertEqual(detail.lines[0].line.uprice, Decimal("15.50"))
        self.assertEqual(detail.order.total_amount, Decimal("15.50"))

    async def test_notes_are_optional_and_fields_trimmed(self):
        pid = await self.add_product()
        await cart.add_item(self.db, self.buyer, pid)
        receipt = await ledger.checkout(
            self.db,
            self.buyer,
            delivery(full_name="  Jane Doe ", delivery_notes="   "),
        )
        detail = await ledger.order_detail(self.db, self.buyer, receipt.order_id)
        self.assertEqual(detail.order.customer_name, "Jane Doe")
        self.assertIsNone(detail.order.delivery_notes)

    # ---------- rejections without side effects ----------

    async def test_missing_field_rejected_before_cart_is_read(self):
        pid = await self.add_product()
        await cart.add_item(self.db, self.buyer, pid)

        with mock.patch.object(
            CheckoutPipeline, "_validate_cart", new_callable=mock.AsyncMock
        ) as validate_cart:
            pipeline = CheckoutPipeline(self.db, self.buyer, delivery(delivery_address=""))
            with self.assertRaises(ValidationError) as ctx:
                await pipeline.run()
            validate_cart.assert_not_called()

        self.assertEqual(ctx.exception.fields, ("delivery_address",))
        self.assertIs(pipeline.state, CheckoutState.REJECTED)
        self.assertEqual(await self.order_count(), 0)
        self.assertEqual(await self.product_status(pid), "available")
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 1)

    async def test_blank_fields_listed(self):
        with self.assertRaises(ValidationError) as ctx:
            await ledger.checkout(
                self.db, self.buyer, delivery(full_name=" ", phone="", email=None)
            )
        self.assertEqual(set(ctx.exception.fields), {"full_name", "phone", "email"})

        with self.assertRaises(ValidationError):
            await ledger.checkout(self.db, self.buyer, None)

    async def test_unauthenticated_checkout(self):
        with self.assertRaises(Unauthorized):
            await ledger.checkout(self.db, None, delivery())

    async def test_empty_cart(self):
        pipeline = CheckoutPipeline(self.db, self.buyer, delivery())
        with self.assertRaises(EmptyCart) as ctx:
            await pipeline.run()
        self.assertIn("empty", ctx.exception.message)
        self.assertIs(pipeline.state, CheckoutState.REJECTED)
        self.assertIs(pipeline.error, ctx.exception)
        self.assertEqual(await self.order_count(), 0)

    async def test_cart_with_only_sold_listings_is_empty(self):
        pid = await self.add_product()
        await cart.add_item(self.db, self.buyer, pid)
        await catalog.mark_sold_now(self.db, [pid])

        with self.assertRaises(EmptyCart) as ctx:
            await ledger.checkout(self.db, self.buyer, delivery())
        self.assertIn("sold", ctx.exception.message)
        self.assertEqual(await self.order_count(), 0)
        # stale line is left in place
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 1)

    async def test_stale_lines_are_excluded_from_order(self):
        keep = await self.add_product("Keep", "12.00")
        gone = await self.add_product("Gone", "30.00")
        await cart.add_item(self.db, self.buyer, keep)
        await cart.add_item(self.db, self.buyer, gone)
        await catalog.mark_sold_now(self.db, [gone])

        receipt = await ledger.checkout(self.db, self.buyer, delivery())
        self.assertEqual(receipt.item_count, 1)
        self.assertEqual(receipt.total_amount, Decimal("12.00"))
        detail = await ledger.order_detail(self.db, self.buyer, receipt.order_id)
        self.assertEqual([ln.line.pid for ln in detail.lines], [keep])
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 0)

    # ---------- races ----------

    async def test_lost_race_rolls_back_everything(self):
        contested = await self.add_product("Contested", "50.00")
        spare = await self.add_product("Spare", "5.00")
        await cart.add_item(self.db, self.buyer, contested)
        await cart.add_item(self.db, self.buyer, spare)

        pipeline = CheckoutPipeline(self.db, self.buyer, delivery())
        validate = pipeline._validate_cart

        async def validate_then_lose(me):
            lines = await validate(me)
            # someone else buys it between snapshot and commit
            await catalog.mark_sold_now(self.db, [contested])
            return lines

        pipeline._validate_cart = validate_then_lose
        with self.assertRaises(ProductNoLongerAvailable) as ctx:
            await pipeline.run()

        self.assertEqual(ctx.exception.product_ids, (contested,))
        self.assertIs(pipeline.state, CheckoutState.REJECTED)
        self.assertEqual(await self.order_count(), 0)
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM order_items;"), 0)
        self.assertEqual(await self.product_status(spare), "available")
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 2)

        # retrying with the refreshed cart buys what is left
        receipt = await ledger.checkout(self.db, self.buyer, delivery())
        self.assertEqual(receipt.total_amount, Decimal("5.00"))

    async def test_concurrent_checkouts_sell_once(self):
        pid = await self.add_product("Only One", "40.00")
        await cart.add_item(self.db, self.buyer, pid)
        await cart.add_item(self.db, self.other, pid)

        results = await asyncio.gather(
            ledger.checkout(self.db, self.buyer, delivery()),
            ledger.checkout(self.db, self.other, delivery(full_name="Olly")),
            return_exceptions=True,
        )

        receipts = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(receipts), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], (ProductNoLongerAvailable, EmptyCart))

        self.assertEqual(await self.product_status(pid), "sold")
        self.assertEqual(await self.order_count(), 1)
        self.assertEqual(
            await self.scalar("SELECT COUNT(*) FROM order_items WHERE product_id = ?;", (pid,)),
            1,
        )

    async def test_same_user_double_submit(self):
        pid = await self.add_product()
        await cart.add_item(self.db, self.buyer, pid)

        results = await asyncio.gather(
            ledger.checkout(self.db, self.buyer, delivery()),
            ledger.checkout(self.db, self.buyer, delivery()),
            return_exceptions=True,
        )
        self.assertEqual(sum(1 for r in results if isinstance(r, EmptyCart)), 1)
        self.assertEqual(await self.order_count(), 1)

    # ---------- storage faults ----------

    async def test_total_beyond_integer_cents_rejected(self):
        first = await self.add_product("Jacket", "89.99")
        second = await self.add_product("Coat", "89.99")
        # each line fits in integer cents, their sum does not
        await cart.add_item(self.db, self.buyer, first, 10**15)
        await cart.add_item(self.db, self.buyer, second, 10**15)

        with self.assertRaises(ValidationError) as ctx:
            await ledger.checkout(self.db, self.buyer, delivery())
        self.assertEqual(ctx.exception.fields, ("quantity",))
        self.assertEqual(await self.order_count(), 0)
        self.assertEqual(await self.product_status(first), "available")

    async def test_unbindable_total_surfaces_as_persistence_failure(self):
        first = await self.add_product("Jacket", "89.99")
        second = await self.add_product("Coat", "89.99")
        await cart.add_item(self.db, self.buyer, first, 10**15)
        await cart.add_item(self.db, self.buyer, second, 10**15)

        with mock.patch.object(ledger, "MAX_CENTS", 10**30):
            with self.assertRaises(PersistenceFailure):
                await ledger.checkout(self.db, self.buyer, delivery())

        self.assertEqual(await self.order_count(), 0)
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM order_items;"), 0)
        self.assertEqual(await self.product_status(second), "available")
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 2)

    async def test_storage_fault_rolls_back(self):
        pid = await self.add_product()
        await cart.add_item(self.db, self.buyer, pid)

        with mock.patch(
            "db.catalog.mark_sold",
            new=mock.AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error")),
        ):
            with self.assertRaises(PersistenceFailure):
                await ledger.checkout(self.db, self.buyer, delivery())

        self.assertEqual(await self.order_count(), 0)
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM order_items;"), 0)
        self.assertEqual(await self.product_status(pid), "available")
        self.assertEqual(await cart.cart_count(self.db, self.buyer), 1)

        # nothing committed, so the same checkout can simply be retried
        receipt = await ledger.checkout(self.db, self.buyer, delivery())
        self.assertEqual(receipt.item_count, 1)

    async def test_order_number_collision_is_retried(self):
        first = await self.add_product("First")
        second = await self.add_product("Second")

        await cart.add_item(self.db, self.buyer, first)
        with mock.patch.object(
            ledger, "generate_order_number", return_value="ECO-1700000000000-AAAAA"
        ):
            await ledger.checkout(self.db, self.buyer, delivery())

        await cart.add_item(self.db, self.other, second)
        with mock.patch.object(
            ledger,
            "generate_order_number",
            side_effect=["ECO-1700000000000-AAAAA", "ECO-1700000000001-BBBBB"],
        ) as gen:
            receipt = await ledger.checkout(self.db, self.other, delivery())

        self.assertEqual(gen.call_count, 2)
        self.assertEqual(receipt.order_number, "ECO-1700000000001-BBBBB")
        self.assertEqual(await self.order_count(), 2)

    async def test_order_number_attempts_exhausted(self):
        first = await self.add_product("First")
        second = await self.add_product("Second")
        await cart.add_item(self.db, self.buyer, first)
        await cart.add_item(self.db, self.other, second)

        with mock.patch.object(
            ledger, "generate_order_number", return_value="ECO-1700000000000-AAAAA"
        ):
            await ledger.checkout(self.db, self.buyer, delivery())
            with self.assertRaises(PersistenceFailure):
                await ledger.checkout(
                    self.db, self.other, delivery(), order_number_attempts=3
                )

        self.assertEqual(await self.order_count(), 1)
        self.assertEqual(await self.product_status(second), "available")


class OrderNumberTestCase(MarketTestCase):
    with_accounts = False

    async def test_generated_shape(self):
        number = ledger.generate_order_number(1700000000123)
        self.assertTrue(number.startswith("ECO-1700000000123-"))
        self.assertRegex(number, ledger.ORDER_NUMBER_PATTERN)
        self.assertRegex(ledger.generate_order_number(), ledger.ORDER_NUMBER_PATTERN)

    async def test_generated_numbers_differ(self):
        numbers = {ledger.generate_order_number(1) for _ in range(50)}
        self.assertGreater(len(numbers), 45)
