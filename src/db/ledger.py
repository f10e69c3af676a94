# order ledger: checkout pipeline plus read-only order and sales projections
from __future__ import annotations

import random
import re
import sqlite3
import string
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import aiosqlite

from db import catalog, models
from db.database import Database
from db.errors import (
    EmptyCart,
    Forbidden,
    MarketplaceError,
    NotFound,
    PersistenceFailure,
    ProductNoLongerAvailable,
    ValidationError,
)
from utils.auth import Identity, authorize
from utils.logger import get_logger
from utils.pure import MAX_CENTS, cents_to_money, utc_timestamp

_logger = get_logger(__name__)

ORDER_NUMBER_PREFIX = "ECO"
ORDER_NUMBER_PATTERN = re.compile(r"^ECO-\d{13,}-[A-Z0-9]{5}$")
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

REQUIRED_DELIVERY_FIELDS = ("full_name", "email", "phone", "delivery_address")

_ORDER_COLUMNS = """
    o.id, o.order_number, o.user_id, o.total_cents, o.status, o.customer_name,
    o.customer_email, o.customer_phone, o.delivery_address, o.delivery_notes,
    o.created_at, o.updated_at
"""


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """`ECO-<epoch millis>-<5 uppercase alphanumerics>`; uniqueness is enforced by the table."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=5))
    return f"{ORDER_NUMBER_PREFIX}-{now_ms}-{suffix}"


def validate_delivery(details: Optional[models.DeliveryDetails]) -> models.DeliveryDetails:
    """Trim the delivery details and reject any blank required field."""
    if details is None:
        raise ValidationError(
            "Delivery details are required.", REQUIRED_DELIVERY_FIELDS
        )
    cleaned = {
        name: (getattr(details, name) or "").strip()
        for name in REQUIRED_DELIVERY_FIELDS
    }
    missing = [name for name, value in cleaned.items() if not value]
    if missing:
        labels = ", ".join(name.replace("_", " ") for name in missing)
        raise ValidationError(f"Missing required field(s): {labels}.", missing)
    notes = (details.delivery_notes or "").strip() or None
    return models.DeliveryDetails(delivery_notes=notes, **cleaned)


def _row_to_order(row, offset: int = 0) -> models.Order:
    r = row[offset : offset + 12]
    return models.Order(
        oid=r[0],
        order_number=r[1],
        uid=r[2],
        total_amount=cents_to_money(r[3]),
        status=r[4],
        customer_name=r[5],
        customer_email=r[6],
        customer_phone=r[7],
        delivery_address=r[8],
        delivery_notes=r[9],
        created_at=r[10],
        updated_at=r[11],
    )


# ---------------------------
# Checkout
# ---------------------------


class CheckoutState(str, Enum):
    STARTED = "started"
    VALIDATED = "validated"
    PRICED = "priced"
    PERSISTED = "persisted"
    FINALIZED = "finalized"
    REJECTED = "rejected"


@dataclass(frozen=True)
class _CartSnapshot:
    line_id: int
    pid: int
    qty: int
    price_cents: int


class CheckoutPipeline:
    """
    Turns the caller's cart into an order, once.

    STARTED -> VALIDATED -> PRICED -> PERSISTED -> FINALIZED, or REJECTED
    from any gate. Validation touches nothing. Persist and finalize share one
    transaction: the order header, its lines, the sold flips and the cart
    wipe either all commit or none do.
    """

    def __init__(
        self,
        db: Database,
        identity: Optional[Identity],
        details: Optional[models.DeliveryDetails],
        order_number_attempts: int = 5,
    ) -> None:
        self.db = db
        self.identity = identity
        self.details = details
        self.order_number_attempts = max(1, order_number_attempts)
        self.state = CheckoutState.STARTED
        self.error: Optional[MarketplaceError] = None
        self.receipt: Optional[models.Receipt] = None

    def _advance(self, state: CheckoutState) -> None:
        _logger.debug(f"checkout {self.state.value} -> {state.value}")
        self.state = state

    async def run(self) -> models.Receipt:
        if self.state is not CheckoutState.STARTED:
            raise RuntimeError("A checkout pipeline can only run once.")
        try:
            me = authorize(self.identity)
            details = validate_delivery(self.details)
            async with self.db.user_lock(me.uid):
                lines = await self._validate_cart(me)
                self._advance(CheckoutState.VALIDATED)

                total_cents = sum(line.price_cents * line.qty for line in lines)
                if total_cents > MAX_CENTS:
                    raise ValidationError("Order total is too large.", ["quantity"])
                self._advance(CheckoutState.PRICED)

                self.receipt = await self._persist_and_finalize(
                    me, details, lines, total_cents
                )
        except MarketplaceError as exc:
            self.error = exc
            self._advance(CheckoutState.REJECTED)
            raise
        except BaseException:
            self._advance(CheckoutState.REJECTED)
            raise

        _logger.info(
            f"Order {self.receipt.order_number} placed by user {me.uid}: "
            f"{self.receipt.item_count} item(s), ${self.receipt.total_amount}"
        )
        return self.receipt

    async def _validate_cart(self, me: Identity) -> List[_CartSnapshot]:
        async with self.db.connect() as conn:
            cur = await conn.execute(
                """
                SELECT c.id, c.product_id, c.quantity, p.price_cents, p.status
                FROM cart c
                JOIN products p ON c.product_id = p.id
                WHERE c.user_id = ?
                ORDER BY c.id;
                """,
                (me.uid,),
            )
            rows = await cur.fetchall()
            await cur.close()

        if not rows:
            _logger.warning(f"user {me.uid} tried to check out an empty cart")
            raise EmptyCart("Your cart is empty.")
        lines = [
            _CartSnapshot(line_id=row[0], pid=row[1], qty=row[2], price_cents=row[3])
            for row in rows
            if row[4] == "available"
        ]
        if not lines:
            _logger.warning(f"user {me.uid} cart holds only sold listings")
            raise EmptyCart("Every item in your cart has already been sold.")
        return lines

    async def _insert_header(
        self,
        conn: aiosqlite.Connection,
        me: Identity,
        details: models.DeliveryDetails,
        total_cents: int,
        when: str,
    ) -> Tuple[int, str]:
        for attempt in range(1, self.order_number_attempts + 1):
            order_number = generate_order_number()
            try:
                cur = await conn.execute(
                    """
                    INSERT INTO orders(
                        order_number, user_id, total_cents, status, customer_name,
                        customer_email, customer_phone, delivery_address,
                        delivery_notes, created_at, updated_at
                    ) VALUES (?, ?, ?, 'completed', ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        order_number,
                        me.uid,
                        total_cents,
                        details.full_name,
                        details.email,
                        details.phone,
                        details.delivery_address,
                        details.delivery_notes,
                        when,
                        when,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if "order_number" not in str(exc):
                    raise
                _logger.warning(
                    f"order number {order_number} already taken (attempt {attempt})"
                )
                continue
            order_id = cur.lastrowid
            await cur.close()
            return order_id, order_number
        raise PersistenceFailure("Could not allocate a unique order number.")

    async def _persist_and_finalize(
        self,
        me: Identity,
        details: models.DeliveryDetails,
        lines: List[_CartSnapshot],
        total_cents: int,
    ) -> models.Receipt:
        async with self.db.transaction() as conn:
            order_id, order_number = await self._insert_header(
                conn, me, details, total_cents, utc_timestamp()
            )
            await conn.executemany(
                """
                INSERT INTO order_items(order_id, product_id, quantity, price_cents)
                VALUES (?, ?, ?, ?);
                """,
                [(order_id, line.pid, line.qty, line.price_cents) for line in lines],
            )
            self._advance(CheckoutState.PERSISTED)

            wanted = {line.pid for line in lines}
            lost = wanted - await catalog.mark_sold(conn, wanted)
            if lost:
                _logger.warning(f"user {me.uid} lost the race for product(s) {sorted(lost)}")
                raise ProductNoLongerAvailable(lost)
            await conn.execute("DELETE FROM cart WHERE user_id = ?;", (me.uid,))
        self._advance(CheckoutState.FINALIZED)

        return models.Receipt(
            order_id=order_id,
            order_number=order_number,
            total_amount=cents_to_money(total_cents),
            customer_name=details.full_name,
            delivery_address=details.delivery_address,
            item_count=len(lines),
        )


async def checkout(
    db: Database,
    identity: Optional[Identity],
    details: Optional[models.DeliveryDetails],
    order_number_attempts: int = 5,
) -> models.Receipt:
    """Run a fresh CheckoutPipeline and return its receipt."""
    return await CheckoutPipeline(db, identity, details, order_number_attempts).run()


# ---------------------------
# Orders (buyer side)
# ---------------------------


async def order_history(
    db: Database, identity: Optional[Identity]
) -> List[models.OrderSummary]:
    """The caller's orders, newest first, with item count and joined titles."""
    me = authorize(identity)
    async with db.connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_ORDER_COLUMNS},
                   COUNT(oi.id) AS item_count,
                   GROUP_CONCAT(p.title, ', ') AS product_titles
            FROM orders o
            LEFT JOIN order_items oi ON o.id = oi.order_id
            LEFT JOIN products p ON oi.product_id = p.id
            WHERE o.user_id = ?
            GROUP BY o.id
            ORDER BY o.created_at DESC, o.id DESC;
            """,
            (me.uid,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.OrderSummary(
            order=_row_to_order(row),
            item_count=int(row[12]),
            product_titles=row[13] or "",
        )
        for row in rows
    ]


async def order_detail(
    db: Database, identity: Optional[Identity], oid: int
) -> models.OrderDetail:
    """
    Header plus lines with seller info. Visible to the buyer and to admins;
    anyone else gets NotFound, same as for an unknown id.
    """
    me = authorize(identity)
    async with db.connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders o WHERE o.id = ?;", (oid,)
        )
        order_row = await cur.fetchone()
        await cur.close()
        if not order_row:
            raise NotFound(f"Order {oid} not found.")
        order = _row_to_order(order_row)
        try:
            authorize(me, owner_id=order.uid)
        except Forbidden:
            raise NotFound(f"Order {oid} not found.") from None

        cur = await conn.execute(
            """
            SELECT oi.id, oi.order_id, oi.product_id, oi.quantity, oi.price_cents,
                   p.title, p.description, p.image_url, u.username, u.full_name
            FROM order_items oi
            JOIN products p ON oi.product_id = p.id
            JOIN users u ON p.seller_id = u.id
            WHERE oi.order_id = ?
            ORDER BY oi.id;
            """,
            (oid,),
        )
        line_rows = await cur.fetchall()
        await cur.close()

    lines = [
        models.OrderDetailLine(
            line=models.OrderLine(
                line_id=row[0],
                oid=row[1],
                pid=row[2],
                qty=row[3],
                uprice=cents_to_money(row[4]),
            ),
            title=row[5],
            descr=row[6],
            image_url=row[7],
            seller_name=row[8],
            seller_full_name=row[9],
        )
        for row in line_rows
    ]
    return models.OrderDetail(order=order, lines=lines)


# ---------------------------
# Sales Reports (Seller / Admin)
# ---------------------------


async def sales_history(
    db: Database, identity: Optional[Identity]
) -> models.SalesHistory:
    """Every order line for the caller's listings, newest first, with buyer info."""
    me = authorize(identity, roles=("seller", "admin"))
    async with db.connect() as conn:
        cur = await conn.execute(
            """
            SELECT o.id, o.order_number, o.created_at, o.total_cents,
                   oi.product_id, p.title, oi.quantity, oi.price_cents,
                   u.username, u.full_name
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            JOIN users u ON o.user_id = u.id
            WHERE p.seller_id = ?
            ORDER BY o.created_at DESC, o.id DESC, oi.id;
            """,
            (me.uid,),
        )
        rows = await cur.fetchall()
        await cur.close()

    sales = [
        models.SaleRecord(
            oid=row[0],
            order_number=row[1],
            order_date=row[2],
            order_total=cents_to_money(row[3]),
            pid=row[4],
            title=row[5],
            qty=row[6],
            uprice=cents_to_money(row[7]),
            buyer_name=row[8],
            buyer_full_name=row[9],
        )
        for row in rows
    ]
    revenue_cents = sum(row[7] * row[6] for row in rows)
    return models.SalesHistory(sales=sales, total_revenue=cents_to_money(revenue_cents))


async def admin_overview(
    db: Database, identity: Optional[Identity], recent_limit: int = 10
) -> models.AdminOverview:
    """Platform-wide counts and the most recent orders. Admin only."""
    authorize(identity, roles=("admin",))
    async with db.connect() as conn:
        cur = await conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(total_cents), 0) FROM orders;"
        )
        totals = await cur.fetchone()
        await cur.close()

        cur = await conn.execute(
            """
            SELECT
                COALESCE(SUM(CASE WHEN status = 'sold' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN status = 'available' THEN 1 ELSE 0 END), 0)
            FROM products;
            """
        )
        stock = await cur.fetchone()
        await cur.close()

        cur = await conn.execute(
            f"""
            SELECT {_ORDER_COLUMNS}, u.username, u.full_name
            FROM orders o
            JOIN users u ON o.user_id = u.id
            ORDER BY o.created_at DESC, o.id DESC
            LIMIT ?;
            """,
            (max(recent_limit, 0),),
        )
        rows = await cur.fetchall()
        await cur.close()

    return models.AdminOverview(
        total_orders=int(totals[0]),
        total_revenue=cents_to_money(totals[1]),
        products_sold=int(stock[0]),
        products_available=int(stock[1]),
        recent_orders=[(_row_to_order(row), row[12], row[13]) for row in rows],
    )
