# cart store: per-user product -> quantity lines
from __future__ import annotations

from typing import Optional

from db import models
from db.database import Database
from db.errors import NotFound, SelfPurchase, Unavailable, ValidationError
from utils.auth import Identity, authorize
from utils.logger import get_logger
from utils.pure import MAX_CENTS, cents_to_money, utc_timestamp

_logger = get_logger(__name__)


def _to_int(val) -> Optional[int]:
    if isinstance(val, bool):
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def _check_line_total(price_cents: int, quantity: int) -> None:
    # a free listing still stores its quantity in an INTEGER column
    if max(price_cents, 1) * quantity > MAX_CENTS:
        raise ValidationError("Quantity is too large.", ["quantity"])


async def _fetch_line(conn, uid: int, line_id: int) -> Optional[models.CartLine]:
    cur = await conn.execute(
        "SELECT id, user_id, product_id, quantity FROM cart WHERE id = ? AND user_id = ?;",
        (line_id, uid),
    )
    row = await cur.fetchone()
    await cur.close()
    if not row:
        return None
    return models.CartLine(line_id=row[0], uid=row[1], pid=row[2], qty=row[3])


async def add_item(
    db: Database, identity: Optional[Identity], pid: int, qty=1
) -> models.CartLine:
    """
    Put a listing in the caller's cart, or bump the quantity if it is already there.

    Raises NotFound for an unknown listing, Unavailable once it has been sold
    and SelfPurchase when the caller is the seller. Quantity is only bounded
    by the line total having to fit in integer cents (ValidationError).
    """
    me = authorize(identity)
    quantity = _to_int(qty)
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be a whole number of at least 1.", ["quantity"])

    async with db.user_lock(me.uid):
        async with db.transaction() as conn:
            cur = await conn.execute(
                "SELECT seller_id, status, price_cents FROM products WHERE id = ?;", (pid,)
            )
            row = await cur.fetchone()
            await cur.close()
            if not row:
                raise NotFound(f"Product {pid} not found.")
            if row[1] != "available":
                raise Unavailable(f"Product {pid} is no longer available.")
            if row[0] == me.uid:
                raise SelfPurchase("You cannot add your own listing to your cart.")

            cur = await conn.execute(
                "SELECT quantity FROM cart WHERE user_id = ? AND product_id = ?;",
                (me.uid, pid),
            )
            existing = await cur.fetchone()
            await cur.close()
            _check_line_total(row[2], quantity + (existing[0] if existing else 0))

            await conn.execute(
                """
                INSERT INTO cart(user_id, product_id, quantity, added_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, product_id)
                DO UPDATE SET quantity = quantity + excluded.quantity;
                """,
                (me.uid, pid, quantity, utc_timestamp()),
            )
            cur = await conn.execute(
                "SELECT id, user_id, product_id, quantity FROM cart WHERE user_id = ? AND product_id = ?;",
                (me.uid, pid),
            )
            row = await cur.fetchone()
            await cur.close()

    _logger.debug(f"user {me.uid} cart: product {pid} -> qty {row[3]}")
    return models.CartLine(line_id=row[0], uid=row[1], pid=row[2], qty=row[3])


async def update_quantity(
    db: Database, identity: Optional[Identity], line_id: int, qty
) -> Optional[models.CartLine]:
    """
    Set a line's quantity. A quantity below 1 removes the line and returns None.
    NotFound if the line does not belong to the caller.
    """
    me = authorize(identity)
    quantity = _to_int(qty)
    if quantity is None:
        raise ValidationError("Quantity must be a whole number.", ["quantity"])

    async with db.user_lock(me.uid):
        async with db.transaction() as conn:
            line = await _fetch_line(conn, me.uid, line_id)
            if line is None:
                raise NotFound(f"Cart item {line_id} not found.")
            if quantity < 1:
                await conn.execute("DELETE FROM cart WHERE id = ?;", (line_id,))
                return None
            cur = await conn.execute(
                "SELECT price_cents FROM products WHERE id = ?;", (line.pid,)
            )
            (price_cents,) = await cur.fetchone()
            await cur.close()
            _check_line_total(price_cents, quantity)
            await conn.execute(
                "UPDATE cart SET quantity = ? WHERE id = ?;", (quantity, line_id)
            )
    return models.CartLine(line_id=line.line_id, uid=line.uid, pid=line.pid, qty=quantity)


async def remove_item(db: Database, identity: Optional[Identity], line_id: int) -> None:
    """Remove one line; removing a line that is not there is a no-op."""
    me = authorize(identity)
    async with db.user_lock(me.uid):
        async with db.connect() as conn:
            await conn.execute(
                "DELETE FROM cart WHERE id = ? AND user_id = ?;", (line_id, me.uid)
            )


async def clear_cart(db: Database, identity: Optional[Identity]) -> None:
    """Remove every line of the caller's cart."""
    me = authorize(identity)
    async with db.user_lock(me.uid):
        async with db.connect() as conn:
            await conn.execute("DELETE FROM cart WHERE user_id = ?;", (me.uid,))


async def list_cart(db: Database, identity: Optional[Identity]) -> models.CartView:
    """
    The caller's checkout-eligible lines, newest first, and their total.
    Lines whose listing has been sold stay stored but are left out here.
    """
    me = authorize(identity)
    async with db.connect() as conn:
        cur = await conn.execute(
            """
            SELECT c.id, c.product_id, c.quantity, p.title, p.price_cents,
                   u.username, c.added_at
            FROM cart c
            JOIN products p ON c.product_id = p.id
            JOIN users u ON p.seller_id = u.id
            WHERE c.user_id = ? AND p.status = 'available'
            ORDER BY c.added_at DESC, c.id DESC;
            """,
            (me.uid,),
        )
        rows = await cur.fetchall()
        await cur.close()

    total_cents = sum(row[4] * row[2] for row in rows)
    entries = [
        models.CartEntry(
            line_id=row[0],
            pid=row[1],
            qty=row[2],
            title=row[3],
            price=cents_to_money(row[4]),
            seller_name=row[5],
            added_at=row[6],
        )
        for row in rows
    ]
    return models.CartView(entries=entries, total=cents_to_money(total_cents))


async def cart_count(db: Database, identity: Optional[Identity]) -> int:
    """Number of stored lines, stale ones included."""
    me = authorize(identity)
    async with db.connect() as conn:
        cur = await conn.execute("SELECT COUNT(*) FROM cart WHERE user_id = ?;", (me.uid,))
        row = await cur.fetchone()
        await cur.close()
    return int(row[0])
