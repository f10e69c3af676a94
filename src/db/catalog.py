# catalog lookup: listing reads, view counter and the sold transition
from __future__ import annotations

from typing import Iterable, List, Optional, Set

import aiosqlite

from db import models
from db.database import Database
from db.errors import NotFound
from utils.logger import get_logger
from utils.pure import cents_to_money

_logger = get_logger(__name__)

_PRODUCT_COLUMNS = """
    id, title, description, price_cents, category, condition,
    image_url, seller_id, status, views
"""


def _row_to_product(row) -> models.Product:
    return models.Product(
        pid=row[0],
        title=row[1],
        descr=row[2],
        price=cents_to_money(row[3]),
        category=row[4],
        condition=row[5],
        image_url=row[6],
        seller_id=row[7],
        status=row[8],
        views=row[9],
    )


async def get_product(db: Database, pid: int) -> models.Product:
    """Fetch a listing by id; NotFound if the id is unknown."""
    async with db.connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?;", (pid,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise NotFound(f"Product {pid} not found.")
    return _row_to_product(row)


async def get_availability(db: Database, pid: int) -> models.Availability:
    """Current price, seller and status of a listing; NotFound if unknown."""
    async with db.connect() as conn:
        cur = await conn.execute(
            "SELECT id, price_cents, seller_id, status FROM products WHERE id = ?;",
            (pid,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise NotFound(f"Product {pid} not found.")
    return models.Availability(
        pid=row[0], price=cents_to_money(row[1]), seller_id=row[2], status=row[3]
    )


async def list_available_products(
    db: Database, query: str = "", exclude_seller: Optional[int] = None
) -> List[models.Product]:
    """
    Available listings, newest first.
    `query` is matched case-insensitively against title, description and category.
    """
    phrase = (query or "").strip().lower()
    clauses = ["status = 'available'"]
    params: list = []
    if phrase:
        like = f"%{phrase}%"
        clauses.append(
            "(LOWER(title) LIKE ? OR LOWER(description) LIKE ? OR LOWER(category) LIKE ?)"
        )
        params.extend([like, like, like])
    if exclude_seller is not None:
        clauses.append("seller_id != ?")
        params.append(exclude_seller)

    async with db.connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLUMNS}
            FROM products
            WHERE {" AND ".join(clauses)}
            ORDER BY created_at DESC, id DESC;
            """,
            tuple(params),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def record_view(db: Database, pid: int) -> None:
    """Bump the view counter when a listing's detail is opened."""
    async with db.connect() as conn:
        cur = await conn.execute(
            "UPDATE products SET views = views + 1 WHERE id = ?;", (pid,)
        )
        updated = cur.rowcount
        await cur.close()
    if updated == 0:
        raise NotFound(f"Product {pid} not found.")


async def mark_sold(conn: aiosqlite.Connection, pids: Iterable[int]) -> Set[int]:
    """
    Flip listings from available to sold on an open connection.

    Each update is conditioned on the listing still being available, so
    re-marking a sold listing is a no-op rather than an error. Returns the
    ids that actually transitioned; callers compare it with what they asked
    for to detect a lost race.
    """
    flipped: Set[int] = set()
    for pid in sorted(set(pids)):
        cur = await conn.execute(
            "UPDATE products SET status = 'sold' WHERE id = ? AND status = 'available';",
            (pid,),
        )
        if cur.rowcount == 1:
            flipped.add(pid)
        await cur.close()
    _logger.debug(f"Marked sold: {sorted(flipped)}")
    return flipped


async def mark_sold_now(db: Database, pids: Iterable[int]) -> Set[int]:
    """Standalone bulk sold transition in its own transaction."""
    async with db.transaction() as conn:
        return await mark_sold(conn, pids)
