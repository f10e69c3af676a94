# account / listing creation and the demo data loaded into a fresh database
from __future__ import annotations

from typing import Optional

from db.database import Database
from db.errors import ValidationError
from db.models import ProductStatus, Role
from db.users import hash_password
from utils.logger import get_logger
from utils.pure import Amount, to_cents, utc_timestamp

_logger = get_logger(__name__)

DEMO_USERS = [
    # username, email, password, role, full name, phone, address
    ("admin", "admin@ecofinds.com", "admin123", "admin", "Admin User", "+1234567890", "123 Admin St"),
    ("seller", "seller@ecofinds.com", "seller123", "seller", "John Smith", "+1234567891", "456 Seller Ave"),
    ("user1", "user1@ecofinds.com", "user123", "user", "Jane Doe", "+1234567892", "789 User Blvd"),
    ("user2", "user2@ecofinds.com", "user123", "user", "Mike Johnson", "+1234567893", "321 User Lane"),
]

DEMO_PRODUCTS = [
    # title, description, price, category, condition
    ("Vintage Leather Jacket", "Authentic vintage leather jacket in excellent condition", "89.99", "Clothing", "Good"),
    ("Retro Gaming Console", "Classic gaming console with original controllers", "149.99", "Electronics", "Very Good"),
    ("Antique Wooden Chair", "Beautiful handcrafted wooden chair from the 1960s", "75.00", "Furniture", "Good"),
    ("Designer Handbag", "Authentic designer handbag, gently used", "199.99", "Accessories", "Excellent"),
    ("Bicycle Mountain Bike", "Well-maintained mountain bike, perfect for trails", "299.99", "Sports", "Good"),
    ("Vintage Camera", "Classic film camera in working condition", "120.00", "Electronics", "Good"),
]


async def create_user(
    db: Database,
    username: str,
    email: str,
    pwd: str,
    role: Role = "user",
    full_name: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
    rounds: int = 12,
) -> int:
    """Insert an account and return its id."""
    async with db.connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO users(username, email, pwd_hash, role, full_name, phone, address, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                username,
                email,
                hash_password(pwd, rounds=rounds),
                role,
                full_name,
                phone,
                address,
                utc_timestamp(),
            ),
        )
        uid = cur.lastrowid
        await cur.close()
    return uid


async def create_product(
    db: Database,
    seller_id: int,
    title: str,
    price: Amount,
    descr: Optional[str] = None,
    category: Optional[str] = None,
    condition: Optional[str] = None,
    image_url: Optional[str] = None,
    status: ProductStatus = "available",
) -> int:
    """Insert a listing and return its id. Price is rounded half up to cents."""
    try:
        price_cents = to_cents(price)
    except ValueError as exc:
        raise ValidationError(str(exc), ["price"]) from exc
    if price_cents < 0:
        raise ValidationError("Price cannot be negative.", ["price"])

    async with db.connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO products(
                title, description, price_cents, category, condition,
                image_url, seller_id, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                title,
                descr,
                price_cents,
                category,
                condition,
                image_url,
                seller_id,
                status,
                utc_timestamp(),
            ),
        )
        pid = cur.lastrowid
        await cur.close()
    return pid


async def seed_demo_data(db: Database, rounds: int = 12) -> bool:
    """
    Load the demo accounts and listings if there are no accounts yet.
    Returns True if anything was inserted.
    """
    async with db.connect() as conn:
        cur = await conn.execute("SELECT COUNT(*) FROM users;")
        (count,) = await cur.fetchone()
        await cur.close()
    if count > 0:
        _logger.debug("Demo data already present.")
        return False

    uids = {}
    for username, email, pwd, role, full_name, phone, address in DEMO_USERS:
        uids[role] = await create_user(
            db, username, email, pwd, role, full_name, phone, address, rounds=rounds
        )
    for title, descr, price, category, condition in DEMO_PRODUCTS:
        await create_product(
            db, uids["seller"], title, price, descr, category, condition
        )
    _logger.info(
        f"Seeded {len(DEMO_USERS)} accounts and {len(DEMO_PRODUCTS)} listings."
    )
    return True
