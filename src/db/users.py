# identity collaborator: credential check and account lookup
from __future__ import annotations

from typing import Optional

import bcrypt

from db import models
from db.database import Database
from db.errors import NotFound
from utils.auth import Identity
from utils.logger import get_logger

_logger = get_logger(__name__)


def hash_password(pwd: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(pwd.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode(
        "ascii"
    )


def verify_password(pwd: str, pwd_hash: str) -> bool:
    try:
        return bcrypt.checkpw(pwd.encode("utf-8"), pwd_hash.encode("ascii"))
    except ValueError:
        # malformed stored hash
        return False


def _row_to_user(row) -> models.User:
    return models.User(
        uid=row[0],
        username=row[1],
        email=row[2],
        role=row[3],
        full_name=row[4],
        phone=row[5],
        address=row[6],
    )


async def login(db: Database, email: str, pwd: str) -> Optional[Identity]:
    """Return the caller's Identity if email/password match; otherwise None."""
    async with db.connect() as conn:
        cur = await conn.execute(
            "SELECT id, role, pwd_hash FROM users WHERE LOWER(email) = LOWER(?);",
            ((email or "").strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row or not verify_password(pwd or "", row[2]):
        _logger.info(f"Failed login for {email!r}")
        return None
    return Identity(uid=int(row[0]), role=row[1])


async def get_user(db: Database, uid: int) -> models.User:
    """Fetch an account by id; NotFound if unknown."""
    async with db.connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, username, email, role, full_name, phone, address
            FROM users
            WHERE id = ?;
            """,
            (uid,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise NotFound(f"User {uid} not found.")
    return _row_to_user(row)
