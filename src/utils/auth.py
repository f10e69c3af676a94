from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from db.errors import Forbidden, Unauthorized
from db.models import Role

ROLES = ("user", "seller", "admin")


@dataclass(frozen=True)
class Identity:
    """Who is calling: resolved by login, trusted by everything downstream."""

    uid: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def authorize(
    identity: Optional[Identity],
    roles: Optional[Iterable[str]] = None,
    owner_id: Optional[int] = None,
) -> Identity:
    """
    The single capability check applied before every cart and ledger operation.

    - no identity -> Unauthorized
    - `roles` given and caller's role not among them -> Forbidden
    - `owner_id` given and caller neither owns the record nor is admin -> Forbidden

    Returns the identity so callers can write `me = authorize(identity)`.
    """
    if identity is None or identity.role not in ROLES:
        raise Unauthorized("Sign in to continue.")
    if roles is not None:
        allowed = set(roles)
        if identity.role not in allowed:
            raise Forbidden(
                f"Requires role {' or '.join(sorted(allowed))}, you are {identity.role}."
            )
    if owner_id is not None and identity.uid != owner_id and not identity.is_admin:
        raise Forbidden("You can only access your own records.")
    return identity
