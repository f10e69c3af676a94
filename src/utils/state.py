from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from db import users
from db.database import Database
from utils.auth import Identity
from utils.config import Settings


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - db: the opened Database handle, injected by the app at startup
      - settings: runtime settings the app was started with
      - identity: who is signed in, None before login / after logout
    """

    db: Optional[Database] = None
    settings: Optional[Settings] = None
    identity: Optional[Identity] = None

    @property
    def uid(self) -> Optional[int]:
        return self.identity.uid if self.identity else None

    @property
    def role(self) -> Optional[str]:
        return self.identity.role if self.identity else None

    async def login(self, email: str, pwd: str) -> Optional[Identity]:
        """Resolve credentials to an identity and remember it. None if they don't match."""
        identity = await users.login(self.db, email, pwd)
        if identity is not None:
            self.identity = identity
        return identity

    def logout(self) -> None:
        self.identity = None
