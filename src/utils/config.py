import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings, read once at startup.

    Fields:
      - db_path: sqlite file backing the marketplace
      - busy_timeout: seconds a writer waits for a locked database
      - order_number_attempts: inserts tried before giving up on a colliding order number
      - seed_demo: fill an empty database with demo accounts and listings
      - debug: verbose logging
    """

    db_path: str = "data/ecofinds.sqlite"
    busy_timeout: float = 5.0
    order_number_attempts: int = 5
    seed_demo: bool = True
    debug: bool = False


def _parse_bool(name: str, raw: str) -> bool:
    val = raw.strip().lower()
    if val in _TRUTHY:
        return True
    if val in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from ECOFINDS_* environment variables (and DEBUG)."""
    env = os.environ if env is None else env
    defaults = Settings()

    try:
        busy_timeout = float(env.get("ECOFINDS_BUSY_TIMEOUT", defaults.busy_timeout))
        attempts = int(
            env.get("ECOFINDS_ORDER_NUMBER_ATTEMPTS", defaults.order_number_attempts)
        )
    except ValueError as exc:
        raise ValueError(f"Invalid numeric setting: {exc}") from exc

    if busy_timeout < 0:
        raise ValueError("ECOFINDS_BUSY_TIMEOUT cannot be negative.")
    if attempts < 1:
        raise ValueError("ECOFINDS_ORDER_NUMBER_ATTEMPTS must be at least 1.")

    seed_raw = env.get("ECOFINDS_SEED_DEMO")
    return Settings(
        db_path=env.get("ECOFINDS_DB_PATH", defaults.db_path),
        busy_timeout=busy_timeout,
        order_number_attempts=attempts,
        seed_demo=(
            defaults.seed_demo
            if seed_raw is None
            else _parse_bool("ECOFINDS_SEED_DEMO", seed_raw)
        ),
        debug=bool(env.get("DEBUG")),
    )
