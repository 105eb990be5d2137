import os
import re
from dataclasses import dataclass


# batch numbers are PREFIX-YYYY-MM-NNN, so the prefix itself carries no dash
BATCH_PREFIX_RE = re.compile(r"[A-Z][A-Z0-9]*")


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def make_async_db_url(url: str) -> str:
    """Accepts Heroku/Railway-style DATABASE_URL and returns sqlalchemy async url."""
    if url.startswith("postgresql+asyncpg://") or url.startswith("sqlite+aiosqlite://"):
        return url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    raise RuntimeError("Unsupported DATABASE_URL format")


def make_sync_db_url(url: str) -> str:
    """Sync driver URL for Alembic and one-shot scripts."""
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    if url.startswith("postgresql+asyncpg://"):
        return "postgresql://" + url[len("postgresql+asyncpg://") :]
    if url.startswith("sqlite+aiosqlite://"):
        return "sqlite://" + url[len("sqlite+aiosqlite://") :]
    return url


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"

    # Reward engine
    # per-sale debug lines (multiplier resolution, balances before/after)
    reward_verbose_log: bool = False
    # ceiling on tiers walked by one cascade; hitting it means broken data
    max_cascade_tiers: int = 1000

    # Payouts
    # cutoff dates are expanded to end-of-day in this zone; batch months too
    payout_timezone: str = "America/Sao_Paulo"
    batch_prefix: str = "LOTE"


def _load_settings() -> Settings:
    database_url_raw = os.getenv("DATABASE_URL", "").strip()
    if not database_url_raw:
        raise RuntimeError("DATABASE_URL is missing")

    batch_prefix = (os.getenv("BATCH_PREFIX") or "LOTE").strip().upper()
    if not BATCH_PREFIX_RE.fullmatch(batch_prefix):
        raise RuntimeError(f"BATCH_PREFIX must be letters and digits starting with a letter, got {batch_prefix!r}")

    return Settings(
        database_url=make_async_db_url(database_url_raw),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        reward_verbose_log=_env_bool("REWARD_VERBOSE_LOG", False),
        max_cascade_tiers=int(os.getenv("MAX_CASCADE_TIERS", "1000")),
        payout_timezone=os.getenv("PAYOUT_TIMEZONE", "America/Sao_Paulo").strip(),
        batch_prefix=batch_prefix,
    )


settings = _load_settings()
