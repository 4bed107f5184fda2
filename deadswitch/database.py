import logging
from typing import Any, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from deadswitch.models.models import Base

logger = logging.getLogger("database")


# ---------------------------------------------------------------------------
# Engine Setup
# ---------------------------------------------------------------------------

def _detect_driver(url: str) -> str:
    try:
        return make_url(url).drivername
    except Exception:
        return url.split(":", 1)[0]


def make_engine(url: str, *, pooled: bool = True) -> AsyncEngine:
    url = str(url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is required")

    driver = _detect_driver(url)
    if not (driver.startswith("postgresql+") or driver.startswith("sqlite+")):
        raise RuntimeError(f"Unsupported database driver {driver!r}; use postgresql+asyncpg or sqlite+aiosqlite")

    engine_kwargs: Dict[str, Any] = {
        "echo": False,
        "future": True,
        "pool_pre_ping": True,
    }
    # Only apply pooling parameters for drivers that support them
    if driver.startswith("postgresql+") and pooled:
        engine_kwargs["pool_size"] = 10
        engine_kwargs["max_overflow"] = 5
    if not pooled:
        engine_kwargs["poolclass"] = NullPool
        engine_kwargs["pool_pre_ping"] = False

    return create_async_engine(url, **engine_kwargs)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

def get_database_dsn(engine: Optional[AsyncEngine], hide_password: bool = True) -> str:
    """Return the engine's DSN with the password masked."""
    if engine is None:
        return ""
    return engine.url.render_as_string(hide_password=hide_password)


async def init_db_async(engine: AsyncEngine) -> None:
    """Create missing tables; alembic owns real migrations."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully.")
    except Exception as e:
        logger.critical("Database initialization failed: %s", e)
        raise RuntimeError("Failed to initialize database") from e


async def shutdown_db_async(engine: AsyncEngine) -> None:
    """Dispose the async engine cleanly."""
    try:
        await engine.dispose()
        logger.info("Database connection pool closed.")
    except Exception as e:
        logger.error("Error shutting down database engine: %s", e)
        raise
