from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import SQLAlchemyError

from cexpi.application.interfaces.listing_repository import PersistenceError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def translate_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise driver and ORM failures as PersistenceError."""
    try:
        yield
    except PersistenceError:
        raise
    except (SQLAlchemyError, OSError) as exc:
        logger.error("storage_operation_failed", operation=operation, error=str(exc))
        raise PersistenceError(f"{operation} failed: {exc}") from exc
