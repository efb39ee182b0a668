import asyncio

import pika
from fastapi import APIRouter
from sqlalchemy import text

from cexpi.config import settings
from cexpi.infrastructure.database.connection import AsyncSessionLocal

router = APIRouter(tags=["health"])


def _check_rabbitmq() -> None:
    connection = pika.BlockingConnection(pika.URLParameters(settings.rabbitmq_url))
    connection.close()


@router.get("/health")
async def health_check() -> dict:  # type: ignore[type-arg]
    """Liveness + dependency health check."""
    db_status = "connected"
    if settings.storage_backend == "memory":
        db_status = "in-memory"
    else:
        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            db_status = f"error: {exc}"

    rabbitmq_status = "disabled"
    if settings.rabbitmq_url:
        rabbitmq_status = "connected"
        try:
            await asyncio.get_running_loop().run_in_executor(None, _check_rabbitmq)
        except Exception as exc:
            rabbitmq_status = f"error: {exc}"

    healthy = not db_status.startswith("error") and not rabbitmq_status.startswith("error")

    return {
        "status": "healthy" if healthy else "degraded",
        "database": db_status,
        "rabbitmq": rabbitmq_status,
    }
