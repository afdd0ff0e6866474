from fastapi import APIRouter
from sqlalchemy import text

from database import AsyncSessionLocal

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health():
    """Liveness plus a database round-trip."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False
    return {"ok": True, "database": "ok" if db_ok else "unavailable"}
