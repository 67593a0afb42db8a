# app/routers/admin.py

from fastapi import APIRouter, Depends

from app.core.config import Settings
from app.core.logger import get_logger
from app.db.requests_store import RequestStore
from app.routers.deps import get_settings, get_store
from app.utils.errors import ForbiddenError
from app.utils.responses import format_response

router = APIRouter(prefix="/api", tags=["admin"])
logger = get_logger("admin")


@router.post("/init-db", summary="Create collection indexes (development only)")
async def init_db(
    store: RequestStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    if settings.is_production:
        raise ForbiddenError("Database initialization is not allowed in production. Run app.scripts.init_db instead.")

    await store.ensure_indexes()
    logger.info("Request indexes ensured via /api/init-db")
    return format_response(success=True, message="Database indexes are in place")
