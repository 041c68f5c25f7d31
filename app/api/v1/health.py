from fastapi import APIRouter, Depends

from app.api.deps import engine_store
from app.services.errors import StoreUnavailable
from app.store.types import EngineStore

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the application and its progress store.")
async def health_check(store: EngineStore = Depends(engine_store)):
    try:
        store.list_badges()
    except StoreUnavailable:
        return {"status": "degraded", "store": "unavailable"}
    return {"status": "healthy", "store": "ok"}
