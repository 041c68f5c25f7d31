from __future__ import annotations

from typing import NoReturn

from fastapi import Header, HTTPException

from app.core.security import check_api_key
from app.services.errors import AssessmentIncomplete, EngineError
from app.store.sqlite_store import SqliteEngineStore, get_store


def engine_store() -> SqliteEngineStore:
    return get_store()


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    check_api_key(x_api_key)


def raise_engine_error(exc: EngineError) -> NoReturn:
    if isinstance(exc, AssessmentIncomplete):
        detail: object = {"message": str(exc), "missing_stages": exc.missing_stages}
    else:
        detail = str(exc)
    raise HTTPException(status_code=exc.status_code, detail=detail) from exc
