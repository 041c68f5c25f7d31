import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
import sentry_sdk

from app.api.v1.health import router as health_router
from app.api.v1.progress import router as progress_router
from app.api.v1.assessments import router as assessments_router
from app.api.v1.badges import router as badges_router
from app.api.v1.analysis import router as analysis_router
from app.api.v1.analytics import router as analytics_router
from app.core.rate_limit import limiter
from app.core.config import settings
from app.core.lifespan import lifespan

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Assessment Progress & Achievement Engine", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_origin_regex=(settings.cors_allow_origin_regex or None),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(progress_router, prefix="/v1", tags=["Progress"])
app.include_router(assessments_router, prefix="/v1", tags=["Assessments"])
app.include_router(badges_router, prefix="/v1", tags=["Badges"])
app.include_router(analysis_router, prefix="/v1", tags=["Analysis"])
app.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
