import json
import logging
import time

import sentry_sdk
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.api.v1.analytics import router as analytics_router
from app.api.v1.generation import router as generation_router
from app.api.v1.health import router as health_router
from app.core.config import settings
from app.core.lifespan import lifespan
from app.core.rate_limit import limiter

logger = logging.getLogger(__name__)


def _init_observability() -> None:
    load_dotenv()
    logging.basicConfig(level=settings.log_level, format="%(message)s")
    if settings.sentry_dsn:
        # Prompts and resume content stay out of error reports.
        sentry_sdk.init(dsn=settings.sentry_dsn, send_default_pii=False, max_request_body_size="never")


async def _log_request(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    logger.info(
        json.dumps(
            {
                "event": "http_request",
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": int((time.perf_counter() - started_at) * 1000),
            }
        )
    )
    return response


def create_app() -> FastAPI:
    _init_observability()
    application = FastAPI(title="Resume AI Generation API", version="0.1.0", lifespan=lifespan)

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_middleware(SlowAPIMiddleware)
    application.middleware("http")(_log_request)

    application.include_router(health_router, prefix="/v1", tags=["Health"])
    application.include_router(generation_router, prefix="/v1", tags=["AI Generation"])
    application.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
    return application


app = create_app()
