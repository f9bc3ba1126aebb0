import logging
import logging.config

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.routers.summary import SUMMARY_PATH, limiter, router as summary_router

logging.config.dictConfig(
    {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
        },
        "root": {"level": "INFO", "handlers": ["console"]},
    }
)

logger = logging.getLogger(__name__)

CORS_HEADER = "Access-Control-Allow-Origin"
CORS_ANY_ORIGIN = "*"

app = FastAPI(
    title="Page Summary API",
    description="Fetches a URL and returns the link-preview metadata declared in its <head>.",
    version="1.0.0",
)

# Rate-limiting state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def allow_any_origin(request: Request, call_next):
    """Attach a permissive CORS header to every summary response, errors included."""
    response = await call_next(request)
    if request.url.path == SUMMARY_PATH:
        response.headers[CORS_HEADER] = CORS_ANY_ORIGIN
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception for %s", request.url)
    headers = {CORS_HEADER: CORS_ANY_ORIGIN} if request.url.path == SUMMARY_PATH else None
    return JSONResponse(
        status_code=500, content={"detail": "An unexpected error occurred."}, headers=headers
    )


app.include_router(summary_router)


@app.get("/", summary="Health check")
async def root() -> dict:
    return {"message": "Hello from Page Summary API"}
