"""FastAPI application entrypoint.

This module builds the app, wires middleware and exception handlers,
and mounts the resource routers (see `studytrack.routers`). Every route
lives under `/api`; uploaded question images are served from
`/uploads`.

Error responses always carry `detail`:
- request validation failures -> 400 with per-field `errors`
- domain errors (`errors.StudyTrackError`) -> their `status_code`
- auth failures -> 401 with `WWW-Authenticate: Bearer`
- anything else -> 500 (with `error` outside production)
"""

import json
import logging
import time
import uuid

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import create_db_and_tables
from .errors import StudyTrackError
from .routers import ALL_ROUTERS
from .utils.rate_limit import InMemoryRateLimiter
from .utils.uploads import upload_root

app = FastAPI(title="Personal Study System API")
logger = logging.getLogger("studytrack.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_rate_limiter = InMemoryRateLimiter(settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SECONDS)

# Wide-open CORS keeps a local frontend on another port working in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.mount("/uploads", StaticFiles(directory=upload_root()), name="uploads")

create_db_and_tables()

for _router in ALL_ROUTERS:
    app.include_router(_router)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    if request.url.path.startswith("/api"):
        allowed, retry_after = _rate_limiter.allow(_client_host(request))
        if not allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": f"too many requests; retry after {retry_after}s"},
                headers={"Retry-After": str(retry_after)},
            )
    return await call_next(request)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": _client_host(request),
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": _client_host(request),
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        field = ".".join(loc[1:]) if len(loc) > 1 else ".".join(loc)
        errors.append({"field": field, "message": err.get("msg", "invalid value")})
    return JSONResponse(status_code=400, content={"detail": "validation failed", "errors": errors})


@app.exception_handler(StudyTrackError)
async def domain_error_handler(request: Request, exc: StudyTrackError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"detail": "route not found"})
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    content = {"detail": "internal server error"}
    if not settings.is_production:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.get("/api/health")
def health():
    """Simple health check endpoint."""
    return {"status": "ok", "message": "Personal study system backend is running"}


app.add_api_route("/health", health, methods=["GET"], include_in_schema=False)


def run():
    uvicorn.run("studytrack.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
