import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# .env is loaded from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from taskminder.api.notifications import router as notifications_router
from taskminder.core.config import is_mail_configured, settings
from taskminder.core.database import engine, init_db, ping_db
from taskminder.core.rate_limit import limiter
from taskminder.logging import setup_logging
from taskminder.services.pipeline import build_pipeline

setup_logging(level=settings.log_level)
log = logging.getLogger("taskminder")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    pipeline = build_pipeline(engine, settings)
    app.state.pipeline = pipeline
    pipeline.start()
    log.info(
        "Reminder pipeline ready: scheduler=%s push=%s mail=%s",
        "on" if settings.scheduler_enabled else "off",
        "yes" if pipeline.push_sender.configured else "NO (set VAPID_PRIVATE_KEY)",
        "yes" if is_mail_configured() else "NO (set SMTP_HOST)",
    )
    try:
        yield
    finally:
        pipeline.shutdown()
        app.state.pipeline = None


app = FastAPI(
    title="Task Manager Notifications",
    description="Due-task reminders over Web Push and e-mail",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": detail, "status_code": status_code}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded path=%s", request.url.path)
    return _error_response(request, 429, "Too many requests")


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


def _jsonable_errors(errs) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")} for e in errs]


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning("Request validation error (422): path=%s method=%s", request.url.path, request.method)
    rid = getattr(request.state, "request_id", None)
    body = {"error": "Invalid request", "status_code": 422, "detail": _jsonable_errors(errs)}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc)
    return _error_response(request, 500, "Unexpected server error")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(notifications_router)


@app.get("/health")
def health(request: Request):
    pipeline = getattr(request.app.state, "pipeline", None)
    return {
        "status": "ok",
        "database": "ok" if ping_db() else "error",
        "push_configured": bool(pipeline and pipeline.push_sender.configured),
        "mail_configured": is_mail_configured(),
        "scheduler_running": bool(pipeline and pipeline.scheduler_running),
    }
