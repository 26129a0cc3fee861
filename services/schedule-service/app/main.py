import datetime
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import LoginGuard, create_session_token, get_client_ip, is_valid_session_token
from .backups import BackupRing
from .config import Settings, get_settings
from .exceptions import BackupNotFoundError, StoreUnavailableError
from .logging_config import get_logger, setup_logging
from .messages import Messages, get_messages
from .schedule import ScheduleService
from .schemas import (
    BackupSummary,
    LoginRequest,
    MessageResponse,
    RestoreRequest,
    RestoreResponse,
)
from .store import KeyValueStore, build_store

logger = get_logger("main")


# --- Dependencies ---

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_app_messages(request: Request) -> Messages:
    return request.app.state.messages


def get_schedule_service(request: Request) -> ScheduleService:
    return request.app.state.schedule_service


def get_backup_ring(request: Request) -> BackupRing:
    return request.app.state.backup_ring


def get_login_guard(request: Request) -> LoginGuard:
    return request.app.state.login_guard


def require_session(request: Request) -> None:
    settings: Settings = request.app.state.settings
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not is_valid_session_token(token, settings.SECRET_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=request.app.state.messages.unauthorized,
        )


# --- Routes ---

public_router = APIRouter()
api_router = APIRouter(dependencies=[Depends(require_session)])


@public_router.post("/login")
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    guard: LoginGuard = Depends(get_login_guard),
):
    client_ip = get_client_ip(request)
    await guard.login(client_ip, payload.password)

    expires_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=settings.SESSION_TTL_DAYS)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(settings.SECRET_KEY, expires_at),
        expires=expires_at,
        path="/",
        httponly=True,
        secure=True,
        samesite="strict",
    )
    return {"success": True}


@api_router.get("/schedule")
async def get_schedule(service: ScheduleService = Depends(get_schedule_service)):
    record = await service.load()
    if record is None:
        return JSONResponse(content={})
    return JSONResponse(content=record.model_dump(mode="json", by_alias=True))


@api_router.post("/schedule", response_model=MessageResponse)
async def save_schedule(
    request: Request,
    service: ScheduleService = Depends(get_schedule_service),
    messages: Messages = Depends(get_app_messages),
):
    body = await request.body()
    try:
        raw_text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.bad_request) from exc
    await service.save(raw_text)
    return MessageResponse(message=messages.saved)


@api_router.get("/backups", response_model=list[BackupSummary])
async def list_backups(ring: BackupRing = Depends(get_backup_ring)):
    return await ring.list_backups()


@api_router.post("/restore", response_model=RestoreResponse)
async def restore_backup(
    payload: RestoreRequest,
    service: ScheduleService = Depends(get_schedule_service),
    messages: Messages = Depends(get_app_messages),
):
    try:
        record = await service.restore(payload.backup_id)
    except BackupNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.backup_not_found) from exc
    return RestoreResponse(message=messages.restored, data=record)


# --- Application factory ---

def create_app(settings: Optional[Settings] = None, store: Optional[KeyValueStore] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    messages = get_messages(settings.LOCALE)
    store = store or build_store(settings.REDIS_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.APP_NAME} serving under '{settings.APP_PATH or '/'}'")
        yield
        await store.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Parses freeform work schedules into calendar events and keeps a rolling backup history.",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    ring = BackupRing(store, capacity=settings.MAX_BACKUP_COUNT, timezone=settings.BACKUP_TIMEZONE)
    app.state.settings = settings
    app.state.messages = messages
    app.state.store = store
    app.state.backup_ring = ring
    app.state.schedule_service = ScheduleService(store, ring, title_prefix=messages.title_prefix)
    app.state.login_guard = LoginGuard(
        store,
        password=settings.SCHEDULE_PASSWORD,
        messages=messages,
        max_attempts=settings.MAX_LOGIN_ATTEMPTS,
        lockout_seconds=settings.LOCKOUT_SECONDS,
    )

    @app.middleware("http")
    async def edge_gate(request: Request, call_next):
        if settings.FORCE_HTTPS:
            scheme = request.headers.get("X-Forwarded-Proto", request.url.scheme)
            if scheme == "http":
                return RedirectResponse(str(request.url.replace(scheme="https")), status_code=301)
        country = request.headers.get("CF-IPCountry")
        if settings.ALLOWED_COUNTRIES and country and country.upper() not in settings.ALLOWED_COUNTRIES:
            logger.info(f"Rejected request from country {country}")
            return Response(content=messages.access_denied, status_code=status.HTTP_403_FORBIDDEN)
        return await call_next(request)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected malformed body on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": messages.bad_request})

    @app.exception_handler(StoreUnavailableError)
    async def store_error_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": messages.store_unavailable})

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(public_router, prefix=f"{settings.APP_PATH}/api")
    app.include_router(api_router, prefix=f"{settings.APP_PATH}/api")

    if settings.ENABLE_METRICS:
        Instrumentator().instrument(app).expose(app)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
