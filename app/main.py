import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import (
    AUTO_CLOSE_ENABLED,
    CONVERSATION_STORE,
    CONVERSATION_TTL_SECONDS,
    CORS_ORIGINS,
    DATABASE_URL,
)
from app.core.database import Base, SessionLocal, engine
from app.core.errors import DomainError
from app.core.logging_setup import configure_logging
from app.core.startup_checks import apply_migrations, ensure_migrations_applied, validate_database_environment
from app.fsm.engine import ConversationEngine
from app.fsm.store import ConversationStore, InMemoryConversationStore, SqlConversationStore
from app.middleware.observability import ObservabilityMiddleware
import app.models  # registra los models antes del create_all
from app.routers.cash_register import router as cash_register_router
from app.routers.inventory import router as inventory_router
from app.routers.orders import router as orders_router
from app.routers.webhook import router as webhook_router
from app.services.auto_close import AutoCloseScheduler
from app.services.event_bus import event_bus
from app.services.event_handlers import OrderNotificationHandlers
from app.services.notifications import NotificationDispatcher
from app.whatsapp.service import WhatsAppService

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if DATABASE_URL.startswith("sqlite"):
            # sqlite es solo para desarrollo; el esquema sale de los models
            Base.metadata.create_all(bind=engine)
            return
        apply_migrations(alembic_config_path=ALEMBIC_CONFIG_PATH)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s startup failed", STARTUP_PREFIX)
        raise


def _build_store() -> ConversationStore:
    if CONVERSATION_STORE == "sql":
        return SqlConversationStore(SessionLocal, CONVERSATION_TTL_SECONDS)
    return InMemoryConversationStore(CONVERSATION_TTL_SECONDS)


def _wire_services(application: FastAPI) -> None:
    dispatcher = NotificationDispatcher(WhatsAppService(), SessionLocal)
    handlers = OrderNotificationHandlers(dispatcher, SessionLocal)
    handlers.register(event_bus)

    application.state.dispatcher = dispatcher
    application.state.notification_handlers = handlers
    application.state.engine = ConversationEngine(_build_store(), dispatcher, SessionLocal)
    application.state.scheduler = None
    if AUTO_CLOSE_ENABLED:
        scheduler = AutoCloseScheduler(SessionLocal)
        scheduler.start()
        application.state.scheduler = scheduler
    logger.info("%s services ready store=%s auto_close=%s", STARTUP_PREFIX, CONVERSATION_STORE, AUTO_CLOSE_ENABLED)


def _shutdown_services(application: FastAPI) -> None:
    scheduler = getattr(application.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()
    handlers = getattr(application.state, "notification_handlers", None)
    if handlers is not None:
        handlers.unregister(event_bus)


@asynccontextmanager
async def lifespan(application: FastAPI):
    _startup_tasks()
    _wire_services(application)
    try:
        yield
    finally:
        _shutdown_services(application)


app = FastAPI(
    title="BurgerFlow Orders API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error endpoint=%s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Error interno del servidor"})


# Routers
app.include_router(webhook_router)
app.include_router(orders_router)
app.include_router(inventory_router)
app.include_router(cash_register_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
