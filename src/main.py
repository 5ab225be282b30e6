"""Основной модуль FastAPI приложения."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admin.entrypoints.api.endpoints import router as admin_router
from base.config import get_allowed_hosts, get_settings
from base.exception_handlers import add_exception_handlers
from base.orm import init_db
from billing.entrypoints.api.endpoints import router as payments_router
from catalog.entrypoints.api.endpoints import router as catalog_router
from control.entrypoints.api.endpoints import router as control_router
from number_requests.entrypoints.api.endpoints import router as webhook_router
from users.entrypoints.api.dependencies import get_admin_user
from users.entrypoints.api.endpoints import router as users_router

settings = get_settings()

# Настройка логирования
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения."""
    await init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(
    title="SMS Verification Marketplace API",
    description="API для аренды номеров и получения SMS кодов подтверждения",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Настройка CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_hosts(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

# Регистрация роутеров
app.include_router(users_router, prefix=f"{settings.api_prefix}/users", tags=["users"])
app.include_router(
    payments_router, prefix=f"{settings.api_prefix}/payments", tags=["payments"]
)
app.include_router(
    catalog_router, prefix=f"{settings.api_prefix}/catalog", tags=["catalog"]
)
app.include_router(
    admin_router,
    prefix=f"{settings.api_prefix}/admin",
    tags=["admin"],
    dependencies=[Depends(get_admin_user)],
)
app.include_router(control_router, prefix=settings.control_prefix, tags=["control"])
app.include_router(webhook_router, prefix=settings.control_prefix, tags=["webhooks"])


@app.get("/")
async def health_check():
    """Проверка работоспособности API."""
    return {"message": "API is running"}
