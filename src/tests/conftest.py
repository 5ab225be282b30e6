"""Конфигурация для тестов."""

import os
import warnings
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Устанавливаем тестовые переменные окружения до импорта настроек
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test_db")
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_PORT", "5432")
os.environ.setdefault("SECRET_KEY", "test_secret_key_very_long_and_secure")
os.environ.setdefault("ACCESS_TOKEN_EXPIRES_MINUTES", "30")
os.environ.setdefault("REFRESH_TOKEN_EXPIRES_HOURS", "24")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ.setdefault("NUMBER_PROVIDER", "local")
os.environ.setdefault("NUMBER_REQUEST_TTL_MINUTES", "20")
os.environ.setdefault("SMS_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("PRICE_CACHE_ENABLED", "false")

import billing.adapters.orm  # noqa: E402,F401
import catalog.adapters.orm  # noqa: E402,F401
import number_requests.adapters.orm  # noqa: E402,F401
import users.adapters.orm  # noqa: E402,F401
from base.orm import Base  # noqa: E402
from base.unit_of_work import InMemoryStore  # noqa: E402
from base.utils import generate_api_key, hash_password  # noqa: E402
from catalog.domain.models import (  # noqa: E402
    Application,
    ApplicationCategory,
    BulkDiscountTier,
    Country,
    PriceEntry,
)
from users.domain.models import User, UserRole  # noqa: E402

warnings.filterwarnings("ignore", category=DeprecationWarning, module="sqlalchemy.*")
warnings.filterwarnings("ignore", category=DeprecationWarning, module="pydantic.*")

DATABASE_URL = "sqlite:///:memory:"
ASYNC_DATABASE_URL = "sqlite+aiosqlite://"

USER_PASSWORD = "password123"


@pytest.fixture(scope="function")
def session():
    """Создает тестовую сессию базы данных."""
    engine = create_engine(DATABASE_URL, echo=False)

    # В SQLite внешние ключи отключены по умолчанию, включим их
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    db: Session = TestingSessionLocal()
    yield db
    db.close()


@pytest_asyncio.fixture
async def session_factory():
    """Фабрика асинхронных сессий SQLite для проверки SQL репозиториев."""
    engine = create_async_engine(
        ASYNC_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        # Транзакциями управляет SQLAlchemy, иначе SAVEPOINT работает неверно
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class FakeClock:
    """Управляемые часы для проверок времени жизни заявок."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


def add_user(
    store: InMemoryStore,
    balance: str = "0.00",
    email: str = "user@example.com",
    role: UserRole = UserRole.USER,
    is_active: bool = True,
) -> User:
    """Добавление пользователя прямо в in-memory хранилище."""
    user = User(
        id=store.next_id("users"),
        email=email,
        username=email.split("@")[0],
        password_hash=hash_password(USER_PASSWORD),
        balance=Decimal(balance),
        api_key=generate_api_key(),
        role=role,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    store.table("users")[user.id] = user
    return user


def add_catalog(
    store: InMemoryStore,
    cost: str = "0.30",
    discount: str = "0",
    bulk_discounts: list[BulkDiscountTier] | None = None,
    is_active: bool = True,
    count: int = 1500,
) -> tuple[Country, Application, PriceEntry]:
    """Страна 1, приложение 1 и цена для них."""
    country = Country(id=1, title="Russia", code="ru", phone_code="+7", priority=10)
    application = Application(
        id=1, name="Telegram", code="TELEGRAM", category=ApplicationCategory.MESSAGING
    )
    price = PriceEntry(
        country_id=country.id,
        application_id=application.id,
        cost=Decimal(cost),
        count=count,
        discount=Decimal(discount),
        bulk_discounts=bulk_discounts or [],
        is_active=is_active,
    )
    store.table("countries")[country.id] = country
    store.table("applications")[application.id] = application
    store.table("prices")[(country.id, application.id)] = price
    return country, application, price


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
