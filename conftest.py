"""
Общие фикстуры тестов: SQLite в памяти вместо PostgreSQL, in-memory репозитории
"""
import os

os.environ.setdefault("DATABASE_URL", "postgresql://localhost/elitehub_test")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")
os.environ.setdefault("CRON_SECRET", "cron-secret")
os.environ.setdefault("ADMIN_API_KEY", "admin-key")
os.environ.setdefault("ADMIN_IDS", "admin-1,admin-2")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from shared.database import Base  # noqa: E402
from shared.memory_repositories import (  # noqa: E402
    InMemoryAccountRepository,
    InMemoryNotificationRepository,
)
from shared.repositories import SqlAccountRepository, SqlNotificationRepository  # noqa: E402
from shared.transaction_retry import TransactionRetrier  # noqa: E402
from referral_api.services.notification_service import NotificationService  # noqa: E402
from referral_api.services.payment_service import PaystackClient  # noqa: E402
from referral_api.services.referral_ledger import ReferralLedgerService  # noqa: E402


class FakeQueue:
    """Очередь в памяти с интерфейсом RedisQueue"""

    def __init__(self):
        self.items = []

    async def enqueue(self, data: dict) -> None:
        self.items.append(dict(data))

    async def dequeue(self, timeout: int = 0):
        if not self.items:
            return None
        return self.items.pop(0)

    async def size(self) -> int:
        return len(self.items)


class FailingNotificationRepository:
    """Репозиторий, который падает первые `failures` раз"""

    def __init__(self, failures: int = 1_000_000):
        self.failures = failures
        self.calls = 0
        self.notifications = []

    async def add(self, notification):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("notifications store unavailable")
        self.notifications.append(notification)
        return f"n-{self.calls}"


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def account_repo():
    return InMemoryAccountRepository()


@pytest.fixture
def notification_repo():
    return InMemoryNotificationRepository()


@pytest.fixture
def ledger(account_repo, notification_repo):
    return ReferralLedgerService(
        account_repo,
        NotificationService(notification_repo),
        retrier=TransactionRetrier(retry_delay=0)
    )


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sql_notification_service(session_factory):
    return NotificationService(SqlNotificationRepository(session_factory))


@pytest.fixture
def sql_ledger(session_factory, sql_notification_service):
    return ReferralLedgerService(
        SqlAccountRepository(session_factory),
        sql_notification_service,
        retrier=TransactionRetrier(retry_delay=0)
    )


@pytest.fixture
def paystack_transactions():
    """reference -> объект data, который вернёт /transaction/verify"""
    return {}


@pytest.fixture
def paystack_client(paystack_transactions):
    def handler(request: httpx.Request) -> httpx.Response:
        reference = request.url.path.rsplit("/", 1)[-1]
        data = paystack_transactions.get(reference)
        if data is None:
            return httpx.Response(
                404, json={"status": False, "message": "Transaction reference not found"}
            )
        return httpx.Response(
            200, json={"status": True, "message": "Verification successful", "data": data}
        )

    return PaystackClient(
        secret_key="sk_test_secret",
        base_url="https://api.paystack.test",
        timeout=5,
        transport=httpx.MockTransport(handler)
    )


@pytest_asyncio.fixture
async def api_client(session_factory, sql_notification_service, sql_ledger, paystack_client):
    """HTTP клиент приложения поверх тестовой БД (lifespan не запускается)"""
    from shared.database import get_session
    from referral_api.dependencies import (
        get_ledger_service,
        get_notification_service,
        get_paystack_client,
    )
    from referral_api.handlers.admin import get_cleanup_service
    from referral_api.main import app
    from worker.cleanup import InactiveAccountCleanup

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_notification_service] = lambda: sql_notification_service
    app.dependency_overrides[get_ledger_service] = lambda: sql_ledger
    app.dependency_overrides[get_paystack_client] = lambda: paystack_client
    app.dependency_overrides[get_cleanup_service] = lambda: InactiveAccountCleanup(session_factory)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
