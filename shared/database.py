"""
SQLAlchemy модели базы данных
"""
import uuid

from sqlalchemy import (
    JSON, BigInteger, Boolean, Column, DateTime, Integer,
    String, Text, ForeignKey, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from shared.config import DATABASE_URL

# Создаем базовый класс
Base = declarative_base()


def _async_url(url: str) -> str:
    """Railway/Heroku отдают postgresql://, для async нужен драйвер asyncpg"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _new_id() -> str:
    return uuid.uuid4().hex


# Создаем async engine
engine = create_async_engine(
    _async_url(DATABASE_URL),
    echo=False,
    pool_pre_ping=True,
    pool_size=20,
    max_overflow=40
)

# Создаем session maker
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


# ========== Модели ==========

class Account(Base):
    """Аккаунты пользователей платформы (покупатели, вендоры, провайдеры)"""
    __tablename__ = "accounts"

    id = Column(String(128), primary_key=True)  # uid из провайдера аутентификации
    full_name = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, default=func.now())
    last_login = Column(DateTime, default=func.now(), index=True)

    # Реферальная система
    referral_code = Column(String(50), unique=True, nullable=True, index=True)
    referred_by_code = Column(String(50), nullable=True, index=True)
    has_completed_qualifying_action = Column(Boolean, default=False, nullable=False)
    balance = Column(BigInteger, default=0, nullable=False)  # в кобо/наименьших единицах

    # Реквизиты для выплат
    bank_name = Column(String(255), nullable=True)
    account_number = Column(String(20), nullable=True)
    account_name = Column(String(255), nullable=True)

    # Оптимистичная блокировка: каждый UPDATE проверяет и увеличивает версию
    version_id = Column(Integer, nullable=False, default=1)

    # Relationships
    referral_entries = relationship(
        "ReferralEntry",
        back_populates="referrer",
        passive_deletes=True
    )
    vendor = relationship("Vendor", back_populates="account", uselist=False, passive_deletes=True)
    payout_requests = relationship("PayoutRequest", back_populates="account", passive_deletes=True)

    __mapper_args__ = {"version_id_col": version_id}


class Notification(Base):
    """Уведомления (append-only)"""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_new_id)
    recipient_id = Column(String(128), nullable=False, index=True)
    sender_id = Column(String(128), nullable=False)
    sender_name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)  # referral_bonus, payout_request, ...
    text = Column(Text, nullable=False)
    amount = Column(BigInteger, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    timestamp = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('idx_notification_recipient_read', 'recipient_id', 'is_read'),
    )


class Payment(Base):
    """Платежи Paystack (подписки)"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(255), unique=True, nullable=False, index=True)
    account_id = Column(String(128), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # в кобо
    currency = Column(String(10), default="NGN", nullable=False)
    status = Column(String(50), nullable=False)  # success, failed, abandoned
    raw_payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('idx_payment_status', 'status'),
    )


class PayoutRequest(Base):
    """Запросы на вывод реферального баланса"""
    __tablename__ = "payout_requests"

    id = Column(String(36), primary_key=True, default=_new_id)
    account_id = Column(String(128), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_email = Column(String(255), nullable=True)
    user_name = Column(String(255), nullable=False)
    amount = Column(BigInteger, nullable=False)
    bank_name = Column(String(255), nullable=False)
    account_number = Column(String(20), nullable=False)
    account_name = Column(String(255), nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, paid, rejected
    requested_at = Column(DateTime, default=func.now())
    paid_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="payout_requests")

    __table_args__ = (
        Index('idx_payout_status', 'status'),
    )


class Vendor(Base):
    """Профили вендоров"""
    __tablename__ = "vendors"

    id = Column(String(36), primary_key=True, default=_new_id)
    account_id = Column(String(128), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    account = relationship("Account", back_populates="vendor")
    products = relationship("Product", back_populates="vendor", passive_deletes=True)


class Product(Base):
    """Товары вендоров"""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_id)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    vendor = relationship("Vendor", back_populates="products")


# ========== Функции для работы с БД ==========

async def init_db():
    """Инициализация базы данных"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncSession:
    """Получить сессию БД"""
    async with AsyncSessionLocal() as session:
        yield session


async def close_db():
    """Закрыть соединение с БД"""
    await engine.dispose()


# Импортируем ReferralEntry после определения всех моделей
from shared.referral_model import ReferralEntry, ReferralStatus  # noqa: E402,F401
