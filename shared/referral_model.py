"""
Модель ReferralEntry: запись о приглашённом аккаунте у реферера
"""
import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Enum as SQLEnum, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.database import Base


class ReferralStatus(str, enum.Enum):
    """Статусы реферала"""
    PENDING = "pending"  # Зарегистрировался, подписки ещё нет
    SUCCESSFUL = "successful"  # Оформил подписку, бонус выплачен


class ReferralEntry(Base):
    """
    Рефералы

    Одна строка на пару (реферер, приглашённый): списки pending/successful
    различаются только статусом, поэтому запись не может быть в обоих сразу.
    """
    __tablename__ = "referral_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    referrer_id = Column(String(128), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_account_id = Column(String(128), nullable=False, index=True)  # Кто пришёл
    referred_full_name = Column(String(255), nullable=False, default="")
    status = Column(SQLEnum(ReferralStatus), default=ReferralStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=func.now())
    converted_at = Column(DateTime, nullable=True)

    # Relationships
    referrer = relationship("Account", back_populates="referral_entries")

    __table_args__ = (
        UniqueConstraint('referrer_id', 'referred_account_id', name='uq_referral_referrer_referred'),
        Index('idx_referral_referrer_status', 'referrer_id', 'status'),
    )
