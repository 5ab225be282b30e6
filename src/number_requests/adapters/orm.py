"""ORM модели заявок на номера."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from base.orm import Base
from number_requests.domain.models import NumberRequestStatus


class NumberRequestORM(Base):
    """Модель заявки на номер."""

    __tablename__ = "number_requests"
    __table_args__ = (
        Index("ix_number_requests_user_created", "user_id", "created_at"),
        Index("ix_number_requests_status_expires", "status", "expires_at"),
        Index("ix_number_requests_country_application", "country_id", "application_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    country_id: Mapped[int] = mapped_column(ForeignKey("countries.id"), nullable=False)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("applications.id"), nullable=False
    )
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[NumberRequestStatus] = mapped_column(
        Enum(NumberRequestStatus, native_enum=False, length=16),
        default=NumberRequestStatus.READY,
    )
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    sms_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    provider_request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Атрибут "metadata" зарезервирован декларативной базой
    request_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    sms_history: Mapped[list["SmsHistoryORM"]] = relationship(
        back_populates="number_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SmsHistoryORM.id",
    )


class SmsHistoryORM(Base):
    """Полученное по заявке SMS (только добавление)."""

    __tablename__ = "sms_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    number_request_id: Mapped[int] = mapped_column(
        ForeignKey("number_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    number_request: Mapped[NumberRequestORM] = relationship(back_populates="sms_history")
