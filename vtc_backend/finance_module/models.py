import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, enum_column, utcnow


class FeeCategory(str, enum.Enum):
    APPLICATION = "application"
    REGISTRATION = "registration"
    HOSTEL = "hostel"
    TUITION = "tuition"
    OTHER = "other"


class QueueEntityType(str, enum.Enum):
    APPLICATION = "APPLICATION"
    REGISTRATION = "REGISTRATION"
    HOSTEL = "HOSTEL"


class QueueStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    CLEARED = "cleared"


class TransactionType(str, enum.Enum):
    CHARGE = "charge"
    PAYMENT = "payment"


class FeeType(Base):
    __tablename__ = "fee_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[FeeCategory] = mapped_column(enum_column(FeeCategory), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class FinancialQueueEntry(Base):
    __tablename__ = "financial_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    # APPLICATION -> trainee_applications.id, REGISTRATION -> registrations.id,
    # HOSTEL -> hostel_fees.id
    entity_type: Mapped[QueueEntityType] = mapped_column(enum_column(QueueEntityType), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    fee_type_id: Mapped[int | None] = mapped_column(ForeignKey("fee_types.id"), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    balance: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    status: Mapped[QueueStatus] = mapped_column(
        enum_column(QueueStatus), default=QueueStatus.PENDING, nullable=False, index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(40), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    cleared_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    fee_type: Mapped[FeeType | None] = relationship("FeeType")


class TraineeFinancialAccount(Base):
    __tablename__ = "trainee_financial_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    trainee_id: Mapped[int | None] = mapped_column(ForeignKey("trainees.id"), nullable=True, unique=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("trainee_applications.id"), nullable=True)
    total_fees: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_paid: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    balance: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    transactions: Mapped[list["FinancialTransaction"]] = relationship(
        "FinancialTransaction", back_populates="account", order_by="FinancialTransaction.id"
    )


class FinancialTransaction(Base):
    __tablename__ = "financial_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("trainee_financial_accounts.id"), nullable=False, index=True)
    fee_type_id: Mapped[int | None] = mapped_column(ForeignKey("fee_types.id"), nullable=True)
    transaction_type: Mapped[TransactionType] = mapped_column(enum_column(TransactionType), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(40), nullable=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    account: Mapped[TraineeFinancialAccount] = relationship("TraineeFinancialAccount", back_populates="transactions")
