import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, enum_column, utcnow


class MovementType(str, enum.Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"
    ADJUSTMENT = "adjustment"


class AssetStatus(str, enum.Enum):
    ACTIVE = "active"
    UNDER_REPAIR = "under_repair"
    DISPOSED = "disposed"
    IN_STORAGE = "in_storage"
    RETIRED = "retired"


class StockCategory(Base):
    __tablename__ = "stock_categories"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_stock_category_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class StockItem(Base):
    __tablename__ = "stock_items"
    __table_args__ = (UniqueConstraint("organization_id", "item_code", name="uq_stock_item_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("stock_categories.id"), nullable=True)
    item_code: Mapped[str] = mapped_column(String(64), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit_of_measure: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    current_quantity: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    reorder_level: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    location: Mapped[str | None] = mapped_column(String(120), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    category: Mapped[StockCategory | None] = relationship("StockCategory")

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.reorder_level


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    stock_item_id: Mapped[int] = mapped_column(ForeignKey("stock_items.id"), nullable=False, index=True)
    movement_type: Mapped[MovementType] = mapped_column(enum_column(MovementType), nullable=False)
    # For adjustments this is the signed delta applied to current_quantity.
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    quantity_after: Mapped[float] = mapped_column(Float, nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (UniqueConstraint("organization_id", "asset_code", name="uq_asset_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    asset_code: Mapped[str] = mapped_column(String(64), nullable=False)
    asset_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(120), nullable=True)
    serial_number: Mapped[str | None] = mapped_column(String(120), nullable=True)
    location: Mapped[str | None] = mapped_column(String(120), nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    # Annual declining-balance rate, in percent.
    depreciation_rate: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    status: Mapped[AssetStatus] = mapped_column(enum_column(AssetStatus), default=AssetStatus.ACTIVE, nullable=False)
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AssetDepreciation(Base):
    __tablename__ = "asset_depreciation"
    __table_args__ = (UniqueConstraint("asset_id", "year", name="uq_asset_depreciation_year"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    opening_value: Mapped[float] = mapped_column(Float, nullable=False)
    depreciation_amount: Mapped[float] = mapped_column(Float, nullable=False)
    closing_value: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
