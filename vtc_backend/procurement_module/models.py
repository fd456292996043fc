import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, enum_column, utcnow


class RequisitionStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class Supplier(Base):
    __tablename__ = "suppliers"
    __table_args__ = (UniqueConstraint("organization_id", "supplier_code", name="uq_supplier_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    supplier_code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(120), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PurchaseRequisition(Base):
    __tablename__ = "purchase_requisitions"
    __table_args__ = (UniqueConstraint("organization_id", "requisition_number", name="uq_requisition_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    requisition_number: Mapped[str] = mapped_column(String(32), nullable=False)
    department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[RequisitionStatus] = mapped_column(
        enum_column(RequisitionStatus), default=RequisitionStatus.DRAFT, nullable=False, index=True
    )
    requested_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    items: Mapped[list["RequisitionItem"]] = relationship(
        "RequisitionItem", cascade="all, delete-orphan", order_by="RequisitionItem.id"
    )

    @property
    def total_estimated_cost(self) -> float:
        return round(sum(item.total_estimated_cost for item in self.items), 2)


class RequisitionItem(Base):
    __tablename__ = "purchase_requisition_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    requisition_id: Mapped[int] = mapped_column(ForeignKey("purchase_requisitions.id"), nullable=False, index=True)
    stock_item_id: Mapped[int | None] = mapped_column(ForeignKey("stock_items.id"), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_unit_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_estimated_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    __table_args__ = (UniqueConstraint("organization_id", "po_number", name="uq_po_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    po_number: Mapped[str] = mapped_column(String(32), nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), nullable=False, index=True)
    requisition_id: Mapped[int | None] = mapped_column(ForeignKey("purchase_requisitions.id"), nullable=True)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        enum_column(PurchaseOrderStatus), default=PurchaseOrderStatus.DRAFT, nullable=False, index=True
    )
    tax_rate: Mapped[float] = mapped_column(Float, default=15, nullable=False)
    subtotal: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    tax_amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    grand_total: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem", cascade="all, delete-orphan", order_by="PurchaseOrderItem.id"
    )
    supplier: Mapped[Supplier] = relationship("Supplier")


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey("purchase_orders.id"), nullable=False, index=True)
    stock_item_id: Mapped[int | None] = mapped_column(ForeignKey("stock_items.id"), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_ordered: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    quantity_received: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    @property
    def outstanding_quantity(self) -> float:
        return max(0.0, self.quantity_ordered - self.quantity_received)


class ReceivingReport(Base):
    __tablename__ = "receiving_reports"
    __table_args__ = (UniqueConstraint("organization_id", "receipt_number", name="uq_receipt_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey("purchase_orders.id"), nullable=False, index=True)
    receipt_number: Mapped[str] = mapped_column(String(32), nullable=False)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)
    received_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    inspector_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    items: Mapped[list["ReceivingReportItem"]] = relationship(
        "ReceivingReportItem", cascade="all, delete-orphan", order_by="ReceivingReportItem.id"
    )


class ReceivingReportItem(Base):
    __tablename__ = "receiving_report_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    receiving_report_id: Mapped[int] = mapped_column(ForeignKey("receiving_reports.id"), nullable=False, index=True)
    po_item_id: Mapped[int] = mapped_column(ForeignKey("purchase_order_items.id"), nullable=False)
    quantity_received: Mapped[float] = mapped_column(Float, nullable=False)
    quantity_accepted: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    quantity_rejected: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
