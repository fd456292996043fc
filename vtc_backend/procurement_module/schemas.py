from datetime import date, datetime

from pydantic import BaseModel, Field

from ..schemas import ORMModel
from .models import PurchaseOrderStatus, RequisitionStatus


class SupplierCreateRequest(BaseModel):
    supplier_code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=2, max_length=255)
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    payment_terms: str | None = None
    organization_id: int | None = None


class SupplierUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    payment_terms: str | None = None
    active: bool | None = None


class SupplierOut(ORMModel):
    id: int
    organization_id: int
    supplier_code: str
    name: str
    contact_person: str | None
    email: str | None
    phone: str | None
    address: str | None
    payment_terms: str | None
    active: bool


class RequisitionItemIn(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    quantity: float = Field(gt=0)
    estimated_unit_cost: float = Field(default=0, ge=0)
    stock_item_id: int | None = None


class RequisitionCreateRequest(BaseModel):
    department: str | None = None
    justification: str | None = None
    items: list[RequisitionItemIn] = Field(min_length=1)
    organization_id: int | None = None


class RequisitionItemOut(ORMModel):
    id: int
    stock_item_id: int | None
    description: str
    quantity: float
    estimated_unit_cost: float
    total_estimated_cost: float


class RequisitionOut(ORMModel):
    id: int
    organization_id: int
    requisition_number: str
    department: str | None
    justification: str | None
    status: RequisitionStatus
    requested_by: int | None
    approved_by: int | None
    approved_at: datetime | None
    rejection_reason: str | None
    total_estimated_cost: float
    items: list[RequisitionItemOut]
    created_at: datetime


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class PurchaseOrderItemIn(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    quantity_ordered: float = Field(gt=0)
    unit_cost: float = Field(ge=0)
    stock_item_id: int | None = None


class PurchaseOrderCreateRequest(BaseModel):
    supplier_id: int
    requisition_id: int | None = None
    order_date: date | None = None
    expected_delivery_date: date | None = None
    tax_rate: float = Field(default=15, ge=0, le=100)
    notes: str | None = None
    # Required for standalone orders; copied from the requisition otherwise.
    items: list[PurchaseOrderItemIn] | None = None
    organization_id: int | None = None


class PurchaseOrderItemOut(ORMModel):
    id: int
    stock_item_id: int | None
    description: str
    quantity_ordered: float
    unit_cost: float
    total_cost: float
    quantity_received: float
    outstanding_quantity: float


class PurchaseOrderOut(ORMModel):
    id: int
    organization_id: int
    po_number: str
    supplier_id: int
    requisition_id: int | None
    order_date: date
    expected_delivery_date: date | None
    status: PurchaseOrderStatus
    tax_rate: float
    subtotal: float
    tax_amount: float
    grand_total: float
    notes: str | None
    issued_at: datetime | None
    items: list[PurchaseOrderItemOut]


class ReceivingItemIn(BaseModel):
    po_item_id: int
    quantity_accepted: float = Field(ge=0)
    quantity_rejected: float = Field(default=0, ge=0)
    rejection_reason: str | None = None


class ReceivingReportCreateRequest(BaseModel):
    purchase_order_id: int
    received_date: date | None = None
    inspector_notes: str | None = None
    items: list[ReceivingItemIn] = Field(min_length=1)


class ReceivingItemOut(ORMModel):
    id: int
    po_item_id: int
    quantity_received: float
    quantity_accepted: float
    quantity_rejected: float
    rejection_reason: str | None


class ReceivingReportOut(ORMModel):
    id: int
    organization_id: int
    purchase_order_id: int
    receipt_number: str
    received_date: date
    received_by: int | None
    inspector_notes: str | None
    items: list[ReceivingItemOut]
