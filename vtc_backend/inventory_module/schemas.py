from datetime import date, datetime

from pydantic import BaseModel, Field

from ..schemas import ORMModel
from .models import AssetStatus, MovementType


class CategoryCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    description: str | None = None
    organization_id: int | None = None


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    description: str | None = None


class CategoryOut(ORMModel):
    id: int
    organization_id: int
    name: str
    description: str | None


class StockItemCreateRequest(BaseModel):
    item_code: str = Field(min_length=1, max_length=64)
    item_name: str = Field(min_length=2, max_length=255)
    category_id: int | None = None
    description: str | None = None
    unit_of_measure: str = "unit"
    unit_cost: float = Field(default=0, ge=0)
    reorder_level: float = Field(default=0, ge=0)
    location: str | None = None
    organization_id: int | None = None


class StockItemUpdateRequest(BaseModel):
    item_name: str | None = Field(default=None, min_length=2, max_length=255)
    category_id: int | None = None
    description: str | None = None
    unit_of_measure: str | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    reorder_level: float | None = Field(default=None, ge=0)
    location: str | None = None
    active: bool | None = None


class StockItemOut(ORMModel):
    id: int
    organization_id: int
    category_id: int | None
    item_code: str
    item_name: str
    description: str | None
    unit_of_measure: str
    unit_cost: float
    current_quantity: float
    reorder_level: float
    location: str | None
    active: bool
    is_low_stock: bool


class MovementCreateRequest(BaseModel):
    stock_item_id: int
    movement_type: MovementType
    # Positive for inflow/outflow; adjustments take a signed delta.
    quantity: float
    unit_cost: float | None = Field(default=None, ge=0)
    reference_number: str | None = None
    notes: str | None = None


class MovementOut(ORMModel):
    id: int
    stock_item_id: int
    movement_type: MovementType
    quantity: float
    unit_cost: float | None
    total_cost: float | None
    quantity_after: float
    reference_number: str | None
    notes: str | None
    performed_by: int | None
    created_at: datetime


class AssetCreateRequest(BaseModel):
    asset_code: str = Field(min_length=1, max_length=64)
    asset_name: str = Field(min_length=2, max_length=255)
    category: str | None = None
    serial_number: str | None = None
    location: str | None = None
    purchase_date: date | None = None
    purchase_cost: float = Field(default=0, ge=0)
    depreciation_rate: float = Field(default=0, ge=0, le=100)
    assigned_to: str | None = None
    notes: str | None = None
    organization_id: int | None = None


class AssetUpdateRequest(BaseModel):
    asset_name: str | None = Field(default=None, min_length=2, max_length=255)
    category: str | None = None
    serial_number: str | None = None
    location: str | None = None
    depreciation_rate: float | None = Field(default=None, ge=0, le=100)
    status: AssetStatus | None = None
    assigned_to: str | None = None
    notes: str | None = None


class AssetOut(ORMModel):
    id: int
    organization_id: int
    asset_code: str
    asset_name: str
    category: str | None
    serial_number: str | None
    location: str | None
    purchase_date: date | None
    purchase_cost: float
    current_value: float
    depreciation_rate: float
    status: AssetStatus
    assigned_to: str | None
    notes: str | None


class DepreciationRequest(BaseModel):
    year: int | None = Field(default=None, ge=1900, le=2200)


class DepreciationOut(ORMModel):
    id: int
    asset_id: int
    year: int
    opening_value: float
    depreciation_amount: float
    closing_value: float
    created_at: datetime
