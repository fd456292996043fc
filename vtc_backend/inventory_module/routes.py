from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_scoped_or_404, require_permission
from ..rbac_module.models import AppRole, User
from ..schemas import SuccessResponse
from .models import Asset, AssetStatus, MovementType, StockItem
from .schemas import (
    AssetCreateRequest,
    AssetOut,
    AssetUpdateRequest,
    CategoryCreateRequest,
    CategoryOut,
    CategoryUpdateRequest,
    DepreciationOut,
    DepreciationRequest,
    MovementCreateRequest,
    MovementOut,
    StockItemCreateRequest,
    StockItemOut,
    StockItemUpdateRequest,
)
from .services import (
    calculate_depreciation,
    create_asset,
    create_category,
    create_item,
    delete_category,
    list_assets,
    list_categories,
    list_depreciation,
    list_items,
    list_movements,
    low_stock_items,
    record_movement,
    update_asset,
    update_category,
    update_item,
)


router = APIRouter(prefix="/api/v1", tags=["Inventory"])

stock_viewers = require_permission("stock_management", "view", AppRole.STOCK_CONTROL_OFFICER, AppRole.PROCUREMENT_OFFICER)
stock_editors = require_permission("stock_management", "edit", AppRole.STOCK_CONTROL_OFFICER)
asset_viewers = require_permission("asset_management", "view", AppRole.ASSET_MAINTENANCE_COORDINATOR)
asset_editors = require_permission("asset_management", "edit", AppRole.ASSET_MAINTENANCE_COORDINATOR)


@router.get("/stock/categories", response_model=list[CategoryOut])
def get_categories(db: Session = Depends(get_db_session), current_user: User = Depends(stock_viewers)):
    return list_categories(db, current_user)


@router.post("/stock/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def add_category(
    payload: CategoryCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(stock_editors),
):
    return create_category(db, current_user, payload)


@router.patch("/stock/categories/{category_id}", response_model=CategoryOut)
def edit_category(
    category_id: int,
    payload: CategoryUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(stock_editors),
):
    return update_category(db, current_user, category_id, payload)


@router.delete("/stock/categories/{category_id}", response_model=SuccessResponse)
def remove_category(category_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(stock_editors)):
    delete_category(db, current_user, category_id)
    return SuccessResponse(message="Category deleted")


@router.get("/stock/items", response_model=list[StockItemOut])
def get_items(
    category_id: int | None = None,
    search: str | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(stock_viewers),
):
    return list_items(db, current_user, category_id=category_id, search=search, active_only=active_only)


@router.get("/stock/low-stock", response_model=list[StockItemOut])
def get_low_stock(db: Session = Depends(get_db_session), current_user: User = Depends(stock_viewers)):
    return low_stock_items(db, current_user)


@router.post("/stock/items", response_model=StockItemOut, status_code=status.HTTP_201_CREATED)
def add_item(payload: StockItemCreateRequest, db: Session = Depends(get_db_session), current_user: User = Depends(stock_editors)):
    return create_item(db, current_user, payload)


@router.get("/stock/items/{item_id}", response_model=StockItemOut)
def get_item(item_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(stock_viewers)):
    return get_scoped_or_404(db, StockItem, item_id, current_user, "Stock item")


@router.patch("/stock/items/{item_id}", response_model=StockItemOut)
def edit_item(
    item_id: int,
    payload: StockItemUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(stock_editors),
):
    return update_item(db, current_user, item_id, payload)


@router.get("/stock/movements", response_model=list[MovementOut])
def get_movements(
    stock_item_id: int | None = None,
    movement_type: MovementType | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(stock_viewers),
):
    return list_movements(db, current_user, stock_item_id=stock_item_id, movement_type=movement_type)


@router.post("/stock/movements", response_model=MovementOut, status_code=status.HTTP_201_CREATED)
def add_movement(
    payload: MovementCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(stock_editors),
):
    return record_movement(db, current_user, payload)


@router.get("/assets", response_model=list[AssetOut])
def get_assets(
    status_filter: AssetStatus | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(asset_viewers),
):
    return list_assets(db, current_user, status_filter)


@router.post("/assets", response_model=AssetOut, status_code=status.HTTP_201_CREATED)
def add_asset(payload: AssetCreateRequest, db: Session = Depends(get_db_session), current_user: User = Depends(asset_editors)):
    return create_asset(db, current_user, payload)


@router.get("/assets/{asset_id}", response_model=AssetOut)
def get_asset(asset_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(asset_viewers)):
    return get_scoped_or_404(db, Asset, asset_id, current_user, "Asset")


@router.patch("/assets/{asset_id}", response_model=AssetOut)
def edit_asset(
    asset_id: int,
    payload: AssetUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(asset_editors),
):
    return update_asset(db, current_user, asset_id, payload)


@router.get("/assets/{asset_id}/depreciation", response_model=list[DepreciationOut])
def get_depreciation(asset_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(asset_viewers)):
    return list_depreciation(db, current_user, asset_id)


@router.post("/assets/{asset_id}/depreciation", response_model=DepreciationOut, status_code=status.HTTP_201_CREATED)
def depreciate(
    asset_id: int,
    payload: DepreciationRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(asset_editors),
):
    return calculate_depreciation(db, current_user, asset_id, payload.year)
