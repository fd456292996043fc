import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..audit import log_audit_event, notify
from ..database import today
from ..middleware import get_scoped_or_404, resolve_organization_id, scope_to_organization
from ..rbac_module.models import AppRole, User
from .models import Asset, AssetDepreciation, AssetStatus, MovementType, StockCategory, StockItem, StockMovement
from .schemas import (
    AssetCreateRequest,
    AssetUpdateRequest,
    CategoryCreateRequest,
    CategoryUpdateRequest,
    MovementCreateRequest,
    StockItemCreateRequest,
    StockItemUpdateRequest,
)


logger = logging.getLogger(__name__)


# --- Categories ---

def list_categories(db: Session, actor: User) -> list[StockCategory]:
    return scope_to_organization(db.query(StockCategory), StockCategory, actor).order_by(StockCategory.name).all()


def create_category(db: Session, actor: User, payload: CategoryCreateRequest) -> StockCategory:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    name = payload.name.strip()
    exists = (
        db.query(StockCategory.id)
        .filter(StockCategory.organization_id == organization_id, StockCategory.name == name)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Category already exists")
    category = StockCategory(organization_id=organization_id, name=name, description=payload.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, actor: User, category_id: int, payload: CategoryUpdateRequest) -> StockCategory:
    category = get_scoped_or_404(db, StockCategory, category_id, actor, "Category")
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(category, key, value)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, actor: User, category_id: int) -> None:
    category = get_scoped_or_404(db, StockCategory, category_id, actor, "Category")
    if db.query(StockItem.id).filter(StockItem.category_id == category.id).first():
        raise HTTPException(status_code=400, detail="Category still has stock items")
    db.delete(category)
    db.commit()


# --- Items ---

def list_items(
    db: Session, actor: User, category_id: int | None = None, search: str | None = None, active_only: bool = False
) -> list[StockItem]:
    query = scope_to_organization(db.query(StockItem), StockItem, actor)
    if category_id:
        query = query.filter(StockItem.category_id == category_id)
    if active_only:
        query = query.filter(StockItem.active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(StockItem.item_name.ilike(pattern) | StockItem.item_code.ilike(pattern))
    return query.order_by(StockItem.item_code).all()


def _check_category(db: Session, actor: User, category_id: int | None, organization_id: int) -> None:
    if category_id is None:
        return
    category = get_scoped_or_404(db, StockCategory, category_id, actor, "Category")
    if category.organization_id != organization_id:
        raise HTTPException(status_code=400, detail="Category belongs to another organization")


def create_item(db: Session, actor: User, payload: StockItemCreateRequest) -> StockItem:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    code = payload.item_code.strip().upper()
    exists = (
        db.query(StockItem.id).filter(StockItem.organization_id == organization_id, StockItem.item_code == code).first()
    )
    if exists:
        raise HTTPException(status_code=409, detail=f"Item code {code} already exists")
    _check_category(db, actor, payload.category_id, organization_id)
    item = StockItem(
        organization_id=organization_id,
        item_code=code,
        current_quantity=0,
        **payload.model_dump(exclude={"organization_id", "item_code"}),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def update_item(db: Session, actor: User, item_id: int, payload: StockItemUpdateRequest) -> StockItem:
    item = get_scoped_or_404(db, StockItem, item_id, actor, "Stock item")
    changes = payload.model_dump(exclude_none=True)
    if "category_id" in changes:
        _check_category(db, actor, changes["category_id"], item.organization_id)
    for key, value in changes.items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return item


def low_stock_items(db: Session, actor: User) -> list[StockItem]:
    query = scope_to_organization(db.query(StockItem), StockItem, actor)
    return (
        query.filter(StockItem.active.is_(True), StockItem.current_quantity <= StockItem.reorder_level)
        .order_by(StockItem.current_quantity)
        .all()
    )


# --- Movements ---

def book_movement(
    db: Session,
    actor: User,
    item: StockItem,
    movement_type: MovementType,
    quantity: float,
    *,
    unit_cost: float | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Applies a movement to the item's quantity. The caller commits."""
    if movement_type == MovementType.ADJUSTMENT:
        if quantity == 0:
            raise HTTPException(status_code=400, detail="Adjustment quantity cannot be zero")
        delta = quantity
    else:
        if quantity <= 0:
            raise HTTPException(status_code=400, detail="Quantity must be greater than zero")
        delta = quantity if movement_type == MovementType.INFLOW else -quantity

    new_quantity = item.current_quantity + delta
    if new_quantity < 0:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient stock for {item.item_code}: {item.current_quantity:g} on hand",
        )

    was_low = item.is_low_stock
    item.current_quantity = new_quantity
    cost = unit_cost if unit_cost is not None else item.unit_cost
    if movement_type == MovementType.INFLOW and unit_cost is not None:
        item.unit_cost = unit_cost

    movement = StockMovement(
        organization_id=item.organization_id,
        stock_item_id=item.id,
        movement_type=movement_type,
        quantity=quantity,
        unit_cost=cost,
        total_cost=round(abs(quantity) * cost, 2),
        quantity_after=new_quantity,
        reference_number=reference_number,
        notes=notes,
        performed_by=actor.id,
    )
    db.add(movement)

    if item.is_low_stock and not was_low:
        logger.warning("Stock item %s is at or below its reorder level", item.item_code)
        notify(
            db,
            title="Low stock",
            message=f"{item.item_name} ({item.item_code}) is down to {new_quantity:g} {item.unit_of_measure}; "
            f"reorder level is {item.reorder_level:g}.",
            organization_id=item.organization_id,
            role=AppRole.STOCK_CONTROL_OFFICER.value,
            type="warning",
        )
    return movement


def record_movement(db: Session, actor: User, payload: MovementCreateRequest) -> StockMovement:
    item = get_scoped_or_404(db, StockItem, payload.stock_item_id, actor, "Stock item")
    if not item.active:
        raise HTTPException(status_code=400, detail="Stock item is inactive")
    movement = book_movement(
        db,
        actor,
        item,
        payload.movement_type,
        payload.quantity,
        unit_cost=payload.unit_cost,
        reference_number=payload.reference_number,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(movement)
    return movement


def list_movements(
    db: Session, actor: User, stock_item_id: int | None = None, movement_type: MovementType | None = None
) -> list[StockMovement]:
    query = scope_to_organization(db.query(StockMovement), StockMovement, actor)
    if stock_item_id:
        query = query.filter(StockMovement.stock_item_id == stock_item_id)
    if movement_type:
        query = query.filter(StockMovement.movement_type == movement_type)
    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()


# --- Assets ---

def list_assets(db: Session, actor: User, status_filter: AssetStatus | None = None) -> list[Asset]:
    query = scope_to_organization(db.query(Asset), Asset, actor)
    if status_filter:
        query = query.filter(Asset.status == status_filter)
    return query.order_by(Asset.asset_code).all()


def create_asset(db: Session, actor: User, payload: AssetCreateRequest) -> Asset:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    code = payload.asset_code.strip().upper()
    if db.query(Asset.id).filter(Asset.organization_id == organization_id, Asset.asset_code == code).first():
        raise HTTPException(status_code=409, detail=f"Asset code {code} already exists")
    asset = Asset(
        organization_id=organization_id,
        asset_code=code,
        current_value=payload.purchase_cost,
        **payload.model_dump(exclude={"organization_id", "asset_code"}),
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


def update_asset(db: Session, actor: User, asset_id: int, payload: AssetUpdateRequest) -> Asset:
    asset = get_scoped_or_404(db, Asset, asset_id, actor, "Asset")
    changes = payload.model_dump(exclude_none=True)
    old_status = asset.status
    for key, value in changes.items():
        setattr(asset, key, value)
    if asset.status != old_status:
        log_audit_event(
            db,
            action="asset_status_changed",
            table_name="assets",
            record_id=asset.id,
            old_data={"status": old_status.value},
            new_data={"status": asset.status.value},
            user_id=actor.id,
            organization_id=asset.organization_id,
        )
    db.commit()
    db.refresh(asset)
    return asset


def list_depreciation(db: Session, actor: User, asset_id: int) -> list[AssetDepreciation]:
    asset = get_scoped_or_404(db, Asset, asset_id, actor, "Asset")
    return (
        db.query(AssetDepreciation)
        .filter(AssetDepreciation.asset_id == asset.id)
        .order_by(AssetDepreciation.year)
        .all()
    )


def calculate_depreciation(db: Session, actor: User, asset_id: int, year: int | None = None) -> AssetDepreciation:
    """Books one year of declining-balance depreciation.

    The opening value is the previous year's closing value, or the asset's
    current value for its first row. Years are booked consecutively, once each.
    """
    asset = get_scoped_or_404(db, Asset, asset_id, actor, "Asset")
    if asset.status == AssetStatus.DISPOSED:
        raise HTTPException(status_code=400, detail="Disposed assets are not depreciated")
    if asset.depreciation_rate <= 0:
        raise HTTPException(status_code=400, detail="Asset has no depreciation rate")

    last = (
        db.query(AssetDepreciation)
        .filter(AssetDepreciation.asset_id == asset.id)
        .order_by(AssetDepreciation.year.desc())
        .first()
    )
    if year is None:
        if last is not None:
            year = last.year + 1
        else:
            year = asset.purchase_date.year if asset.purchase_date else today().year
    booked = (
        db.query(AssetDepreciation.id)
        .filter(AssetDepreciation.asset_id == asset.id, AssetDepreciation.year == year)
        .first()
    )
    if booked:
        raise HTTPException(status_code=409, detail=f"Depreciation for {year} is already recorded")
    if last is not None and year != last.year + 1:
        raise HTTPException(
            status_code=400, detail=f"Depreciation must follow {last.year}; the next year to book is {last.year + 1}"
        )

    opening = last.closing_value if last is not None else asset.current_value
    amount = round(opening * asset.depreciation_rate / 100, 2)
    closing = round(opening - amount, 2)
    row = AssetDepreciation(
        organization_id=asset.organization_id,
        asset_id=asset.id,
        year=year,
        opening_value=opening,
        depreciation_amount=amount,
        closing_value=closing,
    )
    db.add(row)
    asset.current_value = closing
    db.commit()
    db.refresh(row)
    logger.info("Asset %s depreciated for %s: %.2f -> %.2f", asset.asset_code, year, opening, closing)
    return row
