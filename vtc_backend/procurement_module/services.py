import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..audit import log_audit_event, notify
from ..database import today, utcnow
from ..inventory_module.models import MovementType, StockItem
from ..inventory_module.services import book_movement
from ..middleware import get_scoped_or_404, resolve_organization_id, scope_to_organization
from ..rbac_module.models import AppRole, User
from .models import (
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    PurchaseRequisition,
    ReceivingReport,
    ReceivingReportItem,
    RequisitionItem,
    RequisitionStatus,
    Supplier,
)
from .schemas import (
    PurchaseOrderCreateRequest,
    ReceivingReportCreateRequest,
    RequisitionCreateRequest,
    SupplierCreateRequest,
    SupplierUpdateRequest,
)


logger = logging.getLogger(__name__)


def _next_number(db: Session, model, column, organization_id: int, prefix: str) -> str:
    """Sequential document number such as PO-2026-0007, unique per organization."""
    stem = f"{prefix}-{today().year}-"
    count = (
        db.query(model.id)
        .filter(model.organization_id == organization_id, column.like(f"{stem}%"))
        .count()
    )
    sequence = count + 1
    while db.query(model.id).filter(model.organization_id == organization_id, column == f"{stem}{sequence:04d}").first():
        sequence += 1
    return f"{stem}{sequence:04d}"


def _stock_item_for(db: Session, actor: User, stock_item_id: int | None, organization_id: int) -> int | None:
    if stock_item_id is None:
        return None
    item = get_scoped_or_404(db, StockItem, stock_item_id, actor, "Stock item")
    if item.organization_id != organization_id:
        raise HTTPException(status_code=400, detail="Stock item belongs to another organization")
    return item.id


# --- Suppliers ---

def list_suppliers(db: Session, actor: User, active_only: bool = False) -> list[Supplier]:
    query = scope_to_organization(db.query(Supplier), Supplier, actor)
    if active_only:
        query = query.filter(Supplier.active.is_(True))
    return query.order_by(Supplier.name).all()


def create_supplier(db: Session, actor: User, payload: SupplierCreateRequest) -> Supplier:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    code = payload.supplier_code.strip().upper()
    if db.query(Supplier.id).filter(Supplier.organization_id == organization_id, Supplier.supplier_code == code).first():
        raise HTTPException(status_code=409, detail=f"Supplier code {code} already exists")
    supplier = Supplier(
        organization_id=organization_id,
        supplier_code=code,
        **payload.model_dump(exclude={"organization_id", "supplier_code"}),
    )
    db.add(supplier)
    db.commit()
    db.refresh(supplier)
    return supplier


def update_supplier(db: Session, actor: User, supplier_id: int, payload: SupplierUpdateRequest) -> Supplier:
    supplier = get_scoped_or_404(db, Supplier, supplier_id, actor, "Supplier")
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(supplier, key, value)
    db.commit()
    db.refresh(supplier)
    return supplier


# --- Requisitions ---

def list_requisitions(db: Session, actor: User, status_filter: RequisitionStatus | None = None) -> list[PurchaseRequisition]:
    query = scope_to_organization(db.query(PurchaseRequisition), PurchaseRequisition, actor)
    if status_filter:
        query = query.filter(PurchaseRequisition.status == status_filter)
    return query.order_by(PurchaseRequisition.created_at.desc()).all()


def create_requisition(db: Session, actor: User, payload: RequisitionCreateRequest) -> PurchaseRequisition:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    requisition = PurchaseRequisition(
        organization_id=organization_id,
        requisition_number=_next_number(
            db, PurchaseRequisition, PurchaseRequisition.requisition_number, organization_id, "REQ"
        ),
        department=payload.department,
        justification=payload.justification,
        status=RequisitionStatus.DRAFT,
        requested_by=actor.id,
    )
    for line in payload.items:
        requisition.items.append(
            RequisitionItem(
                stock_item_id=_stock_item_for(db, actor, line.stock_item_id, organization_id),
                description=line.description,
                quantity=line.quantity,
                estimated_unit_cost=line.estimated_unit_cost,
                total_estimated_cost=round(line.quantity * line.estimated_unit_cost, 2),
            )
        )
    db.add(requisition)
    db.commit()
    db.refresh(requisition)
    return requisition


def submit_requisition(db: Session, actor: User, requisition_id: int) -> PurchaseRequisition:
    requisition = get_scoped_or_404(db, PurchaseRequisition, requisition_id, actor, "Requisition")
    if requisition.status != RequisitionStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Only draft requisitions can be submitted")
    requisition.status = RequisitionStatus.PENDING
    notify(
        db,
        title="Requisition awaiting approval",
        message=f"{requisition.requisition_number} ({requisition.total_estimated_cost:.2f}) needs approval.",
        organization_id=requisition.organization_id,
        role=AppRole.ORGANIZATION_ADMIN.value,
    )
    db.commit()
    db.refresh(requisition)
    return requisition


def _decide(db: Session, actor: User, requisition_id: int) -> PurchaseRequisition:
    requisition = get_scoped_or_404(db, PurchaseRequisition, requisition_id, actor, "Requisition")
    if requisition.status != RequisitionStatus.PENDING:
        raise HTTPException(status_code=400, detail="Only pending requisitions can be approved or rejected")
    return requisition


def approve_requisition(db: Session, actor: User, requisition_id: int) -> PurchaseRequisition:
    requisition = _decide(db, actor, requisition_id)
    requisition.status = RequisitionStatus.APPROVED
    requisition.approved_by = actor.id
    requisition.approved_at = utcnow()
    log_audit_event(
        db,
        action="requisition_approved",
        table_name="purchase_requisitions",
        record_id=requisition.id,
        new_data={"status": requisition.status.value},
        user_id=actor.id,
        organization_id=requisition.organization_id,
    )
    if requisition.requested_by:
        notify(
            db,
            title="Requisition approved",
            message=f"{requisition.requisition_number} was approved.",
            organization_id=requisition.organization_id,
            user_id=requisition.requested_by,
            type="success",
        )
    db.commit()
    db.refresh(requisition)
    return requisition


def reject_requisition(db: Session, actor: User, requisition_id: int, reason: str) -> PurchaseRequisition:
    if not reason.strip():
        raise HTTPException(status_code=400, detail="A rejection reason is required")
    requisition = _decide(db, actor, requisition_id)
    requisition.status = RequisitionStatus.REJECTED
    requisition.rejection_reason = reason.strip()
    log_audit_event(
        db,
        action="requisition_rejected",
        table_name="purchase_requisitions",
        record_id=requisition.id,
        new_data={"status": requisition.status.value, "reason": requisition.rejection_reason},
        user_id=actor.id,
        organization_id=requisition.organization_id,
    )
    if requisition.requested_by:
        notify(
            db,
            title="Requisition rejected",
            message=f"{requisition.requisition_number} was rejected: {requisition.rejection_reason}",
            organization_id=requisition.organization_id,
            user_id=requisition.requested_by,
            type="warning",
        )
    db.commit()
    db.refresh(requisition)
    return requisition


# --- Purchase orders ---

def _apply_totals(order: PurchaseOrder) -> None:
    for line in order.items:
        line.total_cost = round(line.quantity_ordered * line.unit_cost, 2)
    order.subtotal = round(sum(line.total_cost for line in order.items), 2)
    order.tax_amount = round(order.subtotal * order.tax_rate / 100, 2)
    order.grand_total = round(order.subtotal + order.tax_amount, 2)


def list_purchase_orders(
    db: Session, actor: User, status_filter: PurchaseOrderStatus | None = None, supplier_id: int | None = None
) -> list[PurchaseOrder]:
    query = scope_to_organization(db.query(PurchaseOrder), PurchaseOrder, actor)
    if status_filter:
        query = query.filter(PurchaseOrder.status == status_filter)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc()).all()


def create_purchase_order(db: Session, actor: User, payload: PurchaseOrderCreateRequest) -> PurchaseOrder:
    """Raises a draft PO, either from an approved requisition or from explicit lines."""
    supplier = get_scoped_or_404(db, Supplier, payload.supplier_id, actor, "Supplier")
    if not supplier.active:
        raise HTTPException(status_code=400, detail="Supplier is inactive")
    organization_id = supplier.organization_id

    order = PurchaseOrder(
        organization_id=organization_id,
        po_number=_next_number(db, PurchaseOrder, PurchaseOrder.po_number, organization_id, "PO"),
        supplier_id=supplier.id,
        order_date=payload.order_date or today(),
        expected_delivery_date=payload.expected_delivery_date,
        status=PurchaseOrderStatus.DRAFT,
        tax_rate=payload.tax_rate,
        notes=payload.notes,
        created_by=actor.id,
    )

    if payload.requisition_id is not None:
        requisition = get_scoped_or_404(db, PurchaseRequisition, payload.requisition_id, actor, "Requisition")
        if requisition.organization_id != organization_id:
            raise HTTPException(status_code=400, detail="Requisition belongs to another organization")
        if requisition.status != RequisitionStatus.APPROVED:
            raise HTTPException(status_code=400, detail="Purchase orders can only be raised from approved requisitions")
        order.requisition_id = requisition.id
        lines = [
            (item.stock_item_id, item.description, item.quantity, item.estimated_unit_cost)
            for item in requisition.items
        ]
    else:
        lines = []
    # Explicit lines replace the requisition's estimates.
    if payload.items:
        lines = [(line.stock_item_id, line.description, line.quantity_ordered, line.unit_cost) for line in payload.items]
    if not lines:
        raise HTTPException(status_code=400, detail="A purchase order needs at least one item")

    for stock_item_id, description, quantity, unit_cost in lines:
        order.items.append(
            PurchaseOrderItem(
                stock_item_id=_stock_item_for(db, actor, stock_item_id, organization_id),
                description=description,
                quantity_ordered=quantity,
                unit_cost=unit_cost,
            )
        )
    _apply_totals(order)
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Purchase order %s raised for supplier %s: %.2f", order.po_number, supplier.supplier_code, order.grand_total)
    return order


def issue_purchase_order(db: Session, actor: User, order_id: int) -> PurchaseOrder:
    order = get_scoped_or_404(db, PurchaseOrder, order_id, actor, "Purchase order")
    if order.status != PurchaseOrderStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Only draft purchase orders can be issued")
    if not order.items:
        raise HTTPException(status_code=400, detail="Purchase order has no items")
    order.status = PurchaseOrderStatus.ISSUED
    order.issued_at = utcnow()
    log_audit_event(
        db,
        action="purchase_order_issued",
        table_name="purchase_orders",
        record_id=order.id,
        new_data={"po_number": order.po_number, "grand_total": order.grand_total},
        user_id=actor.id,
        organization_id=order.organization_id,
    )
    db.commit()
    db.refresh(order)
    return order


def cancel_purchase_order(db: Session, actor: User, order_id: int) -> PurchaseOrder:
    order = get_scoped_or_404(db, PurchaseOrder, order_id, actor, "Purchase order")
    if order.status not in (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.ISSUED):
        raise HTTPException(status_code=400, detail=f"A {order.status.value} purchase order cannot be cancelled")
    if any(line.quantity_received > 0 for line in order.items):
        raise HTTPException(status_code=400, detail="Goods have already been received against this order")
    order.status = PurchaseOrderStatus.CANCELLED
    log_audit_event(
        db,
        action="purchase_order_cancelled",
        table_name="purchase_orders",
        record_id=order.id,
        user_id=actor.id,
        organization_id=order.organization_id,
    )
    db.commit()
    db.refresh(order)
    return order


# --- Receiving ---

def list_receiving_reports(db: Session, actor: User, purchase_order_id: int | None = None) -> list[ReceivingReport]:
    query = scope_to_organization(db.query(ReceivingReport), ReceivingReport, actor)
    if purchase_order_id:
        query = query.filter(ReceivingReport.purchase_order_id == purchase_order_id)
    return query.order_by(ReceivingReport.received_date.desc(), ReceivingReport.id.desc()).all()


def receive_goods(db: Session, actor: User, payload: ReceivingReportCreateRequest) -> ReceivingReport:
    order = get_scoped_or_404(db, PurchaseOrder, payload.purchase_order_id, actor, "Purchase order")
    if order.status not in (PurchaseOrderStatus.ISSUED, PurchaseOrderStatus.PARTIALLY_RECEIVED):
        raise HTTPException(status_code=400, detail="Goods can only be received against an issued purchase order")

    lines = {line.id: line for line in order.items}
    report = ReceivingReport(
        organization_id=order.organization_id,
        purchase_order_id=order.id,
        receipt_number=_next_number(db, ReceivingReport, ReceivingReport.receipt_number, order.organization_id, "GRN"),
        received_date=payload.received_date or today(),
        received_by=actor.id,
        inspector_notes=payload.inspector_notes,
    )

    for entry in payload.items:
        line = lines.get(entry.po_item_id)
        if line is None:
            raise HTTPException(status_code=400, detail=f"Item {entry.po_item_id} is not on {order.po_number}")
        delivered = entry.quantity_accepted + entry.quantity_rejected
        if delivered <= 0:
            raise HTTPException(status_code=400, detail=f"Nothing received for {line.description}")
        if entry.quantity_accepted > line.outstanding_quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Only {line.outstanding_quantity:g} of {line.description} is outstanding",
            )
        report.items.append(
            ReceivingReportItem(
                po_item_id=line.id,
                quantity_received=delivered,
                quantity_accepted=entry.quantity_accepted,
                quantity_rejected=entry.quantity_rejected,
                rejection_reason=entry.rejection_reason,
            )
        )
        line.quantity_received += entry.quantity_accepted
        if line.stock_item_id and entry.quantity_accepted > 0:
            book_movement(
                db,
                actor,
                db.get(StockItem, line.stock_item_id),
                MovementType.INFLOW,
                entry.quantity_accepted,
                unit_cost=line.unit_cost,
                reference_number=report.receipt_number,
                notes=f"Received against {order.po_number}",
            )

    if all(line.outstanding_quantity == 0 for line in order.items):
        order.status = PurchaseOrderStatus.RECEIVED
    else:
        order.status = PurchaseOrderStatus.PARTIALLY_RECEIVED

    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Receipt %s booked against %s; order is now %s", report.receipt_number, order.po_number, order.status.value)
    return report
