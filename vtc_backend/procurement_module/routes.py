from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import ADMIN_ROLES, get_scoped_or_404, require_permission, require_roles
from ..rbac_module.models import AppRole, User
from .models import PurchaseOrder, PurchaseOrderStatus, PurchaseRequisition, RequisitionStatus
from .schemas import (
    PurchaseOrderCreateRequest,
    PurchaseOrderOut,
    ReceivingReportCreateRequest,
    ReceivingReportOut,
    RejectRequest,
    RequisitionCreateRequest,
    RequisitionOut,
    SupplierCreateRequest,
    SupplierOut,
    SupplierUpdateRequest,
)
from .services import (
    approve_requisition,
    cancel_purchase_order,
    create_purchase_order,
    create_requisition,
    create_supplier,
    issue_purchase_order,
    list_purchase_orders,
    list_receiving_reports,
    list_requisitions,
    list_suppliers,
    receive_goods,
    reject_requisition,
    submit_requisition,
    update_supplier,
)


router = APIRouter(prefix="/api/v1/procurement", tags=["Procurement"])

supplier_viewers = require_permission("supplier_management", "view", AppRole.PROCUREMENT_OFFICER)
supplier_editors = require_permission("supplier_management", "edit", AppRole.PROCUREMENT_OFFICER)
procurement_viewers = require_permission("procurement", "view", AppRole.PROCUREMENT_OFFICER, AppRole.STOCK_CONTROL_OFFICER)
procurement_editors = require_permission("procurement", "create", AppRole.PROCUREMENT_OFFICER)
requisition_approvers = require_roles(*ADMIN_ROLES)
receivers = require_roles(*ADMIN_ROLES, AppRole.PROCUREMENT_OFFICER, AppRole.STOCK_CONTROL_OFFICER)


@router.get("/suppliers", response_model=list[SupplierOut])
def get_suppliers(
    active_only: bool = False,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(supplier_viewers),
):
    return list_suppliers(db, current_user, active_only)


@router.post("/suppliers", response_model=SupplierOut, status_code=status.HTTP_201_CREATED)
def add_supplier(payload: SupplierCreateRequest, db: Session = Depends(get_db_session), current_user: User = Depends(supplier_editors)):
    return create_supplier(db, current_user, payload)


@router.patch("/suppliers/{supplier_id}", response_model=SupplierOut)
def edit_supplier(
    supplier_id: int,
    payload: SupplierUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(supplier_editors),
):
    return update_supplier(db, current_user, supplier_id, payload)


@router.get("/requisitions", response_model=list[RequisitionOut])
def get_requisitions(
    status_filter: RequisitionStatus | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(procurement_viewers),
):
    return list_requisitions(db, current_user, status_filter)


@router.post("/requisitions", response_model=RequisitionOut, status_code=status.HTTP_201_CREATED)
def add_requisition(
    payload: RequisitionCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(procurement_editors),
):
    return create_requisition(db, current_user, payload)


@router.get("/requisitions/{requisition_id}", response_model=RequisitionOut)
def get_requisition(requisition_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(procurement_viewers)):
    return get_scoped_or_404(db, PurchaseRequisition, requisition_id, current_user, "Requisition")


@router.post("/requisitions/{requisition_id}/submit", response_model=RequisitionOut)
def submit(requisition_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(procurement_editors)):
    return submit_requisition(db, current_user, requisition_id)


@router.post("/requisitions/{requisition_id}/approve", response_model=RequisitionOut)
def approve(requisition_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(requisition_approvers)):
    return approve_requisition(db, current_user, requisition_id)


@router.post("/requisitions/{requisition_id}/reject", response_model=RequisitionOut)
def reject(
    requisition_id: int,
    payload: RejectRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(requisition_approvers),
):
    return reject_requisition(db, current_user, requisition_id, payload.reason)


@router.get("/purchase-orders", response_model=list[PurchaseOrderOut])
def get_purchase_orders(
    status_filter: PurchaseOrderStatus | None = None,
    supplier_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(procurement_viewers),
):
    return list_purchase_orders(db, current_user, status_filter=status_filter, supplier_id=supplier_id)


@router.post("/purchase-orders", response_model=PurchaseOrderOut, status_code=status.HTTP_201_CREATED)
def add_purchase_order(
    payload: PurchaseOrderCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(procurement_editors),
):
    return create_purchase_order(db, current_user, payload)


@router.get("/purchase-orders/{order_id}", response_model=PurchaseOrderOut)
def get_purchase_order(order_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(procurement_viewers)):
    return get_scoped_or_404(db, PurchaseOrder, order_id, current_user, "Purchase order")


@router.post("/purchase-orders/{order_id}/issue", response_model=PurchaseOrderOut)
def issue(order_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(procurement_editors)):
    return issue_purchase_order(db, current_user, order_id)


@router.post("/purchase-orders/{order_id}/cancel", response_model=PurchaseOrderOut)
def cancel(order_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(procurement_editors)):
    return cancel_purchase_order(db, current_user, order_id)


@router.get("/receiving-reports", response_model=list[ReceivingReportOut])
def get_receiving_reports(
    purchase_order_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(procurement_viewers),
):
    return list_receiving_reports(db, current_user, purchase_order_id)


@router.post("/receiving-reports", response_model=ReceivingReportOut, status_code=status.HTTP_201_CREATED)
def add_receiving_report(
    payload: ReceivingReportCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(receivers),
):
    return receive_goods(db, current_user, payload)
