"""
Lab order and lab result endpoints.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.lab import LOCKED_LAB_STATUSES, LabOrder, LabOrderStatus, LabPriority, LabResult
from ..models.mixins import utcnow
from ..models.patient import Patient
from ..models.user import User
from ..schemas.clinical import LabOrderCreate, LabOrderResponse, LabOrderUpdate, LabResultCreate, LabResultResponse
from ..schemas.common import page_params
from ..services.audit import AuditService, changed_fields
from .deps import ensure_patient_access, get_accessible_patient, not_found
from .visits import build_lab_order, get_visit_or_404


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Lab Orders"])

ORDERING_ROLES = ("doctor",)
LAB_ROLES = ("doctor", "lab_technician")


def _get_order_or_404(db: Session, order_id: UUID, user: User) -> LabOrder:
    order = db.query(LabOrder).filter(LabOrder.id == order_id).first()
    if not order:
        raise not_found("Lab order not found")
    patient = db.query(Patient).filter(Patient.id == order.patient_id).first()
    ensure_patient_access(user, patient)
    return order


@router.post("/visits/{visit_id}/lab-orders", status_code=status.HTTP_201_CREATED)
async def create_lab_order(
    visit_id: UUID,
    body: LabOrderCreate,
    request: Request,
    user: User = Depends(require_role(*ORDERING_ROLES)),
    db: Session = Depends(get_db),
):
    """Order a test for a visit. The order starts as ``ordered``."""
    visit = get_visit_or_404(db, visit_id, user)

    try:
        with transaction(db):
            order = build_lab_order(db, body, visit, user.id)
            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "lab_orders", order.id, new_values={"test_name": order.test_name}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create lab order for visit {visit.id}: {e}")
        raise APIError(500, "Failed to create lab order", code="LAB_ORDER_CREATE_FAILED")

    logger.info(f"Lab order {order.order_number} created for visit {visit.id}")
    return envelope(data=LabOrderResponse.model_validate(order), status_code=201)


@router.get("/patients/{patient_id}/lab-orders")
async def list_patient_lab_orders(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    status_filter: Optional[LabOrderStatus] = Query(None, alias="status"),
    priority: Optional[LabPriority] = None,
):
    query = db.query(LabOrder).filter(LabOrder.patient_id == patient.id)
    if status_filter:
        query = query.filter(LabOrder.status == status_filter)
    if priority:
        query = query.filter(LabOrder.priority == priority)

    page = paginate(query.order_by(LabOrder.order_date.desc()), *pagination)
    return envelope(
        data=[LabOrderResponse.model_validate(o) for o in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/lab-orders/{order_id}")
async def get_lab_order(
    order_id: UUID,
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    return envelope(data=LabOrderResponse.model_validate(_get_order_or_404(db, order_id, user)))


@router.put("/lab-orders/{order_id}")
async def update_lab_order(
    order_id: UUID,
    body: LabOrderUpdate,
    request: Request,
    user: User = Depends(require_role(*LAB_ROLES)),
    db: Session = Depends(get_db),
):
    """Completed and cancelled orders are locked."""
    order = _get_order_or_404(db, order_id, user)
    if order.status in LOCKED_LAB_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot update a {order.status.value} lab order",
        )

    values = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    old_status = order.status
    with transaction(db):
        for field, value in values.items():
            setattr(order, field, value)
        if order.status == LabOrderStatus.COLLECTED and not order.collected_at:
            order.collected_at = utcnow()
        if order.status == LabOrderStatus.COMPLETED and not order.completed_at:
            order.completed_at = utcnow()
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "lab_orders", order.id,
            old_values={"status": old_status.value},
            new_values=changed_fields(values),
        )

    return envelope(data=LabOrderResponse.model_validate(order))


@router.post("/lab-orders/{order_id}/results", status_code=status.HTTP_201_CREATED)
async def record_lab_result(
    order_id: UUID,
    body: LabResultCreate,
    request: Request,
    user: User = Depends(require_role(*LAB_ROLES)),
    db: Session = Depends(get_db),
):
    """Add a result row and mark the order completed."""
    order = _get_order_or_404(db, order_id, user)
    if order.status == LabOrderStatus.CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot record results for a cancelled lab order")

    values = body.model_dump()
    if values.get("result_date") is None:
        values.pop("result_date")

    with transaction(db):
        result = LabResult(lab_order_id=order.id, reported_by=user.id, **values)
        db.add(result)
        order.status = LabOrderStatus.COMPLETED
        order.completed_at = utcnow()
        db.flush()
        AuditService(db, user=user, request=request, autocommit=False).log_create(
            "lab_results", result.id, new_values={"lab_order_id": str(order.id), "abnormal_flag": result.abnormal_flag.value}
        )

    logger.info(f"Result recorded for lab order {order.order_number}")
    return envelope(data=LabResultResponse.model_validate(result), status_code=201)
