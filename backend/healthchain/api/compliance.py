"""
Compliance reports and statistics (admin).
"""

import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import require_permission, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.system import ComplianceReport, ComplianceReportStatus
from ..models.user import User
from ..schemas.admin import ComplianceReportCreate, ComplianceReportResponse, ComplianceReportUpdate
from ..schemas.common import page_params
from ..services.audit import AuditService, changed_fields
from ..services.compliance import compliance_stats, compliance_trends


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/compliance",
    tags=["Compliance"],
    dependencies=[Depends(require_role("admin")), Depends(require_permission("system.reports"))],
)

SORT_COLUMNS = {
    "created_at": ComplianceReport.created_at,
    "date": ComplianceReport.date,
    "title": ComplianceReport.title,
    "status": ComplianceReport.status,
    "score": ComplianceReport.score,
}


@router.get("/stats")
async def get_compliance_stats(db: Session = Depends(get_db)):
    return envelope(data=compliance_stats(db))


@router.get("/trends")
async def get_compliance_trends(
    period: int = Query(90, ge=1, le=730, description="Days to cover"),
    db: Session = Depends(get_db),
):
    trends = compliance_trends(db, period)
    return envelope(data={"period": period, "trends": trends})


@router.get("/reports")
async def list_reports(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    report_type: Optional[str] = Query(None, alias="type", max_length=50),
    status_filter: Optional[ComplianceReportStatus] = Query(None, alias="status"),
    sort_by: Literal["created_at", "date", "title", "status", "score"] = Query("created_at", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
):
    query = db.query(ComplianceReport)
    if report_type:
        query = query.filter(ComplianceReport.type == report_type)
    if status_filter:
        query = query.filter(ComplianceReport.status == status_filter)

    column = SORT_COLUMNS[sort_by]
    page = paginate(query.order_by(column.asc() if sort_order == "asc" else column.desc()), *pagination)
    return envelope(
        data=[ComplianceReportResponse.model_validate(r) for r in page.items],
        meta={"pagination": page.meta()},
    )


@router.post("/reports", status_code=status.HTTP_201_CREATED)
async def create_report(
    body: ComplianceReportCreate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    try:
        with transaction(db):
            report = ComplianceReport(created_by=admin.id, **body.model_dump())
            db.add(report)
            db.flush()
            AuditService(db, user=admin, request=request, autocommit=False).log_create(
                "compliance_reports", report.id, new_values={"type": report.type}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create compliance report: {e}")
        raise APIError(500, "Failed to create compliance report", code="COMPLIANCE_REPORT_CREATE_FAILED")

    return envelope(data=ComplianceReportResponse.model_validate(report), status_code=201)


@router.put("/reports/{report_id}")
async def update_report(
    report_id: UUID,
    body: ComplianceReportUpdate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    report = db.query(ComplianceReport).filter(ComplianceReport.id == report_id).first()
    if not report:
        raise APIError(status.HTTP_404_NOT_FOUND, "Compliance report not found", code="COMPLIANCE_REPORT_NOT_FOUND")

    values = body.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    with transaction(db):
        for field, value in values.items():
            setattr(report, field, value)
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "compliance_reports", report.id, new_values=changed_fields(values)
        )

    return envelope(data=ComplianceReportResponse.model_validate(report))
