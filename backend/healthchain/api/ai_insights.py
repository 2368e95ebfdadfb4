"""
AI insight endpoints.

Insights are rule-based assessments over the patient's recent labs,
prescriptions, visits and appointments (see services/insights.py).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, CLINICAL_ROLES, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.ai_insight import RISK_RANK, AIInsight, InsightType, RiskLevel
from ..models.patient import Patient
from ..models.user import User
from ..schemas.common import page_params
from ..schemas.insight import AIInsightResponse, InsightCalculateRequest
from ..services.audit import AuditService
from ..services.insights import InsightService
from .deps import get_accessible_patient


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/patients/{patient_id}/ai-insights", tags=["AI Insights"])


def _risk_summary(db: Session, patient: Patient) -> dict:
    rows = (
        db.query(AIInsight.risk_level, func.count(AIInsight.id))
        .filter(AIInsight.patient_id == patient.id, AIInsight.is_active.is_(True))
        .group_by(AIInsight.risk_level)
        .all()
    )
    counts = {level.value: 0 for level in RiskLevel}
    counts.update({level.value: count for level, count in rows})

    present = [RiskLevel(level) for level, count in counts.items() if count]
    overall = max(present, key=lambda level: RISK_RANK[level]).value if present else None
    return {"total": sum(counts.values()), "by_risk_level": counts, "highest_risk": overall}


@router.post("/calculate", status_code=status.HTTP_201_CREATED)
async def calculate_insights(
    request: Request,
    body: Optional[InsightCalculateRequest] = None,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    """
    Generate insights for the patient.

    Types with an active insight from the last 24 hours are skipped unless
    ``forceRecalculate`` is set.
    """
    body = body or InsightCalculateRequest()
    try:
        with transaction(db):
            created = InsightService(db).calculate(
                patient.id,
                insight_types=body.insight_types,
                force_recalculate=body.force_recalculate,
                generated_by=user.id,
            )
            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "ai_insights", None,
                new_values={"patient_id": str(patient.id), "generated": len(created)},
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to calculate insights for patient {patient.id}: {e}")
        raise APIError(500, "Failed to calculate AI insights", code="AI_INSIGHT_CALCULATE_FAILED")

    for insight in created:
        db.refresh(insight)
    return envelope(
        data={
            "insights": [AIInsightResponse.from_model(i) for i in created],
            "message": f"Generated {len(created)} new AI insights",
        },
        status_code=201,
    )


@router.get("")
async def list_insights(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    insight_type: Optional[InsightType] = Query(None, alias="insightType"),
    risk_level: Optional[RiskLevel] = Query(None, alias="riskLevel"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
):
    query = db.query(AIInsight).filter(AIInsight.patient_id == patient.id)
    if insight_type:
        query = query.filter(AIInsight.insight_type == insight_type)
    if risk_level:
        query = query.filter(AIInsight.risk_level == risk_level)
    if is_active is not None:
        query = query.filter(AIInsight.is_active.is_(is_active))

    page = paginate(query.order_by(AIInsight.generated_at.desc()), *pagination)
    return envelope(
        data=[AIInsightResponse.from_model(i) for i in page.items],
        meta={"pagination": page.meta(), "risk_summary": _risk_summary(db, patient)},
    )
