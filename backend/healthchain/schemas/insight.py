"""
Pydantic schemas for AI insights.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.ai_insight import AIInsight, InsightType, RiskLevel


class InsightCalculateRequest(BaseModel):
    insight_types: Optional[List[InsightType]] = Field(None, alias="insightTypes")
    force_recalculate: bool = Field(False, alias="forceRecalculate")

    model_config = {"populate_by_name": True}


class AIInsightResponse(BaseModel):
    id: UUID
    patient_id: UUID
    insight_type: InsightType
    title: str
    description: str
    confidence_score: float
    data_source: List[str]
    recommendations: List[str]
    risk_level: RiskLevel
    is_active: bool
    generated_at: datetime
    generated_by: Optional[dict[str, Any]] = None
    created_at: datetime

    @classmethod
    def from_model(cls, insight: AIInsight) -> "AIInsightResponse":
        return cls(
            id=insight.id,
            patient_id=insight.patient_id,
            insight_type=insight.insight_type,
            title=insight.title,
            description=insight.description,
            confidence_score=insight.confidence_score,
            data_source=insight.data_source or [],
            recommendations=insight.recommendations or [],
            risk_level=insight.risk_level,
            is_active=insight.is_active,
            generated_at=insight.generated_at,
            generated_by={"id": str(insight.generator.id), "name": insight.generator.full_name}
            if insight.generator else None,
            created_at=insight.created_at,
        )
