"""
Medical document model (certificates, referral letters, reports).
"""

import enum

from sqlalchemy import Column, Date, ForeignKey, String, Text, Uuid

from ..core.database import Base
from .mixins import JSONType, TimestampMixin, enum_type, uuid_pk


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    REVOKED = "revoked"


class MedicalDocument(TimestampMixin, Base):
    __tablename__ = "medical_documents"

    id = uuid_pk()
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    visit_id = Column(Uuid, ForeignKey("visits.id", ondelete="SET NULL"), nullable=True)

    document_type = Column(String(50), nullable=False, index=True)
    document_title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    template = Column(String(100), nullable=True)
    variables = Column(JSONType, nullable=True)
    attachments = Column(JSONType, nullable=True)
    recipient_info = Column(JSONType, nullable=True)
    status = Column(enum_type(DocumentStatus, "document_status"), nullable=False, default=DocumentStatus.DRAFT, index=True)
    notes = Column(Text, nullable=True)

    issued_by = Column(String(200), nullable=False)
    issued_date = Column(Date, nullable=True)
    valid_until = Column(Date, nullable=True)
    recorded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
