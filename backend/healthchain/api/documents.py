"""
Medical document endpoints (certificates, referral letters, reports).
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, CLINICAL_ROLES, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.document import DocumentStatus, MedicalDocument
from ..models.patient import Patient
from ..models.user import User
from ..models.visit import Visit
from ..schemas.common import page_params
from ..schemas.document import DOCUMENT_REQUIRED_FIELDS, DocumentCreate, DocumentResponse, DocumentUpdate
from ..services.audit import AuditService, changed_fields
from .deps import ensure_patient_access, get_accessible_patient, not_found


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Documents"])


def _get_document_or_404(db: Session, document_id: UUID, user: User) -> MedicalDocument:
    document = db.query(MedicalDocument).filter(MedicalDocument.id == document_id).first()
    if not document:
        raise not_found("Document not found")
    patient = db.query(Patient).filter(Patient.id == document.patient_id).first()
    ensure_patient_access(user, patient)
    return document


@router.post("/patients/{patient_id}/documents", status_code=status.HTTP_201_CREATED)
async def create_document(
    body: DocumentCreate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    values = body.model_dump()
    missing = [field for field in DOCUMENT_REQUIRED_FIELDS if not values.get(field)]
    if missing:
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            f"Missing required fields: {', '.join(missing)}",
            code="VALIDATION_ERROR",
            details={"missing": missing},
        )
    if body.visit_id and not db.query(Visit).filter(Visit.id == body.visit_id, Visit.patient_id == patient.id).first():
        raise not_found("Visit not found")

    try:
        with transaction(db):
            document = MedicalDocument(patient_id=patient.id, recorded_by=user.id, **values)
            db.add(document)
            db.flush()
            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "medical_documents", document.id, new_values={"document_type": document.document_type}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create document for patient {patient.id}: {e}")
        raise APIError(500, "Failed to create document", code="DOCUMENT_CREATE_FAILED")

    return envelope(data=DocumentResponse.model_validate(document), status_code=201)


@router.get("/patients/{patient_id}/documents")
async def list_documents(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    document_type: Optional[str] = Query(None, alias="documentType", max_length=50),
    status_filter: Optional[DocumentStatus] = Query(None, alias="status"),
):
    query = db.query(MedicalDocument).filter(MedicalDocument.patient_id == patient.id)
    if document_type:
        query = query.filter(MedicalDocument.document_type == document_type)
    if status_filter:
        query = query.filter(MedicalDocument.status == status_filter)

    page = paginate(query.order_by(MedicalDocument.created_at.desc()), *pagination)
    return envelope(
        data=[DocumentResponse.model_validate(d) for d in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/documents/{document_id}")
async def get_document(
    document_id: UUID,
    request: Request,
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    document = _get_document_or_404(db, document_id, user)
    AuditService(db, user=user, request=request).log_read("medical_documents", document.id)
    return envelope(data=DocumentResponse.model_validate(document))


@router.put("/documents/{document_id}")
async def update_document(
    document_id: UUID,
    body: DocumentUpdate,
    request: Request,
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    document = _get_document_or_404(db, document_id, user)
    values = body.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    with transaction(db):
        for field, value in values.items():
            setattr(document, field, value)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "medical_documents", document.id, new_values=changed_fields(values)
        )

    return envelope(data=DocumentResponse.model_validate(document))


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: UUID,
    request: Request,
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    document = _get_document_or_404(db, document_id, user)
    with transaction(db):
        AuditService(db, user=user, request=request, autocommit=False).log_delete("medical_documents", document.id)
        db.delete(document)

    return envelope(data={"message": "Document deleted successfully", "id": str(document_id)})
