"""
Pydantic schemas for visits, vital signs, lab orders and prescriptions.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.lab import AbnormalFlag, LabOrderStatus, LabPriority
from ..models.prescription import MedicationStatus, PrescriptionStatus
from ..models.visit import VisitStatus, VisitType
from .user import UserSummary


# =============================================================================
# Vital Signs
# =============================================================================


class VitalSignsCreate(BaseModel):
    weight: Optional[float] = Field(None, gt=0, le=500, description="kg")
    height: Optional[float] = Field(None, gt=0, le=300, description="cm")
    systolic_bp: Optional[int] = Field(None, ge=30, le=300)
    diastolic_bp: Optional[int] = Field(None, ge=10, le=200)
    heart_rate: Optional[int] = Field(None, ge=10, le=300)
    temperature: Optional[float] = Field(None, ge=25, le=45, description="celsius")
    respiratory_rate: Optional[int] = Field(None, ge=1, le=100)
    oxygen_saturation: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    measured_at: Optional[datetime] = None


class VitalSignsResponse(VitalSignsCreate):
    id: UUID
    visit_id: Optional[UUID] = None
    patient_id: UUID
    bmi: Optional[float] = None
    measured_at: datetime
    recorded_by: Optional[UUID] = None

    class Config:
        from_attributes = True


# =============================================================================
# Lab Orders
# =============================================================================


class LabOrderCreate(BaseModel):
    test_name: str = Field(..., min_length=1, max_length=200)
    test_category: str = Field(..., min_length=1, max_length=100)
    specimen_type: str = Field(..., min_length=1, max_length=100)
    test_code: Optional[str] = Field(None, max_length=50)
    clinical_indication: Optional[str] = None
    special_instructions: Optional[str] = None
    priority: LabPriority = LabPriority.ROUTINE


class LabOrderUpdate(BaseModel):
    """Fields a lab order may change while it is still open."""
    test_name: Optional[str] = Field(None, min_length=1, max_length=200)
    test_code: Optional[str] = Field(None, max_length=50)
    test_category: Optional[str] = Field(None, min_length=1, max_length=100)
    specimen_type: Optional[str] = Field(None, min_length=1, max_length=100)
    clinical_indication: Optional[str] = None
    special_instructions: Optional[str] = None
    priority: Optional[LabPriority] = None
    status: Optional[LabOrderStatus] = None


class LabResultCreate(BaseModel):
    result_value: str = Field(..., min_length=1, max_length=200)
    result_numeric: Optional[float] = None
    unit: Optional[str] = Field(None, max_length=50)
    reference_range: Optional[str] = Field(None, max_length=100)
    abnormal_flag: AbnormalFlag = AbnormalFlag.NORMAL
    interpretation: Optional[str] = None
    result_date: Optional[datetime] = None


class LabResultResponse(LabResultCreate):
    id: UUID
    lab_order_id: UUID
    result_date: datetime
    reported_by: Optional[UUID] = None

    class Config:
        from_attributes = True


class LabOrderResponse(BaseModel):
    id: UUID
    order_number: str
    visit_id: UUID
    patient_id: UUID
    ordered_by: Optional[UUID] = None
    test_name: str
    test_code: Optional[str] = None
    test_category: str
    specimen_type: str
    clinical_indication: Optional[str] = None
    special_instructions: Optional[str] = None
    priority: LabPriority
    status: LabOrderStatus
    order_date: datetime
    collected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    results: List[LabResultResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Prescriptions and Medications
# =============================================================================


class PrescriptionItemCreate(BaseModel):
    medication_name: str = Field(..., min_length=1, max_length=200)
    strength: Optional[str] = Field(None, max_length=50)
    dosage_form: Optional[str] = Field(None, max_length=50)
    quantity_prescribed: Optional[float] = Field(None, gt=0)
    unit: Optional[str] = Field(None, max_length=30)
    dosage_instructions: Optional[str] = None
    duration_days: Optional[int] = Field(None, ge=1, le=3650)
    notes: Optional[str] = None


class PrescriptionItemResponse(PrescriptionItemCreate):
    id: UUID
    prescription_id: UUID
    item_status: MedicationStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PrescriptionCreate(BaseModel):
    general_instructions: Optional[str] = None
    items: List[PrescriptionItemCreate] = Field(..., min_length=1)


class PrescriptionStatusUpdate(BaseModel):
    status: PrescriptionStatus


class PrescriptionResponse(BaseModel):
    id: UUID
    prescription_number: str
    visit_id: Optional[UUID] = None
    patient_id: UUID
    prescribed_by: Optional[UUID] = None
    prescriber: Optional[UserSummary] = None
    prescription_date: datetime
    status: PrescriptionStatus
    general_instructions: Optional[str] = None
    dispensed_at: Optional[datetime] = None
    dispensed_by: Optional[UUID] = None
    items: List[PrescriptionItemResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class MedicationCreate(PrescriptionItemCreate):
    """A medication added to one of the patient's existing prescriptions."""
    prescription_id: UUID


class MedicationUpdate(BaseModel):
    medication_name: Optional[str] = Field(None, min_length=1, max_length=200)
    strength: Optional[str] = Field(None, max_length=50)
    dosage_form: Optional[str] = Field(None, max_length=50)
    quantity_prescribed: Optional[float] = Field(None, gt=0)
    unit: Optional[str] = Field(None, max_length=30)
    dosage_instructions: Optional[str] = None
    duration_days: Optional[int] = Field(None, ge=1, le=3650)
    item_status: Optional[MedicationStatus] = None
    notes: Optional[str] = None


class MedicationResponse(PrescriptionItemResponse):
    prescription_number: Optional[str] = None
    prescription_date: Optional[datetime] = None
    prescription_status: Optional[PrescriptionStatus] = None


# =============================================================================
# Visits
# =============================================================================


class VisitCreate(BaseModel):
    """
    A visit plus optional clinical children created in the same
    transaction.
    """
    doctor_id: Optional[UUID] = None
    visit_date: Optional[datetime] = None
    visit_type: VisitType = VisitType.WALK_IN
    status: VisitStatus = VisitStatus.CHECKED_IN
    chief_complaint: Optional[str] = None
    present_illness: Optional[str] = None
    physical_examination: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None

    vital_signs: Optional[VitalSignsCreate] = None
    lab_orders: List[LabOrderCreate] = []
    prescriptions: List[PrescriptionCreate] = []


class VisitUpdate(BaseModel):
    doctor_id: Optional[UUID] = None
    visit_type: Optional[VisitType] = None
    status: Optional[VisitStatus] = None
    chief_complaint: Optional[str] = None
    present_illness: Optional[str] = None
    physical_examination: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None


class VisitCompleteRequest(BaseModel):
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None


class VisitResponse(BaseModel):
    id: UUID
    visit_number: str
    patient_id: UUID
    doctor_id: Optional[UUID] = None
    doctor: Optional[UserSummary] = None
    visit_date: datetime
    visit_type: VisitType
    status: VisitStatus
    chief_complaint: Optional[str] = None
    present_illness: Optional[str] = None
    physical_examination: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    vital_signs: List[VitalSignsResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VisitDetailResponse(VisitResponse):
    lab_orders: List[LabOrderResponse] = []
    prescriptions: List[PrescriptionResponse] = []
