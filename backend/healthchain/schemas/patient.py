"""
Pydantic schemas for patient records.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from ..core.security import decrypt_field, mask_identifier
from ..models.patient import Gender, Patient


class PatientBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    blood_type: Optional[str] = Field(None, pattern=r"^(A|B|AB|O)[+-]$")
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=1000)
    allergies: Optional[List[str]] = None
    chronic_conditions: Optional[List[str]] = None
    emergency_contact_name: Optional[str] = Field(None, max_length=200)
    emergency_contact_phone: Optional[str] = Field(None, max_length=30)
    emergency_contact_relation: Optional[str] = Field(None, max_length=50)


class PatientCreate(PatientBase):
    national_id: Optional[str] = Field(None, min_length=5, max_length=20)
    user_id: Optional[UUID] = None


class PatientUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    blood_type: Optional[str] = Field(None, pattern=r"^(A|B|AB|O)[+-]$")
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=1000)
    allergies: Optional[List[str]] = None
    chronic_conditions: Optional[List[str]] = None
    emergency_contact_name: Optional[str] = Field(None, max_length=200)
    emergency_contact_phone: Optional[str] = Field(None, max_length=30)
    emergency_contact_relation: Optional[str] = Field(None, max_length=50)


class PatientResponse(PatientBase):
    id: UUID
    hospital_number: str
    national_id_masked: Optional[str] = None
    user_id: Optional[UUID] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    # Stored emails are not re-validated on the way out
    email: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, patient: Patient) -> "PatientResponse":
        response = cls.model_validate(patient)
        if patient.national_id_encrypted:
            try:
                response.national_id_masked = mask_identifier(decrypt_field(patient.national_id_encrypted))
            except ValueError:
                response.national_id_masked = None
        return response


class PatientSummary(BaseModel):
    id: UUID
    hospital_number: str
    first_name: str
    last_name: str

    class Config:
        from_attributes = True
