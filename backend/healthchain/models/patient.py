"""
Patient model.

Patients are identified by their Hospital Number (HN). National ID numbers
are stored encrypted, with a keyed hash for duplicate detection.
"""

import enum

from sqlalchemy import Boolean, Column, Date, ForeignKey, LargeBinary, String, Text, Uuid

from ..core.database import Base
from .mixins import JSONType, TimestampMixin, enum_type, uuid_pk


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Patient(TimestampMixin, Base):
    """
    Registered patient.

    Attributes:
        hospital_number: HN, unique per patient (``HN{YYYY}{n:06d}``)
        national_id_encrypted: Fernet ciphertext of the national ID
        national_id_hash: keyed SHA-256 of the national ID for lookups
        user_id: portal account of the patient, when one exists
        is_active: False once soft-deleted
    """

    __tablename__ = "patients"

    id = uuid_pk()
    hospital_number = Column(String(20), unique=True, nullable=False, index=True)
    national_id_encrypted = Column(LargeBinary, nullable=True)
    national_id_hash = Column(String(64), unique=True, nullable=True, index=True)

    first_name = Column(String(100), nullable=False, index=True)
    last_name = Column(String(100), nullable=False, index=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(enum_type(Gender, "patient_gender"), nullable=True)
    blood_type = Column(String(5), nullable=True)
    phone = Column(String(30), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)

    allergies = Column(JSONType, nullable=True)
    chronic_conditions = Column(JSONType, nullable=True)
    emergency_contact_name = Column(String(200), nullable=True)
    emergency_contact_phone = Column(String(30), nullable=True)
    emergency_contact_relation = Column(String(50), nullable=True)

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, hn={self.hospital_number})>"
