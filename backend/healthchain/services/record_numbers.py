"""
Record number generation.

Human-readable identifiers for clinical records:

    HN{YYYY}{n:06d}     patients.hospital_number      HN2026000042
    V{YYYYMM}{n:04d}    visits.visit_number           V2026100007
    LAB{YYYY}{n:06d}    lab_orders.order_number       LAB2026000310
    RX{YYYYMM}{n:04d}   prescriptions.prescription_number
    CT{YYYYMM}{n:04d}   consent_contracts.contract_number
    ER{YYYYMM}{n:04d}   external_requesters.registration_number

Numbers restart each period. The next number is the highest existing one
for the current period's prefix plus one, with an existence check and retry to survive concurrent
inserts.
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.consent import ConsentContract
from ..models.external_requester import ExternalRequester
from ..models.lab import LabOrder
from ..models.patient import Patient
from ..models.prescription import Prescription
from ..models.visit import Visit


logger = logging.getLogger(__name__)

NUMBER_PATTERNS = {
    "hospital_number": re.compile(r"^HN\d{4}\d{6,}$"),
    "visit_number": re.compile(r"^V\d{6}\d{4,}$"),
    "lab_order_number": re.compile(r"^LAB\d{4}\d{6,}$"),
    "prescription_number": re.compile(r"^RX\d{6}\d{4,}$"),
    "contract_number": re.compile(r"^CT\d{6}\d{4,}$"),
    "registration_number": re.compile(r"^ER\d{6}\d{4,}$"),
}


def _highest_sequence(db: Session, column, prefix: str) -> Optional[int]:
    """Largest numeric suffix among values starting with ``prefix``."""
    # Longer suffixes are larger once a period outgrows the padding width
    result = (
        db.query(column)
        .filter(column.like(f"{prefix}%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
        .scalar()
    )
    if result is None:
        return None
    suffix = result[len(prefix):]
    return int(suffix) if suffix.isdigit() else None


def _generate(
    db: Session,
    model,
    column,
    prefix: str,
    width: int,
    max_retries: int = 10,
) -> str:
    """
    Generate a unique number ``prefix + zero padded sequence``.

    Raises:
        RuntimeError: if no free number was found after ``max_retries``
    """
    for attempt in range(max_retries):
        highest = _highest_sequence(db, column, prefix)
        next_number = (highest or 0) + 1 + attempt
        candidate = f"{prefix}{next_number:0{width}d}"

        exists = db.query(model.id).filter(column == candidate).first()
        if not exists:
            return candidate

        logger.warning(f"Record number {candidate} already taken, retrying")

    # Fallback: timestamp-based suffix
    timestamp_suffix = int(time.time() * 1000) % (10 ** width)
    return f"{prefix}{timestamp_suffix:0{width}d}"


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def generate_hospital_number(db: Session, now: Optional[datetime] = None) -> str:
    prefix = f"HN{_now(now):%Y}"
    return _generate(db, Patient, Patient.hospital_number, prefix, 6)


def generate_visit_number(db: Session, now: Optional[datetime] = None) -> str:
    prefix = f"V{_now(now):%Y%m}"
    return _generate(db, Visit, Visit.visit_number, prefix, 4)


def generate_lab_order_number(db: Session, now: Optional[datetime] = None) -> str:
    prefix = f"LAB{_now(now):%Y}"
    return _generate(db, LabOrder, LabOrder.order_number, prefix, 6)


def generate_prescription_number(db: Session, now: Optional[datetime] = None) -> str:
    prefix = f"RX{_now(now):%Y%m}"
    return _generate(db, Prescription, Prescription.prescription_number, prefix, 4)


def generate_contract_number(db: Session, now: Optional[datetime] = None) -> str:
    prefix = f"CT{_now(now):%Y%m}"
    return _generate(db, ConsentContract, ConsentContract.contract_number, prefix, 4)


def generate_registration_number(db: Session, now: Optional[datetime] = None) -> str:
    prefix = f"ER{_now(now):%Y%m}"
    return _generate(db, ExternalRequester, ExternalRequester.registration_number, prefix, 4)


def validate_number_format(kind: str, value: str) -> bool:
    """
    Check a record number against its format.

    Example:
        >>> validate_number_format("hospital_number", "HN2026000001")
        True
        >>> validate_number_format("visit_number", "INVALID")
        False
    """
    pattern = NUMBER_PATTERNS.get(kind)
    return bool(pattern and pattern.match(value))
