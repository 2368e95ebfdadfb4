"""
Database transaction management utilities.

Usage:
    with transaction(db):
        db.add(visit)
        db.add(vital_signs)
        # Commits on success, rolls back on error
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Commit everything issued inside the block, or roll all of it back and
    re-raise. Audit entries written with ``autocommit=False`` ride along.
    """
    try:
        yield db
        db.commit()
        logger.debug("Transaction committed")
    except Exception as e:
        db.rollback()
        logger.error(f"Transaction rolled back due to error: {e}")
        raise

