"""
API route controllers for the HealthChain EMR backend.

Contains FastAPI routers for different endpoints.
Routes handle HTTP requests and delegate to services for business logic.
"""

from .health import router as health_router
from .auth import router as auth_router
from .users import router as users_router
from .patients import router as patients_router
from .visits import router as visits_router
from .appointments import router as appointments_router
from .lab_orders import router as lab_orders_router
from .prescriptions import router as prescriptions_router
from .medications import router as medications_router
from .documents import router as documents_router
from .notifications import router as notifications_router
from .consent import router as consent_router
from .admin_consent import router as admin_consent_router
from .external_requesters import router as external_requesters_router
from .admin_external_requesters import router as admin_external_requesters_router
from .ai_insights import router as ai_insights_router
from .monitoring import router as monitoring_router
from .settings import router as settings_router
from .audit_logs import router as audit_logs_router
from .compliance import router as compliance_router
from .role_permissions import router as role_permissions_router

__all__ = [
    "health_router",
    "auth_router",
    "users_router",
    "patients_router",
    "visits_router",
    "appointments_router",
    "lab_orders_router",
    "prescriptions_router",
    "medications_router",
    "documents_router",
    "notifications_router",
    "consent_router",
    "admin_consent_router",
    "external_requesters_router",
    "admin_external_requesters_router",
    "ai_insights_router",
    "monitoring_router",
    "settings_router",
    "audit_logs_router",
    "compliance_router",
    "role_permissions_router",
]
