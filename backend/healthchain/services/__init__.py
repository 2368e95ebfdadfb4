"""
Business logic services for the HealthChain EMR backend.

Contains the logic that sits between the routers and the models: audit
logging, consent lifecycle, insight scoring, system health scoring,
settings persistence, role permissions, record numbering and caching.

Modules are imported directly (``from ..services.audit import AuditService``)
so that ``core.auth`` can depend on ``services.permissions`` without an
import cycle.
"""
