"""
HealthChain EMR backend.

Electronic medical records API: patients, visits, appointments, lab orders,
prescriptions, consent management, audit logging and administration.
"""

__version__ = "1.0.0"
