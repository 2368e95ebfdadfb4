"""
Compliance statistics derived from the consent audit trail.

Alert actions are grouped by priority; every alert counts as pending
because the trail records no resolution.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.consent import ALERT_ACTIONS, ConsentAuditTrail
from ..models.mixins import as_utc


logger = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 30
PENALTY_PER_PENDING_ALERT = 5

ALERT_PRIORITY = {
    "data_breach": "high",
    "unauthorized_access": "high",
    "consent_violation": "medium",
    "policy_violation": "low",
}


def compliance_score(pending_alerts: int) -> int:
    """100 minus 5 per pending alert, never below zero."""
    return max(0, 100 - pending_alerts * PENALTY_PER_PENDING_ALERT)


def summarize_alerts(actions: list[str]) -> dict[str, int]:
    priorities = Counter(ALERT_PRIORITY[a] for a in actions if a in ALERT_PRIORITY)
    total = sum(priorities.values())
    return {
        "totalAlerts": total,
        "highPriorityAlerts": priorities["high"],
        "mediumPriorityAlerts": priorities["medium"],
        "lowPriorityAlerts": priorities["low"],
        "resolvedAlerts": 0,
        "pendingAlerts": total,
        "complianceScore": compliance_score(total),
    }


def _alert_actions(db: Session, start: datetime, end: datetime) -> list[str]:
    return [
        row.action
        for row in db.query(ConsentAuditTrail.action).filter(
            ConsentAuditTrail.action.in_(ALERT_ACTIONS),
            ConsentAuditTrail.created_at >= start,
            ConsentAuditTrail.created_at < end,
        ).all()
    ]


def compliance_stats(db: Session, now: Optional[datetime] = None) -> dict[str, Any]:
    """Alert summary over the last 30 days compared with the 30 days before."""
    now = now or datetime.now(timezone.utc)
    window = timedelta(days=STATS_WINDOW_DAYS)

    current = summarize_alerts(_alert_actions(db, now - window, now))
    previous = summarize_alerts(_alert_actions(db, now - 2 * window, now - window))

    last_audit = (
        db.query(func.max(ConsentAuditTrail.created_at))
        .filter(ConsentAuditTrail.action == "compliance_audit")
        .scalar()
    )

    current["lastAuditDate"] = as_utc(last_audit).isoformat() if last_audit else None
    current["trends"] = {
        "scoreChange": current["complianceScore"] - previous["complianceScore"],
        "alertChange": current["totalAlerts"] - previous["totalAlerts"],
    }
    return current


def compliance_trends(db: Session, days: int = 90, now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """Per-month alert totals and scores, newest month first."""
    now = now or datetime.now(timezone.utc)
    start = (now - timedelta(days=days)).replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    rows = (
        db.query(ConsentAuditTrail.action, ConsentAuditTrail.created_at)
        .filter(ConsentAuditTrail.action.in_(ALERT_ACTIONS), ConsentAuditTrail.created_at >= start)
        .all()
    )
    by_month: dict[str, list[str]] = {}
    for row in rows:
        by_month.setdefault(as_utc(row.created_at).strftime("%Y-%m"), []).append(row.action)

    # Months without alerts still appear with a perfect score
    month = start
    while month <= now:
        by_month.setdefault(month.strftime("%Y-%m"), [])
        month = (month + timedelta(days=32)).replace(day=1)

    return [
        {"period": period, **summarize_alerts(actions)}
        for period, actions in sorted(by_month.items(), reverse=True)
    ]
