"""Shared risk scoring primitives.

Every detector and the department aggregator produce a 0–100 score and map it
onto the same four tiers: critical >= 75, high >= 50, medium >= 25, else low.
"""

import math
from datetime import datetime

from access_governance_engine.core.models import RiskLevel

CRITICAL_THRESHOLD = 75
HIGH_THRESHOLD = 50
MEDIUM_THRESHOLD = 25

_SECONDS_PER_DAY = 86_400


def clamp_score(score: float) -> float:
    """Clamp a score into [0, 100]."""
    return max(0.0, min(100.0, score))


def classify_risk(score: float) -> RiskLevel:
    """Map a 0–100 score onto the four-tier risk taxonomy.

    Args:
        score: Risk score, already clamped.

    Returns:
        The risk tier.
    """
    if score >= CRITICAL_THRESHOLD:
        return "critical"
    if score >= HIGH_THRESHOLD:
        return "high"
    if score >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return math.floor(value + 0.5)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from `earlier` to `later`, floored."""
    return math.floor((later - earlier).total_seconds() / _SECONDS_PER_DAY)


def days_until(deadline: datetime, now: datetime) -> int:
    """Whole days remaining until `deadline`, rounded up. Negative once past due."""
    return math.ceil((deadline - now).total_seconds() / _SECONDS_PER_DAY)


def recommended_action_for(score: int, actions: dict[RiskLevel, str]) -> str:
    """Pick the recommended action text for a score's tier."""
    return actions[classify_risk(score)]
