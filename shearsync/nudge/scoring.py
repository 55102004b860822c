"""Scoring rules for nudge candidates.

Strict scoring is keyed on the client's visiting type. Each type has an
overdue window outside which the client scores zero; inside it the score is
base + a linear term + a proximity bonus around the type's optimal overdue
day, minus a decay once the client is further overdue than the type's
threshold. Lenient scoring is a flat, capped curve used only to fill the
pool when strict candidates run short.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

STRICT_SMS_COOLDOWN_DAYS = 7
LENIENT_SMS_COOLDOWN_DAYS = 15

NEW_CLIENT_MIN_DAYS = 21
NEW_CLIENT_DECAY_AFTER_DAYS = 60

LENIENT_BASE = 200
LENIENT_DECAY_AFTER = 60
LENIENT_DECAY_PER_DAY = 3
LENIENT_MAX_OVERDUE = 120
LENIENT_OPTIMAL = 15


@dataclass(frozen=True)
class VisitPolicy:
    min_overdue: int
    max_overdue: int
    base: float
    per_day: float
    linear_offset: int
    optimal: int
    decay_after: int
    decay_per_day: float


POLICIES: dict[str, VisitPolicy] = {
    "consistent": VisitPolicy(0, 30, 400, 5, 0, 10, 10, 3),
    "semi-consistent": VisitPolicy(0, 45, 350, 4, 0, 15, 15, 3),
    "easy-going": VisitPolicy(5, 60, 120, 2, 5, 15, 20, 5),
    "rare": VisitPolicy(10, 90, 100, 1.2, 10, 20, 25, 5),
}
UNKNOWN_POLICY = VisitPolicy(5, 60, 110, 2, 5, 15, 20, 5)


def days_between(earlier: date | datetime, later: date) -> int:
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    return (later - earlier).days


def expected_interval_days(avg_weekly_visits: float | None) -> int:
    if not avg_weekly_visits or avg_weekly_visits <= 0:
        return 0
    return round(7 / avg_weekly_visits)


def recently_messaged(last_sms: datetime | date | None, today: date, cooldown_days: int) -> bool:
    if last_sms is None:
        return False
    return days_between(last_sms, today) < cooldown_days


def proximity_bonus(days_overdue: int, optimal: int) -> float:
    return max(0.0, 200 - 5 * abs(days_overdue - optimal))


def score_new_client(days_since_last_visit: int) -> float:
    if days_since_last_visit < NEW_CLIENT_MIN_DAYS:
        return 0
    score = 90 + max(0, 200 - 2 * (days_since_last_visit - NEW_CLIENT_MIN_DAYS))
    if days_since_last_visit > NEW_CLIENT_DECAY_AFTER_DAYS:
        score -= (days_since_last_visit - NEW_CLIENT_DECAY_AFTER_DAYS) * 10
    return max(0, score)


def score_strict(
    visiting_type: str | None,
    days_since_last_visit: int,
    days_overdue: int,
    total_appointments: int = 0,
) -> float:
    """Score a strict-phase candidate; 0 means excluded."""
    vtype = (visiting_type or "").strip().lower()
    if vtype == "new" or total_appointments == 1:
        return score_new_client(days_since_last_visit)

    policy = POLICIES.get(vtype, UNKNOWN_POLICY)
    if days_overdue < policy.min_overdue or days_overdue > policy.max_overdue:
        return 0

    score = policy.base + policy.per_day * (days_overdue - policy.linear_offset)
    score += proximity_bonus(days_overdue, policy.optimal)
    if days_overdue > policy.decay_after:
        score -= (days_overdue - policy.decay_after) * policy.decay_per_day

    # Long-absent clients who are still inside their window get a small lift
    if days_overdue <= 30:
        if days_since_last_visit > 540:
            score += 30
        elif days_since_last_visit > 365:
            score += 20

    return max(0.0, score)


def score_lenient(days_overdue: int) -> float:
    """Flat capped curve; very overdue (likely churned) clients are excluded."""
    if days_overdue < 0 or days_overdue > LENIENT_MAX_OVERDUE:
        return 0
    score = LENIENT_BASE
    if days_overdue > LENIENT_DECAY_AFTER:
        score -= (days_overdue - LENIENT_DECAY_AFTER) * LENIENT_DECAY_PER_DAY
    score += max(0, 50 - 2 * abs(days_overdue - LENIENT_OPTIMAL))
    return max(0.0, score)
