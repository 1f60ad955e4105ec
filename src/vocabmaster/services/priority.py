"""Priority scoring for session candidate selection."""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from vocabmaster.config import PrioritySettings
from vocabmaster.date_utils import days_between, ensure_utc, utc_now

DEFAULT_PRIORITY_SETTINGS = PrioritySettings()


def calculate_review_debt(
    recommended_review_date: Optional[datetime],
    now: Optional[datetime] = None,
    max_days: Optional[int] = DEFAULT_PRIORITY_SETTINGS.max_overdue_days,
) -> int:
    """Calculate overdue days, never negative and capped for a manageable load."""
    if recommended_review_date is None:
        return 0
    if now is None:
        now = utc_now()
    debt = max(0, days_between(recommended_review_date, now))
    if max_days is not None:
        debt = min(debt, max_days)
    return debt


def calculate_word_priority(
    recommended_review_date: Optional[datetime],
    last_reviewed_at: Optional[datetime],
    streak: int,
    total_reviews: int,
    correct_answers: int,
    now: Optional[datetime] = None,
    config: PrioritySettings = DEFAULT_PRIORITY_SETTINGS,
) -> float:
    """Calculate a candidate's priority, higher is more urgent.

    Overdue days dominate. A recent failure, poor accuracy and time since the
    last review add smaller bonuses.
    """
    if now is None:
        now = utc_now()

    priority = calculate_review_debt(recommended_review_date, now, config.max_overdue_days) * config.overdue_weight

    # Recently failed
    if streak == 0 and total_reviews >= config.recent_failure_min_reviews:
        priority += config.recent_failure_bonus

    # Accuracy penalty, only with enough samples
    if total_reviews >= config.accuracy_min_reviews:
        accuracy = correct_answers / total_reviews
        if accuracy < config.critical_accuracy:
            priority += config.critical_accuracy_bonus
        elif accuracy < config.low_accuracy:
            priority += config.low_accuracy_bonus

    if last_reviewed_at is not None:
        priority += max(0, days_between(last_reviewed_at, now)) * config.recency_weight

    return priority


def calculate_candidate_priority(
    candidate: Any,
    now: Optional[datetime] = None,
    config: PrioritySettings = DEFAULT_PRIORITY_SETTINGS,
) -> float:
    """Priority of any WordProgress-shaped record."""
    return calculate_word_priority(
        candidate.recommended_review_date,
        candidate.last_reviewed_at,
        candidate.streak or 0,
        candidate.total_reviews or 0,
        candidate.correct_answers or 0,
        now=now,
        config=config,
    )


def get_review_statistics(
    words: Iterable[Any],
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Summarize due and overdue words for a learner's dashboard.

    A word is due today when its review date falls before the end of today
    without being a full day overdue.
    """
    if now is None:
        now = utc_now()
    now = ensure_utc(now)
    end_of_today = now.replace(hour=23, minute=59, second=59, microsecond=999999)

    due_today = 0
    overdue = 0
    max_debt = 0
    total = 0
    for word in words:
        total += 1
        review_date = ensure_utc(word.recommended_review_date)
        if review_date is None:
            continue
        debt = calculate_review_debt(review_date, now)
        if debt > 0:
            overdue += 1
            max_debt = max(max_debt, debt)
        elif review_date <= end_of_today:
            due_today += 1

    return {
        "dueToday": due_today,
        "overdue": overdue,
        "maxDebt": max_debt,
        "totalWords": total,
    }
