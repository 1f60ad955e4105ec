"""Review scheduling logic.

Calculates recommended review dates from streak, accuracy and review volume.
"""
import math
from datetime import datetime
from typing import Optional

from vocabmaster.config import ReviewIntervalSettings
from vocabmaster.date_utils import add_days, utc_now
from vocabmaster.models.progress_models import MasteryStatus

DEFAULT_REVIEW_SETTINGS = ReviewIntervalSettings()


def get_base_interval(streak: int, config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS) -> int:
    """Get base interval in days for a streak, clamped to the last table entry."""
    intervals = config.base_intervals
    if streak >= len(intervals):
        return intervals[-1]
    return intervals[max(streak, 0)]


def get_accuracy_multiplier(
    accuracy: float,
    total_reviews: int,
    config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
) -> float:
    """Shrink or extend the interval once enough reviews back the accuracy."""
    if total_reviews < config.accuracy_min_reviews:
        return 1.0
    if accuracy < config.critical_accuracy:
        return config.critical_multiplier
    if accuracy < config.low_accuracy:
        return config.low_multiplier
    if accuracy > config.high_accuracy:
        return config.high_multiplier
    return 1.0


def get_reviews_multiplier(
    total_reviews: int,
    config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
) -> float:
    """Well practiced words space out further."""
    if total_reviews >= config.reviews_threshold:
        return config.reviews_multiplier
    return 1.0


def calculate_interval_days(
    streak: int,
    accuracy: float,
    total_reviews: int,
    status: MasteryStatus,
    config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
) -> int:
    """Calculate the review interval in whole days.

    Multipliers compose multiplicatively and the product is floored once.
    """
    base_interval = get_base_interval(streak, config)

    # Learning stage constraint
    if MasteryStatus(status) == MasteryStatus.LEARNING and total_reviews <= config.learning_max_reviews:
        base_interval = min(base_interval, config.learning_max_interval)

    accuracy_multiplier = get_accuracy_multiplier(accuracy, total_reviews, config)
    reviews_multiplier = get_reviews_multiplier(total_reviews, config)

    return max(
        config.min_interval,
        math.floor(base_interval * accuracy_multiplier * reviews_multiplier),
    )


def calculate_recommended_review_date(
    streak: int,
    accuracy: float,
    total_reviews: int,
    status: MasteryStatus,
    now: Optional[datetime] = None,
    config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
) -> datetime:
    """Calculate the recommended review date.

    Args:
        streak: Consecutive correct answers.
        accuracy: Overall accuracy (correct answers / total reviews).
        total_reviews: Total number of reviews.
        status: Current mastery status.
        now: Reference time, defaults to the current UTC time.
        config: Interval table and multipliers.
    """
    if now is None:
        now = utc_now()
    days = calculate_interval_days(streak, accuracy, total_reviews, status, config)
    return add_days(now, days)
