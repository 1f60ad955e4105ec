"""Tests for candidate priority scoring."""
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

from vocabmaster.config import PrioritySettings
from vocabmaster.services.priority import (
    calculate_review_debt,
    calculate_word_priority,
    get_review_statistics,
)

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=UTC)


def test_review_debt() -> None:
    """Test overdue days are floored, never negative and capped."""
    assert calculate_review_debt(NOW + timedelta(days=3), NOW) == 0
    assert calculate_review_debt(NOW - timedelta(hours=23), NOW) == 0
    assert calculate_review_debt(NOW - timedelta(days=2, hours=5), NOW) == 2
    assert calculate_review_debt(NOW - timedelta(days=40), NOW) == 7
    assert calculate_review_debt(NOW - timedelta(days=40), NOW, max_days=None) == 40
    assert calculate_review_debt(None, NOW) == 0


def test_naive_dates_are_utc() -> None:
    """Test that naive datetimes read back from SQLite are treated as UTC."""
    naive = (NOW - timedelta(days=3)).replace(tzinfo=None)
    assert calculate_review_debt(naive, NOW) == 3


def test_overdue_dominates() -> None:
    """Test that an overdue word outranks a failed, inaccurate one."""
    overdue = calculate_word_priority(NOW - timedelta(days=2), NOW, 3, 10, 9, NOW)
    struggling = calculate_word_priority(NOW, NOW - timedelta(days=1), 0, 10, 2, NOW)
    assert overdue > struggling


def test_score_components() -> None:
    """Test each weighted term."""
    assert calculate_word_priority(NOW, None, 1, 1, 1, NOW) == 0
    assert calculate_word_priority(NOW - timedelta(days=2), None, 1, 1, 1, NOW) == 20
    # Recent failure needs at least two reviews
    assert calculate_word_priority(NOW, None, 0, 1, 0, NOW) == 0
    assert calculate_word_priority(NOW, None, 0, 2, 1, NOW) == 5
    # Accuracy tiers from four reviews on
    assert calculate_word_priority(NOW, None, 1, 4, 1, NOW) == 4
    assert calculate_word_priority(NOW, None, 1, 5, 3, NOW) == 2
    assert calculate_word_priority(NOW, None, 1, 5, 4, NOW) == 0
    # Mild recency bias
    assert calculate_word_priority(NOW, NOW - timedelta(days=10), 1, 1, 1, NOW) == 1.0


def test_custom_weights() -> None:
    """Test that weights come from the configuration."""
    config = PrioritySettings(overdue_weight=1.0, recent_failure_bonus=100.0)
    score = calculate_word_priority(NOW - timedelta(days=3), None, 0, 2, 1, NOW, config)
    assert score == 103.0


def test_review_statistics() -> None:
    """Test the dashboard summary."""
    words = [
        SimpleNamespace(recommended_review_date=NOW - timedelta(days=5)),
        SimpleNamespace(recommended_review_date=NOW - timedelta(days=1, hours=1)),
        SimpleNamespace(recommended_review_date=NOW - timedelta(hours=2)),
        SimpleNamespace(recommended_review_date=NOW + timedelta(hours=3)),
        SimpleNamespace(recommended_review_date=NOW + timedelta(days=4)),
        SimpleNamespace(recommended_review_date=None),
    ]
    assert get_review_statistics(words, NOW) == {
        "dueToday": 2,
        "overdue": 2,
        "maxDebt": 5,
        "totalWords": 6,
    }
