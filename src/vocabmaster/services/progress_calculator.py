"""Progress calculation shared by the optimistic and authoritative passes.

Both the instant feedback shown when a session ends and the persisted update
run through ``calculate_progress``, so the two results can only differ when
their starting snapshots differ.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from vocabmaster.config import MasterySettings, ReviewIntervalSettings
from vocabmaster.date_utils import utc_now
from vocabmaster.models.progress_models import (
    ProgressResult,
    ProgressSnapshot,
    SessionAnswer,
    StatusChange,
    StatusChanges,
    WordInfo,
)
from vocabmaster.services.mastery import (
    DEFAULT_MASTERY_SETTINGS,
    classify,
    is_status_downgrade,
    is_status_upgrade,
)
from vocabmaster.services.review_scheduler import (
    DEFAULT_REVIEW_SETTINGS,
    calculate_recommended_review_date,
)

logger = logging.getLogger(__name__)


def calculate_progress(
    current: ProgressSnapshot,
    answer: SessionAnswer,
    now: Optional[datetime] = None,
    mastery_config: MasterySettings = DEFAULT_MASTERY_SETTINGS,
    review_config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
) -> ProgressResult:
    """Apply a single answer to a word's progress."""
    if now is None:
        now = utc_now()

    total_reviews = current.total_reviews + 1
    correct_answers = current.correct_answers + (1 if answer.is_correct else 0)
    streak = current.streak + 1 if answer.is_correct else 0
    accuracy = correct_answers / total_reviews

    status = classify(total_reviews, correct_answers, streak, mastery_config)

    return ProgressResult(
        word_id=answer.word_id,
        total_reviews=total_reviews,
        correct_answers=correct_answers,
        streak=streak,
        accuracy=accuracy,
        status=status,
        previous_status=current.status,
        status_changed=status != current.status,
        recommended_review_date=calculate_recommended_review_date(
            streak, accuracy, total_reviews, status, now, review_config
        ),
    )


def calculate_session_progress(
    initial_progress: Mapping[int, ProgressSnapshot],
    answers: Iterable[SessionAnswer],
    now: Optional[datetime] = None,
    mastery_config: MasterySettings = DEFAULT_MASTERY_SETTINGS,
    review_config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
) -> List[ProgressResult]:
    """Apply all answers of a session in order.

    Answers for the same word compound, each one starts from the result of the
    previous. Answers for words missing from the snapshot are skipped.
    """
    if now is None:
        now = utc_now()

    results: List[ProgressResult] = []
    progress_cache: Dict[int, ProgressSnapshot] = dict(initial_progress)

    for answer in answers:
        current = progress_cache.get(answer.word_id)
        if current is None:
            logger.warning("No initial progress found for word %s", answer.word_id)
            continue

        result = calculate_progress(current, answer, now, mastery_config, review_config)
        results.append(result)

        # Update cache for next calculation in case the same word appears again
        progress_cache[answer.word_id] = result.to_snapshot()

    return results


def categorize_status_changes(
    results: Iterable[ProgressResult],
    words: Optional[Mapping[int, WordInfo]] = None,
) -> StatusChanges:
    """Group progress results into upgrades, downgrades and maintained words."""
    words = words or {}
    changes = StatusChanges()
    for result in results:
        word = words.get(result.word_id) or WordInfo(word_id=result.word_id)
        upgrade = is_status_upgrade(result.previous_status, result.status)
        downgrade = is_status_downgrade(result.previous_status, result.status)
        change = StatusChange(
            word_id=result.word_id,
            english=word.english,
            japanese=word.japanese,
            from_status=result.previous_status,
            to_status=result.status,
            is_upgrade=upgrade,
            is_downgrade=downgrade,
        )
        if upgrade:
            changes.upgrades.append(change)
        elif downgrade:
            changes.downgrades.append(change)
        else:
            changes.maintained.append(change)
    return changes
