"""Mastery status state machine.

Flow: new -> learning -> reviewing -> mastered, with two paths to mastery:

* recent mastery: a long enough streak of correct answers, so a learner can
  regain the status quickly after a single mistake;
* overall aptitude: a shorter streak backed by high accuracy over all reviews.

Status is always derived from the review counters, never stored on its own.
"""
from vocabmaster.config import MasterySettings
from vocabmaster.models.progress_models import STATUS_ORDER, MasteryStatus

DEFAULT_MASTERY_SETTINGS = MasterySettings()


def classify(
    total_reviews: int,
    correct_answers: int,
    streak: int,
    config: MasterySettings = DEFAULT_MASTERY_SETTINGS,
) -> MasteryStatus:
    """Calculate the mastery status from the review counters.

    Rules are evaluated in order, the first match wins.

    Raises:
        ValueError: If a counter is negative or correct answers exceed reviews.
    """
    if total_reviews < 0 or correct_answers < 0 or streak < 0:
        raise ValueError(
            f"Review counters must be non-negative: "
            f"total={total_reviews}, correct={correct_answers}, streak={streak}"
        )
    if correct_answers > total_reviews:
        raise ValueError(
            f"Correct answers ({correct_answers}) exceed total reviews ({total_reviews})"
        )

    if total_reviews == 0:
        return MasteryStatus.NEW

    if total_reviews <= config.learning_max_reviews:
        return MasteryStatus.LEARNING

    accuracy = correct_answers / total_reviews
    if streak >= config.mastered_streak or (
        streak >= config.aptitude_streak and accuracy >= config.aptitude_accuracy
    ):
        return MasteryStatus.MASTERED

    return MasteryStatus.REVIEWING


def status_rank(status: MasteryStatus) -> int:
    """Position of a status in the new -> mastered order."""
    return STATUS_ORDER.index(MasteryStatus(status))


def is_status_upgrade(old_status: MasteryStatus, new_status: MasteryStatus) -> bool:
    return status_rank(new_status) > status_rank(old_status)


def is_status_downgrade(old_status: MasteryStatus, new_status: MasteryStatus) -> bool:
    return status_rank(new_status) < status_rank(old_status)
