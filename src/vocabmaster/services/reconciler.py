"""Optimistic session feedback and its reconciliation with the stored result."""
import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional, Tuple

from vocabmaster import monitoring
from vocabmaster.config import MasterySettings, ReviewIntervalSettings
from vocabmaster.models.progress_models import (
    BatchCompletionResponse,
    FeedbackSource,
    ProgressSnapshot,
    SessionAnswer,
    SessionFeedback,
    WordInfo,
)
from vocabmaster.services.mastery import DEFAULT_MASTERY_SETTINGS
from vocabmaster.services.progress_calculator import (
    calculate_session_progress,
    categorize_status_changes,
)
from vocabmaster.services.review_scheduler import DEFAULT_REVIEW_SETTINGS

logger = logging.getLogger(__name__)


class ProgressReconciler:
    """Computes instant feedback and swaps in the authoritative one on mismatch."""

    def __init__(
        self,
        mastery_config: MasterySettings = DEFAULT_MASTERY_SETTINGS,
        review_config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
    ):
        self.mastery_config = mastery_config
        self.review_config = review_config

    def compute_optimistic(
        self,
        initial_progress: Mapping[int, ProgressSnapshot],
        answers: Iterable[SessionAnswer],
        words: Optional[Mapping[int, WordInfo]] = None,
        now: Optional[datetime] = None,
    ) -> SessionFeedback:
        """Resolve a session's answers against the snapshot taken at its start.

        Runs synchronously with no I/O so the result can be shown right away.
        """
        results = calculate_session_progress(
            initial_progress,
            answers,
            now,
            self.mastery_config,
            self.review_config,
        )
        monitoring.answers_processed.labels(path="optimistic").inc(len(results))
        return SessionFeedback(
            source=FeedbackSource.OPTIMISTIC,
            status_changes=categorize_status_changes(results, words),
            results=results,
        )

    @staticmethod
    def from_response(response: BatchCompletionResponse) -> SessionFeedback:
        """Feedback built from the authoritative batch response."""
        return SessionFeedback(
            source=FeedbackSource.AUTHORITATIVE,
            status_changes=response.status_changes,
            session_id=response.session_id,
            completed_at=response.completed_at,
        )

    def reconcile(
        self,
        displayed: SessionFeedback,
        authoritative: SessionFeedback,
    ) -> Tuple[SessionFeedback, bool]:
        """Pick the feedback to display once the authoritative result arrives.

        Returns the feedback and whether the displayed one had to be replaced.
        A mismatch only triggers a correction, it is never an error.
        """
        if displayed.status_changes.counts() != authoritative.status_changes.counts():
            logger.info(
                "Optimistic feedback diverged for session %s: upgrades/downgrades %s vs %s",
                authoritative.session_id,
                displayed.status_changes.counts(),
                authoritative.status_changes.counts(),
            )
            monitoring.status_divergences.inc()
            return authoritative, True

        return (
            SessionFeedback(
                source=displayed.source,
                status_changes=displayed.status_changes,
                results=displayed.results,
                session_id=authoritative.session_id,
                completed_at=authoritative.completed_at,
            ),
            False,
        )
