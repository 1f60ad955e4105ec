"""Authoritative progress updates for completed sessions."""
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from vocabmaster import monitoring
from vocabmaster.config import MasterySettings, ReviewIntervalSettings
from vocabmaster.date_utils import ensure_utc, utc_now
from vocabmaster.exceptions import AuthorizationError, BatchTimeoutError
from vocabmaster.models.models import LearningSession, User, Word, WordProgress
from vocabmaster.models.progress_models import (
    BatchCompletionRequest,
    BatchCompletionResponse,
    ProgressResult,
    ProgressSnapshot,
    SessionAnswer,
    WordInfo,
)
from vocabmaster.services.mastery import DEFAULT_MASTERY_SETTINGS
from vocabmaster.services.progress_calculator import calculate_progress, categorize_status_changes
from vocabmaster.services.review_scheduler import DEFAULT_REVIEW_SETTINGS
from vocabmaster.services.word_service import new_word_progress, word_info

logger = logging.getLogger(__name__)

# Days of session history scanned when recomputing the daily streak
STREAK_LOOKBACK_DAYS = 30


class ProgressService:
    """Service applying answer batches to stored word progress."""

    def __init__(
        self,
        db: Session,
        mastery_config: MasterySettings = DEFAULT_MASTERY_SETTINGS,
        review_config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.mastery_config = mastery_config
        self.review_config = review_config

    def _get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise AuthorizationError(f"User {user_id} not found")
        return user

    def _apply_answers(
        self,
        user_id: int,
        answers: Sequence[SessionAnswer],
        now: datetime,
    ) -> Tuple[List[ProgressResult], Dict[int, WordInfo]]:
        """Apply answers in order without committing."""
        word_ids = {answer.word_id for answer in answers}
        words = {
            word.id: word_info(word)
            for word in self.db.query(Word).filter(Word.id.in_(word_ids))
        } if word_ids else {}

        rows: Dict[int, WordProgress] = {
            row.word_id: row
            for row in self.db.query(WordProgress).filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.word_id.in_(word_ids),
                )
            )
        } if word_ids else {}

        results: List[ProgressResult] = []
        for answer in answers:
            if answer.word_id not in words:
                logger.warning("Skipping answer for unknown word %s", answer.word_id)
                continue

            progress = rows.get(answer.word_id)
            if progress is None:
                progress = new_word_progress(user_id, answer.word_id, now)
                self.db.add(progress)
                rows[answer.word_id] = progress
                logger.info("Created progress row for user %s word %s", user_id, answer.word_id)

            result = calculate_progress(
                ProgressSnapshot.from_progress(progress),
                answer,
                now,
                self.mastery_config,
                self.review_config,
            )
            progress.total_reviews = result.total_reviews
            progress.correct_answers = result.correct_answers
            progress.streak = result.streak
            progress.status = result.status.value
            progress.last_answer_correct = answer.is_correct
            progress.last_reviewed_at = now
            progress.recommended_review_date = result.recommended_review_date
            results.append(result)

        monitoring.answers_processed.labels(path="authoritative").inc(len(results))
        return results, words

    def _check_deadline(self, deadline: Optional[datetime]) -> None:
        if deadline is not None and utc_now() > deadline:
            raise BatchTimeoutError("Batch transaction exceeded its deadline")

    def batch_update_progress(
        self,
        user_id: int,
        answers: Sequence[SessionAnswer],
        now: Optional[datetime] = None,
        deadline: Optional[datetime] = None,
    ) -> List[ProgressResult]:
        """Apply a batch of answers in one transaction.

        Either every progress row of the batch is updated or none is.
        """
        if now is None:
            now = utc_now()
        try:
            self._get_user(user_id)
            results, _ = self._apply_answers(user_id, answers, now)
            self._check_deadline(deadline)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return results

    def _update_user_stats(self, user: User, now: datetime) -> Dict[str, int]:
        """Recompute daily streak, longest streak and words learned."""
        today = ensure_utc(now).date()
        recent = (
            self.db.query(LearningSession.completed_at)
            .filter(
                and_(
                    LearningSession.user_id == user.id,
                    LearningSession.completed_at >= now - timedelta(days=STREAK_LOOKBACK_DAYS),
                )
            )
            .all()
        )
        session_dates = {ensure_utc(completed_at).date() for (completed_at,) in recent}
        session_dates.add(today)

        current_streak = 0
        day = today
        while day in session_dates:
            current_streak += 1
            day -= timedelta(days=1)

        total_words_learned = (
            self.db.query(WordProgress)
            .filter(
                and_(
                    WordProgress.user_id == user.id,
                    WordProgress.correct_answers > 0,
                )
            )
            .count()
        )

        user.current_streak = current_streak
        user.longest_streak = max(current_streak, user.longest_streak or 0)
        user.total_words_learned = total_words_learned
        return {
            "currentStreak": user.current_streak,
            "longestStreak": user.longest_streak,
            "totalWordsLearned": user.total_words_learned,
        }

    def get_completed_session(self, user_id: int, client_session_id: Optional[str]) -> Optional[BatchCompletionResponse]:
        """Stored response of a session that was already committed."""
        if not client_session_id:
            return None
        session = (
            self.db.query(LearningSession)
            .filter(
                and_(
                    LearningSession.user_id == user_id,
                    LearningSession.client_session_id == client_session_id,
                )
            )
            .first()
        )
        if not session or not session.result_json:
            return None
        return BatchCompletionResponse.from_dict(json.loads(session.result_json))

    def complete_session(
        self,
        user_id: int,
        request: BatchCompletionRequest,
        now: Optional[datetime] = None,
        deadline: Optional[datetime] = None,
    ) -> BatchCompletionResponse:
        """Record a completed session and apply its answers atomically.

        Replaying a request with the same client session id returns the stored
        response instead of applying the answers twice.

        Raises:
            ValidationError: If the request is malformed.
            AuthorizationError: If the user does not exist.
            BatchTimeoutError: If the deadline passed before commit.
        """
        request.validate()
        if now is None:
            now = utc_now()

        try:
            user = self._get_user(user_id)

            existing = self.get_completed_session(user_id, request.client_session_id)
            if existing is not None:
                logger.info(
                    "Session %s of user %s already committed, returning stored result",
                    request.client_session_id,
                    user_id,
                )
                return existing

            results, words = self._apply_answers(user_id, request.answers, now)

            session = LearningSession(
                user_id=user_id,
                client_session_id=request.client_session_id,
                words_studied=request.words_studied,
                completed_at=now,
            )
            self.db.add(session)
            self.db.flush()

            stats = self._update_user_stats(user, now)
            response = BatchCompletionResponse(
                session_id=session.id,
                completed_at=now,
                words_studied=request.words_studied,
                status_changes=categorize_status_changes(results, words),
                updated_stats=stats,
            )
            session.result_json = json.dumps(response.to_dict(), ensure_ascii=False)

            self._check_deadline(deadline)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        upgrades, downgrades = response.status_changes.counts()
        logger.info(
            "Committed session %s for user %s: %d answers, %d upgrades, %d downgrades",
            response.session_id,
            user_id,
            len(results),
            upgrades,
            downgrades,
        )
        return response
