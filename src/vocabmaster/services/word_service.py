"""Service for fetching session candidates and learner progress."""
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from vocabmaster.date_utils import ensure_utc, utc_now
from vocabmaster.models.models import LearningSession, User, Word, WordProgress
from vocabmaster.models.progress_models import (
    CandidateQuerySpec,
    CategorizedCandidates,
    MasteryStatus,
    ProgressSnapshot,
    SessionCandidate,
    WordInfo,
)
from vocabmaster.services.priority import get_review_statistics
from vocabmaster.services.session_builder import SessionBuilder

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Struggling words: enough reviews to judge, at most a third answered correctly
STRUGGLING_MIN_REVIEWS = 3
STRUGGLING_MAX_ACCURACY = 33  # percent
RECENTLY_MASTERED_DAYS = 30


def word_info(word: Word) -> WordInfo:
    """Display fields of a word row."""
    return WordInfo(
        word_id=word.id,
        english=word.english,
        japanese=word.japanese,
        phonetic=word.phonetic,
        part_of_speech=word.part_of_speech,
    )


def new_word_progress(user_id: int, word_id: int, now: Optional[datetime] = None) -> WordProgress:
    """Create a default progress row. Column defaults only apply on flush."""
    if now is None:
        now = utc_now()
    return WordProgress(
        user_id=user_id,
        word_id=word_id,
        total_reviews=0,
        correct_answers=0,
        streak=0,
        last_answer_correct=False,
        status=MasteryStatus.NEW.value,
        last_reviewed_at=None,
        recommended_review_date=now,
        created_at=now,
        updated_at=now,
    )


class WordService:
    """Service for reading candidate pools and progress snapshots."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()

    def _to_candidate(self, progress: WordProgress) -> SessionCandidate:
        return SessionCandidate(
            word_id=progress.word_id,
            status=MasteryStatus(progress.status),
            recommended_review_date=ensure_utc(progress.recommended_review_date),
            created_at=ensure_utc(progress.created_at),
            streak=progress.streak or 0,
            total_reviews=progress.total_reviews or 0,
            correct_answers=progress.correct_answers or 0,
            last_reviewed_at=ensure_utc(progress.last_reviewed_at),
            word=word_info(progress.word),
        )

    def _fetch_status(self, user_id: int, status: MasteryStatus, spec: CandidateQuerySpec) -> List[SessionCandidate]:
        """Fetch progress rows of one status in the requested order."""
        if spec.count <= 0:
            return []
        column = getattr(WordProgress, spec.order_by)
        rows = (
            self.db.query(WordProgress)
            .join(Word, Word.id == WordProgress.word_id)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.status == status.value,
                )
            )
            .order_by(column.desc() if spec.descending else column.asc(), WordProgress.id.asc())
            .limit(spec.count)
            .all()
        )
        return [self._to_candidate(row) for row in rows]

    def _fetch_unstarted(self, user_id: int, limit: int) -> List[SessionCandidate]:
        """Fetch words the user has no progress row for yet, newest first."""
        started = (
            self.db.query(WordProgress.word_id)
            .filter(WordProgress.user_id == user_id)
        )
        words = (
            self.db.query(Word)
            .filter(~Word.id.in_(started))
            .order_by(Word.created_at.desc(), Word.id.asc())
            .limit(limit)
            .all()
        )
        return [
            SessionCandidate(
                word_id=word.id,
                status=MasteryStatus.NEW,
                recommended_review_date=None,
                created_at=ensure_utc(word.created_at),
                word=word_info(word),
            )
            for word in words
        ]

    def fetch_candidates(
        self,
        user_id: int,
        specs: Mapping[MasteryStatus, CandidateQuerySpec],
    ) -> CategorizedCandidates:
        """Fetch the four candidate pools described by the query specs.

        The new pool also holds words the user has never seen, their progress
        row is created when they are first included in a session.
        """
        candidates = CategorizedCandidates()
        for status, spec in specs.items():
            status = MasteryStatus(status)
            pool = self._fetch_status(user_id, status, spec)
            if status == MasteryStatus.NEW and len(pool) < spec.count:
                pool.extend(self._fetch_unstarted(user_id, spec.count - len(pool)))
                pool.sort(key=lambda candidate: candidate.created_at or EPOCH, reverse=True)
            getattr(candidates, status.value).extend(pool)

        logger.info(
            "Fetched candidates for user %s: new=%d learning=%d reviewing=%d mastered=%d",
            user_id,
            len(candidates.new),
            len(candidates.learning),
            len(candidates.reviewing),
            len(candidates.mastered),
        )
        return candidates

    def ensure_progress_rows(
        self,
        user_id: int,
        word_ids: Iterable[int],
        now: Optional[datetime] = None,
    ) -> int:
        """Create default progress rows for words included in a session."""
        word_ids = set(word_ids)
        if not word_ids:
            return 0
        existing = {
            word_id
            for (word_id,) in self.db.query(WordProgress.word_id).filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.word_id.in_(word_ids),
                )
            )
        }
        missing = sorted(word_ids - existing)
        if missing:
            self.db.add_all([new_word_progress(user_id, word_id, now) for word_id in missing])
            self.db.commit()
        return len(missing)

    def get_session_words(
        self,
        user_id: int,
        builder: SessionBuilder,
        pattern_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[SessionCandidate]:
        """Choose the words of the user's next session."""
        if now is None:
            now = utc_now()
        user = self.get_user(user_id)
        if not user:
            raise ValueError(f"User {user_id} not found")

        pattern = builder.select_pattern(pattern_name)
        logger.info("Building %s session for user %s", pattern.name, user_id)
        candidates = self.fetch_candidates(user_id, builder.get_candidate_query_specs(pattern))
        session = builder.build_session(pattern, candidates, now)

        created = self.ensure_progress_rows(user_id, [candidate.word_id for candidate in session], now)
        if created:
            logger.info("Created %d progress rows for user %s", created, user_id)
        return session

    def get_progress_snapshot(
        self,
        user_id: int,
        word_ids: Iterable[int],
    ) -> Dict[int, ProgressSnapshot]:
        """Snapshot the progress of the given words, taken at session start."""
        word_ids = list(word_ids)
        if not word_ids:
            return {}
        rows = (
            self.db.query(WordProgress)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.word_id.in_(word_ids),
                )
            )
            .all()
        )
        return {row.word_id: ProgressSnapshot.from_progress(row) for row in rows}

    def initialize_user_word_progress(self, user_id: int, now: Optional[datetime] = None) -> int:
        """Create new progress rows for every word, skipping existing ones."""
        word_ids = [word_id for (word_id,) in self.db.query(Word.id)]
        created = self.ensure_progress_rows(user_id, word_ids, now)
        logger.info("Initialized %d progress rows for user %s", created, user_id)
        return created

    def get_review_statistics(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, int]:
        """Due and overdue counts over the user's started words."""
        rows = (
            self.db.query(WordProgress)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.status != MasteryStatus.NEW.value,
                )
            )
            .all()
        )
        return get_review_statistics(rows, now)

    def get_status_distribution(self, user_id: int) -> Dict[str, int]:
        """Count the user's words per mastery status."""
        distribution = {status.value: 0 for status in MasteryStatus}
        rows = (
            self.db.query(WordProgress.status, func.count(WordProgress.id))
            .filter(WordProgress.user_id == user_id)
            .group_by(WordProgress.status)
            .all()
        )
        for status, count in rows:
            distribution[status] = count
        return distribution

    def get_struggling_words(self, user_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get words the user keeps getting wrong, worst accuracy first."""
        rows = (
            self.db.query(WordProgress)
            .join(Word, Word.id == WordProgress.word_id)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.total_reviews >= STRUGGLING_MIN_REVIEWS,
                )
            )
            .all()
        )

        struggling = []
        for row in rows:
            accuracy = row.correct_answers * 100 / row.total_reviews
            if accuracy > STRUGGLING_MAX_ACCURACY:
                continue
            struggling.append({
                "wordId": row.word_id,
                "english": row.word.english,
                "japanese": row.word.japanese,
                "partOfSpeech": row.word.part_of_speech,
                "totalReviews": row.total_reviews,
                "correctAnswers": row.correct_answers,
                "accuracy": round(accuracy),
                "status": row.status,
                "updatedAt": ensure_utc(row.updated_at),
            })

        struggling.sort(key=lambda item: (item["accuracy"], item["wordId"]))
        if limit is not None:
            struggling = struggling[:limit]
        return struggling

    def get_recently_mastered(
        self,
        user_id: int,
        now: Optional[datetime] = None,
        days: int = RECENTLY_MASTERED_DAYS,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """Get words mastered within the last days, most recent first."""
        if now is None:
            now = utc_now()
        rows = (
            self.db.query(WordProgress)
            .join(Word, Word.id == WordProgress.word_id)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.status == MasteryStatus.MASTERED.value,
                    WordProgress.updated_at >= now - timedelta(days=days),
                )
            )
            .order_by(WordProgress.updated_at.desc(), WordProgress.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "wordId": row.word_id,
                "english": row.word.english,
                "japanese": row.word.japanese,
                "masteredAt": ensure_utc(row.updated_at),
            }
            for row in rows
        ]

    def get_dashboard(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Learner stats together with today's session count."""
        if now is None:
            now = utc_now()
        user = self.get_user(user_id)
        if not user:
            raise ValueError(f"User {user_id} not found")

        start_of_day = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        sessions_today = (
            self.db.query(LearningSession)
            .filter(
                and_(
                    LearningSession.user_id == user_id,
                    LearningSession.completed_at >= start_of_day,
                    LearningSession.completed_at < start_of_day + timedelta(days=1),
                )
            )
            .count()
        )
        total_sessions = self.db.query(LearningSession).filter(LearningSession.user_id == user_id).count()
        return {
            "currentStreak": user.current_streak or 0,
            "longestStreak": user.longest_streak or 0,
            "totalWordsLearned": user.total_words_learned or 0,
            "dailyGoal": user.daily_goal,
            "sessionsToday": sessions_today,
            "totalSessions": total_sessions,
            "statusDistribution": self.get_status_distribution(user_id),
        }
