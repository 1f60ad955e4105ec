"""Application facade wiring the review engine together."""
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from vocabmaster import monitoring
from vocabmaster.config import Settings, settings as default_settings
from vocabmaster.models.base import SessionLocal, init_db
from vocabmaster.models.progress_models import (
    BatchCompletionRequest,
    LearningMode,
    ProgressSnapshot,
    SessionAnswer,
    SessionCandidate,
    SessionFeedback,
    SessionPattern,
    WordInfo,
)
from vocabmaster.services.reconciler import ProgressReconciler
from vocabmaster.services.session_builder import SessionBuilder
from vocabmaster.services.sync_service import LocalProgressGateway, SessionSyncService, SyncHandle
from vocabmaster.services.word_service import WordService

logger = logging.getLogger(__name__)


@dataclass
class StudySession:
    """Client-held state of a session in progress."""
    client_session_id: str
    user_id: int
    pattern: SessionPattern
    words: List[SessionCandidate]
    initial_progress: Dict[int, ProgressSnapshot]
    answers: List[SessionAnswer] = field(default_factory=list)

    def record_answer(
        self,
        word_id: int,
        is_correct: bool,
        response_time: float = 0.0,
        mode: LearningMode = LearningMode.ENG_TO_JPN,
    ) -> SessionAnswer:
        """Append an answer to the batch held until the session completes."""
        answer = SessionAnswer(word_id=word_id, is_correct=is_correct, response_time=response_time, mode=mode)
        self.answers.append(answer)
        return answer

    def word_infos(self) -> Dict[int, WordInfo]:
        return {
            candidate.word_id: candidate.word or WordInfo(word_id=candidate.word_id)
            for candidate in self.words
        }


class VocabEngine:
    """Serves study sessions and saves their outcome."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Settings = default_settings,
        rng: Optional[random.Random] = None,
        gateway=None,
    ):
        """Initialize the engine.

        Args:
            session_factory: Creates database sessions for the persistence layer.
            config: Engine settings.
            rng: Random source for pattern choice and shuffling.
            gateway: Authoritative collaborator, defaults to the in-process one.
        """
        self.session_factory = session_factory
        self.config = config
        self.builder = SessionBuilder(config.session, config.priority, rng)
        self.reconciler = ProgressReconciler(config.mastery, config.review)
        self.sync_service = SessionSyncService(
            gateway or LocalProgressGateway(session_factory, config.mastery, config.review),
            config.sync,
            self.reconciler,
        )
        self.running = False

    def start(self) -> None:
        """Create tables and start the metrics exporter when enabled."""
        if self.running:
            return
        init_db(getattr(self.session_factory, "kw", {}).get("bind"))
        logger.info("Database initialized")
        if self.config.monitoring.enabled:
            monitoring.start_monitoring(self.config.monitoring.port)
            logger.info("Metrics exporter listening on port %d", self.config.monitoring.port)
        self.running = True

    async def stop(self) -> None:
        """Wait for pending background saves."""
        await self.sync_service.stop()
        self.running = False

    def start_session(
        self,
        user_id: int,
        pattern_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StudySession:
        """Compose the next session and snapshot its words' progress."""
        db = self.session_factory()
        try:
            word_service = WordService(db)
            pattern = self.builder.select_pattern(pattern_name)
            words = word_service.get_session_words(user_id, self.builder, pattern.name, now)
            snapshot = word_service.get_progress_snapshot(user_id, [word.word_id for word in words])
        finally:
            db.close()

        study_session = StudySession(
            client_session_id=uuid.uuid4().hex,
            user_id=user_id,
            pattern=pattern,
            words=words,
            initial_progress=snapshot,
        )
        logger.info(
            "Started session %s for user %s with %d words",
            study_session.client_session_id,
            user_id,
            len(words),
        )
        return study_session

    def finish_session(
        self,
        study_session: StudySession,
        on_update: Optional[Callable[[SessionFeedback], None]] = None,
        now: Optional[datetime] = None,
    ) -> SyncHandle:
        """Compute instant feedback and schedule the authoritative save.

        The returned handle already holds the optimistic feedback. Must be
        called from a running event loop when the session has answers.
        """
        feedback = self.reconciler.compute_optimistic(
            study_session.initial_progress,
            study_session.answers,
            study_session.word_infos(),
            now,
        )
        request = BatchCompletionRequest(
            words_studied=len(study_session.answers),
            answers=list(study_session.answers),
            client_session_id=study_session.client_session_id,
        )
        if not study_session.answers:
            logger.info("Session %s ended without answers, nothing to save", study_session.client_session_id)
            return SyncHandle(
                user_id=study_session.user_id,
                request=request,
                feedback=feedback,
            )
        return self.sync_service.submit(study_session.user_id, request, feedback, on_update)
