"""Tests for the word service."""
import random
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from conftest import NOW
from vocabmaster.models.models import LearningSession, User, WordProgress
from vocabmaster.models.progress_models import CandidateQuerySpec, MasteryStatus
from vocabmaster.services.session_builder import SessionBuilder
from vocabmaster.services.word_service import WordService, new_word_progress


@pytest.fixture
def word_service(db: Session) -> WordService:
    """Create a word service instance."""
    return WordService(db)


def test_new_word_progress_defaults() -> None:
    """Test that a default row is fully populated before flush."""
    progress = new_word_progress(1, 2, NOW)
    assert progress.total_reviews == 0
    assert progress.correct_answers == 0
    assert progress.streak == 0
    assert progress.status == "new"
    assert progress.recommended_review_date == NOW
    assert progress.last_reviewed_at is None


def test_fetch_candidates_by_status(word_service: WordService, user: User, make_word, make_progress) -> None:
    """Test that each pool holds only words of its status, in the requested order."""
    later = make_progress(user, 2, 2, 2, recommended_review_date=NOW + timedelta(days=2))
    sooner = make_progress(user, 1, 1, 1, recommended_review_date=NOW - timedelta(days=1))
    reviewing = make_progress(user, 5, 3, 1)
    mastered = make_progress(user, 5, 5, 3)
    started_new = make_progress(user)
    unstarted = make_word()

    builder = SessionBuilder()
    candidates = word_service.fetch_candidates(
        user.id, builder.get_candidate_query_specs(builder.select_pattern("balanced"))
    )

    assert [c.word_id for c in candidates.learning] == [sooner.word_id, later.word_id]
    assert [c.word_id for c in candidates.reviewing] == [reviewing.word_id]
    assert [c.word_id for c in candidates.mastered] == [mastered.word_id]
    assert {c.word_id for c in candidates.new} == {started_new.word_id, unstarted.id}
    assert all(c.status == MasteryStatus.NEW for c in candidates.new)
    assert candidates.learning[0].word.english == sooner.word.english
    assert candidates.learning[0].recommended_review_date.tzinfo is not None


def test_fetch_candidates_limit(word_service: WordService, user: User, make_progress) -> None:
    """Test that the query count caps the pool."""
    make_progress(user, 1, 1, 1, recommended_review_date=NOW + timedelta(days=1))
    due = make_progress(user, 1, 0, 0, recommended_review_date=NOW - timedelta(days=1))

    candidates = word_service.fetch_candidates(
        user.id,
        {MasteryStatus.LEARNING: CandidateQuerySpec(count=1, order_by="recommended_review_date")},
    )
    assert [c.word_id for c in candidates.learning] == [due.word_id]
    assert candidates.new == []


def test_fetch_candidates_ignores_other_users(
    word_service: WordService, db: Session, user: User, make_progress
) -> None:
    """Test that another learner's progress is not a candidate."""
    other = User(name="Other", email="other@example.com")
    db.add(other)
    db.commit()
    make_progress(other, 1, 1, 1)

    builder = SessionBuilder()
    candidates = word_service.fetch_candidates(
        user.id, builder.get_candidate_query_specs(builder.select_pattern("balanced"))
    )
    assert candidates.learning == []
    assert len(candidates.new) == 1


def test_get_session_words_creates_progress(
    word_service: WordService, db: Session, user: User, make_word
) -> None:
    """Test that unseen words get a progress row once included in a session."""
    words = [make_word() for _ in range(3)]

    session = word_service.get_session_words(user.id, SessionBuilder(rng=random.Random(1)), "newFocused", NOW)

    assert {c.word_id for c in session} == {word.id for word in words}
    rows = db.query(WordProgress).filter(WordProgress.user_id == user.id).all()
    assert len(rows) == 3
    assert all(row.status == "new" for row in rows)


def test_get_session_words_unknown_user(word_service: WordService) -> None:
    """Test that an unknown user is rejected."""
    with pytest.raises(ValueError):
        word_service.get_session_words(999, SessionBuilder(), "balanced", NOW)


def test_get_progress_snapshot(word_service: WordService, user: User, make_progress) -> None:
    """Test snapshots of the session's words."""
    progress = make_progress(user, 5, 4, 2)
    snapshot = word_service.get_progress_snapshot(user.id, [progress.word_id, 12345])

    assert list(snapshot) == [progress.word_id]
    assert snapshot[progress.word_id].total_reviews == 5
    assert snapshot[progress.word_id].status == MasteryStatus.MASTERED
    assert word_service.get_progress_snapshot(user.id, []) == {}


def test_initialize_user_word_progress(word_service: WordService, user: User, make_word, make_progress) -> None:
    """Test that existing rows are skipped."""
    make_progress(user, 1, 1, 1)
    make_word()
    make_word()

    assert word_service.initialize_user_word_progress(user.id, NOW) == 2
    assert word_service.initialize_user_word_progress(user.id, NOW) == 0


def test_get_review_statistics(word_service: WordService, user: User, make_progress) -> None:
    """Test due and overdue counts over started words."""
    make_progress(user, 1, 1, 1, recommended_review_date=NOW - timedelta(days=3))
    make_progress(user, 5, 3, 1, recommended_review_date=NOW + timedelta(hours=2))
    make_progress(user)

    stats = word_service.get_review_statistics(user.id, NOW)

    assert stats == {"dueToday": 1, "overdue": 1, "maxDebt": 3, "totalWords": 2}


def test_get_status_distribution(word_service: WordService, user: User, make_progress) -> None:
    """Test word counts per mastery status."""
    make_progress(user)
    make_progress(user, 2, 1, 1)
    make_progress(user, 2, 2, 2)
    make_progress(user, 5, 5, 3)

    assert word_service.get_status_distribution(user.id) == {
        "new": 1,
        "learning": 2,
        "reviewing": 0,
        "mastered": 1,
    }


def test_get_struggling_words(word_service: WordService, user: User, make_progress) -> None:
    """Test that words with three or more reviews and at most a third correct are listed worst first."""
    weak = make_progress(user, 10, 3, 0)
    hopeless = make_progress(user, 3, 0, 0)
    make_progress(user, 3, 1, 1)  # just above a third
    make_progress(user, 2, 0, 0)  # too few reviews
    make_progress(user, 8, 7, 3)

    struggling = word_service.get_struggling_words(user.id)

    assert [item["wordId"] for item in struggling] == [hopeless.word_id, weak.word_id]
    assert struggling[0]["accuracy"] == 0
    assert struggling[1]["accuracy"] == 30
    assert struggling[1]["english"] == weak.word.english
    assert struggling[1]["status"] == "reviewing"
    assert [item["wordId"] for item in word_service.get_struggling_words(user.id, limit=1)] == [hopeless.word_id]


def test_get_recently_mastered(word_service: WordService, user: User, make_progress) -> None:
    """Test that only words mastered within the window are listed."""
    recent = make_progress(user, 5, 5, 3)
    make_progress(user, 5, 5, 3, updated_at=datetime(2020, 1, 1, tzinfo=UTC))
    make_progress(user, 5, 3, 1)

    mastered = word_service.get_recently_mastered(user.id)

    assert [item["wordId"] for item in mastered] == [recent.word_id]
    assert mastered[0]["english"] == recent.word.english
    assert mastered[0]["masteredAt"].tzinfo is not None


def test_get_dashboard(word_service: WordService, db: Session, user: User, make_progress) -> None:
    """Test learner stats with today's session count."""
    make_progress(user, 2, 1, 1)
    user.current_streak = 2
    user.longest_streak = 5
    db.add_all([
        LearningSession(user_id=user.id, client_session_id="a", words_studied=10, completed_at=NOW),
        LearningSession(
            user_id=user.id, client_session_id="b", words_studied=10, completed_at=NOW - timedelta(days=1)
        ),
    ])
    db.commit()

    dashboard = word_service.get_dashboard(user.id, NOW)

    assert dashboard["sessionsToday"] == 1
    assert dashboard["totalSessions"] == 2
    assert dashboard["currentStreak"] == 2
    assert dashboard["longestStreak"] == 5
    assert dashboard["dailyGoal"] == 10
    assert dashboard["statusDistribution"]["learning"] == 1
    with pytest.raises(ValueError):
        word_service.get_dashboard(999, NOW)
