"""Tests for database models and payload shapes."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import NOW, fake
from vocabmaster.exceptions import ValidationError
from vocabmaster.models.models import LearningSession, User, WordProgress
from vocabmaster.models.progress_models import (
    BatchCompletionRequest,
    BatchCompletionResponse,
    LearningMode,
    MasteryStatus,
    ProgressSnapshot,
    SessionAnswer,
    SessionPattern,
    StatusChange,
    StatusChanges,
)


def test_user_creation(db: Session) -> None:
    """Test user creation."""
    user = User(name=fake.name(), email=fake.unique.email())
    db.add(user)
    db.commit()
    db.refresh(user)

    assert user.id is not None
    assert user.daily_goal == 10
    assert user.current_streak == 0
    assert user.longest_streak == 0
    assert user.total_words_learned == 0


def test_word_progress_defaults(db: Session, user: User, make_word) -> None:
    """Test progress defaults applied on flush."""
    word = make_word(english="hello", japanese="こんにちは")
    progress = WordProgress(user_id=user.id, word_id=word.id)
    db.add(progress)
    db.commit()
    db.refresh(progress)

    assert progress.total_reviews == 0
    assert progress.streak == 0
    assert progress.status == "new"
    assert progress.recommended_review_date is not None
    assert progress.word.english == "hello"
    assert user.progress == [progress]


def test_word_progress_is_unique_per_user(db: Session, user: User, make_word) -> None:
    """Test that a learner has one progress row per word."""
    word = make_word()
    db.add(WordProgress(user_id=user.id, word_id=word.id))
    db.commit()
    db.add(WordProgress(user_id=user.id, word_id=word.id))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_learning_session_creation(db: Session, user: User) -> None:
    """Test session creation."""
    session = LearningSession(user_id=user.id, client_session_id="abc", words_studied=5, completed_at=NOW)
    db.add(session)
    db.commit()
    db.refresh(session)

    assert session.id is not None
    assert session.user.id == user.id
    assert user.learning_sessions == [session]


def test_snapshot_from_progress(user: User, make_progress) -> None:
    """Test snapshotting a stored row."""
    progress = make_progress(user, 4, 2, 0)
    assert ProgressSnapshot.from_progress(progress) == ProgressSnapshot(4, 2, 0, MasteryStatus.REVIEWING)


def test_session_pattern() -> None:
    """Test pattern counts."""
    pattern = SessionPattern.from_counts("mostlyNew", {"new": 7, "mastered": 1})
    assert pattern.total == 8
    assert pattern.count_for(MasteryStatus.LEARNING) == 0
    assert pattern.count_for("mastered") == 1


def test_session_answer_payload() -> None:
    """Test the answer payload shape."""
    answer = SessionAnswer(word_id=3, is_correct=True, response_time=1200.0, mode=LearningMode.JPN_TO_ENG)
    assert answer.to_dict() == {
        "wordId": 3,
        "isCorrect": True,
        "responseTime": 1200.0,
        "mode": "jpn_to_eng",
    }
    assert SessionAnswer.from_dict({"wordId": "3", "isCorrect": False}) == SessionAnswer(3, False)


@pytest.mark.parametrize(
    "payload",
    [
        {"isCorrect": True},
        {"wordId": "three", "isCorrect": True},
        {"wordId": 3, "isCorrect": True, "mode": "telepathy"},
    ],
)
def test_session_answer_rejects_malformed(payload) -> None:
    """Test that malformed answers raise a validation error."""
    with pytest.raises(ValidationError):
        SessionAnswer.from_dict(payload)


@pytest.mark.parametrize(
    "payload",
    [
        {"answers": []},
        {"wordsStudied": 0, "answers": []},
        {"wordsStudied": -2, "answers": []},
        {"wordsStudied": "many", "answers": []},
    ],
)
def test_batch_request_rejects_words_studied(payload) -> None:
    """Test that the request needs a positive number of studied words."""
    with pytest.raises(ValidationError, match="Invalid wordsStudied value"):
        BatchCompletionRequest.from_dict(payload)


def test_batch_request_payload() -> None:
    """Test the request payload shape."""
    request = BatchCompletionRequest.from_dict(
        {
            "clientSessionId": "s-1",
            "wordsStudied": 2,
            "answers": [{"wordId": 1, "isCorrect": True}, {"wordId": 2, "isCorrect": False}],
        }
    )
    assert request.client_session_id == "s-1"
    assert [answer.word_id for answer in request.answers] == [1, 2]
    assert request.to_dict()["answers"][1] == {
        "wordId": 2,
        "isCorrect": False,
        "responseTime": 0.0,
        "mode": "eng_to_jpn",
    }


def test_batch_response_payload() -> None:
    """Test the response payload shape, dates included."""
    change = StatusChange(
        word_id=1,
        english="apple",
        japanese="りんご",
        from_status=MasteryStatus.MASTERED,
        to_status=MasteryStatus.REVIEWING,
        is_upgrade=False,
        is_downgrade=True,
    )
    response = BatchCompletionResponse(
        session_id=9,
        completed_at=NOW + timedelta(minutes=3),
        words_studied=1,
        status_changes=StatusChanges(downgrades=[change]),
        updated_stats={"currentStreak": 2},
    )

    data = response.to_dict()

    assert data["completedAt"] == "2024-01-01T12:03:00+00:00"
    assert data["statusChanges"]["downgrades"][0] == {
        "wordId": 1,
        "english": "apple",
        "japanese": "りんご",
        "from": "mastered",
        "to": "reviewing",
        "isUpgrade": False,
        "isDowngrade": True,
    }
    parsed = BatchCompletionResponse.from_dict({**data, "completedAt": "2024-01-01T12:03:00Z"})
    assert parsed.completed_at == response.completed_at
    assert parsed.status_changes.counts() == (0, 1)
