"""Test configuration."""
import itertools
import os
from datetime import UTC, datetime
from typing import Callable, Generator

import pytest
from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Import after environment setup
from vocabmaster.models.base import Base, init_db
from vocabmaster.models.models import User, Word, WordProgress
from vocabmaster.models.progress_models import MasteryStatus, SessionCandidate
from vocabmaster.services.mastery import classify

fake = Faker()
_word_counter = itertools.count(1)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory bound to a fresh in-memory database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def user(db: Session) -> User:
    """Create a test user."""
    user = User(name=fake.name(), email=fake.unique.email())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_word(db: Session) -> Callable[..., Word]:
    """Factory creating words."""

    def _make_word(**kwargs) -> Word:
        word = Word(
            english=kwargs.pop("english", f"{fake.word()}-{next(_word_counter)}"),
            japanese=kwargs.pop("japanese", fake.word()),
            part_of_speech=kwargs.pop("part_of_speech", "noun"),
            **kwargs,
        )
        db.add(word)
        db.commit()
        db.refresh(word)
        return word

    return _make_word


@pytest.fixture
def make_progress(db: Session, make_word) -> Callable[..., WordProgress]:
    """Factory creating a word with progress whose status follows its counters."""

    def _make_progress(user: User, total_reviews: int = 0, correct_answers: int = 0, streak: int = 0, **kwargs) -> WordProgress:
        word = kwargs.pop("word", None) or make_word()
        progress = WordProgress(
            user_id=user.id,
            word_id=word.id,
            total_reviews=total_reviews,
            correct_answers=correct_answers,
            streak=streak,
            status=classify(total_reviews, correct_answers, streak).value,
            recommended_review_date=kwargs.pop("recommended_review_date", NOW),
            **kwargs,
        )
        db.add(progress)
        db.commit()
        db.refresh(progress)
        return progress

    return _make_progress


def make_candidate(word_id: int, status: MasteryStatus, **kwargs) -> SessionCandidate:
    """Build an in-memory session candidate."""
    return SessionCandidate(
        word_id=word_id,
        status=status,
        recommended_review_date=kwargs.pop("recommended_review_date", NOW),
        created_at=kwargs.pop("created_at", NOW),
        **kwargs,
    )
