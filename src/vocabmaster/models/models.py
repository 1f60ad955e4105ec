"""Database models for the review engine."""
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from vocabmaster.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """User model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=True)
    daily_goal = Column(Integer, default=10)
    current_streak = Column(Integer, default=0)  # consecutive study days
    longest_streak = Column(Integer, default=0)
    total_words_learned = Column(Integer, default=0)

    # Relationships
    progress = relationship("WordProgress", back_populates="user")
    learning_sessions = relationship("LearningSession", back_populates="user")


class Word(Base, TimestampMixin):
    """Word model."""

    __tablename__ = "words"

    id = Column(Integer, primary_key=True)
    english = Column(String, nullable=False)
    japanese = Column(String, nullable=False)
    phonetic = Column(String, nullable=True)
    part_of_speech = Column(String, nullable=False, default="noun")

    # Relationships
    progress = relationship("WordProgress", back_populates="word")


class WordProgress(Base, TimestampMixin):
    """Per user and word review state. Status is derived from the counters."""

    __tablename__ = "word_progress"
    __table_args__ = (UniqueConstraint("user_id", "word_id", name="uq_word_progress_user_word"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
    last_answer_correct = Column(Boolean, default=False)
    status = Column(String, default="new", nullable=False, index=True)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    recommended_review_date = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    user = relationship("User", back_populates="progress")
    word = relationship("Word", back_populates="progress")


class LearningSession(Base, TimestampMixin):
    """A committed study session."""

    __tablename__ = "learning_sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "client_session_id", name="uq_learning_session_client_id"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    client_session_id = Column(String, nullable=True)
    words_studied = Column(Integer, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    result_json = Column(Text, nullable=True)  # stored completion response

    # Relationships
    user = relationship("User", back_populates="learning_sessions")
