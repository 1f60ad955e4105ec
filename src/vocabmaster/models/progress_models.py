"""Models for review progress, session composition and batch completion."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from vocabmaster.date_utils import ensure_utc
from vocabmaster.exceptions import ValidationError


class MasteryStatus(str, Enum):
    """Coarse learning stage of a word for a learner."""
    NEW = "new"
    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"


# Ordered from least to most mastered
STATUS_ORDER = (
    MasteryStatus.NEW,
    MasteryStatus.LEARNING,
    MasteryStatus.REVIEWING,
    MasteryStatus.MASTERED,
)


class LearningMode(str, Enum):
    """How a word was asked during a session."""
    ENG_TO_JPN = "eng_to_jpn"
    JPN_TO_ENG = "jpn_to_eng"
    AUDIO_RECOGNITION = "audio_recognition"
    CONTEXT_FILL = "context_fill"


class FeedbackSource(str, Enum):
    """Which pass produced a session feedback."""
    OPTIMISTIC = "optimistic"
    AUTHORITATIVE = "authoritative"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


@dataclass(frozen=True)
class SessionAnswer:
    """One answered word in a session."""
    word_id: int
    is_correct: bool
    response_time: float = 0.0  # milliseconds
    mode: LearningMode = LearningMode.ENG_TO_JPN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wordId": self.word_id,
            "isCorrect": self.is_correct,
            "responseTime": self.response_time,
            "mode": LearningMode(self.mode).value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionAnswer":
        try:
            return cls(
                word_id=int(data["wordId"]),
                is_correct=bool(data["isCorrect"]),
                response_time=float(data.get("responseTime", 0.0)),
                mode=LearningMode(data.get("mode", LearningMode.ENG_TO_JPN.value)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid session answer {data!r}: {e}") from e


@dataclass(frozen=True)
class ProgressSnapshot:
    """Review counters of one word at a point in time."""
    total_reviews: int = 0
    correct_answers: int = 0
    streak: int = 0
    status: MasteryStatus = MasteryStatus.NEW

    @classmethod
    def from_progress(cls, progress: Any) -> "ProgressSnapshot":
        """Build a snapshot from any WordProgress-shaped record."""
        return cls(
            total_reviews=progress.total_reviews or 0,
            correct_answers=progress.correct_answers or 0,
            streak=progress.streak or 0,
            status=MasteryStatus(progress.status or MasteryStatus.NEW),
        )


@dataclass(frozen=True)
class ProgressResult:
    """Outcome of applying one answer to a word's progress."""
    word_id: int
    total_reviews: int
    correct_answers: int
    streak: int
    accuracy: float
    status: MasteryStatus
    previous_status: MasteryStatus
    status_changed: bool
    recommended_review_date: datetime

    def to_snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            total_reviews=self.total_reviews,
            correct_answers=self.correct_answers,
            streak=self.streak,
            status=self.status,
        )


@dataclass(frozen=True)
class WordInfo:
    """Display fields of a word."""
    word_id: int
    english: str = ""
    japanese: str = ""
    phonetic: Optional[str] = None
    part_of_speech: Optional[str] = None


@dataclass(frozen=True)
class StatusChange:
    """A word's status transition as shown after a session."""
    word_id: int
    english: str
    japanese: str
    from_status: MasteryStatus
    to_status: MasteryStatus
    is_upgrade: bool
    is_downgrade: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wordId": self.word_id,
            "english": self.english,
            "japanese": self.japanese,
            "from": self.from_status.value,
            "to": self.to_status.value,
            "isUpgrade": self.is_upgrade,
            "isDowngrade": self.is_downgrade,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusChange":
        return cls(
            word_id=int(data["wordId"]),
            english=data.get("english", ""),
            japanese=data.get("japanese", ""),
            from_status=MasteryStatus(data["from"]),
            to_status=MasteryStatus(data["to"]),
            is_upgrade=bool(data["isUpgrade"]),
            is_downgrade=bool(data["isDowngrade"]),
        )


@dataclass
class StatusChanges:
    """Status transitions of a session grouped by direction."""
    upgrades: List[StatusChange] = field(default_factory=list)
    downgrades: List[StatusChange] = field(default_factory=list)
    maintained: List[StatusChange] = field(default_factory=list)

    def counts(self) -> tuple[int, int]:
        """Upgrade and downgrade counts, the values compared on reconciliation."""
        return len(self.upgrades), len(self.downgrades)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upgrades": [change.to_dict() for change in self.upgrades],
            "downgrades": [change.to_dict() for change in self.downgrades],
            "maintained": [change.to_dict() for change in self.maintained],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusChanges":
        return cls(
            upgrades=[StatusChange.from_dict(item) for item in data.get("upgrades", [])],
            downgrades=[StatusChange.from_dict(item) for item in data.get("downgrades", [])],
            maintained=[StatusChange.from_dict(item) for item in data.get("maintained", [])],
        )


@dataclass(frozen=True)
class SessionPattern:
    """Quota template: how many words of each status populate a session."""
    name: str
    new: int
    learning: int
    reviewing: int
    mastered: int

    @property
    def total(self) -> int:
        return self.new + self.learning + self.reviewing + self.mastered

    def count_for(self, status: MasteryStatus) -> int:
        return getattr(self, MasteryStatus(status).value)

    @classmethod
    def from_counts(cls, name: str, counts: Dict[str, int]) -> "SessionPattern":
        return cls(
            name=name,
            new=counts.get("new", 0),
            learning=counts.get("learning", 0),
            reviewing=counts.get("reviewing", 0),
            mastered=counts.get("mastered", 0),
        )


@dataclass(frozen=True)
class CandidateQuerySpec:
    """What the persistence collaborator must fetch for one status."""
    count: int
    order_by: str  # "created_at" or "recommended_review_date"
    descending: bool = False


@dataclass
class SessionCandidate:
    """A WordProgress-shaped record competing for a session slot."""
    word_id: int
    status: MasteryStatus = MasteryStatus.NEW
    recommended_review_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    streak: int = 0
    total_reviews: int = 0
    correct_answers: int = 0
    last_reviewed_at: Optional[datetime] = None
    word: Optional[WordInfo] = None

    def to_snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot.from_progress(self)


@dataclass
class CategorizedCandidates:
    """Candidate pools keyed by mastery status."""
    new: List[SessionCandidate] = field(default_factory=list)
    learning: List[SessionCandidate] = field(default_factory=list)
    reviewing: List[SessionCandidate] = field(default_factory=list)
    mastered: List[SessionCandidate] = field(default_factory=list)

    def get(self, status: MasteryStatus) -> List[SessionCandidate]:
        return getattr(self, MasteryStatus(status).value)

    @property
    def total(self) -> int:
        return sum(len(self.get(status)) for status in STATUS_ORDER)


@dataclass
class BatchCompletionRequest:
    """One completed session sent to the authoritative collaborator."""
    words_studied: int
    answers: List[SessionAnswer]
    # Retries are only idempotent with a stable id per session
    client_session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def validate(self) -> None:
        if self.words_studied is None or self.words_studied <= 0:
            raise ValidationError("Invalid wordsStudied value")
        if not self.client_session_id:
            raise ValidationError("Missing clientSessionId")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientSessionId": self.client_session_id,
            "wordsStudied": self.words_studied,
            "answers": [answer.to_dict() for answer in self.answers],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchCompletionRequest":
        try:
            words_studied = int(data["wordsStudied"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError("Invalid wordsStudied value") from e
        request = cls(
            words_studied=words_studied,
            answers=[SessionAnswer.from_dict(item) for item in data.get("answers", [])],
            client_session_id=data.get("clientSessionId") or uuid.uuid4().hex,
        )
        request.validate()
        return request


@dataclass
class BatchCompletionResponse:
    """Authoritative outcome of a committed session."""
    session_id: int
    completed_at: datetime
    words_studied: int
    status_changes: StatusChanges
    updated_stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "completedAt": self.completed_at.isoformat(),
            "wordsStudied": self.words_studied,
            "statusChanges": self.status_changes.to_dict(),
            "updatedStats": dict(self.updated_stats),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchCompletionResponse":
        return cls(
            session_id=int(data["sessionId"]),
            completed_at=_parse_datetime(data["completedAt"]),
            words_studied=int(data.get("wordsStudied", 0)),
            status_changes=StatusChanges.from_dict(data.get("statusChanges", {})),
            updated_stats=dict(data.get("updatedStats", {})),
        )


@dataclass
class SessionFeedback:
    """Status changes shown to the learner once a session ends."""
    source: FeedbackSource
    status_changes: StatusChanges
    results: List[ProgressResult] = field(default_factory=list)
    session_id: Optional[int] = None
    completed_at: Optional[datetime] = None
