"""Configuration settings for the review engine."""
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Review scheduling
BASE_INTERVALS = (1, 3, 7, 14, 30)  # days, indexed by streak

# Session composition, counts per status
SESSION_PATTERNS = {
    "newFocused": {"new": 6, "learning": 2, "reviewing": 1, "mastered": 1},
    "balanced": {"new": 5, "learning": 3, "reviewing": 1, "mastered": 1},
    "reviewFocused": {"new": 3, "learning": 3, "reviewing": 3, "mastered": 1},
    "consolidationFocused": {"new": 2, "learning": 4, "reviewing": 3, "mastered": 1},
    "masteryMaintenance": {"new": 4, "learning": 2, "reviewing": 2, "mastered": 2},
}


def _freeze_patterns(patterns: Mapping[str, Mapping[str, int]]) -> Mapping[str, Mapping[str, int]]:
    """Read-only copy of a pattern table."""
    return MappingProxyType({name: MappingProxyType(dict(counts)) for name, counts in patterns.items()})


def _parse_intervals(raw: Optional[str]) -> tuple[int, ...]:
    """Parse a comma separated interval table from the environment."""
    if not raw:
        return BASE_INTERVALS
    return tuple(int(value) for value in raw.split(",") if value.strip())


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocabmaster.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass(frozen=True)
class MasterySettings:
    """Thresholds of the mastery status state machine."""
    learning_max_reviews: int = 3
    mastered_streak: int = 3
    aptitude_streak: int = 2
    aptitude_accuracy: float = 0.80


@dataclass(frozen=True)
class ReviewIntervalSettings:
    """Coefficients of the recommended review date calculation."""
    base_intervals: tuple[int, ...] = field(
        default_factory=lambda: _parse_intervals(os.getenv("REVIEW_BASE_INTERVALS"))
    )
    learning_max_interval: int = 3
    learning_max_reviews: int = 3
    min_interval: int = 1
    # Accuracy is only trusted after this many reviews
    accuracy_min_reviews: int = 4
    critical_accuracy: float = 0.5
    low_accuracy: float = 0.7
    high_accuracy: float = 0.9
    critical_multiplier: float = 0.7
    low_multiplier: float = 0.85
    high_multiplier: float = 1.3
    reviews_threshold: int = 10
    reviews_multiplier: float = 1.2


@dataclass(frozen=True)
class PrioritySettings:
    """Weights of the candidate priority score."""
    overdue_weight: float = 10.0
    max_overdue_days: int = 7
    recent_failure_bonus: float = 5.0
    recent_failure_min_reviews: int = 2
    accuracy_min_reviews: int = 4
    critical_accuracy: float = 0.5
    low_accuracy: float = 0.7
    critical_accuracy_bonus: float = 4.0
    low_accuracy_bonus: float = 2.0
    recency_weight: float = 0.1


@dataclass(frozen=True)
class SessionSettings:
    """Session composition settings."""
    session_size: int = int(os.getenv("SESSION_SIZE", "10"))
    candidate_multiplier: int = int(os.getenv("CANDIDATE_MULTIPLIER", "3"))
    new_candidate_multiplier: int = int(os.getenv("NEW_CANDIDATE_MULTIPLIER", "3"))
    patterns: Mapping[str, Mapping[str, int]] = field(default_factory=lambda: SESSION_PATTERNS)

    def __post_init__(self):
        object.__setattr__(self, "patterns", _freeze_patterns(self.patterns))


@dataclass(frozen=True)
class SyncSettings:
    """Background save settings for the authoritative pass."""
    timeout_seconds: float = float(os.getenv("SYNC_TIMEOUT_SECONDS", "30"))
    max_attempts: int = int(os.getenv("SYNC_MAX_ATTEMPTS", "3"))
    backoff_seconds: float = float(os.getenv("SYNC_BACKOFF_SECONDS", "1.0"))
    backoff_factor: float = 2.0


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_mastery_settings() -> MasterySettings:
    """Get mastery settings."""
    return MasterySettings()


def get_review_settings() -> ReviewIntervalSettings:
    """Get review interval settings."""
    return ReviewIntervalSettings()


def get_priority_settings() -> PrioritySettings:
    """Get priority settings."""
    return PrioritySettings()


def get_session_settings() -> SessionSettings:
    """Get session settings."""
    return SessionSettings()


def get_sync_settings() -> SyncSettings:
    """Get sync settings."""
    return SyncSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    mastery: MasterySettings = field(default_factory=get_mastery_settings)
    review: ReviewIntervalSettings = field(default_factory=get_review_settings)
    priority: PrioritySettings = field(default_factory=get_priority_settings)
    session: SessionSettings = field(default_factory=get_session_settings)
    sync: SyncSettings = field(default_factory=get_sync_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        intervals = self.review.base_intervals
        if not intervals:
            raise ValueError("REVIEW_BASE_INTERVALS must not be empty")

        if any(later < earlier for earlier, later in zip(intervals, intervals[1:])):
            raise ValueError("REVIEW_BASE_INTERVALS must be non-decreasing")

        if self.review.min_interval < 1:
            raise ValueError("Minimum review interval must be at least one day")

        if not (self.review.critical_accuracy <= self.review.low_accuracy <= self.review.high_accuracy):
            raise ValueError("Accuracy thresholds must be ordered critical <= low <= high")

        if self.session.session_size < 1:
            raise ValueError("SESSION_SIZE must be positive")

        if self.session.candidate_multiplier < 1 or self.session.new_candidate_multiplier < 1:
            raise ValueError("Candidate multipliers must be positive")

        for name, counts in self.session.patterns.items():
            if sum(counts.values()) != self.session.session_size:
                raise ValueError(
                    f"Session pattern {name} does not sum to SESSION_SIZE={self.session.session_size}"
                )

        if self.sync.max_attempts < 1:
            raise ValueError("SYNC_MAX_ATTEMPTS must be positive")

        if self.sync.timeout_seconds <= 0:
            raise ValueError("SYNC_TIMEOUT_SECONDS must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
