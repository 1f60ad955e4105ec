"""Session construction logic.

Builds fixed-size study sessions from per-status candidate pools according to
a session pattern, backfilling from leftovers when a category runs short.
"""
import logging
import random
from datetime import datetime
from typing import Dict, List, Optional, Sequence, TypeVar

from vocabmaster import monitoring
from vocabmaster.config import PrioritySettings, SessionSettings
from vocabmaster.date_utils import utc_now
from vocabmaster.models.progress_models import (
    STATUS_ORDER,
    CandidateQuerySpec,
    CategorizedCandidates,
    MasteryStatus,
    SessionCandidate,
    SessionPattern,
)
from vocabmaster.services.priority import calculate_candidate_priority

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionBuilder:
    """Composes study sessions. Holds configuration and a random source only."""

    def __init__(
        self,
        config: Optional[SessionSettings] = None,
        priority_config: Optional[PrioritySettings] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the builder.

        Args:
            config: Session size, candidate multipliers and patterns.
            priority_config: Weights used to order review candidates.
            rng: Random source for pattern choice, shuffles and tiebreakers.
                Pass a seeded ``random.Random`` for reproducible sessions.
        """
        self.config = config or SessionSettings()
        self.priority_config = priority_config or PrioritySettings()
        self.rng = rng or random.Random()
        self.patterns: Dict[str, SessionPattern] = {
            name: SessionPattern.from_counts(name, counts)
            for name, counts in self.config.patterns.items()
        }

    def select_pattern(self, name: Optional[str] = None) -> SessionPattern:
        """Select a pattern by name, or a random one when no name is given."""
        if name is None:
            name = self.rng.choice(sorted(self.patterns))
        try:
            return self.patterns[name]
        except KeyError:
            raise ValueError(f"Unknown session pattern: {name}") from None

    def get_candidate_query_specs(self, pattern: SessionPattern) -> Dict[MasteryStatus, CandidateQuerySpec]:
        """Define what the persistence layer must fetch for each status.

        New words come newest first, everything else soonest due first. Counts
        are over-fetched to leave room for priority reordering and backfill.
        """
        specs = {
            MasteryStatus.NEW: CandidateQuerySpec(
                count=pattern.new * self.config.new_candidate_multiplier,
                order_by="created_at",
                descending=True,
            ),
        }
        for status in STATUS_ORDER[1:]:
            specs[status] = CandidateQuerySpec(
                count=pattern.count_for(status) * self.config.candidate_multiplier,
                order_by="recommended_review_date",
                descending=False,
            )
        return specs

    def rank_candidates(
        self,
        candidates: Sequence[SessionCandidate],
        now: Optional[datetime] = None,
    ) -> List[SessionCandidate]:
        """Order candidates by priority, breaking ties with a fresh random value."""
        if now is None:
            now = utc_now()
        scored = [
            (calculate_candidate_priority(candidate, now, self.priority_config), self.rng.random(), candidate)
            for candidate in candidates
        ]
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [candidate for _, _, candidate in scored]

    @staticmethod
    def select_words_from_category(words: Sequence[T], count: int) -> List[T]:
        """Select the first count words of an already ordered category."""
        if count <= 0 or not words:
            return []
        return list(words[:count])

    def build_session(
        self,
        pattern: SessionPattern,
        candidates: CategorizedCandidates,
        now: Optional[datetime] = None,
    ) -> List[SessionCandidate]:
        """Build a session of pattern.total words from categorized candidates.

        Returns fewer words only when fewer candidates exist in total.
        """
        if now is None:
            now = utc_now()
        session_size = pattern.total

        session: List[SessionCandidate] = []
        leftovers: List[SessionCandidate] = []
        for status in STATUS_ORDER:
            pool = list(candidates.get(status))
            if status == MasteryStatus.NEW:
                # New words carry no priority signal yet
                self.rng.shuffle(pool)
            else:
                pool = self.rank_candidates(pool, now)
            chosen = self.select_words_from_category(pool, pattern.count_for(status))
            session.extend(chosen)
            leftovers.extend(pool[len(chosen):])

        shortage = session_size - len(session)
        if shortage > 0:
            self.rng.shuffle(leftovers)
            backfill = leftovers[:shortage]
            session.extend(backfill)
            monitoring.session_backfill.inc(len(backfill))
            logger.debug("Backfilled %d of %d missing slots", len(backfill), shortage)

        if len(session) < session_size:
            missing = session_size - len(session)
            monitoring.session_shortfall.inc(missing)
            logger.info(
                "Short session for pattern %s: %d of %d words available",
                pattern.name,
                len(session),
                session_size,
            )

        # Avoid status-grouped ordering
        self.rng.shuffle(session)
        monitoring.sessions_built.labels(pattern=pattern.name).inc()
        return session
