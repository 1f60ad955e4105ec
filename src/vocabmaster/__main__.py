"""Compose the next study session of a user from the command line."""
import argparse
import logging
import sys

from vocabmaster.app import VocabEngine
from vocabmaster.config import settings
from vocabmaster.logging_config import setup_logging
from vocabmaster.models.base import SessionLocal
from vocabmaster.services.word_service import WordService

logger = logging.getLogger("vocabmaster")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vocabmaster", description=__doc__)
    parser.add_argument("user_id", type=int, help="ID of the learner")
    parser.add_argument(
        "--pattern",
        choices=sorted(settings.session.patterns),
        default=None,
        help="session pattern, random when omitted",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Log the words the user would study next and their review backlog."""
    args = parse_args(argv)
    setup_logging("Starting VocabMaster session preview...")

    engine = VocabEngine()
    engine.start()

    try:
        study_session = engine.start_session(args.user_id, args.pattern)
    except ValueError as e:
        logger.error("Could not build a session: %s", e)
        return 1

    logger.info("Pattern: %s", study_session.pattern.name)
    for candidate in study_session.words:
        word = candidate.word
        logger.info(
            "  %-10s %-20s %s",
            candidate.status.value,
            word.english if word else candidate.word_id,
            word.japanese if word else "",
        )

    db = SessionLocal()
    try:
        word_service = WordService(db)
        stats = word_service.get_review_statistics(args.user_id)
        distribution = word_service.get_status_distribution(args.user_id)
        struggling = word_service.get_struggling_words(args.user_id, limit=5)
    finally:
        db.close()
    logger.info(
        "Due today: %d, overdue: %d (max %d days), started words: %d",
        stats["dueToday"],
        stats["overdue"],
        stats["maxDebt"],
        stats["totalWords"],
    )
    logger.info(
        "Words by status: %s",
        ", ".join(f"{status}={count}" for status, count in distribution.items()),
    )
    for item in struggling:
        logger.info("  struggling: %-20s %d%% of %d", item["english"], item["accuracy"], item["totalReviews"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
