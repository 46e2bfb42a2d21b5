"""
Recompute district medical access scores from the stored facilities.

Usage: python calculate_scores.py
"""
import asyncio
import logging
import sys

from database import async_session, engine
from errors import ScoringError
from logging_config import setup_logging
from score_repository import load_facilities, replace_district_scores
from scoring import compute_district_scores
from scoring_config import DISTRICT_AREAS_KM2, SCORE_ALL_AREA_DISTRICTS, validate_scoring_config

logger = logging.getLogger(__name__)


async def calculate_district_scores(session_factory=async_session, include_all_area_districts=SCORE_ALL_AREA_DISTRICTS):
    """Load facilities, score every district and replace the stored scores"""
    validate_scoring_config()

    async with session_factory() as db:
        facilities = await load_facilities(db)
        logger.info("Loaded %d facilities", len(facilities))

        districts = sorted(DISTRICT_AREAS_KM2) if include_all_area_districts else None
        run = compute_district_scores(facilities, districts=districts)
        logger.info("Scoring %d districts", len(run.scores))

        saved = await replace_district_scores(db, run.scores)

    for score in run.scores:
        logger.info(
            "%s: overall %d (childcare %d, elderly %d, general %d)",
            score.district_name, score.overall_score,
            score.childcare_score, score.elderly_score, score.general_score,
        )
    if run.missing_area_districts:
        logger.warning(
            "%d district(s) scored with the fallback area: %s",
            len(run.missing_area_districts), ", ".join(run.missing_area_districts),
        )
    logger.info("Score calculation complete: %d districts saved", saved)
    return run


async def main(session_factory=async_session):
    try:
        await calculate_district_scores(session_factory=session_factory)
    except ScoringError as e:
        logger.error("Score calculation failed: %s", e)
        return 1
    finally:
        await engine.dispose()
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
