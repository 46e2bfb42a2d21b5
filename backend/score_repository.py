"""
Database access for the scoring job and the read API
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from errors import PersistenceError
from models import Department, DistrictMedicalScore, MedicalFacility

logger = logging.getLogger(__name__)

SCORE_COLUMNS = {
    'overall': DistrictMedicalScore.overall_score,
    'childcare': DistrictMedicalScore.childcare_score,
    'elderly': DistrictMedicalScore.elderly_score,
    'general': DistrictMedicalScore.general_score,
}


async def load_facilities(db: AsyncSession) -> List[MedicalFacility]:
    """
    All facilities with their departments eagerly loaded.

    Raises:
        PersistenceError: if the facility tables cannot be read
    """
    stmt = select(MedicalFacility).options(selectinload(MedicalFacility.departments))
    try:
        result = await db.execute(stmt)
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error("Loading medical facilities failed: %s", e)
        raise PersistenceError("Failed to load medical facilities", category="load", cause=e) from e


async def replace_district_scores(db: AsyncSession, scores) -> int:
    """
    Swap the whole score table for ``scores`` in a single transaction.

    Either every new record is written or the previous records stay in place.

    Raises:
        PersistenceError: if the delete or any insert fails
    """
    calculated_at = datetime.utcnow()
    if db.in_transaction():
        # load_facilities() autobegins; finish that read before opening the write unit
        await db.commit()

    try:
        async with db.begin():
            await db.execute(delete(DistrictMedicalScore))
            db.add_all([
                DistrictMedicalScore(
                    district_name=score.district_name,
                    childcare_score=score.childcare_score,
                    elderly_score=score.elderly_score,
                    general_score=score.general_score,
                    overall_score=score.overall_score,
                    hospital_count=score.hospital_count,
                    clinic_count=score.clinic_count,
                    dental_count=score.dental_count,
                    pharmacy_count=score.pharmacy_count,
                    score_details=score.score_details_json(),
                    calculated_at=calculated_at,
                )
                for score in scores
            ])
            await db.flush()
    except SQLAlchemyError as e:
        logger.error("Replacing district scores failed, previous scores kept: %s", e)
        raise PersistenceError("Failed to replace district scores", category="persistence", cause=e) from e

    return len(scores)


async def list_district_scores(db: AsyncSession, sort: str = 'overall') -> List[DistrictMedicalScore]:
    column = SCORE_COLUMNS[sort]
    stmt = select(DistrictMedicalScore).order_by(column.desc(), DistrictMedicalScore.district_name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_district_score(db: AsyncSession, district_name: str) -> Optional[DistrictMedicalScore]:
    stmt = select(DistrictMedicalScore).where(DistrictMedicalScore.district_name == district_name)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_district_facilities(db: AsyncSession, district_name: str) -> List[MedicalFacility]:
    stmt = (
        select(MedicalFacility)
        .where(MedicalFacility.district_name == district_name)
        .options(selectinload(MedicalFacility.departments))
        .order_by(MedicalFacility.facility_type, MedicalFacility.name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def replace_facilities(db: AsyncSession, facilities: List[MedicalFacility]) -> int:
    """
    Replace facilities, departments and (now stale) scores in one transaction.

    Raises:
        PersistenceError: if any statement fails; the previous data is kept
    """
    if db.in_transaction():
        await db.commit()

    try:
        async with db.begin():
            await db.execute(delete(DistrictMedicalScore))
            await db.execute(delete(Department))
            await db.execute(delete(MedicalFacility))
            db.add_all(facilities)
            await db.flush()
    except SQLAlchemyError as e:
        logger.error("Replacing facilities failed, previous data kept: %s", e)
        raise PersistenceError("Failed to replace medical facilities", category="import", cause=e) from e

    return len(facilities)
