import asyncio
import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import NullPool

from calculate_scores import calculate_district_scores, main
from database import build_engine, build_session_factory
from errors import PersistenceError
from factories import make_department, make_facility, two_district_scenario
from models import DistrictMedicalScore
from score_repository import (
    get_district_facilities,
    get_district_score,
    list_district_scores,
    load_facilities,
    replace_district_scores,
    replace_facilities,
)
from scoring import compute_district_scores
from scoring_config import CLINIC, HOSPITAL


def run(coro):
    return asyncio.run(coro)


async def seed(session_factory, facilities):
    async with session_factory() as db:
        await replace_facilities(db, facilities)


async def stored_scores(session_factory):
    async with session_factory() as db:
        return {score.district_name: score for score in await list_district_scores(db)}


def test_load_facilities_includes_departments(session_factory):
    run(seed(session_factory, [make_facility('港区', CLINIC, [make_department('小児科'), make_department('内科')])]))

    async def load():
        async with session_factory() as db:
            return await load_facilities(db)

    facilities = run(load())
    assert len(facilities) == 1
    assert sorted(d.department_name for d in facilities[0].departments) == ['内科', '小児科']


def test_replace_scores_swaps_the_whole_table(session_factory):
    facilities, areas = two_district_scenario()
    first = compute_district_scores(facilities, areas=areas)

    async def scenario():
        async with session_factory() as db:
            await replace_district_scores(db, first.scores)
        async with session_factory() as db:
            await replace_district_scores(db, first.scores[:1])

    run(scenario())
    stored = run(stored_scores(session_factory))
    assert list(stored) == ['A区']
    assert stored['A区'].overall_score == 57
    assert json.loads(stored['A区'].score_details)['childcare']['pediatricsCount'] == 4


def test_failed_replace_keeps_previous_scores(session_factory):
    facilities, areas = two_district_scenario()
    scores = compute_district_scores(facilities, areas=areas).scores

    async def scenario():
        async with session_factory() as db:
            await replace_district_scores(db, scores)
        duplicate = [scores[1], scores[1]]
        async with session_factory() as db:
            await replace_district_scores(db, duplicate)

    with pytest.raises(PersistenceError):
        run(scenario())

    stored = run(stored_scores(session_factory))
    assert sorted(stored) == ['A区', 'B区']


def test_read_queries(session_factory):
    facilities, _ = two_district_scenario()
    run(seed(session_factory, facilities))
    run(calculate_district_scores(session_factory=session_factory))

    async def read():
        async with session_factory() as db:
            ranking = await list_district_scores(db, 'general')
            missing = await get_district_score(db, '存在しない区')
            b_facilities = await get_district_facilities(db, 'B区')
            return ranking, missing, b_facilities

    ranking, missing, b_facilities = run(read())
    general_scores = [score.general_score for score in ranking]
    assert general_scores == sorted(general_scores, reverse=True)
    assert missing is None
    assert [f.facility_type for f in b_facilities] == sorted(f.facility_type for f in b_facilities)
    assert len(b_facilities) == 3


def test_calculate_job_is_repeatable(session_factory):
    facilities = [
        make_facility('港区', HOSPITAL, [make_department('小児科', night=True), make_department('整形外科')]),
        make_facility('港区', CLINIC, [make_department('内科')]),
        make_facility('品川区', CLINIC, [make_department('循環器内科')]),
        make_facility('未登録区', CLINIC, [make_department('眼科')]),
    ]
    run(seed(session_factory, facilities))

    first_run = run(calculate_district_scores(session_factory=session_factory))
    first = run(stored_scores(session_factory))
    run(calculate_district_scores(session_factory=session_factory))
    second = run(stored_scores(session_factory))

    assert first_run.missing_area_districts == ['未登録区']
    assert {k: (v.overall_score, v.score_details) for k, v in first.items()} == \
        {k: (v.overall_score, v.score_details) for k, v in second.items()}

    async def count():
        async with session_factory() as db:
            return (await db.execute(select(func.count(DistrictMedicalScore.id)))).scalar_one()

    assert run(count()) == 3


def test_calculate_job_can_score_every_ward(session_factory):
    run(seed(session_factory, [make_facility('港区', HOSPITAL, [make_department('小児科')])]))
    result = run(calculate_district_scores(session_factory=session_factory, include_all_area_districts=True))

    assert len(result.scores) == 23
    empty = next(score for score in result.scores if score.district_name == '足立区')
    assert empty.overall_score == 0


def test_calculate_job_fails_cleanly_without_tables(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}", echo=False, poolclass=NullPool)
    session_factory = build_session_factory(engine)

    async def load():
        async with session_factory() as db:
            await load_facilities(db)

    with pytest.raises(PersistenceError) as excinfo:
        run(load())
    assert excinfo.value.category == 'load'

    assert run(main(session_factory=session_factory)) == 1
    run(engine.dispose())
