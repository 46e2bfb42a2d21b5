import asyncio

import pytest
from fastapi.testclient import TestClient

from calculate_scores import calculate_district_scores
from database import get_db
from factories import make_department, make_facility
from main import app, sanitize_district
from score_repository import replace_facilities
from scoring_config import CLINIC, HOSPITAL, PHARMACY


@pytest.fixture
def client(session_factory):
    facilities = [
        make_facility('港区', HOSPITAL, [make_department('小児科', night=True), make_department('内科')], name='港中央病院'),
        make_facility('港区', PHARMACY, name='港薬局'),
        make_facility('品川区', CLINIC, [make_department('眼科')], name='品川眼科'),
    ]

    async def seed():
        async with session_factory() as db:
            await replace_facilities(db, facilities)
        await calculate_district_scores(session_factory=session_factory)

    asyncio.run(seed())

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    res = client.get("/api/test")
    assert res.status_code == 200
    assert res.json()["success"] is True


def test_district_ranking(client):
    res = client.get("/api/districts")
    body = res.json()
    assert res.status_code == 200
    assert body["total"] == 2
    assert [d["districtName"] for d in body["data"]] == ['港区', '品川区']
    assert body["data"][0]["hospitalCount"] == 1


def test_district_ranking_rejects_unknown_sort(client):
    assert client.get("/api/districts", params={"sort": "price"}).status_code == 400


def test_district_score_with_details(client):
    res = client.get("/api/scores/港区")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["score"]["overallScore"] >= 0
    assert data["details"]["childcare"]["hasNightPediatrics"] is True
    assert data["details"]["childcare"]["pediatricsCount"] == 1
    assert data["facilityCount"] == 2


def test_unknown_district_score(client):
    assert client.get("/api/scores/大阪市").status_code == 404


def test_district_facilities(client):
    res = client.get("/api/facilities/港区")
    assert res.status_code == 200
    data = res.json()["data"]
    assert [f["name"] for f in data] == ['港中央病院', '港薬局']
    assert sorted(data[0]["departments"]) == ['内科', '小児科']


def test_facilities_for_a_ward_without_data(client):
    res = client.get("/api/facilities/足立区")
    assert res.status_code == 200
    assert res.json()["data"] == []


def test_facilities_rejects_unknown_district(client):
    assert client.get("/api/facilities/大阪市").status_code == 400


def test_sanitize_district():
    assert sanitize_district('<港区>') == '港区'
    assert sanitize_district('"&\'') == ''
