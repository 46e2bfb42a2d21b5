import math

import pytest

from errors import ScoringConfigError
from scoring_config import (
    CATEGORY_WEIGHTS,
    DEFAULT_AREA_KM2,
    DISTRICT_AREAS_KM2,
    classify_department,
    validate_scoring_config,
)


# Department names as they appear in the MHLW speciality-hours CSVs
KNOWN_DEPARTMENTS = {
    '内科': {'internal_medicine'},
    '小児科': {'pediatrics'},
    '循環器内科': {'cardiology', 'internal_medicine'},
    '呼吸器内科': {'internal_medicine'},
    '消化器内科': {'internal_medicine'},
    '脳神経内科': {'internal_medicine'},
    '糖尿病内科': {'internal_medicine'},
    '腎臓内科': {'internal_medicine'},
    '整形外科': {'orthopedics'},
    'リハビリテーション科': {'rehabilitation'},
    '産婦人科': {'maternity'},
    '産科': {'maternity'},
    '婦人科': set(),
    '小児外科': set(),
    '小児歯科': set(),
    '心臓血管外科': set(),
    '形成外科': set(),
    '外科': set(),
    '歯科': set(),
    '眼科': set(),
    '皮膚科': set(),
    '耳鼻いんこう科': set(),
    '精神科': set(),
    '放射線科': set(),
}


@pytest.mark.parametrize("name,expected", sorted(KNOWN_DEPARTMENTS.items()))
def test_classify_known_departments(name, expected):
    assert classify_department(name) == expected


def test_classify_empty_names():
    assert classify_department('') == set()
    assert classify_department(None) == set()


def test_shipped_config_is_valid():
    validate_scoring_config()
    for category, weights in CATEGORY_WEIGHTS.items():
        assert math.isclose(sum(weights.values()), 1.0), category


def test_every_tokyo_ward_has_a_positive_area():
    assert len(DISTRICT_AREAS_KM2) == 23
    assert all(area > 0 for area in DISTRICT_AREAS_KM2.values())
    assert DEFAULT_AREA_KM2 == 20.0


def test_rejects_zero_area():
    with pytest.raises(ScoringConfigError):
        validate_scoring_config(areas={'港区': 0})


def test_rejects_non_positive_default_area():
    with pytest.raises(ScoringConfigError):
        validate_scoring_config(default_area=0)


def test_rejects_weights_that_do_not_sum_to_one():
    weights = dict(CATEGORY_WEIGHTS, elderly={'cardiology': 0.5, 'hospital': 0.4})
    with pytest.raises(ScoringConfigError) as excinfo:
        validate_scoring_config(weights=weights)
    assert 'elderly' in str(excinfo.value)


def test_rejects_unknown_sub_metric():
    weights = dict(CATEGORY_WEIGHTS, general={'walkability': 1.0})
    with pytest.raises(ScoringConfigError):
        validate_scoring_config(weights=weights)


def test_rejects_negative_weight():
    weights = dict(CATEGORY_WEIGHTS, general={'clinic': 1.5, 'dental': -0.5})
    with pytest.raises(ScoringConfigError):
        validate_scoring_config(weights=weights)
