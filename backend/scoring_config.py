"""
Static configuration for district scoring: ward areas, category weights
and the specialty keyword vocabulary.
"""
import math
import os
from dotenv import load_dotenv
from errors import ScoringConfigError

load_dotenv()

# Facility types as stored in medical_facilities.facility_type
HOSPITAL = "病院"
CLINIC = "診療所"
DENTAL = "歯科"
PHARMACY = "薬局"
MATERNITY_HOME = "助産所"

FACILITY_TYPES = (HOSPITAL, CLINIC, DENTAL, PHARMACY, MATERNITY_HOME)

# Area of each Tokyo ward in km² (Geospatial Information Authority of Japan)
DISTRICT_AREAS_KM2 = {
    '千代田区': 11.66,
    '中央区': 10.21,
    '港区': 20.37,
    '新宿区': 18.22,
    '文京区': 11.29,
    '台東区': 10.11,
    '墨田区': 13.77,
    '江東区': 42.99,
    '品川区': 22.84,
    '目黒区': 14.67,
    '大田区': 61.86,
    '世田谷区': 58.05,
    '渋谷区': 15.11,
    '中野区': 15.59,
    '杉並区': 34.06,
    '豊島区': 13.01,
    '北区': 20.61,
    '荒川区': 10.16,
    '板橋区': 32.22,
    '練馬区': 48.08,
    '足立区': 53.25,
    '葛飾区': 34.80,
    '江戸川区': 49.90,
}

# Used for districts missing from DISTRICT_AREAS_KM2
DEFAULT_AREA_KM2 = float(os.getenv("DEFAULT_DISTRICT_AREA_KM2", "20"))

# Score every district of the area table, even those without facilities
SCORE_ALL_AREA_DISTRICTS = os.getenv("SCORE_ALL_AREA_DISTRICTS", "false").lower() in ("1", "true", "yes")

# Keyword -> specialty. Matching is substring containment on the department name,
# so "循環器内科" counts toward both cardiology and internal medicine.
SPECIALTY_KEYWORDS = {
    '小児科': 'pediatrics',
    '産婦人科': 'maternity',
    '産科': 'maternity',
    '循環器': 'cardiology',
    '整形外科': 'orthopedics',
    'リハビリ': 'rehabilitation',
    '内科': 'internal_medicine',
}

SPECIALTIES = ('pediatrics', 'maternity', 'cardiology', 'orthopedics', 'rehabilitation', 'internal_medicine')

# Sub-metrics that are percentile ranks of a per-km² density
DENSITY_METRICS = {
    'pediatrics': 'pediatrics_count',
    'maternity': 'maternity_count',
    'pharmacy': 'pharmacy_count',
    'hospital': 'hospital_count',
    'clinic': 'clinic_count',
    'dental': 'dental_count',
    'cardiology': 'cardiology_count',
    'orthopedics': 'orthopedics_count',
    'rehabilitation': 'rehab_count',
    'internal_medicine': 'internal_medicine_count',
}

# Sub-metrics that are percentile ranks of the raw value
RAW_METRICS = {
    'department_variety': 'department_variety',
}

# Sub-metrics scored directly from the district's own statistics
DIRECT_METRICS = ('night_pediatrics', 'hospital_tier')

CATEGORY_WEIGHTS = {
    'childcare': {
        'pediatrics': 0.35,
        'maternity': 0.20,
        'night_pediatrics': 0.15,
        'pharmacy': 0.15,
        'hospital_tier': 0.15,
    },
    'elderly': {
        'cardiology': 0.25,
        'orthopedics': 0.25,
        'rehabilitation': 0.25,
        'hospital': 0.25,
    },
    'general': {
        'internal_medicine': 0.25,
        'dental': 0.20,
        'pharmacy': 0.20,
        'clinic': 0.20,
        'department_variety': 0.15,
    },
}


def classify_department(department_name):
    """Return the set of specialties a free-text department name belongs to"""
    if not department_name:
        return set()
    return {
        specialty
        for keyword, specialty in SPECIALTY_KEYWORDS.items()
        if keyword in department_name
    }


def validate_scoring_config(areas=None, weights=None, default_area=None):
    """
    Check the area table and weight tables before any scoring happens.

    Raises:
        ScoringConfigError: on a non-positive area, an unknown sub-metric,
            a negative weight or a category whose weights do not sum to 1.0
    """
    areas = DISTRICT_AREAS_KM2 if areas is None else areas
    weights = CATEGORY_WEIGHTS if weights is None else weights
    default_area = DEFAULT_AREA_KM2 if default_area is None else default_area

    if not default_area > 0:
        raise ScoringConfigError(f"Default district area must be positive, got {default_area}")

    for district, area in areas.items():
        if not area or area <= 0:
            raise ScoringConfigError(f"Area for {district} must be positive, got {area}")

    known_metrics = set(DENSITY_METRICS) | set(RAW_METRICS) | set(DIRECT_METRICS)
    for category, sub_weights in weights.items():
        if not sub_weights:
            raise ScoringConfigError(f"Category {category} has no sub-metrics")
        unknown = set(sub_weights) - known_metrics
        if unknown:
            raise ScoringConfigError(f"Category {category} uses unknown sub-metrics: {sorted(unknown)}")
        negative = [name for name, weight in sub_weights.items() if weight < 0]
        if negative:
            raise ScoringConfigError(f"Category {category} has negative weights: {negative}")
        total = sum(sub_weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ScoringConfigError(f"Weights for {category} sum to {total}, expected 1.0")

    unknown_specialties = set(SPECIALTY_KEYWORDS.values()) - set(SPECIALTIES)
    if unknown_specialties:
        raise ScoringConfigError(f"Keyword table maps to unknown specialties: {sorted(unknown_specialties)}")
