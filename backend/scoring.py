# backend/scoring.py - District medical access scoring engine
"""
Turns facility / department records into per-district access scores.

Pipeline: aggregate counts per district -> divide by ward area -> percentile
rank every metric across all districts -> weighted category scores ->
overall score. Everything here is pure; loading and persisting records lives
in score_repository.py.
"""
import json
import logging
import math
from bisect import bisect_left
from collections import defaultdict
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Tuple

from errors import EmptyComparisonSetError, ScoringConfigError, ScoringError
from scoring_config import (
    CATEGORY_WEIGHTS,
    CLINIC,
    DEFAULT_AREA_KM2,
    DENSITY_METRICS,
    DENTAL,
    DISTRICT_AREAS_KM2,
    HOSPITAL,
    MATERNITY_HOME,
    PHARMACY,
    RAW_METRICS,
    classify_department,
)

logger = logging.getLogger(__name__)

# Specialty name -> DistrictStatistics attribute holding its facility count
SPECIALTY_FIELDS = {
    'pediatrics': 'pediatrics_count',
    'maternity': 'maternity_count',
    'cardiology': 'cardiology_count',
    'orthopedics': 'orthopedics_count',
    'rehabilitation': 'rehab_count',
    'internal_medicine': 'internal_medicine_count',
}

FACILITY_TYPE_FIELDS = {
    HOSPITAL: 'hospital_count',
    CLINIC: 'clinic_count',
    DENTAL: 'dental_count',
    PHARMACY: 'pharmacy_count',
}


@dataclass
class DistrictStatistics:
    """Raw per-district counts; rebuilt on every scoring run"""
    district_name: str
    hospital_count: int = 0
    clinic_count: int = 0
    dental_count: int = 0
    pharmacy_count: int = 0
    pediatrics_count: int = 0
    maternity_count: int = 0
    cardiology_count: int = 0
    orthopedics_count: int = 0
    rehab_count: int = 0
    home_visit_count: int = 0
    internal_medicine_count: int = 0
    department_variety: int = 0
    has_night_pediatrics: bool = False


@dataclass
class DistrictScoreResult:
    district_name: str
    childcare_score: int
    elderly_score: int
    general_score: int
    overall_score: int
    hospital_count: int
    clinic_count: int
    dental_count: int
    pharmacy_count: int
    details: Dict[str, dict]

    def score_details_json(self) -> str:
        return json.dumps(self.details, ensure_ascii=False)


@dataclass
class ScoringRun:
    """Outcome of one full recomputation"""
    scores: List[DistrictScoreResult]
    missing_area_districts: List[str] = field(default_factory=list)


HALF = Fraction(1, 2)


def exact_weight(weight) -> Fraction:
    """Weights as written in the config (0.35 -> 35/100), free of binary float error"""
    return Fraction(str(weight))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's rounding)"""
    return int(math.floor(value + HALF))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


# =============================================================================
# Facility Aggregator
# =============================================================================

def aggregate_district_statistics(facilities: Iterable, districts: Optional[Iterable[str]] = None) -> Dict[str, DistrictStatistics]:
    """
    Group facilities by district and count facility types and specialties.

    Specialty counts are the number of distinct facilities with at least one
    matching department. Districts passed in ``districts`` are always present
    in the result, with zero counts when they have no facilities.
    """
    stats: Dict[str, DistrictStatistics] = {}
    for district in districts or ():
        stats[district] = DistrictStatistics(district_name=district)

    specialty_facilities = defaultdict(lambda: defaultdict(set))
    home_visit_facilities = defaultdict(set)
    department_names = defaultdict(set)

    for facility in facilities:
        district = facility.district_name
        if not district:
            logger.warning("Skipping facility %s without a district", facility.id)
            continue

        district_stats = stats.get(district)
        if district_stats is None:
            district_stats = stats[district] = DistrictStatistics(district_name=district)

        type_field = FACILITY_TYPE_FIELDS.get(facility.facility_type)
        if type_field:
            setattr(district_stats, type_field, getattr(district_stats, type_field) + 1)
        if facility.facility_type == MATERNITY_HOME:
            specialty_facilities[district]['maternity'].add(facility.id)

        for department in facility.departments or ():
            name = department.department_name
            if name:
                department_names[district].add(name)
            specialties = classify_department(name)
            for specialty in specialties:
                specialty_facilities[district][specialty].add(facility.id)
            if 'pediatrics' in specialties and department.has_night_service:
                district_stats.has_night_pediatrics = True
            if department.has_home_visit:
                home_visit_facilities[district].add(facility.id)

    for district, district_stats in stats.items():
        for specialty, stat_field in SPECIALTY_FIELDS.items():
            setattr(district_stats, stat_field, len(specialty_facilities[district][specialty]))
        district_stats.home_visit_count = len(home_visit_facilities[district])
        district_stats.department_variety = len(department_names[district])

    return stats


# =============================================================================
# Density Normalizer
# =============================================================================

def get_district_area(district_name: str, areas: Optional[Dict[str, float]] = None,
                      default_area: Optional[float] = None) -> Tuple[float, bool]:
    """Return (area_km2, found_in_table) for a district"""
    areas = DISTRICT_AREAS_KM2 if areas is None else areas
    default_area = DEFAULT_AREA_KM2 if default_area is None else default_area

    area = areas.get(district_name)
    if area is None:
        return default_area, False
    return area, True


def calculate_density(count: float, area_km2: float) -> float:
    """Facilities per km²"""
    if area_km2 <= 0:
        raise ScoringConfigError(f"District area must be positive, got {area_km2}")
    return count / area_km2


# =============================================================================
# Percentile Ranker
# =============================================================================

def percentile_rank(value: float, values: List[float]) -> int:
    """
    Rank ``value`` against ``values`` on a 0-100 scale.

    The rank is the position of the first element >= value in the sorted
    list, so tied districts all share the lowest position of the tie.
    A single-district comparison set yields 100 for a positive value and 0
    otherwise.
    """
    n = len(values)
    if n == 0:
        raise EmptyComparisonSetError("Cannot rank against an empty comparison set")
    if n == 1:
        return 100 if value > 0 else 0

    ordered = sorted(values)
    rank = bisect_left(ordered, value)
    return clamp_score(Fraction(rank * 100, n - 1))


def rank_metrics(stats: Dict[str, DistrictStatistics], areas_by_district: Dict[str, float],
                 metrics: Iterable[str]) -> Dict[str, Dict[str, int]]:
    """Percentile of every district for every requested metric: {metric: {district: score}}"""
    percentiles = {}
    for metric in metrics:
        if metric in DENSITY_METRICS:
            stat_field = DENSITY_METRICS[metric]
            values = {
                district: calculate_density(getattr(district_stats, stat_field), areas_by_district[district])
                for district, district_stats in stats.items()
            }
        elif metric in RAW_METRICS:
            stat_field = RAW_METRICS[metric]
            values = {district: getattr(district_stats, stat_field) for district, district_stats in stats.items()}
        else:
            continue

        comparison = list(values.values())
        percentiles[metric] = {
            district: percentile_rank(value, comparison)
            for district, value in values.items()
        }
    return percentiles


# =============================================================================
# Category Scorer
# =============================================================================

def hospital_tier_score(hospital_count: int) -> int:
    if hospital_count >= 2:
        return 100
    if hospital_count == 1:
        return 50
    return 0


def score_sub_metric(metric: str, district_stats: DistrictStatistics, percentiles: Dict[str, Dict[str, int]]) -> int:
    if metric == 'night_pediatrics':
        return 100 if district_stats.has_night_pediatrics else 0
    if metric == 'hospital_tier':
        return hospital_tier_score(district_stats.hospital_count)
    return percentiles[metric][district_stats.district_name]


def weighted_category_score(category: str, district_stats: DistrictStatistics,
                            percentiles: Dict[str, Dict[str, int]],
                            weights: Optional[Dict[str, Dict[str, float]]] = None) -> Tuple[int, Dict[str, int]]:
    weights = CATEGORY_WEIGHTS if weights is None else weights
    sub_scores = {
        metric: score_sub_metric(metric, district_stats, percentiles)
        for metric in weights[category]
    }
    total = sum(sub_scores[metric] * exact_weight(weight) for metric, weight in weights[category].items())
    return clamp_score(total), sub_scores


def calculate_childcare_score(district_stats, percentiles, weights=None):
    score, sub_scores = weighted_category_score('childcare', district_stats, percentiles, weights)
    details = {
        'pediatricsCount': district_stats.pediatrics_count,
        'hasNightPediatrics': district_stats.has_night_pediatrics,
        'maternityCount': district_stats.maternity_count,
        'hospitalCount': district_stats.hospital_count,
        'hasNearbyHospital': district_stats.hospital_count > 0,
        'pharmacyCount': district_stats.pharmacy_count,
        'subScores': sub_scores,
    }
    return score, details


def calculate_elderly_score(district_stats, percentiles, weights=None):
    score, sub_scores = weighted_category_score('elderly', district_stats, percentiles, weights)
    details = {
        'cardiologyCount': district_stats.cardiology_count,
        'orthopedicsCount': district_stats.orthopedics_count,
        'rehabCount': district_stats.rehab_count,
        'homeVisitCount': district_stats.home_visit_count,
        'hospitalCount': district_stats.hospital_count,
        'subScores': sub_scores,
    }
    return score, details


def calculate_general_score(district_stats, percentiles, weights=None):
    score, sub_scores = weighted_category_score('general', district_stats, percentiles, weights)
    details = {
        'internalMedicineCount': district_stats.internal_medicine_count,
        'departmentVariety': district_stats.department_variety,
        'dentalCount': district_stats.dental_count,
        'pharmacyCount': district_stats.pharmacy_count,
        'clinicCount': district_stats.clinic_count,
        'subScores': sub_scores,
    }
    return score, details


CATEGORY_SCORERS = (
    ('childcare', calculate_childcare_score),
    ('elderly', calculate_elderly_score),
    ('general', calculate_general_score),
)


# =============================================================================
# Overall Scorer
# =============================================================================

def calculate_overall_score(childcare_score: int, elderly_score: int, general_score: int) -> int:
    return round_half_up(Fraction(childcare_score + elderly_score + general_score, 3))


def compute_district_scores(facilities: Iterable, districts: Optional[Iterable[str]] = None,
                            areas: Optional[Dict[str, float]] = None,
                            weights: Optional[Dict[str, Dict[str, float]]] = None,
                            default_area: Optional[float] = None) -> ScoringRun:
    """
    Score every district found in ``facilities`` (plus any extra ``districts``).

    Raises:
        EmptyComparisonSetError: when there is no district to score
        ScoringError: when a district fails to score; names the category and district
    """
    weights = CATEGORY_WEIGHTS if weights is None else weights

    stats = aggregate_district_statistics(facilities, districts)
    if not stats:
        raise EmptyComparisonSetError("No districts to score")

    areas_by_district = {}
    missing_areas = []
    for district in sorted(stats):
        area, found = get_district_area(district, areas, default_area)
        if not found:
            logger.warning("No area data for %s, using fallback %.1f km²", district, area,
                           extra={"district": district})
            missing_areas.append(district)
        areas_by_district[district] = area

    used_metrics = {metric for sub_weights in weights.values() for metric in sub_weights}
    percentiles = rank_metrics(stats, areas_by_district, sorted(used_metrics))

    results = []
    for district in sorted(stats):
        district_stats = stats[district]
        category_scores = {}
        details = {}
        for category, scorer in CATEGORY_SCORERS:
            try:
                category_scores[category], details[category] = scorer(district_stats, percentiles, weights)
            except ScoringError:
                raise
            except (KeyError, TypeError, ValueError, ZeroDivisionError) as e:
                raise ScoringError("Failed to compute category score", category=category,
                                   district=district, cause=e) from e

        results.append(DistrictScoreResult(
            district_name=district,
            childcare_score=category_scores['childcare'],
            elderly_score=category_scores['elderly'],
            general_score=category_scores['general'],
            overall_score=calculate_overall_score(
                category_scores['childcare'], category_scores['elderly'], category_scores['general']
            ),
            hospital_count=district_stats.hospital_count,
            clinic_count=district_stats.clinic_count,
            dental_count=district_stats.dental_count,
            pharmacy_count=district_stats.pharmacy_count,
            details=details,
        ))

    return ScoringRun(scores=results, missing_area_districts=missing_areas)
