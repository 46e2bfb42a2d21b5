# backend/opendata.py - MHLW medical information open data
import csv
import logging
import os
import time
import zipfile
from collections import Counter

import requests
from dotenv import load_dotenv

from models import Department, MedicalFacility
from scoring_config import CLINIC, DENTAL, DISTRICT_AREAS_KM2, HOSPITAL, PHARMACY

load_dotenv()

logger = logging.getLogger(__name__)

MHLW_BASE_URL = "https://www.mhlw.go.jp/content/11121000"
MHLW_DATA_DATE = os.getenv("MHLW_DATA_DATE", "20251201")
MHLW_DATA_DIR = os.getenv("MHLW_DATA_DIR", os.path.join("data", "mhlw"))

ARCHIVES = (
    ('hospital_facility', '01-1_hospital_facility_info_{date}.zip'),
    ('hospital_hours', '01-2_hospital_speciality_hours_{date}.zip'),
    ('clinic_facility', '02-1_clinic_facility_info_{date}.zip'),
    ('clinic_hours', '02-2_clinic_speciality_hours_{date}.zip'),
    ('dental_facility', '03-1_dental_facility_info_{date}.zip'),
    ('dental_hours', '03-2_dental_speciality_hours_{date}.zip'),
    ('pharmacy', '05_pharmacy_{date}.zip'),
)

# Ward order matters: the first ward name contained in an address wins
TOKYO_WARDS = tuple(DISTRICT_AREAS_KM2)

NIGHT_SERVICE_HOUR = 19
WEEKDAY_CLOSING_COLUMNS = ('月_診療終了時間', '火_診療終了時間', '水_診療終了時間', '木_診療終了時間', '金_診療終了時間')
WEEKEND_OPENING_COLUMNS = ('土_診療開始時間', '日_診療開始時間')


class OpenDataError(Exception):
    """Raised when the downloaded open data cannot be imported"""


class MhlwOpenDataClient:
    def __init__(self, data_date=MHLW_DATA_DATE, base_url=MHLW_BASE_URL, session=None, timeout=60):
        self.data_date = data_date
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': 'Medical-Access-Scoring/1.0'})

    def archive_urls(self):
        return [
            (name, f"{self.base_url}/{filename.format(date=self.data_date)}")
            for name, filename in ARCHIVES
        ]

    def download_archive(self, url, output_path):
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Download failed for %s: %s", url, e)
            return False

        with open(output_path, 'wb') as f:
            f.write(response.content)
        logger.info("Saved %s", output_path)
        return True

    @staticmethod
    def extract_archive(zip_path, output_dir):
        """Extract the CSV members of a ZIP archive, returning their paths"""
        try:
            with zipfile.ZipFile(zip_path) as archive:
                members = [name for name in archive.namelist() if name.lower().endswith('.csv')]
                archive.extractall(output_dir, members=members)
        except zipfile.BadZipFile as e:
            logger.error("Could not extract %s: %s", zip_path, e)
            return []
        return [os.path.join(output_dir, name) for name in members]

    def fetch_all(self, data_dir=MHLW_DATA_DIR, delay_seconds=1.0):
        """Download and extract every archive; files that fail are logged and skipped"""
        zip_dir = os.path.join(data_dir, 'zip')
        csv_dir = os.path.join(data_dir, 'csv')
        os.makedirs(zip_dir, exist_ok=True)
        os.makedirs(csv_dir, exist_ok=True)

        logger.info("Downloading MHLW open data (data date %s)", self.data_date)
        extracted = []
        for index, (name, url) in enumerate(self.archive_urls()):
            if index and delay_seconds:
                time.sleep(delay_seconds)
            zip_path = os.path.join(zip_dir, f"{name}.zip")
            if self.download_archive(url, zip_path):
                extracted.extend(self.extract_archive(zip_path, csv_dir))

        logger.info("Extracted %d CSV files into %s", len(extracted), csv_dir)
        return csv_dir


# =============================================================================
# CSV parsing
# =============================================================================

def read_csv_rows(path):
    """Rows of a UTF-8 CSV; an unreadable file is logged and yields no rows"""
    try:
        with open(path, encoding='utf-8-sig', newline='') as f:
            return list(csv.DictReader(f))
    except (UnicodeDecodeError, csv.Error) as e:
        logger.error("Could not parse %s, skipping: %s", os.path.basename(path), e)
        return []


def extract_ward(address):
    """Return the Tokyo ward named in an address, or None outside the 23 wards"""
    if not address or not address.startswith('東京都'):
        return None
    for ward in TOKYO_WARDS:
        if ward in address:
            return ward
    return None


def _hour(value):
    if not value:
        return None
    try:
        return int(value.split(':')[0])
    except ValueError:
        return None


def has_night_service(row):
    """Open until 19:00 or later on any weekday"""
    for column in WEEKDAY_CLOSING_COLUMNS:
        hour = _hour(row.get(column))
        if hour is not None and hour >= NIGHT_SERVICE_HOUR:
            return True
    return False


def has_weekend_service(row):
    return any(row.get(column) for column in WEEKEND_OPENING_COLUMNS)


def facility_type_from_filename(filename):
    name = filename.lower()
    if 'hospital' in name:
        return HOSPITAL
    if 'dental' in name:
        return DENTAL
    if 'clinic' in name:
        return CLINIC
    if 'pharmacy' in name:
        return PHARMACY
    return None


def is_hours_file(filename):
    name = filename.lower()
    return 'hour' in name or 'speciality' in name


def is_facility_file(filename):
    name = filename.lower()
    if is_hours_file(name):
        return False
    return 'facility' in name or 'pharmacy' in name


def _parse_coordinate(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_departments(hours_rows):
    """Collapse speciality-hours rows into one Department per department name"""
    grouped = {}
    for row in hours_rows:
        name = row.get('診療科目名') or row.get('診療科名') or ''
        if name:
            grouped.setdefault(name, []).append(row)

    departments = []
    for name, rows in grouped.items():
        slots = [f"時間帯{row['診療時間帯']}" for row in rows if row.get('診療時間帯')]
        departments.append(Department(
            department_name=name,
            consultation_hours=', '.join(slots) or None,
            has_night_service=any(has_night_service(row) for row in rows),
            has_weekend_service=any(has_weekend_service(row) for row in rows),
            has_home_visit=False,
        ))
    return departments


def build_facilities(csv_dir):
    """
    Read the extracted CSVs and build Tokyo 23-ward facilities with departments.

    Raises:
        OpenDataError: if the CSV directory does not exist
    """
    if not os.path.isdir(csv_dir):
        raise OpenDataError(f"CSV directory not found: {csv_dir}")

    filenames = sorted(f for f in os.listdir(csv_dir) if f.lower().endswith('.csv'))

    facility_rows = {}
    for filename in filter(is_facility_file, filenames):
        facility_type = facility_type_from_filename(filename)
        if facility_type is None:
            logger.warning("Cannot infer facility type from %s, skipping", filename)
            continue
        rows = read_csv_rows(os.path.join(csv_dir, filename))
        tokyo_rows = [row for row in rows if extract_ward(row.get('所在地'))]
        logger.info("%s: %d rows in the 23 wards / %d total", filename, len(tokyo_rows), len(rows))
        for row in tokyo_rows:
            facility_rows[row['ID']] = (row, facility_type)

    hours_by_facility = {}
    for filename in filter(is_hours_file, filenames):
        matched = 0
        for row in read_csv_rows(os.path.join(csv_dir, filename)):
            if row.get('ID') in facility_rows:
                hours_by_facility.setdefault(row['ID'], []).append(row)
                matched += 1
        logger.info("%s: %d rows for imported facilities", filename, matched)

    facilities = []
    for facility_id, (row, facility_type) in facility_rows.items():
        latitude = _parse_coordinate(row.get('所在地座標（緯度）'))
        longitude = _parse_coordinate(row.get('所在地座標（経度）'))
        if latitude is None or longitude is None or (latitude == 0 and longitude == 0):
            logger.debug("Skipping %s: invalid coordinates", facility_id)
            continue

        address = row.get('所在地') or ''
        facilities.append(MedicalFacility(
            id=facility_id,
            facility_type=facility_type,
            name=row.get('正式名称') or row.get('名称') or '名称不明',
            postal_code='',
            address=address,
            district_name=extract_ward(address),
            phone_number=row.get('電話番号') or None,
            latitude=latitude,
            longitude=longitude,
            departments=build_departments(hours_by_facility.get(facility_id, [])),
        ))

    return facilities


def summarize_facilities(facilities):
    """Counts per facility type and per ward, for the import log"""
    by_type = Counter(f.facility_type for f in facilities)
    by_ward = Counter(f.district_name for f in facilities)
    departments = sum(len(f.departments) for f in facilities)
    return by_type, by_ward, departments
