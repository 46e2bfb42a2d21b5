# backend/main.py
import os
import sys
import io
import logging

# Set stdout encoding to UTF-8 to avoid Windows encoding issues
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db, close_db
from logging_config import setup_logging
from score_repository import (
    SCORE_COLUMNS,
    get_district_facilities,
    get_district_score,
    list_district_scores,
)
from scoring_config import DISTRICT_AREAS_KM2, validate_scoring_config

logger = logging.getLogger(__name__)

app = FastAPI(title="District Medical Access API", version="1.0.0")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

FORBIDDEN_DISTRICT_CHARS = '<>"\'&'


def sanitize_district(district: str) -> str:
    """Strip markup characters from a district path parameter"""
    return ''.join(ch for ch in district if ch not in FORBIDDEN_DISTRICT_CHARS).strip()


def score_to_dict(score):
    return {
        "districtName": score.district_name,
        "childcareScore": score.childcare_score,
        "elderlyScore": score.elderly_score,
        "generalScore": score.general_score,
        "overallScore": score.overall_score,
        "hospitalCount": score.hospital_count,
        "clinicCount": score.clinic_count,
        "dentalCount": score.dental_count,
        "pharmacyCount": score.pharmacy_count,
        "calculatedAt": score.calculated_at.isoformat() if score.calculated_at else None,
    }


def facility_to_dict(facility):
    return {
        "id": facility.id,
        "name": facility.name,
        "facilityType": facility.facility_type,
        "latitude": facility.latitude,
        "longitude": facility.longitude,
        "districtName": facility.district_name,
        "address": facility.address,
        "phone": facility.phone_number,
        "departments": [d.department_name for d in facility.departments],
    }


@app.on_event("startup")
async def startup_event():
    setup_logging()
    # Refuse to serve scores computed against a broken area / weight table
    validate_scoring_config()
    logger.info("Scoring configuration validated")

@app.on_event("shutdown")
async def shutdown_event():
    await close_db()

@app.get("/api/test")
async def test():
    return {
        "success": True,
        "message": "Backend server is running"
    }

@app.get("/api/districts")
async def get_districts(sort: str = "overall", db: AsyncSession = Depends(get_db)):
    """District ranking ordered by the chosen score"""
    if sort not in SCORE_COLUMNS:
        raise HTTPException(status_code=400, detail=f"Unknown sort key: {sort}")

    try:
        scores = await list_district_scores(db, sort)
    except SQLAlchemyError as e:
        logger.error("Error fetching districts: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch districts")

    return {
        "success": True,
        "data": [score_to_dict(score) for score in scores],
        "total": len(scores)
    }

@app.get("/api/scores/{district}")
async def get_scores(district: str, db: AsyncSession = Depends(get_db)):
    """Score, breakdown and facilities of one district"""
    district_name = sanitize_district(district)

    try:
        score = await get_district_score(db, district_name)
        if not score:
            raise HTTPException(status_code=404, detail="District not found")
        facilities = await get_district_facilities(db, district_name)
    except SQLAlchemyError as e:
        logger.error("Error fetching district scores for %s: %s", district_name, e)
        raise HTTPException(status_code=500, detail="Failed to fetch district scores")

    return {
        "success": True,
        "data": {
            "score": score_to_dict(score),
            "details": score.parsed_details(),
            "facilities": [facility_to_dict(f) for f in facilities],
            "facilityCount": len(facilities)
        }
    }

@app.get("/api/facilities/{district}")
async def get_facilities(district: str, db: AsyncSession = Depends(get_db)):
    """Facilities of one district with their department names"""
    district_name = sanitize_district(district)
    if not district_name:
        raise HTTPException(status_code=400, detail="District name required")

    try:
        if district_name not in DISTRICT_AREAS_KM2 and not await get_district_score(db, district_name):
            raise HTTPException(status_code=400, detail="Invalid district name")
        facilities = await get_district_facilities(db, district_name)
    except SQLAlchemyError as e:
        logger.error("Error fetching facilities for %s: %s", district_name, e)
        raise HTTPException(status_code=500, detail="Failed to fetch facilities")

    return {
        "success": True,
        "data": [facility_to_dict(f) for f in facilities],
        "total": len(facilities)
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
