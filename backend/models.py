"""
Database models for district medical access scoring
"""
import json
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from database import Base

class MedicalFacility(Base):
    __tablename__ = "medical_facilities"

    id = Column(String(64), primary_key=True)
    facility_type = Column(String(32), nullable=False, index=True)  # 病院 / 診療所 / 歯科 / 薬局 / 助産所
    name = Column(String(255), nullable=False)
    postal_code = Column(String(16), nullable=True)
    address = Column(String(512), nullable=True)
    district_name = Column(String(64), nullable=False, index=True)
    phone_number = Column(String(32), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Relationships
    departments = relationship(
        "Department",
        back_populates="facility",
        cascade="all, delete-orphan",
    )

class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(String(64), ForeignKey("medical_facilities.id", ondelete="CASCADE"), nullable=False, index=True)
    department_name = Column(String(255), nullable=True)
    consultation_hours = Column(Text, nullable=True)
    has_night_service = Column(Boolean, nullable=False, default=False)
    has_weekend_service = Column(Boolean, nullable=False, default=False)
    has_home_visit = Column(Boolean, nullable=False, default=False)

    # Relationships
    facility = relationship("MedicalFacility", back_populates="departments")

class DistrictMedicalScore(Base):
    __tablename__ = "district_medical_scores"

    id = Column(Integer, primary_key=True, index=True)
    district_name = Column(String(64), unique=True, nullable=False, index=True)
    childcare_score = Column(Integer, nullable=False)
    elderly_score = Column(Integer, nullable=False)
    general_score = Column(Integer, nullable=False)
    overall_score = Column(Integer, nullable=False, index=True)
    hospital_count = Column(Integer, nullable=False, default=0)
    clinic_count = Column(Integer, nullable=False, default=0)
    dental_count = Column(Integer, nullable=False, default=0)
    pharmacy_count = Column(Integer, nullable=False, default=0)
    score_details = Column(Text, nullable=False)  # JSON breakdown rendered by the UI
    calculated_at = Column(DateTime, default=datetime.utcnow)

    def parsed_details(self):
        if not self.score_details:
            return None
        return json.loads(self.score_details)
