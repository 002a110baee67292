"""
Pydantic schemas for academic structure management.
"""

from datetime import date, datetime
from typing import Optional

from dateutil import parser  # ISO strings from the frontend may carry a time and "Z"
from pydantic import BaseModel, field_validator


def parse_date(value):
    if isinstance(value, datetime):
        return value.date()
    if value is None or isinstance(value, date):
        return value
    return parser.isoparse(str(value)).date()


class _DatedModel(BaseModel):
    @field_validator("start_date", "end_date", mode="before", check_fields=False)
    @classmethod
    def _coerce_dates(cls, value):
        return parse_date(value)


# ---- Faculty ----
class FacultyCreate(BaseModel):
    name: str
    description: Optional[str] = None


class FacultyUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


# ---- Plan ----
class PlanCreate(BaseModel):
    title: str
    description: Optional[str] = None
    start_year: int
    end_year: int
    is_active: bool = True


class PlanUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    is_active: Optional[bool] = None


# ---- Program ----
class ProgramCreate(BaseModel):
    name: str
    description: Optional[str] = None
    duration_months: int
    plan_id: int
    faculty_id: int
    is_active: bool = True


class ProgramUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_months: Optional[int] = None
    plan_id: Optional[int] = None
    faculty_id: Optional[int] = None
    is_active: Optional[bool] = None


# ---- Course ----
class CourseCreate(BaseModel):
    program_id: int
    code: str
    name: str
    credits: int
    semester: int


class CourseUpdate(BaseModel):
    program_id: Optional[int] = None
    code: Optional[str] = None
    name: Optional[str] = None
    credits: Optional[int] = None
    semester: Optional[int] = None


# ---- Academic Period ----
class AcademicPeriodCreate(_DatedModel):
    year: int
    name: str
    modality: Optional[str] = None
    start_date: date
    end_date: date
    is_active: bool = True


class AcademicPeriodUpdate(_DatedModel):
    year: Optional[int] = None
    name: Optional[str] = None
    modality: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


# ---- Admission Process ----
class AdmissionProcessCreate(_DatedModel):
    academic_period_id: int
    description: Optional[str] = None
    start_date: date
    end_date: date


class AdmissionProcessUpdate(_DatedModel):
    academic_period_id: Optional[int] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
