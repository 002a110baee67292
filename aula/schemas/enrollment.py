"""
Pydantic schemas for enrollments, course registration, assignments and grades.
"""

from pydantic import BaseModel
from typing import List, Optional


# ---- Enrollment ----
class EnrollmentCreate(BaseModel):
    student_id: int
    program_id: int
    admission_process_id: int
    status: Optional[str] = None


class EnrollmentUpdate(BaseModel):
    student_id: Optional[int] = None
    program_id: Optional[int] = None
    admission_process_id: Optional[int] = None
    status: Optional[str] = None


class CourseRegistration(BaseModel):
    student_id: int
    enrollment_id: int
    assignment_id: int
    course_id: int


# ---- Assignment ----
class AssignmentCreate(BaseModel):
    course_id: int
    teacher_id: int
    academic_period_id: int
    shift: str


class AssignmentUpdate(BaseModel):
    course_id: Optional[int] = None
    teacher_id: Optional[int] = None
    academic_period_id: Optional[int] = None
    shift: Optional[str] = None


# ---- Grades ----
class GradeEntry(BaseModel):
    grade_id: int
    grade: Optional[float] = None
    observation: Optional[str] = None


class GradesUpdate(BaseModel):
    assignment_id: int
    grades: List[GradeEntry]
