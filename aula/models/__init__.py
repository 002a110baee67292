from aula.models.users import InstitutionAdmin, PasswordResetToken, Role, User
from aula.models.academic import AcademicPeriod, Course, Faculty, Institution, Plan, Program
from aula.models.enrollment import (
    AdmissionProcess,
    Assignment,
    Enrollment,
    EnrollmentCourse,
    Grade,
    Student,
    Teacher,
)

__all__ = [
    "AcademicPeriod",
    "AdmissionProcess",
    "Assignment",
    "Course",
    "Enrollment",
    "EnrollmentCourse",
    "Faculty",
    "Grade",
    "Institution",
    "InstitutionAdmin",
    "PasswordResetToken",
    "Plan",
    "Program",
    "Role",
    "Student",
    "Teacher",
    "User",
]
