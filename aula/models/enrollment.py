"""People bound to an institution, admissions, enrollments, teaching assignments and grades."""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aula.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Teacher(Base):
    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    institution_id: Mapped[int] = mapped_column(ForeignKey("institutions.id"), nullable=False)
    specialization: Mapped[str | None] = mapped_column(String(255))

    user: Mapped["User"] = relationship(back_populates="teacher")
    assignments: Mapped[list["Assignment"]] = relationship(back_populates="teacher")


class Student(Base):
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    institution_id: Mapped[int] = mapped_column(ForeignKey("institutions.id"), nullable=False)
    enrollment_year: Mapped[int | None] = mapped_column(Integer)

    user: Mapped["User"] = relationship(back_populates="student")
    enrollments: Mapped[list["Enrollment"]] = relationship(back_populates="student")
    grades: Mapped[list["Grade"]] = relationship(back_populates="student")


class AdmissionProcess(Base):
    __tablename__ = "admission_processes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # unique: one admission process per academic period
    academic_period_id: Mapped[int] = mapped_column(
        ForeignKey("academic_periods.id"), unique=True, nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    academic_period: Mapped["AcademicPeriod"] = relationship(back_populates="admission_process")
    enrollments: Mapped[list["Enrollment"]] = relationship(back_populates="admission_process")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "program_id", "admission_process_id", name="uq_enrollments_student_program_process"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    program_id: Mapped[int] = mapped_column(ForeignKey("programs.id"), nullable=False)
    admission_process_id: Mapped[int] = mapped_column(ForeignKey("admission_processes.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(40), default="matriculado", nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    student: Mapped["Student"] = relationship(back_populates="enrollments")
    program: Mapped["Program"] = relationship()
    admission_process: Mapped["AdmissionProcess"] = relationship(back_populates="enrollments")
    courses: Mapped[list["EnrollmentCourse"]] = relationship(back_populates="enrollment")


class EnrollmentCourse(Base):
    __tablename__ = "enrollment_courses"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "course_id", name="uq_enrollment_courses_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    enrollment_id: Mapped[int] = mapped_column(ForeignKey("enrollments.id"), nullable=False)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id"), nullable=False)

    enrollment: Mapped["Enrollment"] = relationship(back_populates="courses")
    course: Mapped["Course"] = relationship()


class Assignment(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("course_id", "academic_period_id", "shift", name="uq_assignments_course_period_shift"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    academic_period_id: Mapped[int] = mapped_column(ForeignKey("academic_periods.id"), nullable=False)
    shift: Mapped[str] = mapped_column(String(40), nullable=False)

    course: Mapped["Course"] = relationship()
    teacher: Mapped["Teacher"] = relationship(back_populates="assignments")
    academic_period: Mapped["AcademicPeriod"] = relationship()
    grades: Mapped[list["Grade"]] = relationship(back_populates="assignment")


class Grade(Base):
    __tablename__ = "grades"
    __table_args__ = (
        UniqueConstraint("student_id", "assignment_id", name="uq_grades_student_assignment"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    assignment_id: Mapped[int] = mapped_column(ForeignKey("assignments.id"), nullable=False)
    grade: Mapped[float | None] = mapped_column(Float)
    observation: Mapped[str | None] = mapped_column(Text)

    student: Mapped["Student"] = relationship(back_populates="grades")
    assignment: Mapped["Assignment"] = relationship(back_populates="grades")
