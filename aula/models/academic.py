"""Institution and its academic structure: faculties, plans, programs, courses, periods."""

from __future__ import annotations

from datetime import date

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aula.core.database import Base


class Institution(Base):
    __tablename__ = "institutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    admins: Mapped[list["InstitutionAdmin"]] = relationship(back_populates="institution")
    faculties: Mapped[list["Faculty"]] = relationship(back_populates="institution")
    plans: Mapped[list["Plan"]] = relationship(back_populates="institution")
    academic_periods: Mapped[list["AcademicPeriod"]] = relationship(back_populates="institution")


class Faculty(Base):
    __tablename__ = "faculties"
    __table_args__ = (
        UniqueConstraint("institution_id", "name", name="uq_faculties_institution_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    institution_id: Mapped[int] = mapped_column(ForeignKey("institutions.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    institution: Mapped["Institution"] = relationship(back_populates="faculties")
    programs: Mapped[list["Program"]] = relationship(back_populates="faculty")


class Plan(Base):
    __tablename__ = "plans"
    __table_args__ = (
        UniqueConstraint("institution_id", "title", name="uq_plans_institution_title"),
        # at most one active plan per institution
        Index(
            "uq_plans_single_active",
            "institution_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    institution_id: Mapped[int] = mapped_column(ForeignKey("institutions.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    start_year: Mapped[int] = mapped_column(Integer, nullable=False)
    end_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    institution: Mapped["Institution"] = relationship(back_populates="plans")
    programs: Mapped[list["Program"]] = relationship(back_populates="plan")


class Program(Base):
    __tablename__ = "programs"
    __table_args__ = (
        UniqueConstraint("institution_id", "name", name="uq_programs_institution_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    institution_id: Mapped[int] = mapped_column(ForeignKey("institutions.id"), nullable=False)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    faculty_id: Mapped[int] = mapped_column(ForeignKey("faculties.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_years: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    plan: Mapped["Plan"] = relationship(back_populates="programs")
    faculty: Mapped["Faculty"] = relationship(back_populates="programs")
    courses: Mapped[list["Course"]] = relationship(back_populates="program")


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (
        UniqueConstraint("program_id", "code", name="uq_courses_program_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    program_id: Mapped[int] = mapped_column(ForeignKey("programs.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False)

    program: Mapped["Program"] = relationship(back_populates="courses")


class AcademicPeriod(Base):
    __tablename__ = "academic_periods"
    __table_args__ = (
        UniqueConstraint("institution_id", "year", "name", name="uq_academic_periods_year_name"),
        Index(
            "uq_academic_periods_single_active",
            "institution_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    institution_id: Mapped[int] = mapped_column(ForeignKey("institutions.id"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    modality: Mapped[str | None] = mapped_column(String(60))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    institution: Mapped["Institution"] = relationship(back_populates="academic_periods")
    admission_process: Mapped["AdmissionProcess | None"] = relationship(back_populates="academic_period")
