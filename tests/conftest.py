"""
Shared fixtures: an in-memory SQLite database, a TestClient wired to it and
two fully populated institutions (A and B).
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("AUTH_MODE", "jwt")
os.environ.setdefault("JWT_SECRET", "test-secret-key-long-enough-for-hs256-signing")
for _key in ("EMAILJS_SERVICE_ID", "EMAILJS_PUBLIC_KEY", "EMAILJS_PRIVATE_KEY", "EMAILJS_TEMPLATE_ID"):
    os.environ[_key] = ""

from dataclasses import dataclass
from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from aula.core.database import Base, build_engine, get_db
from aula.core.security import create_access_token, get_password_hash
from aula.main import app
from aula.models import (
    AcademicPeriod,
    AdmissionProcess,
    Assignment,
    Course,
    Enrollment,
    Faculty,
    Institution,
    InstitutionAdmin,
    Plan,
    Program,
    Role,
    Student,
    Teacher,
    User,
)

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@dataclass
class Tenant:
    institution: Institution
    admin: User
    teacher_user: User
    teacher: Teacher
    student_user: User
    student: Student
    faculty: Faculty
    plan: Plan
    program: Program
    course: Course
    period: AcademicPeriod
    process: AdmissionProcess
    assignment: Assignment
    enrollment: Enrollment


def make_user(db, email: str, role: Role, first_name: str = "Test", last_name: str = "User") -> User:
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=PASSWORD_HASH,
        role=role,
    )
    db.add(user)
    db.flush()
    return user


def build_tenant(db, code: str) -> Tenant:
    institution = Institution(name=f"Instituto {code}", code=code)
    db.add(institution)
    db.flush()

    slug = code.lower()
    admin = make_user(db, f"admin.{slug}@aula.test", Role.ADMIN, "Admin", code)
    db.add(InstitutionAdmin(user_id=admin.id, institution_id=institution.id))

    teacher_user = make_user(db, f"docente.{slug}@aula.test", Role.TEACHER, "Docente", code)
    teacher = Teacher(user_id=teacher_user.id, institution_id=institution.id, specialization="Matemática")
    student_user = make_user(db, f"estudiante.{slug}@aula.test", Role.STUDENT, "Estudiante", code)
    student = Student(user_id=student_user.id, institution_id=institution.id, enrollment_year=2025)
    faculty = Faculty(institution_id=institution.id, name="Computación")
    plan = Plan(institution_id=institution.id, title="Plan 2025", start_year=2025, end_year=2029, is_active=True)
    db.add_all([teacher, student, faculty, plan])
    db.flush()

    program = Program(
        institution_id=institution.id,
        plan_id=plan.id,
        faculty_id=faculty.id,
        name="Desarrollo de Software",
        duration_months=18,
        duration_years=2,
    )
    period = AcademicPeriod(
        institution_id=institution.id,
        year=2025,
        name="2025-I",
        start_date=date(2025, 3, 1),
        end_date=date(2025, 7, 31),
        is_active=True,
    )
    db.add_all([program, period])
    db.flush()

    course = Course(program_id=program.id, code="DS101", name="Algoritmos", credits=4, semester=1)
    process = AdmissionProcess(
        academic_period_id=period.id,
        description="Proceso de Admisión 2025-I",
        start_date=date(2025, 1, 15),
        end_date=date(2025, 2, 28),
    )
    db.add_all([course, process])
    db.flush()

    assignment = Assignment(
        course_id=course.id, teacher_id=teacher.id, academic_period_id=period.id, shift="Mañana"
    )
    enrollment = Enrollment(student_id=student.id, program_id=program.id, admission_process_id=process.id)
    db.add_all([assignment, enrollment])
    db.flush()

    return Tenant(
        institution=institution,
        admin=admin,
        teacher_user=teacher_user,
        teacher=teacher,
        student_user=student_user,
        student=student,
        faculty=faculty,
        plan=plan,
        program=program,
        course=course,
        period=period,
        process=process,
        assignment=assignment,
        enrollment=enrollment,
    )


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def world(db):
    superadmin = make_user(db, "root@aula.test", Role.SUPERADMIN, "Super", "Admin")
    a = build_tenant(db, "A")
    b = build_tenant(db, "B")
    db.commit()
    return SimpleNamespace(superadmin=superadmin, a=a, b=b)


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}
