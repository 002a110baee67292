from datetime import date

import pytest
from sqlalchemy import delete, func, select

from aula.core.exceptions import DependencyConflictError
from aula.core.integrity import assert_deletable, assert_rebindable, cascade_delete_enrollment
from aula.core.registration import register_course
from aula.core.security import EntityKind
from aula.models import (
    AcademicPeriod,
    AdmissionProcess,
    Course,
    Enrollment,
    EnrollmentCourse,
    Faculty,
    Grade,
    Institution,
)
from conftest import auth


def _count(db, model, *where):
    return db.scalar(select(func.count()).select_from(model).where(*where))


def _register(db, tenant):
    return register_course(
        db,
        tenant.institution.id,
        student_id=tenant.student.id,
        enrollment_id=tenant.enrollment.id,
        assignment_id=tenant.assignment.id,
        course_id=tenant.course.id,
    )


def test_faculty_with_programs_cannot_be_deleted(client, world, db):
    resp = client.delete(f"/api/faculties/{world.a.faculty.id}", headers=auth(world.a.admin))
    assert resp.status_code == 409
    assert "programas" in resp.json()["detail"]
    assert db.get(Faculty, world.a.faculty.id) is not None


def test_empty_faculty_is_deleted(client, world, db):
    headers = auth(world.a.admin)
    created = client.post("/api/faculties", headers=headers, json={"name": "Idiomas"}).json()["data"]
    resp = client.delete(f"/api/faculties/{created['id']}", headers=headers)
    assert resp.status_code == 200
    assert _count(db, Faculty, Faculty.id == created["id"]) == 0


def test_duplicate_faculty_name_conflicts(client, world):
    resp = client.post("/api/faculties", headers=auth(world.a.admin), json={"name": "Computación"})
    assert resp.status_code == 409

    for admin in (world.a.admin, world.b.admin):
        resp = client.post("/api/faculties", headers=auth(admin), json={"name": "Salud"})
        assert resp.status_code == 200


def test_blocking_order_names_first_dependent(db, world):
    with pytest.raises(DependencyConflictError) as excinfo:
        assert_deletable(db, EntityKind.PROGRAM, world.a.program.id)
    assert excinfo.value.dependent == "cursos"
    assert excinfo.value.count == 1
    assert excinfo.value.status_code == 409


def test_institution_with_dependents_is_blocked(db, world):
    with pytest.raises(DependencyConflictError) as excinfo:
        assert_deletable(db, EntityKind.INSTITUTION, world.b.institution.id)
    assert excinfo.value.dependent == "administradores"


def test_period_blocked_by_admission_process(client, world):
    resp = client.delete(f"/api/academic-periods/{world.a.period.id}", headers=auth(world.a.admin))
    assert resp.status_code == 409


def test_assignment_with_grades_cannot_be_deleted(client, world, db):
    _register(db, world.a)
    resp = client.delete(f"/api/assignments/{world.a.assignment.id}", headers=auth(world.a.admin))
    assert resp.status_code == 409
    assert "notas" in resp.json()["detail"]


def test_enrollment_delete_cascades(client, world, db):
    _register(db, world.a)
    _register(db, world.b)

    resp = client.delete(f"/api/enrollments/{world.a.enrollment.id}", headers=auth(world.a.admin))
    assert resp.status_code == 200

    assert _count(db, Enrollment, Enrollment.id == world.a.enrollment.id) == 0
    assert _count(db, EnrollmentCourse, EnrollmentCourse.enrollment_id == world.a.enrollment.id) == 0
    assert _count(db, Grade, Grade.student_id == world.a.student.id) == 0
    # the other institution is untouched
    assert _count(db, Grade, Grade.student_id == world.b.student.id) == 1


def test_enrollment_cascade_is_all_or_nothing(db, world, monkeypatch):
    _register(db, world.a)
    enrollment = db.get(Enrollment, world.a.enrollment.id)

    def fail(instance):
        raise RuntimeError("storage failure")

    monkeypatch.setattr(db, "delete", fail)
    with pytest.raises(RuntimeError):
        cascade_delete_enrollment(db, enrollment)
    monkeypatch.undo()

    assert _count(db, Enrollment, Enrollment.id == world.a.enrollment.id) == 1
    assert _count(db, Grade, Grade.student_id == world.a.student.id) == 1
    assert _count(db, EnrollmentCourse, EnrollmentCourse.enrollment_id == world.a.enrollment.id) == 1


def test_enrollment_of_other_tenant_cannot_be_deleted(client, world, db):
    resp = client.delete(f"/api/enrollments/{world.b.enrollment.id}", headers=auth(world.a.admin))
    assert resp.status_code == 403
    assert _count(db, Enrollment, Enrollment.id == world.b.enrollment.id) == 1


def test_empty_institution_is_deleted(client, world, db):
    headers = auth(world.superadmin)
    created = client.post("/api/institutions", headers=headers, json={"name": "Vacía", "code": "EMPTY"})
    institution_id = created.json()["data"]["id"]

    assert client.delete(f"/api/institutions/{institution_id}", headers=headers).status_code == 200
    assert db.get(Institution, institution_id) is None
    assert client.delete(f"/api/institutions/{world.a.institution.id}", headers=headers).status_code == 409


def _next_period(db, tenant, with_process: bool = True) -> AcademicPeriod:
    period = AcademicPeriod(
        institution_id=tenant.institution.id,
        year=2026,
        name="2026-I",
        start_date=date(2026, 3, 1),
        end_date=date(2026, 7, 31),
        is_active=False,
    )
    db.add(period)
    db.flush()
    if with_process:
        db.add(
            AdmissionProcess(
                academic_period_id=period.id,
                description="Proceso de Admisión 2026-I",
                start_date=date(2026, 1, 10),
                end_date=date(2026, 2, 20),
            )
        )
    db.commit()
    return period


def test_enrollment_with_courses_keeps_its_references(client, world, db):
    _register(db, world.a)
    period = _next_period(db, world.a)
    process_id = db.scalar(select(AdmissionProcess.id).where(AdmissionProcess.academic_period_id == period.id))
    headers = auth(world.a.admin)

    resp = client.put(
        f"/api/enrollments/{world.a.enrollment.id}", headers=headers, json={"admission_process_id": process_id}
    )
    assert resp.status_code == 409
    assert "cursos matriculados" in resp.json()["detail"]

    # the cascade still finds the grade under the original period
    assert client.delete(f"/api/enrollments/{world.a.enrollment.id}", headers=headers).status_code == 200
    assert _count(db, Grade, Grade.student_id == world.a.student.id) == 0


def test_enrollment_without_courses_can_move(client, world, db):
    period = _next_period(db, world.a)
    process_id = db.scalar(select(AdmissionProcess.id).where(AdmissionProcess.academic_period_id == period.id))
    resp = client.put(
        f"/api/enrollments/{world.a.enrollment.id}",
        headers=auth(world.a.admin),
        json={"admission_process_id": process_id},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["admission_process_id"] == process_id


def test_enrollment_grade_without_course_row_still_blocks(db, world):
    _register(db, world.a)
    db.execute(delete(EnrollmentCourse))
    db.commit()
    with pytest.raises(DependencyConflictError) as excinfo:
        assert_rebindable(
            db,
            EntityKind.ENROLLMENT,
            world.a.enrollment,
            {"student_id": world.a.student.id, "program_id": world.a.program.id + 1000},
            ("student_id", "program_id", "admission_process_id"),
        )
    assert excinfo.value.dependent == "notas"


def test_graded_assignment_cannot_change_period_or_course(client, world, db):
    _register(db, world.a)
    period = _next_period(db, world.a, with_process=False)
    headers = auth(world.a.admin)
    url = f"/api/assignments/{world.a.assignment.id}"

    resp = client.put(url, headers=headers, json={"academic_period_id": period.id})
    assert resp.status_code == 409
    assert "notas" in resp.json()["detail"]

    other_course = Course(program_id=world.a.program.id, code="DS102", name="Bases de Datos", credits=3, semester=1)
    db.add(other_course)
    db.commit()
    assert client.put(url, headers=headers, json={"course_id": other_course.id}).status_code == 409

    # fields that do not anchor the grades stay editable
    assert client.put(url, headers=headers, json={"shift": "Tarde"}).status_code == 200
    assert client.put(url, headers=headers, json={"academic_period_id": world.a.period.id}).status_code == 200

    assert client.delete(f"/api/enrollments/{world.a.enrollment.id}", headers=headers).status_code == 200
    assert _count(db, Grade, Grade.student_id == world.a.student.id) == 0


def test_ungraded_assignment_can_change_period(client, world, db):
    period = _next_period(db, world.a, with_process=False)
    resp = client.put(
        f"/api/assignments/{world.a.assignment.id}",
        headers=auth(world.a.admin),
        json={"academic_period_id": period.id},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["academic_period_id"] == period.id


def test_admission_process_with_enrollments_cannot_change_period(client, world, db):
    period = _next_period(db, world.a, with_process=False)
    resp = client.put(
        f"/api/admission-processes/{world.a.process.id}",
        headers=auth(world.a.admin),
        json={"academic_period_id": period.id},
    )
    assert resp.status_code == 409
    assert "matrículas" in resp.json()["detail"]
    db.expire_all()
    assert db.get(AdmissionProcess, world.a.process.id).academic_period_id == world.a.period.id
