from datetime import date

from sqlalchemy import func, select

from aula.models import AcademicPeriod, AdmissionProcess, Assignment, EnrollmentCourse, Grade
from conftest import auth


def _registration(tenant, **overrides) -> dict:
    payload = {
        "student_id": tenant.student.id,
        "enrollment_id": tenant.enrollment.id,
        "assignment_id": tenant.assignment.id,
        "course_id": tenant.course.id,
    }
    payload.update(overrides)
    return payload


def _count(db, model, *where):
    return db.scalar(select(func.count()).select_from(model).where(*where))


def test_duplicate_enrollment_conflicts(client, world):
    resp = client.post(
        "/api/enrollments",
        headers=auth(world.a.admin),
        json={
            "student_id": world.a.student.id,
            "program_id": world.a.program.id,
            "admission_process_id": world.a.process.id,
        },
    )
    assert resp.status_code == 409


def test_enrollment_with_foreign_student_is_forbidden(client, world):
    resp = client.post(
        "/api/enrollments",
        headers=auth(world.a.admin),
        json={
            "student_id": world.b.student.id,
            "program_id": world.a.program.id,
            "admission_process_id": world.a.process.id,
        },
    )
    assert resp.status_code == 403


def test_enrollment_list_is_flattened(client, world):
    resp = client.get("/api/enrollments", headers=auth(world.a.admin))
    assert resp.status_code == 200
    (row,) = resp.json()["data"]
    assert row["student_name"] == "Estudiante A"
    assert row["program_name"] == "Desarrollo de Software"
    assert row["academic_period"]["id"] == world.a.period.id
    assert row["status"] == "matriculado"


def test_update_validates_every_reference(client, world):
    resp = client.put(
        f"/api/enrollments/{world.a.enrollment.id}",
        headers=auth(world.a.admin),
        json={"program_id": world.b.program.id},
    )
    assert resp.status_code == 403

    resp = client.put(
        f"/api/enrollments/{world.a.enrollment.id}",
        headers=auth(world.a.admin),
        json={"status": "retirado"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "retirado"


def test_register_course_creates_both_rows_once(client, world, db):
    headers = auth(world.a.admin)
    first = client.post("/api/enrollments/register-course", headers=headers, json=_registration(world.a))
    second = client.post("/api/enrollments/register-course", headers=headers, json=_registration(world.a))
    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["data"]["grade_id"] == second.json()["data"]["grade_id"]

    assert _count(db, Grade, Grade.student_id == world.a.student.id) == 1
    assert _count(db, EnrollmentCourse, EnrollmentCourse.enrollment_id == world.a.enrollment.id) == 1


def test_register_course_rejects_foreign_assignment(client, world, db):
    resp = client.post(
        "/api/enrollments/register-course",
        headers=auth(world.a.admin),
        json=_registration(world.a, assignment_id=world.b.assignment.id),
    )
    assert resp.status_code == 403
    assert _count(db, Grade) == 0


def test_register_course_rejects_inconsistent_ids(client, world, db):
    other_period = AcademicPeriod(
        institution_id=world.a.institution.id,
        year=2024,
        name="2024-II",
        start_date=date(2024, 8, 1),
        end_date=date(2024, 12, 15),
    )
    db.add(other_period)
    db.flush()
    stale = Assignment(
        course_id=world.a.course.id,
        teacher_id=world.a.teacher.id,
        academic_period_id=other_period.id,
        shift="Noche",
    )
    db.add(stale)
    db.commit()

    headers = auth(world.a.admin)
    resp = client.post(
        "/api/enrollments/register-course", headers=headers, json=_registration(world.a, assignment_id=stale.id)
    )
    assert resp.status_code == 400
    assert _count(db, Grade) == 0
    assert _count(db, EnrollmentCourse) == 0


def test_registered_and_available_courses(client, world):
    headers = auth(world.a.admin)
    query = {"period_id": world.a.period.id, "program_id": world.a.program.id}
    student_id = world.a.student.id

    available = client.get(f"/api/enrollments/{student_id}/available-courses", headers=headers, params=query)
    assert [c["assignment_id"] for c in available.json()["data"]] == [world.a.assignment.id]
    assert available.json()["data"][0]["teacher_name"] == "Docente A"

    client.post("/api/enrollments/register-course", headers=headers, json=_registration(world.a))

    registered = client.get(
        f"/api/enrollments/{student_id}/registered-courses",
        headers=headers,
        params={"period_id": world.a.period.id},
    )
    assert [c["course_id"] for c in registered.json()["data"]] == [world.a.course.id]

    available = client.get(f"/api/enrollments/{student_id}/available-courses", headers=headers, params=query)
    assert available.json()["data"] == []


def test_course_listing_requires_period(client, world):
    resp = client.get(
        f"/api/enrollments/{world.a.student.id}/registered-courses", headers=auth(world.a.admin)
    )
    assert resp.status_code == 400


def test_remove_course_deletes_both_rows(client, world, db):
    headers = auth(world.a.admin)
    grade_id = client.post(
        "/api/enrollments/register-course", headers=headers, json=_registration(world.a)
    ).json()["data"]["grade_id"]

    assert client.delete(f"/api/enrollments/remove-course/{grade_id}", headers=auth(world.b.admin)).status_code == 403

    resp = client.delete(f"/api/enrollments/remove-course/{grade_id}", headers=headers)
    assert resp.status_code == 200
    assert _count(db, Grade, Grade.id == grade_id) == 0
    assert _count(db, EnrollmentCourse, EnrollmentCourse.enrollment_id == world.a.enrollment.id) == 0


def test_second_admission_process_for_a_period_conflicts(client, world, db):
    resp = client.post(
        "/api/admission-processes",
        headers=auth(world.a.admin),
        json={"academic_period_id": world.a.period.id, "start_date": "2025-01-01", "end_date": "2025-02-01"},
    )
    assert resp.status_code == 409
    assert _count(db, AdmissionProcess, AdmissionProcess.academic_period_id == world.a.period.id) == 1


def test_admission_process_defaults_description(client, world, db):
    period = AcademicPeriod(
        institution_id=world.a.institution.id,
        year=2026,
        name="2026-I",
        start_date=date(2026, 3, 1),
        end_date=date(2026, 7, 31),
    )
    db.add(period)
    db.commit()

    headers = auth(world.a.admin)
    resp = client.post(
        "/api/admission-processes",
        headers=headers,
        json={"academic_period_id": period.id, "start_date": "2026-02-10", "end_date": "2026-01-10"},
    )
    assert resp.status_code == 400

    resp = client.post(
        "/api/admission-processes",
        headers=headers,
        json={"academic_period_id": period.id, "start_date": "2026-01-10", "end_date": "2026-02-10"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["description"] == "Proceso de Admisión 2026-I"

    listed = client.get("/api/admission-processes", headers=headers).json()["data"]
    counts = {p["academic_period_id"]: p["enrollments_count"] for p in listed}
    assert counts == {world.a.period.id: 1, period.id: 0}


def test_admission_process_of_foreign_period_is_forbidden(client, world):
    resp = client.post(
        "/api/admission-processes",
        headers=auth(world.a.admin),
        json={"academic_period_id": world.b.period.id, "start_date": "2025-01-01", "end_date": "2025-02-01"},
    )
    assert resp.status_code == 403
