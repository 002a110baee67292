import pytest
from sqlalchemy import func, select

from aula.core.exceptions import AuthorizationError
from aula.core.middleware import resolve_scope
from aula.core.ownership import OWNERSHIP_PATHS, assert_all_belong, assert_belongs, owner_of
from aula.core.security import EntityKind, Principal
from aula.models import Assignment, Course, Grade, Institution, InstitutionAdmin, Program, Role
from conftest import auth


def _ids(tenant) -> dict:
    return {
        EntityKind.FACULTY: tenant.faculty.id,
        EntityKind.PLAN: tenant.plan.id,
        EntityKind.ACADEMIC_PERIOD: tenant.period.id,
        EntityKind.PROGRAM: tenant.program.id,
        EntityKind.TEACHER: tenant.teacher.id,
        EntityKind.STUDENT: tenant.student.id,
        EntityKind.COURSE: tenant.course.id,
        EntityKind.ADMISSION_PROCESS: tenant.process.id,
        EntityKind.ASSIGNMENT: tenant.assignment.id,
        EntityKind.ENROLLMENT: tenant.enrollment.id,
    }


def test_every_kind_resolves_to_its_institution(db, world):
    for kind, entity_id in _ids(world.a).items():
        assert owner_of(db, kind, entity_id) == world.a.institution.id, kind
    for kind, entity_id in _ids(world.b).items():
        assert owner_of(db, kind, entity_id) == world.b.institution.id, kind


def test_grade_resolves_through_student(db, world):
    grade = Grade(student_id=world.b.student.id, assignment_id=world.b.assignment.id)
    db.add(grade)
    db.commit()
    assert owner_of(db, EntityKind.GRADE, grade.id) == world.b.institution.id
    assert EntityKind.GRADE in OWNERSHIP_PATHS


def test_missing_and_foreign_rows_are_rejected_alike(db, world):
    scope = world.a.institution.id
    assert_belongs(db, scope, EntityKind.COURSE, world.a.course.id)

    with pytest.raises(AuthorizationError):
        assert_belongs(db, scope, EntityKind.COURSE, world.b.course.id)
    with pytest.raises(AuthorizationError):
        assert_belongs(db, scope, EntityKind.COURSE, 999_999)
    with pytest.raises(AuthorizationError):
        assert_belongs(db, scope, EntityKind.COURSE, None)


def test_mixed_references_fail_even_if_each_resolves(db, world):
    with pytest.raises(AuthorizationError):
        assert_all_belong(
            db,
            world.a.institution.id,
            {
                EntityKind.COURSE: world.a.course.id,
                EntityKind.TEACHER: world.b.teacher.id,
                EntityKind.ACADEMIC_PERIOD: world.a.period.id,
            },
        )


def test_resolve_scope_per_role(db, world):
    def principal(user):
        return Principal(user_id=user.id, role=user.role, email=user.email)

    assert resolve_scope(db, principal(world.a.admin)) == world.a.institution.id
    assert resolve_scope(db, principal(world.b.teacher_user)) == world.b.institution.id
    assert resolve_scope(db, principal(world.a.student_user)) == world.a.institution.id
    assert resolve_scope(db, principal(world.superadmin)) is None


def test_course_with_foreign_program_is_rejected_without_write(client, world, db):
    before = db.scalar(select(func.count()).select_from(Course))
    resp = client.post(
        "/api/courses",
        headers=auth(world.a.admin),
        json={"program_id": world.b.program.id, "code": "X1", "name": "Intruso", "credits": 2, "semester": 1},
    )
    assert resp.status_code == 403
    assert db.scalar(select(func.count()).select_from(Course)) == before


def test_program_plan_and_faculty_must_share_the_scope(client, world, db):
    resp = client.post(
        "/api/programs",
        headers=auth(world.a.admin),
        json={
            "name": "Mezclado",
            "duration_months": 12,
            "plan_id": world.a.plan.id,
            "faculty_id": world.b.faculty.id,
        },
    )
    assert resp.status_code == 403
    assert db.scalar(select(Program).where(Program.name == "Mezclado")) is None


def test_program_create_recomputes_years(client, world):
    resp = client.post(
        "/api/programs",
        headers=auth(world.a.admin),
        json={
            "name": "Redes",
            "duration_months": 30,
            "plan_id": world.a.plan.id,
            "faculty_id": world.a.faculty.id,
        },
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["duration_years"] == 3
    assert data["institution_id"] == world.a.institution.id


def test_assignment_triple_is_checked_independently(client, world, db):
    resp = client.post(
        "/api/assignments",
        headers=auth(world.a.admin),
        json={
            "course_id": world.a.course.id,
            "teacher_id": world.b.teacher.id,
            "academic_period_id": world.a.period.id,
            "shift": "Tarde",
        },
    )
    assert resp.status_code == 403
    assert db.scalar(select(Assignment).where(Assignment.shift == "Tarde")) is None


def test_update_cannot_move_a_row_into_another_tenant(client, world):
    resp = client.put(
        f"/api/courses/{world.a.course.id}",
        headers=auth(world.a.admin),
        json={"program_id": world.b.program.id},
    )
    assert resp.status_code == 403


def test_reads_of_other_tenants_rows_are_forbidden(client, world):
    headers = auth(world.a.admin)
    assert client.get(f"/api/faculties/{world.b.faculty.id}", headers=headers).status_code == 403
    assert client.get(f"/api/enrollments/{world.b.enrollment.id}", headers=headers).status_code == 403
    assert client.get(f"/api/faculties/{world.a.faculty.id}", headers=headers).status_code == 200


def test_lists_are_filtered_by_scope(client, world):
    resp = client.get("/api/courses", headers=auth(world.a.admin))
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()["data"]] == [world.a.course.id]

    resp = client.get("/api/personnel/list-all-institutional", headers=auth(world.b.admin))
    emails = {p["email"] for p in resp.json()["data"]}
    assert emails == {world.b.teacher_user.email, world.b.student_user.email}


def test_superadmin_and_personnel_cannot_use_admin_endpoints(client, world):
    assert client.get("/api/faculties", headers=auth(world.superadmin)).status_code == 403
    assert client.get("/api/faculties", headers=auth(world.a.teacher_user)).status_code == 403
    assert client.get("/api/enrollments", headers=auth(world.a.student_user)).status_code == 403


def test_admin_without_institution_fails_closed(client, world, db):
    db.execute(InstitutionAdmin.__table__.delete().where(InstitutionAdmin.user_id == world.a.admin.id))
    db.commit()
    resp = client.get("/api/faculties", headers=auth(world.a.admin))
    assert resp.status_code == 403


def test_admin_of_inactive_institution_fails_closed(client, world, db):
    institution = db.get(Institution, world.a.institution.id)
    institution.status = False
    db.commit()
    resp = client.get("/api/plans", headers=auth(world.a.admin))
    assert resp.status_code == 403


def test_role_is_read_from_database_not_token(client, world, db):
    headers = auth(world.a.admin)
    admin = world.a.admin
    admin.role = Role.TEACHER
    db.commit()
    assert client.get("/api/faculties", headers=headers).status_code == 403
