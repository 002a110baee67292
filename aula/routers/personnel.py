"""
Personnel router: teachers and students of the admin's institution.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from aula.core.database import get_db
from aula.core.middleware import get_institution_id
from aula.core.security import EntityKind, Principal, require_capability
from aula.models import Student, Teacher, User
from aula.utils.response import success_response

router = APIRouter(prefix="/api/personnel", tags=["Personnel"])


def _person(user: User, **extra) -> dict:
    return {
        "user_id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "status": user.status,
        "role": user.role.value,
        **extra,
    }


@router.get("/list-all-institutional")
async def list_all_personnel(
    user: Principal = Depends(require_capability(EntityKind.PERSONNEL)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    teachers = db.execute(
        select(Teacher, User)
        .join(User, Teacher.user_id == User.id)
        .where(Teacher.institution_id == institution_id)
        .order_by(User.last_name, User.first_name)
    ).all()
    students = db.execute(
        select(Student, User)
        .join(User, Student.user_id == User.id)
        .where(Student.institution_id == institution_id)
        .order_by(User.last_name, User.first_name)
    ).all()

    data = [_person(u, teacher_id=t.id, specialization=t.specialization) for t, u in teachers]
    data += [_person(u, student_id=s.id, enrollment_year=s.enrollment_year) for s, u in students]
    return success_response(data=data)


@router.get("/teachers-simple")
async def list_teachers_simple(
    user: Principal = Depends(require_capability(EntityKind.PERSONNEL)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    rows = db.execute(
        select(Teacher.id, User.first_name, User.last_name)
        .join(User, Teacher.user_id == User.id)
        .where(Teacher.institution_id == institution_id, User.status.is_(True))
        .order_by(User.last_name, User.first_name)
    ).all()
    return success_response(data=[{"id": r.id, "name": f"{r.first_name} {r.last_name}"} for r in rows])


@router.get("/students-simple")
async def list_students_simple(
    user: Principal = Depends(require_capability(EntityKind.PERSONNEL)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    rows = db.execute(
        select(Student.id, User.first_name, User.last_name)
        .join(User, Student.user_id == User.id)
        .where(Student.institution_id == institution_id, User.status.is_(True))
        .order_by(User.last_name, User.first_name)
    ).all()
    return success_response(data=[{"id": r.id, "name": f"{r.first_name} {r.last_name}"} for r in rows])
