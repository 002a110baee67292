"""
Teacher router: a teacher sees only its own assignments and grades them.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from aula.core.database import atomic, get_db
from aula.core.exceptions import AuthorizationError, ValidationError
from aula.core.middleware import get_current_teacher
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import Assignment, Grade, Student, Teacher
from aula.schemas.enrollment import GradesUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teacher", tags=["Teacher"])

MIN_GRADE = 0
MAX_GRADE = 20


def _own_assignment(db: Session, teacher: Teacher, assignment_id: int) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if assignment is None or assignment.teacher_id != teacher.id:
        logger.info("Teacher %s denied access to assignment %s", teacher.id, assignment_id)
        raise AuthorizationError("La asignación no existe o no te pertenece.")
    return assignment


@router.get("/my-assignments")
async def my_assignments(
    user: Principal = Depends(require_capability(EntityKind.ASSIGNMENT)),
    teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
):
    students_count = (
        select(func.count(Grade.id))
        .where(Grade.assignment_id == Assignment.id)
        .correlate(Assignment)
        .scalar_subquery()
    )
    rows = db.execute(
        select(Assignment, students_count)
        .options(joinedload(Assignment.course), joinedload(Assignment.academic_period))
        .where(Assignment.teacher_id == teacher.id)
        .order_by(Assignment.id)
    ).all()
    return success_response(
        data=[
            {
                "id": a.id,
                "shift": a.shift,
                "course_id": a.course_id,
                "course_name": a.course.name,
                "academic_period_id": a.academic_period_id,
                "academic_period_name": a.academic_period.name,
                "is_active_period": a.academic_period.is_active,
                "students_count": count,
            }
            for a, count in rows
        ]
    )


@router.get("/assignments/{assignment_id}/grades")
async def assignment_grades(
    assignment_id: int,
    user: Principal = Depends(require_capability(EntityKind.GRADE)),
    teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
):
    assignment = _own_assignment(db, teacher, assignment_id)
    grades = db.scalars(
        select(Grade)
        .options(joinedload(Grade.student).joinedload(Student.user))
        .where(Grade.assignment_id == assignment.id)
        .order_by(Grade.id)
    ).all()
    return success_response(
        data={
            "assignment_id": assignment.id,
            "course_name": assignment.course.name,
            "shift": assignment.shift,
            "grades": [
                {
                    "grade_id": g.id,
                    "student_id": g.student_id,
                    "student_name": g.student.user.full_name,
                    "grade": g.grade,
                    "observation": g.observation,
                }
                for g in grades
            ],
        }
    )


@router.put("/update-grades")
async def update_grades(
    body: GradesUpdate,
    user: Principal = Depends(require_capability(EntityKind.GRADE, Operation.WRITE)),
    teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
):
    """All grades in the batch are written, or none is."""
    assignment = _own_assignment(db, teacher, body.assignment_id)

    for entry in body.grades:
        if entry.grade is not None and not MIN_GRADE <= entry.grade <= MAX_GRADE:
            raise ValidationError(f"La nota debe estar entre {MIN_GRADE} y {MAX_GRADE}.")

    grade_ids = [entry.grade_id for entry in body.grades]
    rows = {
        g.id: g
        for g in db.scalars(
            select(Grade).where(Grade.id.in_(grade_ids), Grade.assignment_id == assignment.id)
        )
    }
    if len(rows) != len(set(grade_ids)):
        raise AuthorizationError("Una o más notas no pertenecen a esta asignación.")

    with atomic(db):
        for entry in body.grades:
            grade = rows[entry.grade_id]
            grade.grade = entry.grade
            grade.observation = entry.observation

    logger.info("Teacher %s updated %s grades on assignment %s", teacher.id, len(rows), assignment.id)
    return success_response(data={"updated": len(rows)}, message="Notas actualizadas")
