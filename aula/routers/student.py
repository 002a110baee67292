"""
Student router: a student reads only its own grades.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from aula.core.database import get_db
from aula.core.middleware import get_current_student
from aula.core.security import EntityKind, Principal, require_capability
from aula.models import Assignment, Grade, Student
from aula.utils.response import success_response

router = APIRouter(prefix="/api/student", tags=["Student"])


@router.get("/my-grades")
async def my_grades(
    user: Principal = Depends(require_capability(EntityKind.GRADE)),
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
):
    grades = db.scalars(
        select(Grade)
        .options(
            joinedload(Grade.assignment).joinedload(Assignment.course),
            joinedload(Grade.assignment).joinedload(Assignment.academic_period),
        )
        .where(Grade.student_id == student.id)
        .order_by(Grade.id)
    ).all()

    return success_response(
        data=[
            {
                "grade_id": g.id,
                "course_name": g.assignment.course.name,
                "academic_period_name": g.assignment.academic_period.name,
                "shift": g.assignment.shift,
                "grade": g.grade,
                "observation": g.observation,
            }
            for g in grades
        ]
    )
