"""
Assignments router: which teacher dictates which course, in which period and shift.
Course, teacher and period are validated independently against the admin's institution.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from aula.core.database import atomic, get_db
from aula.core.exceptions import ValidationError, integrity_conflict
from aula.core.integrity import assert_rebindable, delete_guarded
from aula.core.middleware import get_institution_id
from aula.core.ownership import assert_all_belong, load_owned
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import AcademicPeriod, Assignment, Teacher
from aula.schemas.enrollment import AssignmentCreate, AssignmentUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assignments", tags=["Assignments"])

ASSIGNMENT_CONFLICTS = {
    "shift": "Ya existe una asignación para ese curso, periodo y turno.",
}

_FK_KINDS = {
    "course_id": EntityKind.COURSE,
    "teacher_id": EntityKind.TEACHER,
    "academic_period_id": EntityKind.ACADEMIC_PERIOD,
}


def assignment_to_dict(assignment: Assignment) -> dict:
    return {
        "id": assignment.id,
        "shift": assignment.shift,
        "course_id": assignment.course_id,
        "course_name": assignment.course.name,
        "teacher_id": assignment.teacher_id,
        "teacher_name": assignment.teacher.user.full_name,
        "academic_period_id": assignment.academic_period_id,
        "academic_period_name": assignment.academic_period.name,
    }


@router.get("")
async def list_assignments(
    user: Principal = Depends(require_capability(EntityKind.ASSIGNMENT)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assignments = db.scalars(
        select(Assignment)
        .join(AcademicPeriod, Assignment.academic_period_id == AcademicPeriod.id)
        .options(
            joinedload(Assignment.course),
            joinedload(Assignment.teacher).joinedload(Teacher.user),
            joinedload(Assignment.academic_period),
        )
        .where(AcademicPeriod.institution_id == institution_id)
        .order_by(AcademicPeriod.start_date.desc(), Assignment.id)
    ).all()
    return success_response(data=[assignment_to_dict(a) for a in assignments])


@router.get("/{assignment_id}")
async def get_assignment(
    assignment_id: int,
    user: Principal = Depends(require_capability(EntityKind.ASSIGNMENT)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assignment = load_owned(db, institution_id, EntityKind.ASSIGNMENT, assignment_id)
    return success_response(data=assignment_to_dict(assignment))


@router.post("")
async def create_assignment(
    body: AssignmentCreate,
    user: Principal = Depends(require_capability(EntityKind.ASSIGNMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assert_all_belong(
        db,
        institution_id,
        {
            EntityKind.COURSE: body.course_id,
            EntityKind.TEACHER: body.teacher_id,
            EntityKind.ACADEMIC_PERIOD: body.academic_period_id,
        },
    )
    if not body.shift.strip():
        raise ValidationError("El turno es obligatorio.")

    assignment = Assignment(**body.model_dump())
    try:
        with atomic(db):
            db.add(assignment)
    except IntegrityError as e:
        raise integrity_conflict(e, ASSIGNMENT_CONFLICTS, "No se pudo crear la asignación.")

    logger.info("Assignment %s created in institution %s", assignment.id, institution_id)
    return success_response(data=assignment_to_dict(assignment), message="Asignación creada")


@router.put("/{assignment_id}")
async def update_assignment(
    assignment_id: int,
    body: AssignmentUpdate,
    user: Principal = Depends(require_capability(EntityKind.ASSIGNMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assignment = load_owned(db, institution_id, EntityKind.ASSIGNMENT, assignment_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    assert_all_belong(
        db,
        institution_id,
        {kind: data[field] for field, kind in _FK_KINDS.items() if field in data},
    )
    assert_rebindable(db, EntityKind.ASSIGNMENT, assignment, data, ("course_id", "academic_period_id"))

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(assignment, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, ASSIGNMENT_CONFLICTS, "No se pudo actualizar la asignación.")

    db.refresh(assignment)
    return success_response(data=assignment_to_dict(assignment), message="Asignación actualizada")


@router.delete("/{assignment_id}")
async def delete_assignment(
    assignment_id: int,
    user: Principal = Depends(require_capability(EntityKind.ASSIGNMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assignment = load_owned(db, institution_id, EntityKind.ASSIGNMENT, assignment_id)
    delete_guarded(db, EntityKind.ASSIGNMENT, assignment)
    return success_response(message="Asignación eliminada")
