"""
Ownership validator.

Decides whether a referenced row belongs to the caller's institution. The
relation path from each entity kind to its institution lives in one table
instead of being re-derived per endpoint:

    kind → (model, hop relationship or None, institution column)

Direct children carry `institution_id`; transitive children follow exactly
one relationship hop.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from aula.core.exceptions import AuthorizationError
from aula.core.security import EntityKind
from aula.models import (
    AcademicPeriod,
    AdmissionProcess,
    Assignment,
    Course,
    Enrollment,
    Faculty,
    Grade,
    Plan,
    Program,
    Student,
    Teacher,
)

logger = logging.getLogger(__name__)

OWNERSHIP_PATHS: dict[EntityKind, tuple[Any, Any, Any]] = {
    EntityKind.FACULTY: (Faculty, None, Faculty.institution_id),
    EntityKind.PLAN: (Plan, None, Plan.institution_id),
    EntityKind.ACADEMIC_PERIOD: (AcademicPeriod, None, AcademicPeriod.institution_id),
    EntityKind.PROGRAM: (Program, None, Program.institution_id),
    EntityKind.TEACHER: (Teacher, None, Teacher.institution_id),
    EntityKind.STUDENT: (Student, None, Student.institution_id),
    EntityKind.COURSE: (Course, Course.program, Program.institution_id),
    EntityKind.ADMISSION_PROCESS: (
        AdmissionProcess,
        AdmissionProcess.academic_period,
        AcademicPeriod.institution_id,
    ),
    EntityKind.ASSIGNMENT: (Assignment, Assignment.academic_period, AcademicPeriod.institution_id),
    EntityKind.ENROLLMENT: (Enrollment, Enrollment.student, Student.institution_id),
    EntityKind.GRADE: (Grade, Grade.student, Student.institution_id),
}

_LABELS = {
    EntityKind.FACULTY: "El área/facultad",
    EntityKind.PLAN: "El plan de estudio",
    EntityKind.ACADEMIC_PERIOD: "El periodo académico",
    EntityKind.PROGRAM: "El programa",
    EntityKind.TEACHER: "El docente",
    EntityKind.STUDENT: "El estudiante",
    EntityKind.COURSE: "El curso",
    EntityKind.ADMISSION_PROCESS: "El proceso de admisión",
    EntityKind.ASSIGNMENT: "La asignación",
    EntityKind.ENROLLMENT: "La matrícula",
    EntityKind.GRADE: "La nota",
}


def owner_of(db: Session, kind: EntityKind, entity_id: int) -> int | None:
    """Institution id the entity belongs to, or None when it does not exist."""
    model, hop, column = OWNERSHIP_PATHS[kind]
    stmt = select(column).select_from(model)
    if hop is not None:
        stmt = stmt.join(hop)
    return db.scalar(stmt.where(model.id == entity_id))


def assert_belongs(db: Session, scope: int, kind: EntityKind, entity_id: int | None) -> None:
    """
    Raise AuthorizationError unless `entity_id` exists and resolves to `scope`.
    A missing row and a row of another institution are indistinguishable to
    the caller.
    """
    owner = owner_of(db, kind, entity_id) if entity_id is not None else None
    if owner is None or owner != scope:
        logger.info(
            "Ownership check failed: kind=%s id=%s scope=%s owner=%s",
            kind.value, entity_id, scope, owner,
        )
        raise AuthorizationError(
            f"{_LABELS[kind]} seleccionado no existe o no pertenece a tu institución."
        )


def assert_all_belong(db: Session, scope: int, refs: dict[EntityKind, int | None]) -> None:
    """Validate every reference of a payload independently against one scope."""
    for kind, entity_id in refs.items():
        assert_belongs(db, scope, kind, entity_id)


def load_owned(db: Session, scope: int, kind: EntityKind, entity_id: int):
    assert_belongs(db, scope, kind, entity_id)
    model = OWNERSHIP_PATHS[kind][0]
    return db.get(model, entity_id)
