"""
Integrity guard: dependent-record checks before deletes and the enrollment
cascade.
"""

import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.database import atomic
from aula.core.exceptions import DependencyConflictError
from aula.core.security import EntityKind
from aula.models import (
    AcademicPeriod,
    AdmissionProcess,
    Assignment,
    Course,
    Enrollment,
    EnrollmentCourse,
    Faculty,
    Grade,
    InstitutionAdmin,
    Plan,
    Program,
    Student,
    Teacher,
)

logger = logging.getLogger(__name__)

# kind → ordered (label, foreign key column pointing at the parent)
DEPENDENTS: dict[EntityKind, list[tuple[str, Any]]] = {
    EntityKind.FACULTY: [("programas", Program.faculty_id)],
    EntityKind.PLAN: [("programas", Program.plan_id)],
    EntityKind.PROGRAM: [
        ("cursos", Course.program_id),
        ("matrículas", Enrollment.program_id),
    ],
    EntityKind.COURSE: [
        ("asignaciones", Assignment.course_id),
        ("cursos matriculados", EnrollmentCourse.course_id),
    ],
    EntityKind.ACADEMIC_PERIOD: [
        ("procesos de admisión", AdmissionProcess.academic_period_id),
        ("asignaciones", Assignment.academic_period_id),
    ],
    EntityKind.ADMISSION_PROCESS: [("matrículas", Enrollment.admission_process_id)],
    EntityKind.ASSIGNMENT: [("notas", Grade.assignment_id)],
    EntityKind.INSTITUTION: [
        ("administradores", InstitutionAdmin.institution_id),
        ("áreas", Faculty.institution_id),
        ("planes", Plan.institution_id),
        ("periodos académicos", AcademicPeriod.institution_id),
        ("docentes", Teacher.institution_id),
        ("estudiantes", Student.institution_id),
    ],
}


def count_dependents(db: Session, column, entity_id: int) -> int:
    return db.scalar(select(func.count()).select_from(column.class_).where(column == entity_id)) or 0


def assert_deletable(db: Session, kind: EntityKind, entity_id: int) -> None:
    """Raise DependencyConflictError naming the first dependent kind found."""
    for label, column in DEPENDENTS.get(kind, []):
        count = count_dependents(db, column, entity_id)
        if count > 0:
            logger.info(
                "Delete blocked: kind=%s id=%s dependent=%s count=%s",
                kind.value, entity_id, label, count,
            )
            raise DependencyConflictError(label, count)


def delete_guarded(db: Session, kind: EntityKind, row) -> None:
    assert_deletable(db, kind, row.id)
    try:
        with atomic(db):
            db.delete(row)
    except IntegrityError:
        # a dependent was inserted between the check and the delete
        logger.warning("Late FK violation deleting kind=%s id=%s", kind.value, row.id)
        raise DependencyConflictError("registros", detail="No se puede eliminar: aún existen dependencias.")


# kind → dependents that pin the row's foreign keys in place
REBIND_DEPENDENTS: dict[EntityKind, list[tuple[str, Any]]] = {
    EntityKind.ENROLLMENT: [("cursos matriculados", EnrollmentCourse.enrollment_id)],
    EntityKind.ASSIGNMENT: [("notas", Grade.assignment_id)],
    EntityKind.ADMISSION_PROCESS: [("matrículas", Enrollment.admission_process_id)],
}


def period_grades_filter(db: Session, enrollment: Enrollment) -> tuple:
    """WHERE clauses selecting the student's grades in the enrollment's period."""
    period_id = db.scalar(
        select(AdmissionProcess.academic_period_id).where(
            AdmissionProcess.id == enrollment.admission_process_id
        )
    )
    period_assignments = select(Assignment.id).where(Assignment.academic_period_id == period_id)
    return (
        Grade.student_id == enrollment.student_id,
        Grade.assignment_id.in_(period_assignments),
    )


def assert_rebindable(db: Session, kind: EntityKind, row, changes: dict, fields: tuple[str, ...]) -> None:
    """
    Refuse to move `fields` of `row` to new values while dependents still
    reference it through them.
    """
    moved = [f for f in fields if f in changes and changes[f] != getattr(row, f)]
    if not moved:
        return

    counts = [(label, count_dependents(db, column, row.id)) for label, column in REBIND_DEPENDENTS[kind]]
    if kind is EntityKind.ENROLLMENT:
        grades = db.scalar(select(func.count()).select_from(Grade).where(*period_grades_filter(db, row))) or 0
        counts.append(("notas", grades))

    for label, count in counts:
        if count > 0:
            logger.info(
                "Update blocked: kind=%s id=%s fields=%s dependent=%s count=%s",
                kind.value, row.id, moved, label, count,
            )
            raise DependencyConflictError(
                label,
                count,
                detail=f"No se puede modificar {', '.join(moved)}: existen {label} asociados ({count})",
            )


def cascade_delete_enrollment(db: Session, enrollment: Enrollment) -> None:
    """
    Remove an enrollment together with everything registered under it:

    1. the student's grades on assignments of the admission period
    2. the enrollment's course rows
    3. the enrollment itself

    All three steps share one transaction.
    """
    grades_filter = period_grades_filter(db, enrollment)

    with atomic(db):
        removed_grades = db.execute(
            delete(Grade)
            .where(*grades_filter)
            .execution_options(synchronize_session="fetch")
        ).rowcount
        removed_courses = db.execute(
            delete(EnrollmentCourse)
            .where(EnrollmentCourse.enrollment_id == enrollment.id)
            .execution_options(synchronize_session="fetch")
        ).rowcount
        db.expire(enrollment, ["courses"])
        db.delete(enrollment)

    logger.info(
        "Enrollment %s deleted with %s grades and %s course rows",
        enrollment.id, removed_grades, removed_courses,
    )
