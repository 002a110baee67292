"""
Course registration for an enrolled student.

A registered course is stored twice: a Grade row (student × assignment,
empty grade) and an EnrollmentCourse row (enrollment × course). These two
functions are the only places that create or remove the pair.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from aula.core.database import atomic
from aula.core.exceptions import ValidationError
from aula.core.ownership import assert_all_belong, load_owned
from aula.core.security import EntityKind
from aula.models import AdmissionProcess, Assignment, Enrollment, EnrollmentCourse, Grade

logger = logging.getLogger(__name__)


def register_course(
    db: Session,
    scope: int,
    student_id: int,
    enrollment_id: int,
    assignment_id: int,
    course_id: int,
) -> Grade:
    assert_all_belong(
        db,
        scope,
        {
            EntityKind.STUDENT: student_id,
            EntityKind.ENROLLMENT: enrollment_id,
            EntityKind.ASSIGNMENT: assignment_id,
            EntityKind.COURSE: course_id,
        },
    )
    enrollment = db.get(Enrollment, enrollment_id)
    assignment = db.get(Assignment, assignment_id)

    if enrollment.student_id != student_id:
        raise ValidationError("La matrícula no corresponde al estudiante indicado.")
    if assignment.course_id != course_id:
        raise ValidationError("La asignación no dicta el curso indicado.")
    period_id = db.scalar(
        select(AdmissionProcess.academic_period_id).where(
            AdmissionProcess.id == enrollment.admission_process_id
        )
    )
    if assignment.academic_period_id != period_id:
        raise ValidationError("La asignación no pertenece al periodo de la matrícula.")

    with atomic(db):
        grade = db.scalar(
            select(Grade).where(Grade.student_id == student_id, Grade.assignment_id == assignment_id)
        )
        if grade is None:
            grade = Grade(student_id=student_id, assignment_id=assignment_id, grade=None, observation=None)
            db.add(grade)

        exists = db.scalar(
            select(EnrollmentCourse.id).where(
                EnrollmentCourse.enrollment_id == enrollment_id,
                EnrollmentCourse.course_id == course_id,
            )
        )
        if exists is None:
            db.add(EnrollmentCourse(enrollment_id=enrollment_id, course_id=course_id))

    logger.info("Student %s registered in assignment %s", student_id, assignment_id)
    return grade


def remove_course(db: Session, scope: int, grade_id: int) -> None:
    """Drop the grade and the matching enrollment course row together."""
    grade: Grade = load_owned(db, scope, EntityKind.GRADE, grade_id)
    assignment = db.get(Assignment, grade.assignment_id)

    enrollment_ids = (
        select(Enrollment.id)
        .join(Enrollment.admission_process)
        .where(
            Enrollment.student_id == grade.student_id,
            AdmissionProcess.academic_period_id == assignment.academic_period_id,
        )
    )

    with atomic(db):
        db.execute(
            delete(EnrollmentCourse)
            .where(
                EnrollmentCourse.course_id == assignment.course_id,
                EnrollmentCourse.enrollment_id.in_(enrollment_ids),
            )
            .execution_options(synchronize_session="fetch")
        )
        db.delete(grade)

    logger.info("Grade %s removed with its enrollment course row", grade_id)
