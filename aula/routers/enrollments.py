"""
Enrollments router: student enrollments and the courses registered under them.

Deleting an enrollment cascades to its course rows and to the student's
grades in the admission period; registering/removing a course keeps the
Grade and EnrollmentCourse rows in step.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from aula.core.database import atomic, get_db
from aula.core.exceptions import ValidationError, integrity_conflict
from aula.core.integrity import assert_rebindable, cascade_delete_enrollment
from aula.core.middleware import get_institution_id
from aula.core.ownership import assert_all_belong, load_owned
from aula.core.registration import register_course, remove_course
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import (
    AdmissionProcess,
    Assignment,
    Course,
    Enrollment,
    Grade,
    Student,
    Teacher,
)
from aula.schemas.enrollment import CourseRegistration, EnrollmentCreate, EnrollmentUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/enrollments", tags=["Enrollments"])

ENROLLMENT_CONFLICTS = {
    "student": "Este estudiante ya está matriculado en este programa para este proceso de admisión.",
}

_FK_KINDS = {
    "student_id": EntityKind.STUDENT,
    "program_id": EntityKind.PROGRAM,
    "admission_process_id": EntityKind.ADMISSION_PROCESS,
}


def enrollment_to_dict(enrollment: Enrollment) -> dict:
    process = enrollment.admission_process
    return {
        "id": enrollment.id,
        "status": enrollment.status,
        "enrolled_at": enrollment.enrolled_at,
        "student_id": enrollment.student_id,
        "student_name": enrollment.student.user.full_name,
        "program_id": enrollment.program_id,
        "program_name": enrollment.program.name,
        "admission_process_id": enrollment.admission_process_id,
        "admission_process": process.description or process.academic_period.name,
        "academic_period": {"id": process.academic_period.id, "name": process.academic_period.name},
    }


def _teacher_name(teacher: Teacher) -> str:
    return teacher.user.full_name


@router.get("")
async def list_enrollments(
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    enrollments = db.scalars(
        select(Enrollment)
        .join(Student, Enrollment.student_id == Student.id)
        .options(
            joinedload(Enrollment.student).joinedload(Student.user),
            joinedload(Enrollment.program),
            joinedload(Enrollment.admission_process).joinedload(AdmissionProcess.academic_period),
        )
        .where(Student.institution_id == institution_id)
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    ).all()
    return success_response(data=[enrollment_to_dict(e) for e in enrollments])


@router.post("/register-course")
async def register_student_course(
    body: CourseRegistration,
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    grade = register_course(
        db,
        institution_id,
        student_id=body.student_id,
        enrollment_id=body.enrollment_id,
        assignment_id=body.assignment_id,
        course_id=body.course_id,
    )
    return success_response(data={"grade_id": grade.id}, message="Estudiante inscrito en el curso.")


@router.delete("/remove-course/{grade_id}")
async def remove_student_course(
    grade_id: int,
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    remove_course(db, institution_id, grade_id)
    return success_response(message="Curso anulado de la matrícula.")


@router.get("/{student_id}/registered-courses")
async def registered_courses(
    student_id: int,
    period_id: int = Query(...),
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    """The student's grade rows (one per registered course) in a period."""
    assert_all_belong(
        db,
        institution_id,
        {EntityKind.STUDENT: student_id, EntityKind.ACADEMIC_PERIOD: period_id},
    )
    grades = db.scalars(
        select(Grade)
        .join(Assignment, Grade.assignment_id == Assignment.id)
        .options(
            joinedload(Grade.assignment).joinedload(Assignment.course),
            joinedload(Grade.assignment).joinedload(Assignment.teacher).joinedload(Teacher.user),
        )
        .where(Grade.student_id == student_id, Assignment.academic_period_id == period_id)
    ).all()
    return success_response(
        data=[
            {
                "grade_id": g.id,
                "course_id": g.assignment.course.id,
                "assignment_id": g.assignment_id,
                "course_name": g.assignment.course.name,
                "teacher_name": _teacher_name(g.assignment.teacher),
                "shift": g.assignment.shift,
            }
            for g in grades
        ]
    )


@router.get("/{student_id}/available-courses")
async def available_courses(
    student_id: int,
    period_id: int = Query(...),
    program_id: int = Query(...),
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    """Assignments of the program's courses in the period the student has not registered yet."""
    assert_all_belong(
        db,
        institution_id,
        {
            EntityKind.STUDENT: student_id,
            EntityKind.ACADEMIC_PERIOD: period_id,
            EntityKind.PROGRAM: program_id,
        },
    )
    registered = select(Grade.assignment_id).where(Grade.student_id == student_id)
    assignments = db.scalars(
        select(Assignment)
        .join(Course, Assignment.course_id == Course.id)
        .options(
            joinedload(Assignment.course),
            joinedload(Assignment.teacher).joinedload(Teacher.user),
        )
        .where(
            Assignment.academic_period_id == period_id,
            Course.program_id == program_id,
            Assignment.id.not_in(registered),
        )
        .order_by(Course.semester, Course.name)
    ).all()
    return success_response(
        data=[
            {
                "assignment_id": a.id,
                "course_id": a.course.id,
                "course_name": a.course.name,
                "teacher_name": _teacher_name(a.teacher),
                "shift": a.shift,
            }
            for a in assignments
        ]
    )


@router.get("/{enrollment_id}")
async def get_enrollment(
    enrollment_id: int,
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    enrollment = load_owned(db, institution_id, EntityKind.ENROLLMENT, enrollment_id)
    return success_response(data=enrollment_to_dict(enrollment))


@router.post("")
async def create_enrollment(
    body: EnrollmentCreate,
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assert_all_belong(
        db,
        institution_id,
        {
            EntityKind.STUDENT: body.student_id,
            EntityKind.PROGRAM: body.program_id,
            EntityKind.ADMISSION_PROCESS: body.admission_process_id,
        },
    )
    enrollment = Enrollment(
        student_id=body.student_id,
        program_id=body.program_id,
        admission_process_id=body.admission_process_id,
        status=body.status or "matriculado",
    )
    try:
        with atomic(db):
            db.add(enrollment)
    except IntegrityError as e:
        raise integrity_conflict(e, ENROLLMENT_CONFLICTS, "Error de duplicidad al matricular.")

    logger.info("Enrollment %s created for student %s", enrollment.id, enrollment.student_id)
    return success_response(data=enrollment_to_dict(enrollment), message="Matrícula creada")


@router.put("/{enrollment_id}")
async def update_enrollment(
    enrollment_id: int,
    body: EnrollmentUpdate,
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    enrollment = load_owned(db, institution_id, EntityKind.ENROLLMENT, enrollment_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    assert_all_belong(
        db,
        institution_id,
        {kind: data[field] for field, kind in _FK_KINDS.items() if field in data},
    )
    assert_rebindable(db, EntityKind.ENROLLMENT, enrollment, data, tuple(_FK_KINDS))

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(enrollment, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, ENROLLMENT_CONFLICTS, "No se pudo actualizar la matrícula.")

    db.refresh(enrollment)
    return success_response(data=enrollment_to_dict(enrollment), message="Matrícula actualizada")


@router.delete("/{enrollment_id}")
async def delete_enrollment(
    enrollment_id: int,
    user: Principal = Depends(require_capability(EntityKind.ENROLLMENT, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    enrollment = load_owned(db, institution_id, EntityKind.ENROLLMENT, enrollment_id)
    cascade_delete_enrollment(db, enrollment)
    return success_response(message="Matrícula (y sus cursos inscritos) anulada con éxito.")
