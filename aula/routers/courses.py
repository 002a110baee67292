"""
Courses router. A course reaches its institution through its program.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.database import atomic, get_db
from aula.core.exceptions import ValidationError, integrity_conflict
from aula.core.integrity import delete_guarded
from aula.core.middleware import get_institution_id
from aula.core.ownership import assert_belongs, load_owned
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import Course, Program
from aula.schemas.academic import CourseCreate, CourseUpdate
from aula.utils.response import success_response

router = APIRouter(prefix="/api/courses", tags=["Courses"])

COURSE_CONFLICTS = {"code": "Ya existe un curso con ese código en el programa."}


def course_to_dict(course: Course, program_name: str | None = None) -> dict:
    return {
        "id": course.id,
        "program_id": course.program_id,
        "program_name": program_name,
        "code": course.code,
        "name": course.name,
        "credits": course.credits,
        "semester": course.semester,
    }


def _scoped_courses(institution_id: int):
    return (
        select(Course, Program.name)
        .join(Program, Course.program_id == Program.id)
        .where(Program.institution_id == institution_id)
    )


@router.get("")
async def list_courses(
    user: Principal = Depends(require_capability(EntityKind.COURSE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    rows = db.execute(
        _scoped_courses(institution_id).order_by(Program.name, Course.semester, Course.code)
    ).all()
    return success_response(data=[course_to_dict(c, name) for c, name in rows])


@router.get("/list-simple")
async def list_courses_simple(
    user: Principal = Depends(require_capability(EntityKind.COURSE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    """Lightweight list for selects."""
    rows = db.execute(_scoped_courses(institution_id).order_by(Course.name)).all()
    return success_response(
        data=[
            {"id": c.id, "code": c.code, "name": c.name, "program_id": c.program_id}
            for c, _ in rows
        ]
    )


@router.get("/{course_id}")
async def get_course(
    course_id: int,
    user: Principal = Depends(require_capability(EntityKind.COURSE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    course = load_owned(db, institution_id, EntityKind.COURSE, course_id)
    return success_response(data=course_to_dict(course, course.program.name))


@router.post("")
async def create_course(
    body: CourseCreate,
    user: Principal = Depends(require_capability(EntityKind.COURSE, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assert_belongs(db, institution_id, EntityKind.PROGRAM, body.program_id)
    if not body.code.strip() or not body.name.strip():
        raise ValidationError("El código y el nombre del curso son obligatorios.")

    course = Course(**body.model_dump())
    try:
        with atomic(db):
            db.add(course)
    except IntegrityError as e:
        raise integrity_conflict(e, COURSE_CONFLICTS, "No se pudo crear el curso.")
    return success_response(data=course_to_dict(course, course.program.name), message="Curso creado")


@router.put("/{course_id}")
async def update_course(
    course_id: int,
    body: CourseUpdate,
    user: Principal = Depends(require_capability(EntityKind.COURSE, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    course = load_owned(db, institution_id, EntityKind.COURSE, course_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    if "program_id" in data and data["program_id"] != course.program_id:
        assert_belongs(db, institution_id, EntityKind.PROGRAM, data["program_id"])

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(course, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, COURSE_CONFLICTS, "No se pudo actualizar el curso.")

    db.refresh(course)
    return success_response(data=course_to_dict(course, course.program.name), message="Curso actualizado")


@router.delete("/{course_id}")
async def delete_course(
    course_id: int,
    user: Principal = Depends(require_capability(EntityKind.COURSE, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    course = load_owned(db, institution_id, EntityKind.COURSE, course_id)
    delete_guarded(db, EntityKind.COURSE, course)
    return success_response(message="Curso eliminado")
