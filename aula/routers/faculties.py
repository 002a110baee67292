"""
Faculties router: areas/faculties of the admin's institution.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.database import atomic, get_db
from aula.core.exceptions import ValidationError, integrity_conflict
from aula.core.integrity import delete_guarded
from aula.core.middleware import get_institution_id
from aula.core.ownership import load_owned
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import Faculty, Program
from aula.schemas.academic import FacultyCreate, FacultyUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/faculties", tags=["Faculties"])

FACULTY_CONFLICTS = {"name": "Ya existe un área con ese nombre en tu institución."}


def faculty_to_dict(faculty: Faculty, programs_count: int | None = None) -> dict:
    data = {
        "id": faculty.id,
        "institution_id": faculty.institution_id,
        "name": faculty.name,
        "description": faculty.description,
    }
    if programs_count is not None:
        data["programs_count"] = programs_count
    return data


@router.get("")
async def list_faculties(
    user: Principal = Depends(require_capability(EntityKind.FACULTY)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    rows = db.execute(
        select(Faculty, func.count(Program.id))
        .outerjoin(Program, Program.faculty_id == Faculty.id)
        .where(Faculty.institution_id == institution_id)
        .group_by(Faculty.id)
        .order_by(Faculty.name)
    ).all()
    return success_response(data=[faculty_to_dict(f, count) for f, count in rows])


@router.get("/{faculty_id}")
async def get_faculty(
    faculty_id: int,
    user: Principal = Depends(require_capability(EntityKind.FACULTY)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    faculty = load_owned(db, institution_id, EntityKind.FACULTY, faculty_id)
    return success_response(data=faculty_to_dict(faculty))


@router.post("")
async def create_faculty(
    body: FacultyCreate,
    user: Principal = Depends(require_capability(EntityKind.FACULTY, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    if not body.name.strip():
        raise ValidationError("El nombre del área es obligatorio.")

    faculty = Faculty(institution_id=institution_id, **body.model_dump())
    try:
        with atomic(db):
            db.add(faculty)
    except IntegrityError as e:
        raise integrity_conflict(e, FACULTY_CONFLICTS, "No se pudo crear el área.")
    return success_response(data=faculty_to_dict(faculty), message="Área creada")


@router.put("/{faculty_id}")
async def update_faculty(
    faculty_id: int,
    body: FacultyUpdate,
    user: Principal = Depends(require_capability(EntityKind.FACULTY, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    faculty = load_owned(db, institution_id, EntityKind.FACULTY, faculty_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(faculty, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, FACULTY_CONFLICTS, "No se pudo actualizar el área.")
    return success_response(data=faculty_to_dict(faculty), message="Área actualizada")


@router.delete("/{faculty_id}")
async def delete_faculty(
    faculty_id: int,
    user: Principal = Depends(require_capability(EntityKind.FACULTY, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    faculty = load_owned(db, institution_id, EntityKind.FACULTY, faculty_id)
    delete_guarded(db, EntityKind.FACULTY, faculty)
    logger.info("Faculty %s deleted from institution %s", faculty_id, institution_id)
    return success_response(message="Área eliminada")
