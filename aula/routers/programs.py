"""
Programs router. A program's plan and faculty must belong to the same
institution as the program itself.
"""

import logging
import math

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from aula.core.database import atomic, get_db
from aula.core.exceptions import ValidationError, integrity_conflict
from aula.core.integrity import delete_guarded
from aula.core.middleware import get_institution_id
from aula.core.ownership import assert_all_belong, load_owned
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import Program
from aula.schemas.academic import ProgramCreate, ProgramUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/programs", tags=["Programs"])

PROGRAM_CONFLICTS = {"name": "Ya existe un programa con ese nombre en tu institución."}


def program_to_dict(program: Program) -> dict:
    return {
        "id": program.id,
        "institution_id": program.institution_id,
        "name": program.name,
        "description": program.description,
        "duration_months": program.duration_months,
        "duration_years": program.duration_years,
        "is_active": program.is_active,
        "plan_id": program.plan_id,
        "plan_title": program.plan.title if program.plan else None,
        "faculty_id": program.faculty_id,
        "faculty_name": program.faculty.name if program.faculty else None,
    }


def _duration_years(months: int) -> int:
    if months <= 0:
        raise ValidationError("La duración en meses debe ser mayor que cero.")
    return math.ceil(months / 12)


@router.get("")
async def list_programs(
    user: Principal = Depends(require_capability(EntityKind.PROGRAM)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    programs = db.scalars(
        select(Program)
        .options(joinedload(Program.plan), joinedload(Program.faculty))
        .where(Program.institution_id == institution_id)
        .order_by(Program.name)
    ).all()
    return success_response(data=[program_to_dict(p) for p in programs])


@router.get("/{program_id}")
async def get_program(
    program_id: int,
    user: Principal = Depends(require_capability(EntityKind.PROGRAM)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    program = load_owned(db, institution_id, EntityKind.PROGRAM, program_id)
    return success_response(data=program_to_dict(program))


@router.post("")
async def create_program(
    body: ProgramCreate,
    user: Principal = Depends(require_capability(EntityKind.PROGRAM, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    assert_all_belong(
        db,
        institution_id,
        {EntityKind.PLAN: body.plan_id, EntityKind.FACULTY: body.faculty_id},
    )
    program = Program(
        institution_id=institution_id,
        duration_years=_duration_years(body.duration_months),
        **body.model_dump(),
    )
    try:
        with atomic(db):
            db.add(program)
    except IntegrityError as e:
        raise integrity_conflict(e, PROGRAM_CONFLICTS, "No se pudo crear el programa.")

    logger.info("Program %s created in institution %s", program.id, institution_id)
    return success_response(data=program_to_dict(program), message="Programa creado")


@router.put("/{program_id}")
async def update_program(
    program_id: int,
    body: ProgramUpdate,
    user: Principal = Depends(require_capability(EntityKind.PROGRAM, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    program = load_owned(db, institution_id, EntityKind.PROGRAM, program_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")

    refs = {}
    if "plan_id" in data:
        refs[EntityKind.PLAN] = data["plan_id"]
    if "faculty_id" in data:
        refs[EntityKind.FACULTY] = data["faculty_id"]
    assert_all_belong(db, institution_id, refs)
    if "duration_months" in data:
        data["duration_years"] = _duration_years(data["duration_months"])

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(program, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, PROGRAM_CONFLICTS, "No se pudo actualizar el programa.")

    db.refresh(program)
    return success_response(data=program_to_dict(program), message="Programa actualizado")


@router.delete("/{program_id}")
async def delete_program(
    program_id: int,
    user: Principal = Depends(require_capability(EntityKind.PROGRAM, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    program = load_owned(db, institution_id, EntityKind.PROGRAM, program_id)
    delete_guarded(db, EntityKind.PROGRAM, program)
    return success_response(message="Programa eliminado")
