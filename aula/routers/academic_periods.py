"""
Academic periods router. Same single-active rule as study plans.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.activation import activate_exclusively
from aula.core.database import atomic, get_db
from aula.core.exceptions import ValidationError, integrity_conflict
from aula.core.integrity import delete_guarded
from aula.core.middleware import get_institution_id
from aula.core.ownership import load_owned
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import AcademicPeriod
from aula.schemas.academic import AcademicPeriodCreate, AcademicPeriodUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/academic-periods", tags=["Academic Periods"])

PERIOD_CONFLICTS = {
    "year": "Ya existe un periodo con ese año y nombre en tu institución.",
    "single_active": "Ya existe otro periodo activo en tu institución.",
    "academic_periods.institution_id": "Ya existe otro periodo activo en tu institución.",
}


def period_to_dict(period: AcademicPeriod) -> dict:
    return {
        "id": period.id,
        "institution_id": period.institution_id,
        "year": period.year,
        "name": period.name,
        "modality": period.modality,
        "start_date": period.start_date,
        "end_date": period.end_date,
        "is_active": period.is_active,
    }


def _check_dates(start_date, end_date) -> None:
    if end_date <= start_date:
        raise ValidationError("La fecha de fin debe ser posterior a la fecha de inicio.")


@router.get("")
async def list_periods(
    user: Principal = Depends(require_capability(EntityKind.ACADEMIC_PERIOD)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    periods = db.scalars(
        select(AcademicPeriod)
        .where(AcademicPeriod.institution_id == institution_id)
        .order_by(AcademicPeriod.year.desc(), AcademicPeriod.start_date.desc())
    ).all()
    return success_response(data=[period_to_dict(p) for p in periods])


@router.get("/{period_id}")
async def get_period(
    period_id: int,
    user: Principal = Depends(require_capability(EntityKind.ACADEMIC_PERIOD)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    period = load_owned(db, institution_id, EntityKind.ACADEMIC_PERIOD, period_id)
    return success_response(data=period_to_dict(period))


@router.post("")
async def create_period(
    body: AcademicPeriodCreate,
    user: Principal = Depends(require_capability(EntityKind.ACADEMIC_PERIOD, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    _check_dates(body.start_date, body.end_date)
    data = body.model_dump()
    is_active = data.pop("is_active")

    period = AcademicPeriod(institution_id=institution_id, is_active=False, **data)
    try:
        with atomic(db):
            db.add(period)
            db.flush()
            if is_active:
                activate_exclusively(db, AcademicPeriod, institution_id, period)
    except IntegrityError as e:
        raise integrity_conflict(e, PERIOD_CONFLICTS, "No se pudo crear el periodo académico.")

    logger.info("Academic period %s created in institution %s", period.id, institution_id)
    return success_response(data=period_to_dict(period), message="Periodo académico creado")


@router.put("/{period_id}")
async def update_period(
    period_id: int,
    body: AcademicPeriodUpdate,
    user: Principal = Depends(require_capability(EntityKind.ACADEMIC_PERIOD, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    period = load_owned(db, institution_id, EntityKind.ACADEMIC_PERIOD, period_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    is_active = data.pop("is_active", None)
    _check_dates(data.get("start_date", period.start_date), data.get("end_date", period.end_date))

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(period, field, value)
            if is_active:
                activate_exclusively(db, AcademicPeriod, institution_id, period)
            elif is_active is False:
                period.is_active = False
    except IntegrityError as e:
        raise integrity_conflict(e, PERIOD_CONFLICTS, "No se pudo actualizar el periodo académico.")

    return success_response(data=period_to_dict(period), message="Periodo académico actualizado")


@router.delete("/{period_id}")
async def delete_period(
    period_id: int,
    user: Principal = Depends(require_capability(EntityKind.ACADEMIC_PERIOD, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    period = load_owned(db, institution_id, EntityKind.ACADEMIC_PERIOD, period_id)
    delete_guarded(db, EntityKind.ACADEMIC_PERIOD, period)
    return success_response(message="Periodo académico eliminado")
