"""
Study plans router. At most one plan per institution is active; activating
one switches the others off in the same transaction.
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
from aula.models import Plan
from aula.schemas.academic import PlanCreate, PlanUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plans", tags=["Plans"])

# most specific first: the sqlite message for a title clash also names institution_id
PLAN_CONFLICTS = {
    "title": "Ya existe un plan con ese título en tu institución.",
    "single_active": "Ya existe otro plan activo en tu institución.",
    "plans.institution_id": "Ya existe otro plan activo en tu institución.",
}


def plan_to_dict(plan: Plan) -> dict:
    return {
        "id": plan.id,
        "institution_id": plan.institution_id,
        "title": plan.title,
        "description": plan.description,
        "start_year": plan.start_year,
        "end_year": plan.end_year,
        "is_active": plan.is_active,
    }


def _check_years(start_year: int, end_year: int) -> None:
    if start_year > end_year:
        raise ValidationError("El año de inicio no puede ser mayor que el año de fin.")


@router.get("")
async def list_plans(
    user: Principal = Depends(require_capability(EntityKind.PLAN)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    plans = db.scalars(
        select(Plan)
        .where(Plan.institution_id == institution_id)
        .order_by(Plan.start_year.desc(), Plan.title)
    ).all()
    return success_response(data=[plan_to_dict(p) for p in plans])


@router.get("/{plan_id}")
async def get_plan(
    plan_id: int,
    user: Principal = Depends(require_capability(EntityKind.PLAN)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    plan = load_owned(db, institution_id, EntityKind.PLAN, plan_id)
    return success_response(data=plan_to_dict(plan))


@router.post("")
async def create_plan(
    body: PlanCreate,
    user: Principal = Depends(require_capability(EntityKind.PLAN, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    _check_years(body.start_year, body.end_year)
    data = body.model_dump()
    is_active = data.pop("is_active")

    plan = Plan(institution_id=institution_id, is_active=False, **data)
    try:
        with atomic(db):
            db.add(plan)
            db.flush()
            if is_active:
                activate_exclusively(db, Plan, institution_id, plan)
    except IntegrityError as e:
        raise integrity_conflict(e, PLAN_CONFLICTS, "No se pudo crear el plan.")

    logger.info("Plan %s created in institution %s (active=%s)", plan.id, institution_id, plan.is_active)
    return success_response(data=plan_to_dict(plan), message="Plan creado")


@router.put("/{plan_id}")
async def update_plan(
    plan_id: int,
    body: PlanUpdate,
    user: Principal = Depends(require_capability(EntityKind.PLAN, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    plan = load_owned(db, institution_id, EntityKind.PLAN, plan_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    is_active = data.pop("is_active", None)
    _check_years(data.get("start_year", plan.start_year), data.get("end_year", plan.end_year))

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(plan, field, value)
            if is_active:
                activate_exclusively(db, Plan, institution_id, plan)
            elif is_active is False:
                plan.is_active = False
    except IntegrityError as e:
        raise integrity_conflict(e, PLAN_CONFLICTS, "No se pudo actualizar el plan.")

    return success_response(data=plan_to_dict(plan), message="Plan actualizado")


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: int,
    user: Principal = Depends(require_capability(EntityKind.PLAN, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    plan = load_owned(db, institution_id, EntityKind.PLAN, plan_id)
    delete_guarded(db, EntityKind.PLAN, plan)
    return success_response(message="Plan eliminado")
