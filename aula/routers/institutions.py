"""
Institutions router: superadmin only.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.database import atomic, get_db
from aula.core.exceptions import NotFoundError, ValidationError, integrity_conflict
from aula.core.integrity import delete_guarded
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import Institution
from aula.schemas.institution import InstitutionCreate, InstitutionUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/institutions", tags=["Institutions"])

INSTITUTION_CONFLICTS = {"code": "Ya existe una institución con ese código."}


def institution_to_dict(institution: Institution) -> dict:
    return {
        "id": institution.id,
        "name": institution.name,
        "code": institution.code,
        "address": institution.address,
        "email": institution.email,
        "phone": institution.phone,
        "status": institution.status,
    }


def _get_or_404(db: Session, institution_id: int) -> Institution:
    institution = db.get(Institution, institution_id)
    if institution is None:
        raise NotFoundError("Institución no encontrada")
    return institution


@router.get("")
async def list_institutions(
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION)),
    db: Session = Depends(get_db),
):
    institutions = db.scalars(select(Institution).order_by(Institution.name)).all()
    return success_response(data=[institution_to_dict(i) for i in institutions])


@router.get("/{institution_id}")
async def get_institution(
    institution_id: int,
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION)),
    db: Session = Depends(get_db),
):
    return success_response(data=institution_to_dict(_get_or_404(db, institution_id)))


@router.post("")
async def create_institution(
    body: InstitutionCreate,
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    if not body.name.strip() or not body.code.strip():
        raise ValidationError("El nombre y el código son obligatorios.")

    institution = Institution(**body.model_dump())
    try:
        with atomic(db):
            db.add(institution)
    except IntegrityError as e:
        raise integrity_conflict(e, INSTITUTION_CONFLICTS, "No se pudo crear la institución.")

    logger.info("Institution %s created by user %s", institution.id, user.user_id)
    return success_response(data=institution_to_dict(institution), message="Institución creada")


@router.put("/{institution_id}")
async def update_institution(
    institution_id: int,
    body: InstitutionUpdate,
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    institution = _get_or_404(db, institution_id)

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(institution, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, INSTITUTION_CONFLICTS, "No se pudo actualizar la institución.")

    return success_response(data=institution_to_dict(institution), message="Institución actualizada")


@router.delete("/{institution_id}")
async def delete_institution(
    institution_id: int,
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    institution = _get_or_404(db, institution_id)
    delete_guarded(db, EntityKind.INSTITUTION, institution)
    logger.info("Institution %s deleted by user %s", institution_id, user.user_id)
    return success_response(message="Institución eliminada")
