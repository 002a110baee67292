"""
Institution admins router: binds admin users to exactly one institution.
Superadmin manages the bindings; an admin can read its own.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from aula.core.database import atomic, get_db
from aula.core.exceptions import ConflictError, NotFoundError, ValidationError, integrity_conflict
from aula.core.middleware import resolve_scope
from aula.core.security import EntityKind, Operation, Principal, require_capability, require_role
from aula.models import Institution, InstitutionAdmin, Role, User
from aula.schemas.institution import AdminAssign
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/institution-admins", tags=["Institution Admins"])

ASSIGNMENT_CONFLICTS = {"user_id": "Este usuario ya está asignado a una institución."}


def assignment_to_dict(assignment: InstitutionAdmin) -> dict:
    return {
        "id": assignment.id,
        "assigned_at": assignment.assigned_at,
        "user": {
            "id": assignment.user.id,
            "first_name": assignment.user.first_name,
            "last_name": assignment.user.last_name,
            "email": assignment.user.email,
        },
        "institution": {
            "id": assignment.institution.id,
            "name": assignment.institution.name,
            "code": assignment.institution.code,
        },
    }


@router.get("")
async def list_assignments(
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION_ADMIN)),
    db: Session = Depends(get_db),
):
    assignments = db.scalars(
        select(InstitutionAdmin)
        .options(joinedload(InstitutionAdmin.user), joinedload(InstitutionAdmin.institution))
        .order_by(InstitutionAdmin.assigned_at.desc())
    ).all()
    return success_response(data=[assignment_to_dict(a) for a in assignments])


@router.get("/unassigned")
async def list_unassigned_admins(
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION_ADMIN)),
    db: Session = Depends(get_db),
):
    """Admin-role users not yet bound to any institution."""
    users = db.scalars(
        select(User)
        .outerjoin(InstitutionAdmin, InstitutionAdmin.user_id == User.id)
        .where(User.role == Role.ADMIN, InstitutionAdmin.id.is_(None))
        .order_by(User.last_name, User.first_name)
    ).all()
    return success_response(
        data=[
            {"id": u.id, "first_name": u.first_name, "last_name": u.last_name, "email": u.email}
            for u in users
        ]
    )


@router.post("/assign")
async def assign_admin(
    body: AdminAssign,
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION_ADMIN, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    admin_user = db.get(User, body.user_id)
    if admin_user is None:
        raise NotFoundError("Usuario no encontrado")
    if admin_user.role != Role.ADMIN:
        raise ValidationError("Solo usuarios con rol 'admin' pueden administrar una institución.")
    if db.get(Institution, body.institution_id) is None:
        raise NotFoundError("Institución no encontrada")
    if admin_user.institution_admin is not None:
        raise ConflictError(ASSIGNMENT_CONFLICTS["user_id"], field="user_id")

    assignment = InstitutionAdmin(user_id=body.user_id, institution_id=body.institution_id)
    try:
        with atomic(db):
            db.add(assignment)
    except IntegrityError as e:
        raise integrity_conflict(e, ASSIGNMENT_CONFLICTS, "No se pudo asignar el administrador.")

    logger.info("User %s assigned to institution %s", body.user_id, body.institution_id)
    return success_response(data=assignment_to_dict(assignment), message="Administrador asignado")


@router.delete("/unassign/{assignment_id}")
async def unassign_admin(
    assignment_id: int,
    user: Principal = Depends(require_capability(EntityKind.INSTITUTION_ADMIN, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    assignment = db.get(InstitutionAdmin, assignment_id)
    if assignment is None:
        raise NotFoundError("Asignación no encontrada")
    with atomic(db):
        db.delete(assignment)
    logger.info("Institution admin assignment %s removed", assignment_id)
    return success_response(message="Asignación eliminada")


@router.get("/me")
async def my_institution(
    user: Principal = Depends(require_role([Role.ADMIN])),
    db: Session = Depends(get_db),
):
    institution_id = resolve_scope(db, user)
    if institution_id is None:
        raise NotFoundError("No tienes una institución asignada.")
    institution = db.get(Institution, institution_id)
    return success_response(
        data={
            "id": institution.id,
            "name": institution.name,
            "code": institution.code,
            "status": institution.status,
        }
    )
