"""
Request logging middleware and the tenant resolver.

Every institution-scoped endpoint receives its scope explicitly through the
`get_institution_id` dependency; nothing looks the caller's institution up
implicitly mid-function.
"""

import logging
import time
import uuid

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from aula.core.database import get_db
from aula.core.exceptions import AuthorizationError
from aula.core.security import Principal, get_current_user
from aula.models import Institution, InstitutionAdmin, Role, Student, Teacher

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Attach a request ID and log method/path/status/duration."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "method=%s path=%s status_code=%s duration_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# Tenant resolver
# ---------------------------------------------------------------------------
def resolve_scope(db: Session, principal: Principal) -> int | None:
    """
    Institution id the principal may act within.

    admin       → institution of its unique InstitutionAdmin row, or None
    superadmin  → None (unrestricted; never routed to scoped endpoints)
    docente / estudiante → institution of its Teacher / Student row
    """
    if principal.role == Role.ADMIN:
        return db.scalar(
            select(InstitutionAdmin.institution_id).where(InstitutionAdmin.user_id == principal.user_id)
        )
    if principal.role == Role.TEACHER:
        teacher = resolve_teacher(db, principal)
        return teacher.institution_id if teacher else None
    if principal.role == Role.STUDENT:
        student = resolve_student(db, principal)
        return student.institution_id if student else None
    return None


def resolve_teacher(db: Session, principal: Principal) -> Teacher | None:
    return db.scalar(select(Teacher).where(Teacher.user_id == principal.user_id))


def resolve_student(db: Session, principal: Principal) -> Student | None:
    return db.scalar(select(Student).where(Student.user_id == principal.user_id))


def get_institution_id(
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> int:
    """
    Scope of an institution admin. Fails closed: no assignment, or an
    inactive institution, is an authorization error, never a global query.
    """
    if user.role != Role.ADMIN:
        raise AuthorizationError("Solo un administrador de institución puede operar en este recurso")

    institution_id = resolve_scope(db, user)
    if institution_id is None:
        logger.info("Admin user=%s has no institution assigned", user.user_id)
        raise AuthorizationError("El usuario no tiene una institución asignada.")

    active = db.scalar(select(Institution.status).where(Institution.id == institution_id))
    if not active:
        raise AuthorizationError("La institución asignada está desactivada.")
    return institution_id


def get_current_teacher(
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Teacher:
    teacher = resolve_teacher(db, user) if user.role == Role.TEACHER else None
    if teacher is None:
        raise AuthorizationError("Acceso denegado. El usuario no es un docente registrado.")
    return teacher


def get_current_student(
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Student:
    student = resolve_student(db, user) if user.role == Role.STUDENT else None
    if student is None:
        raise AuthorizationError("Acceso denegado. El usuario no es un estudiante registrado.")
    return student
