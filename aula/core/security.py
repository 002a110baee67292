"""
Security module: bcrypt hashing, session tokens, principal loading and the
role → capability table.

Auth Flow:
1. User logs in with email + password → receives a signed JWT
2. Frontend sends the JWT as a Bearer token
3. Backend verifies the signature and expiry
4. Backend loads the user row, checks it still exists and is active
5. Backend injects a Principal (user_id, role) into the request
6. Capability check runs before any entity logic

AUTH_MODE=mock additionally accepts "mock-{email}" tokens for local demos.
"""

import enum
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from aula.core.config import settings
from aula.core.database import get_db
from aula.core.exceptions import AuthenticationError, AuthorizationError
from aula.models import Role, User

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------
def create_access_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.id,
        "role": user.role.value,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expirado")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Token inválido")


# ---------------------------------------------------------------------------
# Password reset tokens (the raw token is mailed, only its hash is stored)
# ---------------------------------------------------------------------------
def generate_reset_token() -> tuple[str, str]:
    token = secrets.token_hex(32)
    return token, hash_reset_token(token)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Principal:
    user_id: int
    role: Role
    email: str


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Validate the Bearer token and return the authenticated principal.
    The role is always read from the database, never trusted from the token.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No autorizado")

    token = credentials.credentials

    if settings.AUTH_MODE == "mock" and token.startswith("mock-"):
        user = db.scalar(select(User).where(User.email == token[5:]))
    else:
        user_id = decode_access_token(token).get("userId")
        user = db.get(User, user_id) if user_id is not None else None

    if user is None:
        raise AuthenticationError("Usuario no existe")
    if not user.status:
        raise AuthenticationError("Usuario desactivado")

    return Principal(user_id=user.id, role=user.role, email=user.email)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------
class EntityKind(str, enum.Enum):
    INSTITUTION = "institution"
    INSTITUTION_ADMIN = "institution_admin"
    USER = "user"
    PERSONNEL = "personnel"
    FACULTY = "faculty"
    PLAN = "plan"
    PROGRAM = "program"
    COURSE = "course"
    ACADEMIC_PERIOD = "academic_period"
    ADMISSION_PROCESS = "admission_process"
    ENROLLMENT = "enrollment"
    ASSIGNMENT = "assignment"
    GRADE = "grade"
    TEACHER = "teacher"
    STUDENT = "student"


class Operation(str, enum.Enum):
    READ = "read"
    WRITE = "write"


def _rw(*kinds: EntityKind) -> set[tuple[EntityKind, Operation]]:
    return {(k, op) for k in kinds for op in Operation}


CAPABILITIES: dict[Role, frozenset[tuple[EntityKind, Operation]]] = {
    Role.SUPERADMIN: frozenset(
        _rw(EntityKind.INSTITUTION, EntityKind.INSTITUTION_ADMIN, EntityKind.USER)
    ),
    Role.ADMIN: frozenset(
        _rw(
            EntityKind.FACULTY,
            EntityKind.PLAN,
            EntityKind.PROGRAM,
            EntityKind.COURSE,
            EntityKind.ACADEMIC_PERIOD,
            EntityKind.ADMISSION_PROCESS,
            EntityKind.ENROLLMENT,
            EntityKind.ASSIGNMENT,
        )
        | {(EntityKind.PERSONNEL, Operation.READ), (EntityKind.USER, Operation.WRITE)}
    ),
    Role.TEACHER: frozenset(
        {(EntityKind.ASSIGNMENT, Operation.READ)} | _rw(EntityKind.GRADE)
    ),
    Role.STUDENT: frozenset({(EntityKind.GRADE, Operation.READ)}),
}


def can(role: Role, kind: EntityKind, op: Operation) -> bool:
    return (kind, op) in CAPABILITIES.get(role, frozenset())


def require_capability(kind: EntityKind, op: Operation = Operation.READ):
    """
    Usage:
        @router.get("/faculties")
        async def endpoint(user: Principal = Depends(require_capability(EntityKind.FACULTY))):
    """

    def capability_checker(user: Principal = Depends(get_current_user)) -> Principal:
        if not can(user.role, kind, op):
            logger.info(
                "Capability denied: user=%s role=%s kind=%s op=%s",
                user.user_id, user.role.value, kind.value, op.value,
            )
            raise AuthorizationError(
                f"Rol '{user.role.value}' no autorizado para {op.value} {kind.value}"
            )
        return user

    return capability_checker


def require_role(allowed_roles: list[Role]):
    async def role_checker(user: Principal = Depends(get_current_user)) -> Principal:
        if user.role not in allowed_roles:
            raise AuthorizationError(
                f"Rol '{user.role.value}' no autorizado. Requerido: {[r.value for r in allowed_roles]}"
            )
        return user

    return role_checker
