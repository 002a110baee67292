"""
Auth router: Login, Profile, User management, Password reset.

Rules:
- Only active users with a matching bcrypt hash can login
- Superadmin manages every user; an institution admin manages only the
  teachers and students of its own institution
- Reset links never reveal whether an account exists
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.config import settings
from aula.core.database import atomic, get_db
from aula.core.email import send_password_reset_email
from aula.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DependencyConflictError,
    NotFoundError,
    ValidationError,
    integrity_conflict,
)
from aula.core.middleware import get_institution_id
from aula.core.ownership import assert_belongs
from aula.core.security import (
    EntityKind,
    Operation,
    Principal,
    create_access_token,
    generate_reset_token,
    get_current_user,
    get_password_hash,
    hash_reset_token,
    require_capability,
    verify_password,
)
from aula.models import (
    Assignment,
    Enrollment,
    Grade,
    Institution,
    PasswordResetToken,
    Role,
    Student,
    Teacher,
    User,
)
from aula.schemas.auth import ForgotPassword, ResetPassword, UserLogin, UserRegister, UserUpdate
from aula.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

PERSONNEL_ROLES = (Role.TEACHER, Role.STUDENT)
USER_CONFLICTS = {"email": "El correo electrónico ya está registrado."}
FORGOT_PASSWORD_MESSAGE = "Si el correo está registrado, recibirás un enlace para restablecer tu contraseña."


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "role": user.role.value,
        "status": user.status,
        "created_at": user.created_at,
    }


def _load_managed_user(db: Session, principal: Principal, user_id: int) -> User:
    """
    Superadmin: any user (404 when missing).
    Admin: only teachers/students bound to its institution (403 otherwise).
    """
    user = db.get(User, user_id)
    if principal.role == Role.SUPERADMIN:
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        return user

    scope = get_institution_id(principal, db)
    if user is None or user.role not in PERSONNEL_ROLES:
        raise AuthorizationError("El usuario no existe o no pertenece a tu institución.")
    if user.teacher is not None:
        assert_belongs(db, scope, EntityKind.TEACHER, user.teacher.id)
    elif user.student is not None:
        assert_belongs(db, scope, EntityKind.STUDENT, user.student.id)
    else:
        raise AuthorizationError("El usuario no existe o no pertenece a tu institución.")
    return user


@router.post("/login")
async def login(body: UserLogin, db: Session = Depends(get_db)):
    """Email + password → signed session token and the user profile."""
    user = db.scalar(select(User).where(User.email == body.email))
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Failed login for %s", body.email)
        raise AuthenticationError("Credenciales inválidas")
    if not user.status:
        raise AuthenticationError("Usuario desactivado. Contacta al administrador.")

    token = create_access_token(user)
    logger.info("User %s logged in", user.id)
    return success_response(
        data={"token": token, "user": user_to_dict(user)},
        message="Login successful",
    )


@router.get("/me")
async def get_me(
    principal: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = db.get(User, principal.user_id)
    data = user_to_dict(user)

    if user.role == Role.ADMIN and user.institution_admin is not None:
        institution = user.institution_admin.institution
        data["institution"] = {"id": institution.id, "name": institution.name, "code": institution.code}
    elif user.teacher is not None:
        data["teacher_id"] = user.teacher.id
        data["institution_id"] = user.teacher.institution_id
    elif user.student is not None:
        data["student_id"] = user.student.id
        data["institution_id"] = user.student.institution_id

    return success_response(data=data)


@router.post("/register")
async def register(
    body: UserRegister,
    principal: Principal = Depends(require_capability(EntityKind.USER, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    """
    Superadmin creates users of any role; teachers and students need an
    `institution_id`. An institution admin creates teachers and students,
    always bound to its own institution.
    """
    if principal.role == Role.ADMIN:
        if body.role not in PERSONNEL_ROLES:
            raise AuthorizationError("Un administrador solo puede registrar docentes o estudiantes.")
        institution_id = get_institution_id(principal, db)
    elif body.role in PERSONNEL_ROLES:
        if body.institution_id is None:
            raise ValidationError("Se requiere la institución del docente o estudiante.")
        if db.get(Institution, body.institution_id) is None:
            raise NotFoundError("Institución no encontrada")
        institution_id = body.institution_id
    else:
        institution_id = None

    if db.scalar(select(User.id).where(User.email == body.email)) is not None:
        raise ConflictError(USER_CONFLICTS["email"], field="email")

    user = User(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password_hash=get_password_hash(body.password),
        role=body.role,
    )
    try:
        with atomic(db):
            db.add(user)
            db.flush()
            if body.role == Role.TEACHER:
                db.add(Teacher(user_id=user.id, institution_id=institution_id, specialization=body.specialization))
            elif body.role == Role.STUDENT:
                db.add(Student(user_id=user.id, institution_id=institution_id, enrollment_year=body.enrollment_year))
    except IntegrityError as e:
        raise integrity_conflict(e, USER_CONFLICTS, "No se pudo registrar el usuario.")

    logger.info("User %s (%s) registered by %s", user.id, user.role.value, principal.user_id)
    return success_response(data=user_to_dict(user), message="Usuario registrado")


@router.get("/users")
async def list_users(
    principal: Principal = Depends(require_capability(EntityKind.USER)),
    db: Session = Depends(get_db),
):
    users = db.scalars(select(User).order_by(User.created_at.desc(), User.id.desc())).all()
    return success_response(data=[user_to_dict(u) for u in users])


@router.put("/users/{user_id}")
async def update_user(
    user_id: int,
    body: UserUpdate,
    principal: Principal = Depends(require_capability(EntityKind.USER, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    user = _load_managed_user(db, principal, user_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")

    if "role" in data and data["role"] != user.role:
        if principal.role != Role.SUPERADMIN:
            raise AuthorizationError("Solo el superadministrador puede cambiar el rol de un usuario.")
        if data["role"] in PERSONNEL_ROLES or user.role in PERSONNEL_ROLES:
            raise ValidationError("No se puede convertir a un usuario desde o hacia docente/estudiante.")

    password = data.pop("password", None)
    specialization = data.pop("specialization", None)
    enrollment_year = data.pop("enrollment_year", None)

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(user, field, value)
            if password:
                user.password_hash = get_password_hash(password)
            if specialization is not None and user.teacher is not None:
                user.teacher.specialization = specialization
            if enrollment_year is not None and user.student is not None:
                user.student.enrollment_year = enrollment_year
    except IntegrityError as e:
        raise integrity_conflict(e, USER_CONFLICTS, "No se pudo actualizar el usuario.")

    return success_response(data=user_to_dict(user), message="Usuario actualizado")


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    principal: Principal = Depends(require_capability(EntityKind.USER, Operation.WRITE)),
    db: Session = Depends(get_db),
):
    if user_id == principal.user_id:
        raise ValidationError("No puedes eliminar tu propia cuenta.")
    user = _load_managed_user(db, principal, user_id)

    if user.institution_admin is not None:
        raise DependencyConflictError("asignaciones de institución", 1)
    if user.teacher is not None:
        count = db.scalar(select(func.count()).where(Assignment.teacher_id == user.teacher.id))
        if count:
            raise DependencyConflictError("asignaciones", count)
    if user.student is not None:
        for label, column in (("matrículas", Enrollment.student_id), ("notas", Grade.student_id)):
            count = db.scalar(select(func.count()).where(column == user.student.id))
            if count:
                raise DependencyConflictError(label, count)

    try:
        with atomic(db):
            db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
            if user.teacher is not None:
                db.delete(user.teacher)
            if user.student is not None:
                db.delete(user.student)
            db.flush()
            db.delete(user)
    except IntegrityError:
        raise DependencyConflictError("registros", detail="No se puede eliminar: aún existen dependencias.")

    logger.info("User %s deleted by %s", user_id, principal.user_id)
    return success_response(message="Usuario eliminado")


# ===== PASSWORD RESET =====

@router.post("/forgot-password")
async def forgot_password(body: ForgotPassword, db: Session = Depends(get_db)):
    """
    Issue a single-use reset token. The response is identical whether or not
    the email exists; outside production the link is also returned as
    `previewUrl` when no mail provider is configured.
    """
    user = db.scalar(select(User).where(User.email == body.email))
    if user is None or not user.status:
        return success_response(message=FORGOT_PASSWORD_MESSAGE)

    token, token_hash = generate_reset_token()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES)
    with atomic(db):
        db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
        db.add(PasswordResetToken(user_id=user.id, token_hash=token_hash, expires_at=expires_at))

    reset_link = f"{settings.FRONTEND_URL}?token={token}"
    preview_url = await send_password_reset_email(user.email, user.full_name, reset_link)

    data = {"previewUrl": preview_url} if preview_url and settings.ENVIRONMENT != "production" else None
    return success_response(data=data, message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password")
async def reset_password(body: ResetPassword, db: Session = Depends(get_db)):
    record = db.scalar(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_reset_token(body.token))
    )
    if record is None:
        raise ValidationError("Token inválido o ya utilizado.")

    expires_at = record.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < datetime.now(timezone.utc):
        with atomic(db):
            db.delete(record)
        raise ValidationError("El token ha expirado. Solicita uno nuevo.")

    user = db.get(User, record.user_id)
    if user is None:
        raise NotFoundError("Usuario no encontrado")

    with atomic(db):
        user.password_hash = get_password_hash(body.new_password)
        db.delete(record)

    logger.info("Password reset for user %s", user.id)
    return success_response(message="Contraseña actualizada correctamente")
