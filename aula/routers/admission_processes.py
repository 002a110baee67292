"""
Admission processes router: one admission process per academic period.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aula.core.database import atomic, get_db
from aula.core.exceptions import ConflictError, ValidationError, integrity_conflict
from aula.core.integrity import assert_rebindable, delete_guarded
from aula.core.middleware import get_institution_id
from aula.core.ownership import load_owned
from aula.core.security import EntityKind, Operation, Principal, require_capability
from aula.models import AcademicPeriod, AdmissionProcess, Enrollment
from aula.schemas.academic import AdmissionProcessCreate, AdmissionProcessUpdate
from aula.utils.response import success_response

router = APIRouter(prefix="/api/admission-processes", tags=["Admission Processes"])

PROCESS_CONFLICTS = {
    "academic_period_id": "El periodo académico ya tiene un proceso de admisión.",
}


def process_to_dict(process: AdmissionProcess, enrollments_count: int | None = None) -> dict:
    data = {
        "id": process.id,
        "academic_period_id": process.academic_period_id,
        "academic_period_name": process.academic_period.name,
        "description": process.description,
        "start_date": process.start_date,
        "end_date": process.end_date,
    }
    if enrollments_count is not None:
        data["enrollments_count"] = enrollments_count
    return data


def _check_dates(start_date, end_date) -> None:
    if end_date < start_date:
        raise ValidationError("La fecha de fin no puede ser anterior a la fecha de inicio.")


def _ensure_period_free(db: Session, period_id: int, exclude_id: int | None = None) -> None:
    stmt = select(AdmissionProcess.id).where(AdmissionProcess.academic_period_id == period_id)
    if exclude_id is not None:
        stmt = stmt.where(AdmissionProcess.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise ConflictError(PROCESS_CONFLICTS["academic_period_id"], field="academic_period_id")


@router.get("")
async def list_processes(
    user: Principal = Depends(require_capability(EntityKind.ADMISSION_PROCESS)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    rows = db.execute(
        select(AdmissionProcess, func.count(Enrollment.id))
        .join(AcademicPeriod, AdmissionProcess.academic_period_id == AcademicPeriod.id)
        .outerjoin(Enrollment, Enrollment.admission_process_id == AdmissionProcess.id)
        .where(AcademicPeriod.institution_id == institution_id)
        .group_by(AdmissionProcess.id)
        .order_by(AdmissionProcess.start_date.desc())
    ).all()
    return success_response(data=[process_to_dict(p, count) for p, count in rows])


@router.get("/{process_id}")
async def get_process(
    process_id: int,
    user: Principal = Depends(require_capability(EntityKind.ADMISSION_PROCESS)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    process = load_owned(db, institution_id, EntityKind.ADMISSION_PROCESS, process_id)
    return success_response(data=process_to_dict(process))


@router.post("")
async def create_process(
    body: AdmissionProcessCreate,
    user: Principal = Depends(require_capability(EntityKind.ADMISSION_PROCESS, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    period = load_owned(db, institution_id, EntityKind.ACADEMIC_PERIOD, body.academic_period_id)
    _check_dates(body.start_date, body.end_date)
    _ensure_period_free(db, period.id)

    process = AdmissionProcess(
        academic_period_id=period.id,
        description=body.description or f"Proceso de Admisión {period.name}",
        start_date=body.start_date,
        end_date=body.end_date,
    )
    try:
        with atomic(db):
            db.add(process)
    except IntegrityError as e:
        raise integrity_conflict(e, PROCESS_CONFLICTS, "No se pudo crear el proceso de admisión.")
    return success_response(data=process_to_dict(process), message="Proceso de admisión creado")


@router.put("/{process_id}")
async def update_process(
    process_id: int,
    body: AdmissionProcessUpdate,
    user: Principal = Depends(require_capability(EntityKind.ADMISSION_PROCESS, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    process = load_owned(db, institution_id, EntityKind.ADMISSION_PROCESS, process_id)
    data = body.model_dump(exclude_none=True)
    if not data:
        raise ValidationError("No se enviaron campos para actualizar.")
    if "academic_period_id" in data and data["academic_period_id"] != process.academic_period_id:
        load_owned(db, institution_id, EntityKind.ACADEMIC_PERIOD, data["academic_period_id"])
        assert_rebindable(db, EntityKind.ADMISSION_PROCESS, process, data, ("academic_period_id",))
        _ensure_period_free(db, data["academic_period_id"], exclude_id=process.id)
    _check_dates(data.get("start_date", process.start_date), data.get("end_date", process.end_date))

    try:
        with atomic(db):
            for field, value in data.items():
                setattr(process, field, value)
    except IntegrityError as e:
        raise integrity_conflict(e, PROCESS_CONFLICTS, "No se pudo actualizar el proceso de admisión.")

    db.refresh(process)
    return success_response(data=process_to_dict(process), message="Proceso de admisión actualizado")


@router.delete("/{process_id}")
async def delete_process(
    process_id: int,
    user: Principal = Depends(require_capability(EntityKind.ADMISSION_PROCESS, Operation.WRITE)),
    institution_id: int = Depends(get_institution_id),
    db: Session = Depends(get_db),
):
    process = load_owned(db, institution_id, EntityKind.ADMISSION_PROCESS, process_id)
    delete_guarded(db, EntityKind.ADMISSION_PROCESS, process)
    return success_response(message="Proceso de admisión eliminado")
