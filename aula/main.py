"""
Aula: Multi-Tenant Academic Management Backend
FastAPI entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from aula.core.config import settings
from aula.core.database import Base, engine
from aula.core.middleware import RequestLoggingMiddleware
from aula.routers import (
    academic_periods,
    admission_processes,
    assignments,
    auth,
    courses,
    enrollments,
    faculties,
    institution_admins,
    institutions,
    personnel,
    plans,
    programs,
    student,
    teacher,
)
from aula.utils.response import error_response

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO), format=LOG_FORMAT)
logger = logging.getLogger("aula")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("%s started (environment=%s, auth_mode=%s)", settings.APP_NAME, settings.ENVIRONMENT, settings.AUTH_MODE)
    yield
    engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-Tenant Academic Management Backend",
    version="1.0.0",
    debug=settings.ENVIRONMENT != "production",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID + access log
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(message=str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", []) if p != "body")
    message = f"Dato inválido o faltante: {field}" if field else "Solicitud inválida"
    return JSONResponse(status_code=400, content=error_response(message=message, data=errors))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_response(message="Internal server error"))


# Include routers
app.include_router(auth.router)
app.include_router(institutions.router)
app.include_router(institution_admins.router)
app.include_router(faculties.router)
app.include_router(plans.router)
app.include_router(programs.router)
app.include_router(courses.router)
app.include_router(academic_periods.router)
app.include_router(admission_processes.router)
app.include_router(enrollments.router)
app.include_router(assignments.router)
app.include_router(personnel.router)
app.include_router(teacher.router)
app.include_router(student.router)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "status": "running",
        "auth_mode": settings.AUTH_MODE,
    }


@app.get("/api/health")
async def health():
    return {"status": "healthy", "auth_mode": settings.AUTH_MODE}
