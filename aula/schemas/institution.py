"""
Pydantic schemas for institutions and their administrators.
"""

from pydantic import BaseModel
from typing import Optional


class InstitutionCreate(BaseModel):
    name: str
    code: str
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class InstitutionUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[bool] = None


class AdminAssign(BaseModel):
    user_id: int
    institution_id: int
