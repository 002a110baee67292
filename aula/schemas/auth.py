"""
Pydantic schemas for authentication and user management.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from aula.models import Role


class UserLogin(BaseModel):
    email: str
    password: str


class UserRegister(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str = Field(min_length=6)
    role: Role
    # profile data for the Teacher / Student row created alongside the user
    institution_id: Optional[int] = None
    specialization: Optional[str] = None
    enrollment_year: Optional[int] = None


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)
    role: Optional[Role] = None
    status: Optional[bool] = None
    specialization: Optional[str] = None
    enrollment_year: Optional[int] = None


class ForgotPassword(BaseModel):
    email: str


class ResetPassword(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    new_password: str = Field(alias="newPassword", min_length=6)
