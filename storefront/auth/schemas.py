import re
from typing import Annotated, Optional

from pydantic import BaseModel, EmailStr, StringConstraints, field_validator

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\+?[0-9][0-9 \-]{6,19}$")]

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def check_password_strength(value: str) -> str:
    if len(value) < 6:
        raise ValueError("Password must be at least 6 characters long")
    if not _PASSWORD_RULE.match(value):
        raise ValueError("Password must contain at least one lowercase letter, one uppercase letter, and one number")
    return value


class RegisterRequest(BaseModel):
    name: Name
    email: EmailStr
    password: str
    phone: Optional[Phone] = None

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: Annotated[str, StringConstraints(min_length=1)]


class ProfileUpdate(BaseModel):
    name: Optional[Name] = None
    phone: Optional[Phone] = None


class ChangePasswordRequest(BaseModel):
    currentPassword: Annotated[str, StringConstraints(min_length=1)]
    newPassword: str

    @field_validator("newPassword")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return check_password_strength(value)
