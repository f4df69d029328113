import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import sqlalchemy as sa
from jose import JWTError, jwt
from passlib.context import CryptContext

from ..common.config import settings
from ..common.database import AsyncSessionLocal
from ..common.db import utcnow
from ..common.errors import BadRequest, Conflict, NotFound, Unauthorized
from .model import ROLE_CUSTOMER, User
from .schemas import ProfileUpdate, RegisterRequest

_logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({"sub": str(user_id), "exp": expire}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> int:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise Unauthorized("Invalid or expired token", kind="INVALID_TOKEN")


async def register_user(data: RegisterRequest, role: str = ROLE_CUSTOMER) -> User:
    email = data.email.lower()
    async with AsyncSessionLocal() as session:
        async with session.begin():
            existing = await session.execute(sa.select(User.id).where(User.email == email))
            if existing.first():
                raise Conflict("User already exists with this email", kind="USER_EXISTS")
            user = User(
                name=data.name,
                email=email,
                password_hash=hash_password(data.password),
                phone=data.phone,
                role=role,
            )
            session.add(user)
    _logger.info("User registered | user_id=%s role=%s", user.id, role)
    return user


async def authenticate(email: str, password: str) -> User:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.select(User).where(User.email == email.lower()))
            user = res.scalar_one_or_none()
            if user is None or not verify_password(password, user.password_hash):
                raise Unauthorized("Invalid email or password", kind="INVALID_CREDENTIALS")
            if not user.is_active:
                raise Unauthorized("Account is deactivated", kind="ACCOUNT_DEACTIVATED")
            user.last_login = utcnow()
    _logger.info("User logged in | user_id=%s", user.id)
    return user


async def get_user(user_id: int) -> Optional[User]:
    async with AsyncSessionLocal() as session:
        return await session.get(User, user_id)


async def update_profile(user_id: int, data: ProfileUpdate) -> User:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User", user_id)
            for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(user, field, value)
    return user


async def change_password(user_id: int, current_password: str, new_password: str) -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User", user_id)
            if not verify_password(current_password, user.password_hash):
                raise BadRequest("Current password is incorrect", kind="INVALID_CURRENT_PASSWORD")
            user.password_hash = hash_password(new_password)
    _logger.info("Password changed | user_id=%s", user_id)
