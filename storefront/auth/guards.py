import logging
from functools import wraps

from quart import g, request

from ..common.errors import Forbidden, Unauthorized
from .model import User
from .service import decode_token, get_user

_logger = logging.getLogger(__name__)


async def _user_from_request() -> User:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Access token required", kind="TOKEN_REQUIRED")
    user = await get_user(decode_token(token.strip()))
    if user is None or not user.is_active:
        raise Unauthorized("Invalid or expired token", kind="INVALID_TOKEN")
    return user


def require_user(func):
    """Resolve the bearer token to ``g.user`` or fail with 401."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        g.user = await _user_from_request()
        return await func(*args, **kwargs)

    return wrapper


def require_admin(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        user = await _user_from_request()
        if not user.is_admin:
            raise Forbidden("Admin access required")
        g.user = user
        return await func(*args, **kwargs)

    return wrapper


def optional_user(func):
    """Like ``require_user`` but lets anonymous callers through with ``g.user = None``.

    A token that does not resolve is ignored rather than rejected.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        g.user = None
        if request.headers.get("Authorization"):
            try:
                g.user = await _user_from_request()
            except Unauthorized as e:
                _logger.info("Ignoring unusable token | kind=%s", e.kind)
        return await func(*args, **kwargs)

    return wrapper
