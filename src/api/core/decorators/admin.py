from functools import wraps

from fastapi import Request, status

from src.api.core.exceptions.base import LedgerException
from src.api.core.messages import MessageCode
from src.utils.logger import get_logger

logger = get_logger(__name__)


def admin():
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            # Find request in args/kwargs
            request = None

            for arg in args:
                if isinstance(arg, Request):
                    request = arg
                    break

            for value in kwargs.values():
                if isinstance(value, Request):
                    request = value
                    break

            if not request:
                raise LedgerException(
                    MessageCode.AUTH_REQUIRED,
                    status.HTTP_401_UNAUTHORIZED,
                    {"description": "Request object not found"},
                )

            # Set by auth middleware
            user = getattr(request.state, "user", None)

            if not user:
                raise LedgerException(
                    MessageCode.AUTH_REQUIRED,
                    status.HTTP_401_UNAUTHORIZED,
                    {"description": "Authentication required"},
                )

            if not user.is_admin:
                logger.warning(
                    "Unauthorized admin access attempt",
                    user_id=user.user_id,
                    endpoint=request.url.path,
                )
                raise LedgerException(
                    MessageCode.ADMIN_REQUIRED,
                    status.HTTP_403_FORBIDDEN,
                    {"description": "Admin access required"},
                )

            logger.info(
                "Admin access granted",
                user_id=user.user_id,
                endpoint=request.url.path,
            )

            return await func(*args, **kwargs)

        return wrapper

    return decorator
