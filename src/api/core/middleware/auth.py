import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse

from src.api.core.constants import SKIP_AUTH_PATHS
from src.api.core.exceptions.base import LedgerException
from src.api.core.messages import MessageCode
from src.modules.user.auth_handlers import handle_jwt_auth
from src.utils.path_helpers import path_matches

logger = structlog.get_logger(__name__)


async def auth_middleware(request: Request, call_next):
    """Resolve the bearer token into ``request.state.user``.

    Errors are returned as responses here since exception handlers do not
    wrap http middleware.
    """
    if request.method == "OPTIONS" or path_matches(request.url.path, SKIP_AUTH_PATHS):
        logger.debug("Skipping auth for path", path=request.url.path)
        request.state.user = None
        return await call_next(request)

    authorization = request.headers.get("Authorization", "")
    try:
        if not authorization:
            raise LedgerException(
                MessageCode.AUTH_REQUIRED,
                status.HTTP_401_UNAUTHORIZED,
                {"description": "Provide an 'Authorization: Bearer <token>' header"},
            )

        auth_parts = authorization.split(" ")
        if len(auth_parts) != 2 or auth_parts[0].lower() != "bearer":
            raise LedgerException(
                MessageCode.INVALID_TOKEN,
                status.HTTP_401_UNAUTHORIZED,
                {"description": "Authorization header must be 'Bearer <token>'"},
            )

        request.state.user = handle_jwt_auth(auth_parts[1])
    except LedgerException as e:
        logger.debug(
            "Authentication rejected",
            path=request.url.path,
            message_code=e.message_code.value,
        )
        return JSONResponse(status_code=e.status_code, content=e.to_response_dict())

    structlog.contextvars.bind_contextvars(user_id=request.state.user.user_id)
    return await call_next(request)
