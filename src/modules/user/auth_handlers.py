"""Authentication handler for bearer tokens issued by the identity service."""

from fastapi import status
from jose import JWTError, jwt

from src.api.core.constants import JWT_ALGORITHM
from src.api.core.exceptions.base import LedgerException
from src.api.core.messages import MessageCode
from src.core.context import AuthenticatedUserContext
from src.modules.user.jwt_claims import extract_user_data_from_jwt
from src.utils.settings.app import AppSettings
from src.utils.settings.auth import AuthSettings
from src.utils.logger import get_logger

logger = get_logger(__name__)


def handle_jwt_auth(token: str) -> AuthenticatedUserContext:
    auth_settings = AuthSettings()
    try:
        payload = jwt.decode(
            token,
            auth_settings.JWT_SECRET.get_secret_value(),
            algorithms=[JWT_ALGORITHM],
            audience=auth_settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"JWT decoding failed: {e}")
        raise LedgerException(
            MessageCode.INVALID_TOKEN,
            status.HTTP_401_UNAUTHORIZED,
            {"description": "Invalid or expired authentication token"},
        )

    user_data = extract_user_data_from_jwt(payload)
    if not user_data["user_id"] or user_data["role"] == "anon":
        raise LedgerException(
            MessageCode.FORBIDDEN,
            status.HTTP_403_FORBIDDEN,
            {"description": "Anonymous access not permitted"},
        )

    is_admin = (
        user_data["role"] == auth_settings.ADMIN_ROLE
        or user_data["user_id"] in AppSettings().ADMIN_USER_IDS
    )
    return AuthenticatedUserContext(
        user_id=user_data["user_id"],
        email=user_data["email"],
        is_admin=is_admin,
    )
