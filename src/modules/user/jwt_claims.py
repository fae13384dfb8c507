def extract_role_from_jwt(payload: dict) -> str | None:
    """Role claim, falling back to the one nested in ``app_metadata``."""
    app_metadata = payload.get("app_metadata") or {}
    return app_metadata.get("role") or payload.get("role")


def extract_user_data_from_jwt(payload: dict) -> dict:
    """Extract the caller's identity from JWT claims."""
    user_metadata = payload.get("user_metadata") or {}

    return {
        "user_id": payload.get("sub", ""),
        "email": payload.get("email") or user_metadata.get("email"),
        "role": extract_role_from_jwt(payload),
    }
