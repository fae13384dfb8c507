"""Authentication context model for typed user authentication."""

from dataclasses import dataclass


@dataclass
class AuthenticatedUserContext:
    """Identity asserted by the auth token for the current request."""

    user_id: str
    email: str | None = None
    is_admin: bool = False

    def __post_init__(self):
        """Ensure all required fields are present and valid."""
        if not self.user_id:
            raise ValueError("User id is required in authentication context")
