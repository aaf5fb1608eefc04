"""User data models."""

from pydantic import BaseModel, Field


class User(BaseModel):
    """A signed-in identity known to the identity provider."""

    user_id: str = Field(..., description="Provider-issued user identifier")
    auth_provider: str = Field(..., description="How the session was established")
    created_at: str = Field(..., description="ISO timestamp when user was created")
    last_login: str | None = Field(None, description="ISO timestamp of last login")
    is_active: bool = Field(default=True, description="Whether user account is active")
