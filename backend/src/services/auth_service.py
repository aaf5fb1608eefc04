"""Identity provider: custom-token exchange, anonymous sessions and JWTs."""

import logging
import os
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from botocore.exceptions import ClientError
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from models.user import User

logger = logging.getLogger(__name__)


class AuthProvider(str, Enum):
    """Supported ways of establishing a session."""

    CUSTOM_TOKEN = "custom_token"
    ANONYMOUS = "anonymous"


@dataclass
class AuthenticatedUser:
    """Authenticated user data."""

    user_id: str
    provider: AuthProvider
    is_new_user: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "provider": self.provider.value,
            "is_new_user": self.is_new_user,
        }


class AuthenticationError(Exception):
    """Authentication error."""

    pass


class AuthService:
    """Issues and verifies session tokens for the maintenance app."""

    # JWT settings
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRATION_HOURS = 24 * 7  # 7 days
    JWT_REFRESH_EXPIRATION_DAYS = 30
    CUSTOM_TOKEN_EXPIRATION_DAYS = 365

    def __init__(self, user_table, jwt_secret: str | None = None):
        """Initialize auth service.

        Args:
            user_table: DynamoDB table for users
            jwt_secret: Secret for signing JWTs
        """
        self.user_table = user_table
        self.jwt_secret = jwt_secret or os.environ.get(
            "JWT_SECRET_KEY", "dev-secret-change-in-prod"
        )

    # ============================================
    # Custom Token Exchange
    # ============================================

    def create_custom_token(
        self, user_id: str, expires_in_days: int | None = None
    ) -> str:
        """Issue a pre-supplied token that can later be exchanged for a session.

        Args:
            user_id: Identity the token will sign in as
            expires_in_days: Token lifetime, defaults to one year

        Returns:
            Signed JWT string
        """
        now = datetime.now(UTC)
        days = expires_in_days or self.CUSTOM_TOKEN_EXPIRATION_DAYS
        payload = {
            "sub": user_id,
            "type": "custom",
            "iat": now,
            "exp": now + timedelta(days=days),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=self.JWT_ALGORITHM)

    def exchange_custom_token(self, token: str) -> AuthenticatedUser:
        """Verify a custom token and create or update its user.

        Args:
            token: Pre-issued custom token

        Returns:
            AuthenticatedUser with session info

        Raises:
            AuthenticationError: If token is invalid
        """
        user_id = self._decode(token, expected_type="custom", label="custom token")

        existing_user = self._get_user(user_id)
        if existing_user is None:
            self._create_user(user_id, AuthProvider.CUSTOM_TOKEN)
            return AuthenticatedUser(
                user_id=user_id, provider=AuthProvider.CUSTOM_TOKEN, is_new_user=True
            )

        if not existing_user.is_active:
            raise AuthenticationError("User not found or inactive")

        self._update_user_login(user_id)
        return AuthenticatedUser(user_id=user_id, provider=AuthProvider.CUSTOM_TOKEN)

    # ============================================
    # Anonymous Authentication
    # ============================================

    def create_anonymous_session(self) -> AuthenticatedUser:
        """Create a brand-new anonymous user.

        Every call yields a new identity.
        """
        user_id = uuid.uuid4().hex
        self._create_user(user_id, AuthProvider.ANONYMOUS)
        return AuthenticatedUser(
            user_id=user_id, provider=AuthProvider.ANONYMOUS, is_new_user=True
        )

    # ============================================
    # JWT Session Management
    # ============================================

    def create_session_tokens(self, user_id: str) -> dict[str, str]:
        """Create access and refresh tokens for a user.

        Args:
            user_id: User ID

        Returns:
            Dict with access_token and refresh_token
        """
        now = datetime.now(UTC)

        access_payload = {
            "sub": user_id,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(hours=self.JWT_EXPIRATION_HOURS),
        }
        access_token = jwt.encode(
            access_payload, self.jwt_secret, algorithm=self.JWT_ALGORITHM
        )

        refresh_payload = {
            "sub": user_id,
            "type": "refresh",
            "iat": now,
            "exp": now + timedelta(days=self.JWT_REFRESH_EXPIRATION_DAYS),
        }
        refresh_token = jwt.encode(
            refresh_payload, self.jwt_secret, algorithm=self.JWT_ALGORITHM
        )

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "Bearer",
            "expires_in": self.JWT_EXPIRATION_HOURS * 3600,
        }

    def verify_access_token(self, token: str) -> str:
        """Verify an access token and return the user ID.

        Raises:
            AuthenticationError: If token is invalid
        """
        return self._decode(token, expected_type="access", label="token")

    def refresh_tokens(self, refresh_token: str) -> dict[str, str]:
        """Refresh access and refresh tokens.

        Raises:
            AuthenticationError: If refresh token is invalid
        """
        user_id = self._decode(
            refresh_token, expected_type="refresh", label="refresh token"
        )

        user = self._get_user(user_id)
        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        return self.create_session_tokens(user_id)

    def _decode(self, token: str, expected_type: str, label: str) -> str:
        """Decode one of our own JWTs and return its subject."""
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.JWT_ALGORITHM],
                options={"verify_exp": True},
            )
        except ExpiredSignatureError:
            raise AuthenticationError(f"{label.capitalize()} has expired")
        except JWTError as e:
            raise AuthenticationError(f"Invalid {label}: {str(e)}")

        if payload.get("type") != expected_type:
            raise AuthenticationError("Invalid token type")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Missing user ID in token")

        return user_id

    # ============================================
    # User Management
    # ============================================

    def _get_user(self, user_id: str) -> User | None:
        """Get user by ID."""
        try:
            response = self.user_table.get_item(Key={"user_id": user_id})
            item = response.get("Item")
            if not item:
                return None
            return User(**item)
        except ClientError as e:
            logger.error("Failed to load user %s: %s", user_id, e)
            raise AuthenticationError(f"Failed to load user: {str(e)}")

    def _create_user(self, user_id: str, provider: AuthProvider) -> User:
        """Create a new user."""
        now = datetime.now(UTC).isoformat()
        user = User(
            user_id=user_id,
            auth_provider=provider.value,
            created_at=now,
            last_login=now,
            is_active=True,
        )

        try:
            self.user_table.put_item(Item=user.model_dump())
            return user
        except ClientError as e:
            raise AuthenticationError(f"Failed to create user: {str(e)}")

    def _update_user_login(self, user_id: str) -> None:
        """Stamp the last login time."""
        try:
            self.user_table.update_item(
                Key={"user_id": user_id},
                UpdateExpression="SET last_login = :now",
                ExpressionAttributeValues={":now": datetime.now(UTC).isoformat()},
            )
        except ClientError as e:
            raise AuthenticationError(f"Failed to update user: {str(e)}")

