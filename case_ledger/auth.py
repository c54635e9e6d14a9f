"""
Identity Context
================

Resolves the authenticated actor of a request into an `Identity`
(user id + procedural role). Token issuance and credential storage live
with the identity provider; this module only verifies bearer tokens and
looks the subject up in the actor registry.

Authentication flow:
1. `Authorization: Bearer <jwt>` - subject (`sub` or `user_id` claim) is the user id
2. `X-User-Id` header - trusted upstream gateway / development convenience
3. Inactive or unknown users do not authenticate
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import Role, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated actor. `role` is normally a `Role` but is not trusted to be one."""
    user_id: str
    role: Any
    name: Optional[str] = None
    email: Optional[str] = None
    wallet_address: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def role_value(self) -> str:
        return getattr(self.role, "value", str(self.role))


def coerce_role(value) -> Optional[Role]:
    """Map a raw role value onto `Role`, or None when it is not one."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except (ValueError, TypeError):
        return None


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token"""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None


def identity_from_user(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        role=user.role,
        name=user.name,
        email=user.email,
        wallet_address=user.wallet_address,
    )


class AuthService:
    """Looks actors up in the registry"""

    def __init__(self, db: Session):
        self.db = db

    def get_identity(self, user_id: str) -> Optional[Identity]:
        """Identity for an active user, None otherwise"""
        if not user_id:
            return None
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            return None
        return identity_from_user(user)

    def identity_from_token(self, token: str) -> Optional[Identity]:
        payload = decode_token(token)
        if not payload:
            return None
        user_id = payload.get("sub") or payload.get("user_id")
        return self.get_identity(user_id)

    def authenticate(
        self,
        authorization: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[Identity]:
        """Resolve request credentials; bearer token wins over the user id header."""
        if authorization and authorization.lower().startswith("bearer "):
            token = authorization.split(" ", 1)[1].strip()
            identity = self.identity_from_token(token)
            if identity:
                return identity
            return None

        if user_id:
            identity = self.get_identity(user_id)
            if identity is None:
                logger.warning(f"Unknown or inactive user id in header: {user_id}")
            return identity

        return None


def get_auth_service(db: Session) -> AuthService:
    """Get AuthService instance for a database session"""
    return AuthService(db)
