import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from jazjo.core.errors import AuthenticationError, AuthorizationError, ValidationError
from jazjo.domain.schemas import Identity, ProfileRecord
from jazjo.interfaces.IAuthProvider import IAuthProvider
from jazjo.interfaces.IProfileRepository import IProfileRepository

logger = logging.getLogger(__name__)

CUSTOMER = "customer"
STAFF = "staff"
ADMIN = "admin"

ANY_ROLE = (CUSTOMER, STAFF, ADMIN)
STAFF_ROLES = (STAFF, ADMIN)
ADMIN_ONLY = (ADMIN,)


def bearer_token(header_value: Optional[str]) -> str:
    header = header_value or ""
    if not header.lower().startswith("bearer "):
        return ""
    return header[7:].strip()


@dataclass
class AuthContext:
    identity: Identity
    profile: ProfileRecord
    token: str


class AccessGate:
    """Resolves bearer tokens to profiles and checks roles."""

    def __init__(self, auth: IAuthProvider, profiles: IProfileRepository):
        self.auth = auth
        self.profiles = profiles

    def authenticate(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("Missing bearer token")
        return self.auth.get_user(token)

    def authorize(self, identity: Identity, allowed_roles: Iterable[str] = ()) -> ProfileRecord:
        allowed = set(allowed_roles)
        profile = self.profiles.find_by_user_id(identity.user_id)
        if profile is None:
            logger.warning("Authenticated user %s has no profile", identity.user_id)
            raise AuthorizationError("Forbidden")
        if allowed and profile.role not in allowed:
            logger.info("User %s with role %s denied (needs one of %s)",
                        identity.user_id, profile.role, sorted(allowed))
            raise AuthorizationError("Forbidden")
        return profile

    def require(self, authorization_header: Optional[str], allowed_roles: Iterable[str] = ()) -> AuthContext:
        token = bearer_token(authorization_header)
        identity = self.authenticate(token)
        profile = self.authorize(identity, allowed_roles)
        return AuthContext(identity=identity, profile=profile, token=token)

    def login(self, email: str, password: str) -> dict:
        email = (email or "").strip().lower()
        password = password or ""
        if not email or not password:
            raise ValidationError("email and password are required")

        session = self.auth.password_login(email, password)
        profile = self.profiles.find_by_email(email)
        if profile is None:
            raise AuthorizationError("Profile not found for this user.")
        return {
            "user": {
                "email": profile.email,
                "role": profile.role,
                "full_name": profile.full_name or "",
            },
            "session": {
                "access_token": session.access_token,
                "refresh_token": session.refresh_token,
                "expires_in": session.expires_in,
            },
        }
