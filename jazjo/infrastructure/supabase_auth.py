import logging

from jazjo.core.errors import AuthenticationError
from jazjo.domain.schemas import AuthSession, Identity
from jazjo.infrastructure.supabase_client import AuthRejected, SupabaseClient
from jazjo.interfaces.IAuthProvider import IAuthProvider

logger = logging.getLogger(__name__)


class SupabaseAuthProvider(IAuthProvider):
    def __init__(self, client: SupabaseClient):
        self.client = client

    def password_login(self, email: str, password: str) -> AuthSession:
        try:
            data = self.client.auth_password_login(email, password)
        except AuthRejected as e:
            logger.info("Login rejected for %s: %s", email, e.message)
            raise AuthenticationError(e.message or "Login failed") from e
        return AuthSession.model_validate(data)

    def get_user(self, access_token: str) -> Identity:
        try:
            data = self.client.auth_user(access_token)
        except AuthRejected as e:
            raise AuthenticationError("Invalid token") from e
        if not data.get("id"):
            raise AuthenticationError("Invalid token")
        return Identity(user_id=str(data["id"]), email=data.get("email"))
