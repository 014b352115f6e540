from abc import ABC, abstractmethod

from jazjo.domain.schemas import AuthSession, Identity


class IAuthProvider(ABC):
    @abstractmethod
    def password_login(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    def get_user(self, access_token: str) -> Identity:
        """Raises AuthenticationError for a missing, invalid or expired token."""
        pass
