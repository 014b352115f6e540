from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from jazjo.domain.schemas import ProfileRecord


class IProfileRepository(ABC):
    @abstractmethod
    def find_by_user_id(self, user_id: str) -> Optional[ProfileRecord]:
        pass

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[ProfileRecord]:
        pass

    @abstractmethod
    def list_all(self) -> List[ProfileRecord]:
        pass

    @abstractmethod
    def update(self, user_id: str, patch: Dict[str, str]) -> Optional[ProfileRecord]:
        pass
