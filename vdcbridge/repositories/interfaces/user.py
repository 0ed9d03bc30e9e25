from abc import ABC, abstractmethod
from typing import Optional
from vdcbridge.database import models

class IUserRepository(ABC):
    @abstractmethod
    def create(self, user_model: models.User) -> models.User:
        """새로운 사용자를 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[models.User]:
        """고유 ID로 특정 사용자를 조회합니다. 역할 정보도 함께 읽어옵니다."""
        pass

    @abstractmethod
    def assign_role(self, user: models.User, role_name: str) -> bool:
        """
        사용자에게 내장 역할을 부여합니다.

        Returns:
            역할이 존재하여 부여되었으면 True, 해당 이름의 역할이 없으면 False.
        """
        pass
