from abc import ABC, abstractmethod
from typing import Optional
from vdcbridge.database import models

class IOrganizationRepository(ABC):
    @abstractmethod
    def create(self, org_model: models.Organization) -> models.Organization:
        """새로운 조직을 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, org_id: str) -> Optional[models.Organization]:
        """고유 ID로 특정 조직을 조회합니다."""
        pass

    @abstractmethod
    def delete(self, org: models.Organization) -> bool:
        """특정 조직을 데이터베이스에서 삭제합니다. 종속 리소스 검사는 서비스 계층의 책임입니다."""
        pass
