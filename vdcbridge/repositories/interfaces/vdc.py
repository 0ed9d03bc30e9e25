from abc import ABC, abstractmethod
from typing import List, Optional
from vdcbridge.database import models

class IVDCRepository(ABC):
    @abstractmethod
    def create(self, vdc_model: models.VDC) -> models.VDC:
        """
        새로운 VDC를 데이터베이스에 생성합니다.

        Raises:
            NameConflictError: namespace 값이 다른 VDC와 겹칠 때.
        """
        pass

    @abstractmethod
    def find_by_id(self, vdc_id: str) -> Optional[models.VDC]:
        """고유 ID로 특정 VDC를 조회합니다."""
        pass

    @abstractmethod
    def find_by_namespace(self, namespace: str) -> Optional[models.VDC]:
        """네임스페이스 이름으로 VDC를 조회합니다."""
        pass

    @abstractmethod
    def namespace_exists(self, namespace: str) -> bool:
        """해당 네임스페이스 이름을 이미 사용하는 VDC가 있는지 확인합니다."""
        pass

    @abstractmethod
    def list_all(self) -> List[models.VDC]:
        """모든 VDC의 목록을 조회합니다."""
        pass

    @abstractmethod
    def count_by_org(self, org_id: str) -> int:
        """특정 조직에 속한 VDC의 개수를 조회합니다."""
        pass

    @abstractmethod
    def update(self, vdc: models.VDC) -> models.VDC:
        """변경된 VDC 속성을 저장합니다."""
        pass

    @abstractmethod
    def delete(self, vdc: models.VDC) -> bool:
        """특정 VDC를 데이터베이스에서 삭제합니다."""
        pass
