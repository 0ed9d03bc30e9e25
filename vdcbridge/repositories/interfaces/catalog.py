from abc import ABC, abstractmethod
from typing import List, Optional
from vdcbridge.database import models

class ICatalogRepository(ABC):
    @abstractmethod
    def create(self, catalog_model: models.Catalog) -> models.Catalog:
        """새로운 카탈로그를 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, catalog_id: str) -> Optional[models.Catalog]:
        """고유 ID로 특정 카탈로그를 조회합니다."""
        pass

    @abstractmethod
    def list_accessible(self, org_id: Optional[str]) -> List[models.Catalog]:
        """조직이 소유한 카탈로그와 공개(published) 카탈로그 목록을 조회합니다. org_id가 None이면 전체를 반환합니다."""
        pass

    @abstractmethod
    def count_accessible(self, org_id: Optional[str]) -> int:
        """list_accessible 결과의 개수를 조회합니다."""
        pass

    @abstractmethod
    def count_by_org(self, org_id: str) -> int:
        """특정 조직이 소유한 카탈로그의 개수를 조회합니다."""
        pass
