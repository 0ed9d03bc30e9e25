from abc import ABC, abstractmethod
from typing import List, Optional
from vdcbridge.database import models

class IVAppRepository(ABC):
    @abstractmethod
    def create(self, vapp_model: models.VApp) -> models.VApp:
        """
        새로운 vApp을 데이터베이스에 생성합니다.

        Raises:
            NameConflictError: 같은 VDC 안에 같은 이름의 vApp이 이미 있을 때. (DB 유일성 제약)
        """
        pass

    @abstractmethod
    def find_by_id(self, vapp_id: str) -> Optional[models.VApp]:
        """고유 ID로 특정 vApp을 조회합니다."""
        pass

    @abstractmethod
    def exists_by_name_in_vdc(self, vdc_id: str, name: str) -> bool:
        """VDC 안에 같은 이름의 vApp이 있는지 확인합니다."""
        pass

    @abstractmethod
    def list_by_vdc(self, vdc_id: str) -> List[models.VApp]:
        """특정 VDC에 속한 vApp 목록을 이름 순으로 조회합니다."""
        pass

    @abstractmethod
    def count_by_vdc(self, vdc_id: str) -> int:
        """특정 VDC에 속한 vApp의 개수를 조회합니다."""
        pass

    @abstractmethod
    def update(self, vapp: models.VApp) -> models.VApp:
        """변경된 vApp 속성(상태, 클러스터 참조 등)을 저장합니다."""
        pass

    @abstractmethod
    def delete_with_vms(self, vapp: models.VApp, force: bool = False) -> int:
        """
        vApp과 그에 속한 모든 VM을 하나의 트랜잭션으로 삭제합니다.
        실행 중인 VM 검사도 같은 트랜잭션 안에서 수행합니다.

        Returns:
            함께 삭제된 VM의 개수.

        Raises:
            RunningVMsPresentError: force가 아닌데 실행 중인 VM이 있을 때. (아무것도 삭제되지 않음)
        """
        pass
