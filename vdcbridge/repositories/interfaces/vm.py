from abc import ABC, abstractmethod
from typing import List, Optional
from vdcbridge.database import models

class IVMRepository(ABC):
    @abstractmethod
    def create(self, vm_model: models.VM) -> models.VM:
        """새로운 VM 정보를 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, vm_id: str) -> Optional[models.VM]:
        """고유 ID로 특정 VM을 조회합니다."""
        pass

    @abstractmethod
    def list_by_vapp(self, vapp_id: str) -> List[models.VM]:
        """특정 vApp에 속한 모든 VM의 목록을 조회합니다."""
        pass

    @abstractmethod
    def update_status(self, vm: models.VM, status: str) -> models.VM:
        """VM의 논리 상태를 변경합니다."""
        pass
