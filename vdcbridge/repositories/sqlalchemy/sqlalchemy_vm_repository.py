from typing import List, Optional
from sqlalchemy.orm import Session
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IVMRepository

class SqlalchemyVMRepository(IVMRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, vm_model: models.VM) -> models.VM:
        self.db.add(vm_model)
        self.db.commit()
        self.db.refresh(vm_model)
        return vm_model

    def find_by_id(self, vm_id: str) -> Optional[models.VM]:
        return self.db.query(models.VM).filter(models.VM.id == vm_id).first()

    def list_by_vapp(self, vapp_id: str) -> List[models.VM]:
        return self.db.query(models.VM).filter(models.VM.vapp_id == vapp_id).order_by(models.VM.name.asc()).all()

    def update_status(self, vm: models.VM, status: str) -> models.VM:
        vm.status = status
        self.db.commit()
        self.db.refresh(vm)
        return vm
