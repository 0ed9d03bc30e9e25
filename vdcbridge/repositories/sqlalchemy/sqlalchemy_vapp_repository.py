import logging
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IVAppRepository
from vdcbridge.services import lifecycle
from vdcbridge.services.exceptions import NameConflictError, VdcBridgeError

LOGGER = logging.getLogger(__name__)

class SqlalchemyVAppRepository(IVAppRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, vapp_model: models.VApp) -> models.VApp:
        self.db.add(vapp_model)
        try:
            self.db.commit()
        except IntegrityError as e:
            # 동시 생성 요청은 (vdc_id, name) 유일성 제약에서 한쪽만 성공합니다.
            self.db.rollback()
            raise NameConflictError(
                f"vApp name '{vapp_model.name}' is already in use within the VDC."
            ) from e
        self.db.refresh(vapp_model)
        return vapp_model

    def find_by_id(self, vapp_id: str) -> Optional[models.VApp]:
        return self.db.query(models.VApp).filter(models.VApp.id == vapp_id).first()

    def exists_by_name_in_vdc(self, vdc_id: str, name: str) -> bool:
        return self.db.query(models.VApp.id).filter(
            models.VApp.vdc_id == vdc_id,
            models.VApp.name == name
        ).first() is not None

    def list_by_vdc(self, vdc_id: str) -> List[models.VApp]:
        return self.db.query(models.VApp).filter(models.VApp.vdc_id == vdc_id).order_by(models.VApp.name.asc()).all()

    def count_by_vdc(self, vdc_id: str) -> int:
        return self.db.query(models.VApp).filter(models.VApp.vdc_id == vdc_id).count()

    def update(self, vapp: models.VApp) -> models.VApp:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(vapp)
        return vapp

    def delete_with_vms(self, vapp: models.VApp, force: bool = False) -> int:
        try:
            # VM 상태는 삭제와 같은 트랜잭션 안에서 다시 읽어 검사합니다.
            vms = (
                self.db.query(models.VM)
                .filter(models.VM.vapp_id == vapp.id)
                .populate_existing()
                .with_for_update()
                .all()
            )
            lifecycle.check_vapp_delete([vm.status for vm in vms], force)
            for vm in vms:
                self.db.delete(vm)
            self.db.delete(vapp)
            self.db.commit()
        except VdcBridgeError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            LOGGER.exception("Failed to delete vApp", extra={"vapp_id": vapp.id})
            raise
        return len(vms)
