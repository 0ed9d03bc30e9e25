from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IVDCRepository
from vdcbridge.services.exceptions import NameConflictError

class SqlalchemyVDCRepository(IVDCRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, vdc_model: models.VDC) -> models.VDC:
        self.db.add(vdc_model)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise NameConflictError(
                f"Namespace '{vdc_model.namespace}' is already bound to another VDC."
            ) from e
        self.db.refresh(vdc_model)
        return vdc_model

    def find_by_id(self, vdc_id: str) -> Optional[models.VDC]:
        return self.db.query(models.VDC).filter(models.VDC.id == vdc_id).first()

    def find_by_namespace(self, namespace: str) -> Optional[models.VDC]:
        return self.db.query(models.VDC).filter(models.VDC.namespace == namespace).first()

    def namespace_exists(self, namespace: str) -> bool:
        return self.db.query(models.VDC.id).filter(models.VDC.namespace == namespace).first() is not None

    def list_all(self) -> List[models.VDC]:
        return self.db.query(models.VDC).order_by(models.VDC.name.asc()).all()

    def count_by_org(self, org_id: str) -> int:
        return self.db.query(models.VDC).filter(models.VDC.organization_id == org_id).count()

    def update(self, vdc: models.VDC) -> models.VDC:
        self.db.commit()
        self.db.refresh(vdc)
        return vdc

    def delete(self, vdc: models.VDC) -> bool:
        if vdc:
            self.db.delete(vdc)
            self.db.commit()
            return True
        return False
