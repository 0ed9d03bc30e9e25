from typing import Optional
from sqlalchemy.orm import Session
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IOrganizationRepository

class SqlalchemyOrganizationRepository(IOrganizationRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, org_model: models.Organization) -> models.Organization:
        self.db.add(org_model)
        self.db.commit()
        self.db.refresh(org_model)
        return org_model

    def find_by_id(self, org_id: str) -> Optional[models.Organization]:
        return self.db.query(models.Organization).filter(models.Organization.id == org_id).first()

    def delete(self, org: models.Organization) -> bool:
        if org:
            self.db.delete(org)
            self.db.commit()
            return True
        return False
