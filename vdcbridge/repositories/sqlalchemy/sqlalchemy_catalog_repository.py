from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import ICatalogRepository

class SqlalchemyCatalogRepository(ICatalogRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, catalog_model: models.Catalog) -> models.Catalog:
        self.db.add(catalog_model)
        self.db.commit()
        self.db.refresh(catalog_model)
        return catalog_model

    def find_by_id(self, catalog_id: str) -> Optional[models.Catalog]:
        return self.db.query(models.Catalog).filter(models.Catalog.id == catalog_id).first()

    def _accessible_query(self, org_id: Optional[str]):
        query = self.db.query(models.Catalog)
        if org_id is not None:
            query = query.filter(or_(
                models.Catalog.organization_id == org_id,
                models.Catalog.is_published.is_(True),
            ))
        return query

    def list_accessible(self, org_id: Optional[str]) -> List[models.Catalog]:
        return self._accessible_query(org_id).order_by(models.Catalog.name.asc()).all()

    def count_accessible(self, org_id: Optional[str]) -> int:
        return self._accessible_query(org_id).count()

    def count_by_org(self, org_id: str) -> int:
        return self.db.query(models.Catalog).filter(models.Catalog.organization_id == org_id).count()

