from typing import Optional
from sqlalchemy.orm import Session, joinedload
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IUserRepository

class SqlalchemyUserRepository(IUserRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, user_model: models.User) -> models.User:
        self.db.add(user_model)
        self.db.commit()
        self.db.refresh(user_model)
        return user_model

    def find_by_id(self, user_id: str) -> Optional[models.User]:
        return self.db.query(models.User).options(
            joinedload(models.User.role_associations).joinedload(models.UserRole.role)
        ).filter(models.User.id == user_id).first()

    def assign_role(self, user: models.User, role_name: str) -> bool:
        role = self.db.query(models.Role).filter(models.Role.name == role_name).first()
        if not role:
            return False
        association = models.UserRole(user_id=user.id, role_id=role.id)
        self.db.merge(association) # 이미 부여된 역할이면 무시됩니다.
        self.db.commit()
        self.db.refresh(user)
        return True
