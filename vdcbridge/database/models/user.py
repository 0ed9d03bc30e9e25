import uuid

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship
from ..database import Base


class User(Base):
    """
    시스템에 로그인하고 리소스에 접근하는 사용자를 나타냅니다.
    사용자는 최대 하나의 조직(Organization)에 소속되며, 하나 이상의 역할(Role)을 가질 수 있습니다.
    """
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False, default="")
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=True, index=True)

    organization = relationship("Organization", back_populates="users")
    role_associations = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    @property
    def role_names(self):
        return [assoc.role.name for assoc in self.role_associations if assoc.role is not None]
