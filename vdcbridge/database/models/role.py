import uuid

from sqlalchemy import Column, String
from ..database import Base

SYSTEM_ADMIN_ROLE = "System Administrator"
ORG_ADMIN_ROLE = "Organization Administrator"
VAPP_USER_ROLE = "vApp User"

BUILTIN_ROLES = (SYSTEM_ADMIN_ROLE, ORG_ADMIN_ROLE, VAPP_USER_ROLE)


class Role(Base):
    """
    사용자가 가질 수 있는 권한의 집합을 정의합니다.
    (예: 'System Administrator', 'vApp User').
    System Administrator 역할은 조직 경계를 넘어 모든 리소스에 접근할 수 있습니다.
    """
    __tablename__ = "roles"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), unique=True, nullable=False)
