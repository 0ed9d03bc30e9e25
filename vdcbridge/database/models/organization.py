import uuid

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.orm import relationship
from ..database import Base


class Organization(Base):
    """
    하나의 격리된 테넌트(tenant)를 나타냅니다.
    모든 VDC, 카탈로그, 사용자 멤버십은 이 Organization 모델에 종속됩니다.
    is_provider가 True인 조직은 시스템 전체에 하나만 존재하며 삭제할 수 없습니다.
    """
    __tablename__ = "organizations"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False, default="")
    description = Column(String, nullable=False, default="")
    enabled = Column(Boolean, nullable=False, default=True)
    is_provider = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    # 삭제는 cascade하지 않고, 서비스 계층에서 종속 리소스가 없을 때만 허용합니다.
    vdcs = relationship("VDC", back_populates="organization")
    catalogs = relationship("Catalog", back_populates="organization")
    users = relationship("User", back_populates="organization")
