import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, func
from sqlalchemy.orm import relationship
from ..database import Base


class Catalog(Base):
    """
    조직이 소유하는 템플릿 카탈로그입니다.
    카탈로그 항목(CatalogItem)은 DB에 저장하지 않고, 조회 시점에 클러스터의
    템플릿 목록으로부터 계산됩니다. is_published가 True이면 모든 조직에 공개됩니다.
    """
    __tablename__ = "catalogs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(String, nullable=False, default="")
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    is_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="catalogs")
