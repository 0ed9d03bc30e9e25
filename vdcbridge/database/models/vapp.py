import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import relationship
from ..database import Base


class VApp(Base):
    """
    하나의 VDC에 속하는 가상 애플리케이션(vApp)입니다. VDC 안에서 이름이 유일합니다.
    템플릿 인스턴스화로 생성된 경우 원본 카탈로그 항목 URN과 클러스터의
    TemplateInstance 이름을 별도 컬럼에 기록합니다.
    """
    __tablename__ = "vapps"
    __table_args__ = (UniqueConstraint("vdc_id", "name", name="uq_vapp_vdc_name"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(63), nullable=False)
    vdc_id = Column(String(36), ForeignKey("vdcs.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    description = Column(String, nullable=False, default="")
    template_id = Column(String(36), nullable=True)
    source_catalog_item = Column(String, nullable=True)
    cluster_instance_ref = Column(String(253), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vdc = relationship("VDC", back_populates="vapps")
    vms = relationship("VM", back_populates="vapp")
