import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship
from ..database import Base


class VM(Base):
    """
    vApp에 속한 가상 머신입니다. 클러스터의 KubeVirt VirtualMachine 리소스
    (namespace/vm_name)와 1:1로 대응하며, status는 그 리소스의 상태를 반영합니다.
    """
    __tablename__ = "vms"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    vapp_id = Column(String(36), ForeignKey("vapps.id"), nullable=False, index=True)
    vm_name = Column(String(253), nullable=False, default="")
    namespace = Column(String(253), nullable=False, default="")
    status = Column(String(32), nullable=False)
    cpu_count = Column(Integer, nullable=True)
    memory_mb = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vapp = relationship("VApp", back_populates="vms")
