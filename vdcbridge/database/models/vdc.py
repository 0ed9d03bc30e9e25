import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship
from ..database import Base


class AllocationModel(str, enum.Enum):
    PAY_AS_YOU_GO = "PayAsYouGo"
    ALLOCATION_POOL = "AllocationPool"
    RESERVATION_POOL = "ReservationPool"
    FLEX = "Flex"

    @classmethod
    def is_valid(cls, value) -> bool:
        return value in {member.value for member in cls}


class VDC(Base):
    """
    조직 내의 컴퓨트/스토리지 할당 경계인 가상 데이터센터(Virtual Datacenter)입니다.
    각 VDC는 정확히 하나의 쿠버네티스 네임스페이스로 구현되며, namespace 값은
    생성 시 한 번 할당된 뒤 변경되지 않습니다 (전체 VDC에서 유일).
    """
    __tablename__ = "vdcs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(String, nullable=False, default="")
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    allocation_model = Column(String(20), nullable=False, default=AllocationModel.PAY_AS_YOU_GO.value)

    # Compute capacity
    cpu_allocated = Column(Integer, nullable=False, default=0)
    cpu_limit = Column(Integer, nullable=False, default=0)
    cpu_units = Column(String(16), nullable=False, default="MHz")
    memory_allocated = Column(Integer, nullable=False, default=0)
    memory_limit = Column(Integer, nullable=False, default=0)  # MB
    memory_units = Column(String(16), nullable=False, default="MB")

    nic_quota = Column(Integer, nullable=False, default=100)
    network_quota = Column(Integer, nullable=False, default=50)
    is_thin_provision = Column(Boolean, nullable=False, default=False)
    is_enabled = Column(Boolean, nullable=False, default=True)

    namespace = Column(String(253), unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization", back_populates="vdcs")
    vapps = relationship("VApp", back_populates="vdc")
