import logging
from typing import Any, Dict, Optional

from vdcbridge.database import models
from vdcbridge.repositories.interfaces import (
    ICatalogRepository,
    IOrganizationRepository,
    IVAppRepository,
    IVDCRepository,
)
from vdcbridge.services.access_service import AccessService
from vdcbridge.services.exceptions import (
    ClusterError,
    NameConflictError,
    NotFoundError,
    ResourceConflictError,
    ResourceNotEmptyError,
    ValidationError,
)
from vdcbridge.services.namespace_service import NamespaceService
from vdcbridge.utils import urn
from vdcbridge.utils.k8s_names import namespace_candidates

LOGGER = logging.getLogger(__name__)

# 생성 이후 변경할 수 있는 VDC 속성
UPDATABLE_FIELDS = (
    "name", "description", "allocation_model",
    "cpu_allocated", "cpu_limit", "cpu_units",
    "memory_allocated", "memory_limit", "memory_units",
    "nic_quota", "network_quota", "is_thin_provision", "is_enabled",
)

VDC_DEFAULTS = {
    "cpu_allocated": 0,
    "cpu_limit": 0,
    "cpu_units": "MHz",
    "memory_allocated": 0,
    "memory_limit": 0,
    "memory_units": "MB",
    "nic_quota": 100,
    "network_quota": 50,
    "is_thin_provision": False,
    "is_enabled": True,
}

_STRING_FIELDS = ("name", "description", "allocation_model", "cpu_units", "memory_units")
_BOOLEAN_FIELDS = ("is_thin_provision", "is_enabled")
_INTEGER_FIELDS = (
    "cpu_allocated", "cpu_limit", "memory_allocated", "memory_limit", "nic_quota", "network_quota",
)


def vdc_to_dict(vdc: models.VDC) -> Dict[str, Any]:
    return {
        "id": urn.encode(urn.VDC, vdc.id),
        "name": vdc.name,
        "description": vdc.description,
        "org": urn.encode(urn.ORG, vdc.organization_id),
        "allocationModel": vdc.allocation_model,
        "computeCapacity": {
            "cpu": {"allocated": vdc.cpu_allocated, "limit": vdc.cpu_limit, "units": vdc.cpu_units},
            "memory": {"allocated": vdc.memory_allocated, "limit": vdc.memory_limit, "units": vdc.memory_units},
        },
        "nicQuota": vdc.nic_quota,
        "networkQuota": vdc.network_quota,
        "isThinProvision": vdc.is_thin_provision,
        "isEnabled": vdc.is_enabled,
        "namespace": vdc.namespace,
    }


class TenancyService:
    """System Administrator 전용 조직/VDC 관리 작업. VDC 변경은 항상 네임스페이스 ensure로 이어집니다."""

    def __init__(self, access: AccessService, org_repo: IOrganizationRepository,
                 vdc_repo: IVDCRepository, vapp_repo: IVAppRepository,
                 catalog_repo: ICatalogRepository, namespaces: NamespaceService):
        self.access = access
        self.org_repo = org_repo
        self.vdc_repo = vdc_repo
        self.vapp_repo = vapp_repo
        self.catalog_repo = catalog_repo
        self.namespaces = namespaces

    @property
    def cluster_enabled(self) -> bool:
        return self.namespaces.cluster is not None

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    def _get_org(self, org_handle: str) -> models.Organization:
        org = self.org_repo.find_by_id(urn.decode_as(org_handle, urn.ORG))
        if not org:
            raise NotFoundError("org not found.")
        return org

    def _get_vdc(self, vdc_handle: str, org_handle: Optional[str] = None) -> models.VDC:
        vdc = self.vdc_repo.find_by_id(urn.decode_as(vdc_handle, urn.VDC))
        if not vdc:
            raise NotFoundError("vdc not found.")
        if org_handle is not None and vdc.organization_id != urn.decode_as(org_handle, urn.ORG):
            raise NotFoundError("vdc not found.")
        return vdc

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    @staticmethod
    def _validate_attrs(attrs: Dict[str, Any]):
        for field in _STRING_FIELDS:
            value = attrs.get(field)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"'{field}' must be a string.")
        for field in _BOOLEAN_FIELDS:
            if field in attrs and not isinstance(attrs[field], bool):
                raise ValidationError(f"'{field}' must be a boolean.")
        if "name" in attrs and not (attrs["name"] or "").strip():
            raise ValidationError("VDC name is required.")
        if "allocation_model" in attrs and not models.AllocationModel.is_valid(attrs["allocation_model"]):
            raise ValidationError(
                f"Invalid allocation model '{attrs['allocation_model']}'.",
                detail="Expected one of PayAsYouGo, AllocationPool, ReservationPool, Flex.",
            )
        for field in _INTEGER_FIELDS:
            value = attrs.get(field)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
                raise ValidationError(f"'{field}' must be a non-negative integer.")

    def _generate_namespace(self, org: models.Organization, vdc_name: str) -> str:
        for candidate in namespace_candidates(org.name, vdc_name):
            if not self.vdc_repo.namespace_exists(candidate):
                return candidate
        raise NameConflictError(
            f"Unable to generate a unique namespace for org '{org.name}' and VDC '{vdc_name}'."
        )

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def create_vdc(self, caller_id: str, org_handle: str, name: str,
                   allocation_model: str = models.AllocationModel.PAY_AS_YOU_GO.value,
                   **attrs) -> models.VDC:
        """
        조직에 새 VDC를 만들고 네임스페이스를 프로비저닝합니다.

        네임스페이스 이름은 'vdc-<org>-<vdc>'이며 충돌 시 '-1'부터 '-999'까지 접미사를 붙입니다.
        클러스터 프로비저닝이 실패하면 방금 만든 VDC 기록을 삭제하고 원래 오류를 다시 발생시킵니다.

        Raises:
            AccessDeniedError: 호출자가 System Administrator가 아닐 때.
            ValidationError: 이름이나 할당 모델, 용량 값이 유효하지 않을 때.
            NameConflictError: 고유한 네임스페이스 이름을 만들 수 없을 때.
        """
        self.access.require_system_admin(caller_id)
        org = self._get_org(org_handle)

        unknown = set(attrs) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown VDC attribute(s): {', '.join(sorted(unknown))}.")
        values = dict(VDC_DEFAULTS)
        values.update(attrs, name=name, allocation_model=allocation_model)
        self._validate_attrs(values)

        description = values.pop("description", "") or ""
        vdc = models.VDC(
            organization_id=org.id,
            namespace=self._generate_namespace(org, name),
            description=description,
            **values,
        )
        vdc = self.vdc_repo.create(vdc)
        LOGGER.info("VDC created", extra={"vdc_id": vdc.id, "namespace": vdc.namespace})

        if self.cluster_enabled:
            try:
                self.namespaces.ensure(vdc, org)
            except ClusterError:
                try:
                    self.vdc_repo.delete(vdc)
                except Exception:
                    LOGGER.exception("Failed to delete VDC record after provisioning failure",
                                     extra={"vdc_id": vdc.id})
                raise
        return vdc

    def update_vdc(self, caller_id: str, vdc_handle: str, org_handle: Optional[str] = None,
                   **attrs) -> models.VDC:
        """VDC 속성을 변경하고 네임스페이스를 다시 ensure합니다. namespace는 변경할 수 없습니다."""
        self.access.require_system_admin(caller_id)
        vdc = self._get_vdc(vdc_handle, org_handle)

        if "namespace" in attrs:
            raise ValidationError("The namespace binding of a VDC is immutable.")
        unknown = set(attrs) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown VDC attribute(s): {', '.join(sorted(unknown))}.")
        self._validate_attrs(attrs)

        for field, value in attrs.items():
            setattr(vdc, field, value)
        vdc = self.vdc_repo.update(vdc)

        if self.cluster_enabled:
            org = self.org_repo.find_by_id(vdc.organization_id)
            self.namespaces.ensure(vdc, org)
        return vdc

    def delete_vdc(self, caller_id: str, vdc_handle: str, org_handle: Optional[str] = None) -> bool:
        """
        VDC를 삭제합니다. vApp이 남아있으면 삭제하지 않습니다. (cascade 금지)

        Raises:
            ResourceNotEmptyError: VDC에 vApp이 하나 이상 남아있을 때.
        """
        self.access.require_system_admin(caller_id)
        vdc = self._get_vdc(vdc_handle, org_handle)

        vapp_count = self.vapp_repo.count_by_vdc(vdc.id)
        if vapp_count > 0:
            raise ResourceNotEmptyError(f"VDC still contains {vapp_count} vApp(s).")

        if self.cluster_enabled:
            self.namespaces.teardown(vdc)
        self.vdc_repo.delete(vdc)
        LOGGER.info("VDC deleted", extra={"vdc_id": vdc.id, "namespace": vdc.namespace})
        return True

    def delete_organization(self, caller_id: str, org_handle: str) -> bool:
        """
        조직을 삭제합니다. 프로바이더 조직이거나 VDC/카탈로그가 남아있으면 삭제하지 않습니다.
        """
        self.access.require_system_admin(caller_id)
        org = self._get_org(org_handle)

        if org.is_provider:
            raise ResourceConflictError("The provider organization cannot be deleted.")
        if self.vdc_repo.count_by_org(org.id) > 0:
            raise ResourceNotEmptyError("Organization still contains VDCs.")
        if self.catalog_repo.count_by_org(org.id) > 0:
            raise ResourceNotEmptyError("Organization still contains catalogs.")

        self.org_repo.delete(org)
        LOGGER.info("Organization deleted", extra={"org_id": org.id})
        return True
