import logging
from typing import NamedTuple, Optional

from vdcbridge.database import models
from vdcbridge.repositories.interfaces import (
    ICatalogRepository,
    IOrganizationRepository,
    IUserRepository,
    IVAppRepository,
    IVDCRepository,
    IVMRepository,
)
from vdcbridge.services.exceptions import AccessDeniedError, MalformedHandleError, NotFoundError
from vdcbridge.utils import urn

LOGGER = logging.getLogger(__name__)


class Caller(NamedTuple):
    user: models.User
    org_id: Optional[str]
    is_system_admin: bool


class AccessService:
    """
    호출자가 특정 리소스에 접근할 수 있는지 판단합니다.

    리소스를 VM → vApp → VDC → Org 순으로 따라 올라가 소속 조직을 구한 뒤
    호출자의 조직과 비교합니다. System Administrator는 이 검사를 건너뜁니다.
    다른 조직의 리소스는 존재하지 않는 리소스와 같은 NotFoundError로 응답하여
    테넌트 사이에 존재 여부가 드러나지 않게 합니다.
    """

    def __init__(self, user_repo: IUserRepository, org_repo: IOrganizationRepository,
                 vdc_repo: IVDCRepository, vapp_repo: IVAppRepository,
                 vm_repo: IVMRepository, catalog_repo: ICatalogRepository):
        self.user_repo = user_repo
        self.org_repo = org_repo
        self.vdc_repo = vdc_repo
        self.vapp_repo = vapp_repo
        self.vm_repo = vm_repo
        self.catalog_repo = catalog_repo

    # ------------------------------------------------------------------
    # caller
    # ------------------------------------------------------------------
    def load_caller(self, caller_id: str) -> Caller:
        """
        호출자 정보를 읽어옵니다.

        Raises:
            AccessDeniedError: 알 수 없는 사용자이거나, 관리자가 아니면서 소속 조직이 없거나
                비활성화된 조직에 속한 경우.
        """
        user = self.user_repo.find_by_id(caller_id)
        if not user:
            raise AccessDeniedError("Unknown caller.")

        is_admin = models.SYSTEM_ADMIN_ROLE in user.role_names
        if is_admin:
            return Caller(user, user.organization_id, True)

        if not user.organization_id:
            raise AccessDeniedError("Caller is not a member of any organization.")
        org = self.org_repo.find_by_id(user.organization_id)
        if not org or not org.enabled:
            raise AccessDeniedError("Caller's organization is disabled.")
        return Caller(user, org.id, False)

    def require_system_admin(self, caller_id: str) -> Caller:
        """System Administrator 역할이 필요한 작업 앞에서 호출합니다."""
        caller = self.load_caller(caller_id)
        if not caller.is_system_admin:
            raise AccessDeniedError("System administrator role required.")
        return caller

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------
    def resolve(self, caller_id: str, handle: str):
        """
        핸들을 디코딩하고 리소스를 읽어온 뒤 호출자의 접근 권한을 확인합니다.

        Returns:
            접근 가능한 리소스 모델 객체. 카탈로그 항목이면 소속 카탈로그(레거시 참조는 None).

        Raises:
            MalformedHandleError: 핸들 형식이 잘못되었거나 접근 검사 대상이 아닌 종류일 때.
            NotFoundError: 리소스가 없거나 다른 조직의 리소스일 때.
            AccessDeniedError: 호출자가 어떤 조직에도 속하지 않을 때.
        """
        kind, key = urn.decode(handle)
        caller = self.load_caller(caller_id)
        if kind == urn.CATALOG_ITEM:
            return self._validate_item(caller, key)
        return self._resolve_key(caller, kind, key)

    def resolve_as(self, caller_id: str, handle: str, expected_kind: str):
        """resolve와 같지만 핸들의 종류가 expected_kind가 아니면 MalformedHandleError를 발생시킵니다."""
        key = urn.decode_as(handle, expected_kind)
        caller = self.load_caller(caller_id)
        if expected_kind == urn.CATALOG_ITEM:
            return self._validate_item(caller, key)
        return self._resolve_key(caller, expected_kind, key)

    def resolve_vm(self, caller_id: str, vm_handle: str) -> models.VM:
        """URN, 하이픈 없는 hex, UUID 형식 모두 받아 VM을 찾습니다."""
        vm_id = urn.normalize_vm_id(vm_handle)
        caller = self.load_caller(caller_id)
        return self._resolve_key(caller, urn.VM, vm_id)

    def validate_catalog_access(self, caller_id: str, item_ref: urn.ItemRef) -> Optional[models.Catalog]:
        caller = self.load_caller(caller_id)
        return self._validate_item(caller, item_ref)

    def _validate_item(self, caller: Caller, item_ref) -> Optional[models.Catalog]:
        if isinstance(item_ref, urn.ScopedItemRef):
            return self._resolve_key(caller, urn.CATALOG, item_ref.catalog_id)

        # 레거시 참조는 카탈로그 정보가 없어 "접근 가능한 카탈로그가 하나라도 있는지"만 확인합니다.
        LOGGER.warning(
            "Legacy catalog item reference; per-catalog access check skipped",
            extra={"user_id": caller.user.id, "item_name": item_ref.name},
        )
        org_scope = None if caller.is_system_admin else caller.org_id
        if self.catalog_repo.count_accessible(org_scope) == 0:
            raise NotFoundError("Catalog item not found.")
        return None

    def _resolve_key(self, caller: Caller, kind: str, key: str):
        resource, org_id = self._load(kind, key)
        if caller.is_system_admin:
            return resource
        if kind == urn.CATALOG and resource.is_published:
            return resource
        if kind == urn.USER and resource.id == caller.user.id:
            return resource
        if org_id != caller.org_id:
            LOGGER.info(
                "Cross-organization access hidden as not found",
                extra={"user_id": caller.user.id, "kind": kind, "key": key},
            )
            raise NotFoundError(f"{kind} not found.")
        return resource

    def _load(self, kind: str, key: str):
        """리소스와 그 리소스가 속한 조직 ID를 반환합니다. 경로 중 하나라도 없으면 NotFoundError."""
        if kind == urn.ORG:
            org = self._require(self.org_repo.find_by_id(key), kind)
            return org, org.id
        if kind == urn.USER:
            user = self._require(self.user_repo.find_by_id(key), kind)
            return user, user.organization_id
        if kind == urn.CATALOG:
            catalog = self._require(self.catalog_repo.find_by_id(key), kind)
            return catalog, catalog.organization_id
        if kind == urn.VDC:
            vdc = self._require(self.vdc_repo.find_by_id(key), kind)
            return vdc, vdc.organization_id
        if kind == urn.VAPP:
            vapp = self._require(self.vapp_repo.find_by_id(key), kind)
            vdc = self._require(self.vdc_repo.find_by_id(vapp.vdc_id), kind)
            return vapp, vdc.organization_id
        if kind == urn.VM:
            vm = self._require(self.vm_repo.find_by_id(key), kind)
            vapp = self._require(self.vapp_repo.find_by_id(vm.vapp_id), kind)
            vdc = self._require(self.vdc_repo.find_by_id(vapp.vdc_id), kind)
            return vm, vdc.organization_id
        raise MalformedHandleError(f"Handles of kind '{kind}' are not access-controlled resources.")

    @staticmethod
    def _require(resource, kind: str):
        if resource is None:
            raise NotFoundError(f"{kind} not found.")
        return resource
