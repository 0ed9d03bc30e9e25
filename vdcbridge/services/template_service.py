import logging
from typing import Any, Dict, Optional

from vdcbridge.cluster import ClusterClient
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IVAppRepository
from vdcbridge.services import lifecycle
from vdcbridge.services.access_service import AccessService
from vdcbridge.services.exceptions import (
    ClusterConflictError,
    ClusterError,
    ClusterNotFoundError,
    ClusterOperationFailedError,
    ClusterUnavailableError,
    NameConflictError,
    NotFoundError,
    ValidationError,
)
from vdcbridge.utils import manifests, urn
from vdcbridge.utils.k8s_names import is_dns_label

LOGGER = logging.getLogger(__name__)

VAPP_ID_LABEL = f"{manifests.LABEL_PREFIX}/vapp-id"
MAX_PAGE_SIZE = 128


def _template_name(template: Dict[str, Any]) -> str:
    return (template.get("metadata") or {}).get("name", "")


def catalog_item_to_dict(template: Dict[str, Any], catalog: Optional[models.Catalog]) -> Dict[str, Any]:
    """클러스터 템플릿을 카탈로그 항목 응답으로 변환합니다. 레거시 참조는 catalog가 None입니다."""
    metadata = template.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    name = metadata.get("name", "")
    vm_count = sum(
        1 for obj in template.get("objects") or []
        if obj.get("kind") in ("VirtualMachine", "VirtualMachineInstance")
    )

    if catalog is not None:
        item_id = urn.encode(urn.CATALOG_ITEM, urn.ScopedItemRef(catalog.id, name))
    else:
        item_id = urn.encode(urn.CATALOG_ITEM, urn.LegacyItemRef(name))

    return {
        "id": item_id,
        "name": name,
        "displayName": annotations.get("openshift.io/display-name", name),
        "description": annotations.get("description", ""),
        "catalog": urn.encode(urn.CATALOG, catalog.id) if catalog is not None else None,
        "isPublished": bool(catalog.is_published) if catalog is not None else False,
        "creationDate": metadata.get("creationTimestamp"),
        "status": lifecycle.RESOLVED,
        "numberOfVMs": vm_count or 1,
    }


class TemplateService:
    def __init__(self, access: AccessService, vapp_repo: IVAppRepository,
                 cluster: Optional[ClusterClient] = None):
        self.access = access
        self.vapp_repo = vapp_repo
        self.cluster = cluster

    # ------------------------------------------------------------------
    # instantiate
    # ------------------------------------------------------------------
    def instantiate_template(self, caller_id: str, vdc_handle: str, name: str,
                             catalog_item_handle: str, description: str = "") -> models.VApp:
        """
        카탈로그 항목(클러스터 템플릿)으로 VDC 안에 새 vApp을 만듭니다.

        논리 vApp 기록을 INSTANTIATING 상태로 먼저 만든 뒤 클러스터 객체(파라미터 Secret,
        TemplateInstance)를 만듭니다. 클러스터 단계가 하나라도 실패하면 vApp 기록을 삭제하고
        원래 오류를 다시 발생시킵니다. 클러스터 백엔드가 없으면 상태를 RESOLVED로 기록합니다.

        Args:
            caller_id: 호출자 사용자 ID.
            vdc_handle: 대상 VDC의 URN.
            name: vApp 이름. DNS-1123 label 형식(소문자, 숫자, '-', 1~63자)이어야 합니다.
            catalog_item_handle: 카탈로그 항목 URN. (신규/레거시 형식 모두 허용)
            description: vApp 설명.

        Returns:
            생성된 VApp 모델 객체.

        Raises:
            MalformedHandleError: 핸들 형식이 잘못되었을 때.
            InvalidCatalogReferenceError: 카탈로그 항목 URN의 카탈로그 UUID가 유효하지 않을 때.
            ValidationError: vApp 이름이 DNS label 형식이 아닐 때.
            NotFoundError: VDC, 카탈로그, 카탈로그 항목(템플릿)을 찾을 수 없을 때.
            NameConflictError: VDC 안에 같은 이름의 vApp이 이미 있을 때.
            ClusterUnavailableError / ClusterOperationFailedError: 클러스터 호출이 실패했을 때.
        """
        # 1. 핸들 및 이름 검증 (변경 작업 전에 모두 거부)
        urn.decode_as(vdc_handle, urn.VDC)
        item_ref = urn.decode_as(catalog_item_handle, urn.CATALOG_ITEM)
        if not is_dns_label(name):
            raise ValidationError(
                "Name must follow DNS-1123 label format: lowercase letters, numbers and hyphens only; "
                "must start and end with an alphanumeric character; 1-63 characters long."
            )

        # 2~3. VDC 및 카탈로그 접근 권한
        vdc = self.access.resolve_as(caller_id, vdc_handle, urn.VDC)
        self.access.validate_catalog_access(caller_id, item_ref)

        # 4. VDC 내 이름 중복 검사 (동시 요청은 5단계의 DB 제약이 최종 판정)
        if self.vapp_repo.exists_by_name_in_vdc(vdc.id, name):
            raise NameConflictError(f"vApp name '{name}' is already in use within the VDC.")

        # 5. 논리 기록을 클러스터 객체보다 먼저 생성
        vapp = self.vapp_repo.create(models.VApp(
            name=name,
            vdc_id=vdc.id,
            status=lifecycle.INSTANTIATING,
            description=description or "",
            source_catalog_item=catalog_item_handle,
        ))
        LOGGER.info("vApp record created", extra={"vapp_id": vapp.id, "vdc_id": vdc.id})

        # 8. 오프라인 모드
        if self.cluster is None:
            vapp.status = lifecycle.RESOLVED
            try:
                return self.vapp_repo.update(vapp)
            except Exception as e:
                self._compensate(vapp, e)
                raise

        # 6. 클러스터 객체 생성 (실패 시 보상 삭제)
        try:
            instance_name = self._materialize(vdc, vapp, item_ref)
        except (ClusterNotFoundError, ClusterConflictError) as e:
            self._compensate(vapp, e)
            raise ClusterOperationFailedError(
                "Failed to create template instance.", detail=e.detail, api_status=e.api_status
            ) from e
        except Exception as e:
            self._compensate(vapp, e)
            raise

        # 7. 클러스터 참조 기록. 최종 DEPLOYED 상태는 상태 감시 프로세스가 기록합니다.
        vapp.cluster_instance_ref = instance_name
        vapp.status = lifecycle.INSTANTIATING
        try:
            vapp = self.vapp_repo.update(vapp)
        except Exception:
            LOGGER.exception("Failed to record template instance on vApp", extra={"vapp_id": vapp.id})
        return vapp

    def _materialize(self, vdc: models.VDC, vapp: models.VApp, item_ref: urn.ItemRef) -> str:
        if not vdc.namespace:
            raise ClusterOperationFailedError("VDC namespace is not configured.")
        namespace = vdc.namespace

        try:
            template = self.cluster.get_template(item_ref.name)
        except ClusterNotFoundError as e:
            raise NotFoundError("Catalog item not found.", detail=item_ref.name) from e
        if not manifests.is_catalog_template(template):
            raise NotFoundError("Catalog item not found.", detail=item_ref.name)

        parameter_names = {p.get("name") for p in template.get("parameters") or []}
        parameters = {"NAME": vapp.name} if "NAME" in parameter_names else {}

        self.cluster.create_secret(namespace, manifests.build_params_secret(vapp.name, namespace, parameters))
        try:
            created = self.cluster.create_template_instance(
                namespace,
                manifests.build_template_instance(vapp.name, namespace, template, labels={VAPP_ID_LABEL: vapp.id}),
            )
        except ClusterError:
            self._delete_secret_quietly(namespace, vapp.name)
            raise

        # Secret이 TemplateInstance와 함께 가비지 컬렉션되도록 ownerReference를 추가합니다.
        try:
            self.cluster.patch_secret(
                namespace, manifests.params_secret_name(vapp.name), manifests.build_owner_reference_patch(created)
            )
        except ClusterError as e:
            LOGGER.warning(
                "Failed to set owner reference on parameter secret",
                extra={"namespace": namespace, "instance": vapp.name, "error": str(e)},
            )

        instance_name = (created.get("metadata") or {}).get("name") or vapp.name
        LOGGER.info("Template instance created", extra={"namespace": namespace, "instance": instance_name})
        return instance_name

    def _delete_secret_quietly(self, namespace: str, instance_name: str):
        try:
            self.cluster.delete_secret(namespace, manifests.params_secret_name(instance_name))
        except ClusterError as e:
            LOGGER.warning(
                "Failed to delete parameter secret",
                extra={"namespace": namespace, "instance": instance_name, "error": str(e)},
            )

    def _compensate(self, vapp: models.VApp, error: Exception):
        """
        실패한 인스턴스화의 vApp 기록을 삭제합니다. (아직 VM이 없으므로 force 삭제)
        삭제마저 실패하면 운영자가 확인할 수 있도록 FAILED 상태로 남기려고 시도합니다.
        보상 단계의 오류는 기록만 하고, 호출자에게는 원래 오류가 전달됩니다.
        """
        LOGGER.warning(
            "Template instantiation failed; removing vApp record",
            extra={"vapp_id": vapp.id, "error": type(error).__name__},
        )
        try:
            self.vapp_repo.delete_with_vms(vapp, force=True)
            return
        except Exception:
            LOGGER.exception("Compensating delete of vApp failed", extra={"vapp_id": vapp.id})

        try:
            vapp.status = lifecycle.FAILED
            self.vapp_repo.update(vapp)
        except Exception:
            LOGGER.exception("Failed to mark vApp as FAILED", extra={"vapp_id": vapp.id})

    # ------------------------------------------------------------------
    # catalog items
    # ------------------------------------------------------------------
    def _require_cluster(self) -> ClusterClient:
        if self.cluster is None:
            raise ClusterUnavailableError("Cluster backend is not configured.")
        return self.cluster

    def list_catalog_items(self, caller_id: str, catalog_handle: str,
                           limit: int = 25, offset: int = 0) -> Dict[str, Any]:
        """
        카탈로그 항목 목록. 템플릿 네임스페이스의 카탈로그 템플릿을 이름 순으로 정렬해 페이지 단위로 반환합니다.
        """
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")
        if offset < 0:
            raise ValidationError("offset must not be negative.")

        catalog = self.access.resolve_as(caller_id, catalog_handle, urn.CATALOG)
        cluster = self._require_cluster()

        templates = sorted(
            (t for t in cluster.list_templates() if manifests.is_catalog_template(t)),
            key=_template_name,
        )
        page = templates[offset:offset + limit]
        return {
            "total": len(templates),
            "limit": limit,
            "offset": offset,
            "items": [catalog_item_to_dict(t, catalog) for t in page],
        }

    def get_catalog_item(self, caller_id: str, item_handle: str) -> Dict[str, Any]:
        item_ref = urn.decode_as(item_handle, urn.CATALOG_ITEM)
        catalog = self.access.validate_catalog_access(caller_id, item_ref)
        cluster = self._require_cluster()

        try:
            template = cluster.get_template(item_ref.name)
        except ClusterNotFoundError as e:
            raise NotFoundError("Catalog item not found.", detail=item_ref.name) from e
        if not manifests.is_catalog_template(template):
            raise NotFoundError("Catalog item not found.", detail=item_ref.name)
        return catalog_item_to_dict(template, catalog)
