import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from vdcbridge.cluster import ClusterClient
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IOrganizationRepository, IVDCRepository
from vdcbridge.services.exceptions import (
    ClusterConflictError,
    ClusterError,
    ClusterNotFoundError,
    ClusterOperationFailedError,
    ClusterUnavailableError,
    VdcBridgeError,
)
from vdcbridge.utils import manifests

LOGGER = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"


class NamespaceService:
    """
    VDC와 클러스터 네임스페이스(및 ResourceQuota, NetworkPolicy)의 대응을 관리합니다.
    네임스페이스와 쿼터 객체를 쓰는 곳은 이 서비스뿐입니다.
    """

    def __init__(self, cluster: Optional[ClusterClient], vdc_repo: IVDCRepository,
                 org_repo: IOrganizationRepository, network_isolation: bool = True,
                 dns_namespace_label: str = "openshift-dns"):
        self.cluster = cluster
        self.vdc_repo = vdc_repo
        self.org_repo = org_repo
        self.network_isolation = network_isolation
        self.dns_namespace_label = dns_namespace_label

    def _require_cluster(self) -> ClusterClient:
        if self.cluster is None:
            raise ClusterUnavailableError("Cluster backend is not configured.")
        return self.cluster

    # ------------------------------------------------------------------
    # ensure
    # ------------------------------------------------------------------
    def ensure(self, vdc: models.VDC, org: models.Organization) -> str:
        """
        VDC의 네임스페이스가 현재 VDC/조직 속성과 일치하도록 만듭니다.

        네임스페이스가 없으면 생성한 뒤 쿼터(와 네트워크 정책)를 만들고, 있으면 label,
        annotation, 쿼터를 전체 상태로 덮어씁니다. 캐시가 오래된 경우 두 방향 모두
        처리합니다: 생성이 409로 실패하면 갱신 경로로, 캐시에는 있지만 patch가 404로
        실패하면 생성 경로로 넘어갑니다.

        Returns:
            'created' 또는 'updated'.

        Raises:
            ClusterUnavailableError: 클러스터 백엔드가 없거나 연결할 수 없을 때.
            ClusterOperationFailedError: 그 밖의 클러스터 작업이 실패했을 때.
                (쿼터 생성 실패 시 생성한 네임스페이스는 삭제됨)
        """
        cluster = self._require_cluster()
        try:
            return self._ensure(cluster, vdc, org)
        except (ClusterNotFoundError, ClusterConflictError) as e:
            raise ClusterOperationFailedError(
                "Failed to provision VDC namespace.", detail=e.detail, api_status=e.api_status
            ) from e

    def _ensure(self, cluster: ClusterClient, vdc: models.VDC, org: models.Organization) -> str:
        if cluster.get_namespace(vdc.namespace) is None:
            try:
                self._create(vdc, org)
                return CREATED
            except ClusterConflictError:
                LOGGER.info("Namespace already exists; updating instead", extra={"namespace": vdc.namespace})

        try:
            cluster.patch_namespace(vdc.namespace, manifests.build_namespace_patch(vdc, org))
        except ClusterNotFoundError:
            LOGGER.info("Cached namespace no longer exists; recreating", extra={"namespace": vdc.namespace})
            self._create(vdc, org)
            return CREATED

        self._update_objects(vdc)
        LOGGER.info("VDC namespace updated", extra={"namespace": vdc.namespace, "vdc_id": vdc.id})
        return UPDATED

    def _create(self, vdc: models.VDC, org: models.Organization):
        self.cluster.create_namespace(manifests.build_namespace(vdc, org))
        self._provision_new(vdc)
        LOGGER.info("VDC namespace created", extra={"namespace": vdc.namespace, "vdc_id": vdc.id})

    def _provision_new(self, vdc: models.VDC):
        try:
            self.create_quota(vdc)
            if self.network_isolation:
                self._apply_network_policy(vdc)
        except ClusterError:
            # 빈 네임스페이스가 남지 않도록 방금 만든 네임스페이스를 지웁니다.
            try:
                self.cluster.delete_namespace(vdc.namespace)
            except ClusterError as cleanup_error:
                LOGGER.warning(
                    "Failed to delete namespace after quota failure",
                    extra={"namespace": vdc.namespace, "error": str(cleanup_error)},
                )
            raise

    def _update_objects(self, vdc: models.VDC):
        self.update_quota(vdc)
        if self.network_isolation:
            self._apply_network_policy(vdc)

    # ------------------------------------------------------------------
    # quota / network policy
    # ------------------------------------------------------------------
    def create_quota(self, vdc: models.VDC):
        cluster = self._require_cluster()
        body = manifests.build_resource_quota(vdc)
        try:
            cluster.create_resource_quota(vdc.namespace, body)
        except ClusterConflictError:
            cluster.replace_resource_quota(vdc.namespace, manifests.QUOTA_NAME, body)

    def update_quota(self, vdc: models.VDC):
        cluster = self._require_cluster()
        body = manifests.build_resource_quota(vdc)
        try:
            cluster.replace_resource_quota(vdc.namespace, manifests.QUOTA_NAME, body)
        except ClusterNotFoundError:
            cluster.create_resource_quota(vdc.namespace, body)

    def _apply_network_policy(self, vdc: models.VDC):
        body = manifests.build_network_policy(vdc, self.dns_namespace_label)
        try:
            self.cluster.create_network_policy(vdc.namespace, body)
        except ClusterConflictError:
            self.cluster.replace_network_policy(vdc.namespace, manifests.NETWORK_POLICY_NAME, body)

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------
    def teardown(self, vdc: models.VDC):
        """VDC 네임스페이스를 삭제합니다. 이미 없으면 성공으로 간주합니다."""
        if not vdc.namespace:
            return
        cluster = self._require_cluster()
        try:
            cluster.delete_namespace(vdc.namespace)
            LOGGER.info("VDC namespace deleted", extra={"namespace": vdc.namespace, "vdc_id": vdc.id})
        except ClusterNotFoundError:
            LOGGER.info("VDC namespace already absent", extra={"namespace": vdc.namespace})

    # ------------------------------------------------------------------
    # reconcile
    # ------------------------------------------------------------------
    def reconcile_all(self) -> Dict[str, Any]:
        """
        모든 VDC의 네임스페이스를 ensure하고, VDC 기록이 없는 관리 대상 네임스페이스에
        orphaned 표시를 붙입니다. 개별 VDC의 실패는 기록만 하고 다음 VDC로 넘어갑니다.

        Returns:
            ensured, failed, orphaned 목록이 담긴 요약 딕셔너리.
        """
        cluster = self._require_cluster()
        summary = {"ensured": [], "failed": [], "orphaned": []}

        vdcs = self.vdc_repo.list_all()
        for vdc in vdcs:
            org = self.org_repo.find_by_id(vdc.organization_id)
            if org is None:
                summary["failed"].append({"namespace": vdc.namespace, "error": "NotFound"})
                continue
            try:
                self.ensure(vdc, org)
                summary["ensured"].append(vdc.namespace)
            except VdcBridgeError as e:
                LOGGER.warning(
                    "Namespace reconcile failed",
                    extra={"namespace": vdc.namespace, "error": e.kind},
                )
                summary["failed"].append({"namespace": vdc.namespace, "error": e.kind})

        bound = {vdc.namespace for vdc in vdcs}
        timestamp = datetime.now(timezone.utc).isoformat()
        for namespace in cluster.list_managed_namespaces():
            metadata = namespace.get("metadata") or {}
            name = metadata.get("name")
            annotations = metadata.get("annotations") or {}
            if name in bound or annotations.get(manifests.ORPHANED_ANNOTATION) == "true":
                continue
            try:
                cluster.patch_namespace(name, manifests.build_orphan_patch(timestamp))
            except ClusterNotFoundError:
                LOGGER.info("Orphan candidate already deleted", extra={"namespace": name})
                continue
            LOGGER.warning("Orphaned VDC namespace marked", extra={"namespace": name})
            summary["orphaned"].append(name)

        return summary
