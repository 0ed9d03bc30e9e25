# tests/services/test_template_service.py
from unittest.mock import MagicMock

import pytest

from vdcbridge.cluster import ClusterClient
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IVAppRepository
from vdcbridge.services import lifecycle
from vdcbridge.services.access_service import AccessService
from vdcbridge.services.exceptions import (
    ClusterNotFoundError,
    ClusterOperationFailedError,
    ClusterUnavailableError,
    InvalidCatalogReferenceError,
    MalformedHandleError,
    NameConflictError,
    NotFoundError,
    ValidationError,
)
from vdcbridge.services.template_service import TemplateService
from vdcbridge.utils import manifests, urn

VDC_ID = "6f1c2a4e-0b9d-4c57-a8e2-3d5f7b9c1e20"
CATALOG_ID = "0d4e8f7a-51b3-4c2e-9a6d-7e8f9a0b1c2d"
VDC_HANDLE = urn.encode(urn.VDC, VDC_ID)
ITEM_HANDLE = urn.encode(urn.CATALOG_ITEM, urn.ScopedItemRef(CATALOG_ID, "fedora-server"))

TEMPLATE = {
    "apiVersion": "template.openshift.io/v1",
    "kind": "Template",
    "metadata": {
        "name": "fedora-server",
        "labels": {manifests.TEMPLATE_VERSION_LABEL: "v1"},
        "annotations": {manifests.CONTAINER_DISKS_ANNOTATION: "quay.io/containerdisks/fedora"},
    },
    "objects": [{"kind": "VirtualMachine"}],
    "parameters": [{"name": "NAME"}],
}

# ===================================================================
#  테스트를 위한 Fixture 설정
# ===================================================================


@pytest.fixture
def vdc() -> models.VDC:
    return models.VDC(id=VDC_ID, name="dev", organization_id="org-1", namespace="vdc-acme-dev")


@pytest.fixture
def catalog() -> models.Catalog:
    return models.Catalog(id=CATALOG_ID, name="public", organization_id="org-1", is_published=True)


@pytest.fixture
def mock_access(vdc, catalog) -> MagicMock:
    access = MagicMock(spec=AccessService)
    access.resolve_as.return_value = vdc
    access.validate_catalog_access.return_value = catalog
    return access


@pytest.fixture
def mock_vapp_repo() -> MagicMock:
    """create/update는 전달받은 객체를 그대로 돌려주는 저장소"""
    repo = MagicMock(spec=IVAppRepository)
    repo.exists_by_name_in_vdc.return_value = False

    def create(vapp):
        vapp.id = "vapp-1"
        return vapp

    repo.create.side_effect = create
    repo.update.side_effect = lambda vapp: vapp
    return repo


@pytest.fixture
def mock_cluster() -> MagicMock:
    cluster = MagicMock(spec=ClusterClient)
    cluster.get_template.return_value = TEMPLATE
    cluster.create_template_instance.return_value = {
        "apiVersion": "template.openshift.io/v1",
        "kind": "TemplateInstance",
        "metadata": {"name": "web", "uid": "ti-uid"},
    }
    return cluster


@pytest.fixture
def template_service(mock_access, mock_vapp_repo, mock_cluster) -> TemplateService:
    return TemplateService(mock_access, mock_vapp_repo, mock_cluster)


# ===================================================================
#  instantiate_template 테스트 스위트
# ===================================================================
class TestInstantiateTemplate:
    def test_success(self, template_service, mock_vapp_repo, mock_cluster):
        """vApp 기록을 먼저 만들고 Secret, TemplateInstance, ownerReference를 차례로 만듭니다."""
        # === Act ===
        vapp = template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        # === Assert ===
        assert vapp.status == lifecycle.INSTANTIATING
        assert vapp.cluster_instance_ref == "web"
        assert vapp.source_catalog_item == ITEM_HANDLE
        mock_cluster.get_template.assert_called_once_with("fedora-server")

        secret_body = mock_cluster.create_secret.call_args.args[1]
        assert secret_body["stringData"] == {"NAME": "web"}

        instance_body = mock_cluster.create_template_instance.call_args.args[1]
        assert instance_body["spec"]["template"]["objects"] == TEMPLATE["objects"]

        namespace, secret_name, patch = mock_cluster.patch_secret.call_args.args
        assert (namespace, secret_name) == ("vdc-acme-dev", "web-params")
        assert patch["metadata"]["ownerReferences"][0]["uid"] == "ti-uid"
        mock_vapp_repo.delete_with_vms.assert_not_called()

    def test_without_cluster_records_resolved(self, mock_access, mock_vapp_repo):
        """클러스터 백엔드가 없으면 논리 기록만 남기고 상태를 RESOLVED로 둡니다."""
        service = TemplateService(mock_access, mock_vapp_repo, cluster=None)

        vapp = service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        assert vapp.status == lifecycle.RESOLVED
        assert vapp.cluster_instance_ref is None

    def test_without_cluster_failed_update_removes_vapp(self, mock_access, mock_vapp_repo):
        """오프라인 모드에서 상태 기록이 실패하면 INSTANTIATING 기록을 남기지 않습니다."""
        # === Arrange ===
        service = TemplateService(mock_access, mock_vapp_repo, cluster=None)
        mock_vapp_repo.update.side_effect = RuntimeError("db gone")

        # === Act & Assert ===
        with pytest.raises(RuntimeError):
            service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)
        mock_vapp_repo.delete_with_vms.assert_called_once()
        assert mock_vapp_repo.delete_with_vms.call_args.kwargs == {"force": True}

    @pytest.mark.parametrize("name", [None, 42, ["web"]])
    def test_non_string_name_is_validation_error(self, template_service, mock_vapp_repo, name):
        with pytest.raises(ValidationError):
            template_service.instantiate_template("alice", VDC_HANDLE, name, ITEM_HANDLE)

        mock_vapp_repo.create.assert_not_called()

    @pytest.mark.parametrize("name", ["Web", "web_1", "-web", "", "a" * 64])
    def test_invalid_name_rejected_before_any_mutation(self, template_service, mock_vapp_repo, mock_cluster, name):
        with pytest.raises(ValidationError):
            template_service.instantiate_template("alice", VDC_HANDLE, name, ITEM_HANDLE)

        mock_vapp_repo.create.assert_not_called()
        mock_cluster.create_secret.assert_not_called()

    def test_malformed_item_handle(self, template_service, mock_vapp_repo):
        with pytest.raises(MalformedHandleError):
            template_service.instantiate_template("alice", VDC_HANDLE, "web", VDC_HANDLE)

        mock_vapp_repo.create.assert_not_called()

    def test_invalid_catalog_reference(self, template_service, mock_vapp_repo):
        with pytest.raises(InvalidCatalogReferenceError):
            template_service.instantiate_template("alice", VDC_HANDLE, "web", "urn:vcloud:catalogitem:nope:fedora")

        mock_vapp_repo.create.assert_not_called()

    def test_name_conflict(self, template_service, mock_vapp_repo, mock_cluster):
        mock_vapp_repo.exists_by_name_in_vdc.return_value = True

        with pytest.raises(NameConflictError):
            template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        mock_vapp_repo.create.assert_not_called()
        mock_cluster.create_template_instance.assert_not_called()

    def test_legacy_item_reference(self, template_service, mock_access, mock_cluster):
        """레거시 형식 참조도 템플릿 이름으로 인스턴스화할 수 있습니다."""
        mock_access.validate_catalog_access.return_value = None

        template_service.instantiate_template("alice", VDC_HANDLE, "web", "urn:vcloud:catalogitem:fedora-server")

        mock_access.validate_catalog_access.assert_called_once_with("alice", urn.LegacyItemRef("fedora-server"))
        mock_cluster.get_template.assert_called_once_with("fedora-server")

    def test_missing_template_leaves_no_vapp(self, template_service, mock_vapp_repo, mock_cluster):
        """템플릿이 없으면 NotFound를 반환하고 vApp 기록은 남지 않습니다."""
        # === Arrange ===
        mock_cluster.get_template.side_effect = ClusterNotFoundError("missing")

        # === Act & Assert ===
        with pytest.raises(NotFoundError) as exc_info:
            template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)
        assert exc_info.value.kind == "NotFound"
        mock_vapp_repo.delete_with_vms.assert_called_once()
        mock_cluster.create_secret.assert_not_called()

    def test_non_catalog_template_is_not_found(self, template_service, mock_vapp_repo, mock_cluster):
        mock_cluster.get_template.return_value = {"metadata": {"name": "fedora-server"}}

        with pytest.raises(NotFoundError):
            template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        mock_vapp_repo.delete_with_vms.assert_called_once()

    def test_instance_failure_cleans_up_secret_and_vapp(self, template_service, mock_vapp_repo, mock_cluster):
        """TemplateInstance 생성이 실패하면 Secret과 vApp 기록을 모두 정리합니다."""
        # === Arrange ===
        mock_cluster.create_template_instance.side_effect = ClusterOperationFailedError("rejected")

        # === Act & Assert ===
        with pytest.raises(ClusterOperationFailedError):
            template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)
        mock_cluster.delete_secret.assert_called_once_with("vdc-acme-dev", "web-params")
        mock_vapp_repo.delete_with_vms.assert_called_once()

    def test_missing_namespace_is_internal_error(self, template_service, mock_vapp_repo, mock_cluster):
        """템플릿 외의 클러스터 404는 카탈로그 항목 NotFound로 바꾸지 않습니다."""
        mock_cluster.create_secret.side_effect = ClusterNotFoundError("namespace gone")

        with pytest.raises(ClusterOperationFailedError) as exc_info:
            template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        assert exc_info.value.status == 500
        mock_vapp_repo.delete_with_vms.assert_called_once()

    def test_failed_compensation_marks_vapp_failed(self, template_service, mock_vapp_repo, mock_cluster):
        """보상 삭제마저 실패하면 vApp을 FAILED로 남기고 원래 오류를 전달합니다."""
        mock_cluster.create_secret.side_effect = ClusterUnavailableError("down")
        mock_vapp_repo.delete_with_vms.side_effect = RuntimeError("db gone")

        with pytest.raises(ClusterUnavailableError):
            template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        failed_vapp = mock_vapp_repo.update.call_args.args[0]
        assert failed_vapp.status == lifecycle.FAILED

    def test_owner_reference_failure_is_not_fatal(self, template_service, mock_vapp_repo, mock_cluster):
        mock_cluster.patch_secret.side_effect = ClusterOperationFailedError("patch failed")

        vapp = template_service.instantiate_template("alice", VDC_HANDLE, "web", ITEM_HANDLE)

        assert vapp.cluster_instance_ref == "web"
        mock_vapp_repo.delete_with_vms.assert_not_called()


# ===================================================================
#  카탈로그 항목 조회 테스트 스위트
# ===================================================================
class TestCatalogItems:
    def test_lists_only_catalog_templates_sorted(self, template_service, mock_access, mock_cluster, catalog):
        # === Arrange ===
        mock_access.resolve_as.return_value = catalog
        zeta = dict(TEMPLATE, metadata=dict(TEMPLATE["metadata"], name="zeta"))
        alpha = dict(TEMPLATE, metadata=dict(TEMPLATE["metadata"], name="alpha"))
        plain = {"metadata": {"name": "plain"}}
        mock_cluster.list_templates.return_value = [zeta, plain, alpha]

        # === Act ===
        page = template_service.list_catalog_items("alice", urn.encode(urn.CATALOG, CATALOG_ID), limit=1, offset=1)

        # === Assert ===
        assert page["total"] == 2
        assert [item["name"] for item in page["items"]] == ["zeta"]
        assert page["items"][0]["id"] == f"urn:vcloud:catalogitem:{CATALOG_ID}:zeta"

    @pytest.mark.parametrize("limit, offset", [(0, 0), (129, 0), (10, -1)])
    def test_invalid_paging(self, template_service, limit, offset):
        with pytest.raises(ValidationError):
            template_service.list_catalog_items("alice", urn.encode(urn.CATALOG, CATALOG_ID), limit, offset)

    def test_requires_cluster(self, mock_access, mock_vapp_repo, catalog):
        mock_access.resolve_as.return_value = catalog
        service = TemplateService(mock_access, mock_vapp_repo, cluster=None)

        with pytest.raises(ClusterUnavailableError):
            service.list_catalog_items("alice", urn.encode(urn.CATALOG, CATALOG_ID))

    def test_get_catalog_item(self, template_service):
        item = template_service.get_catalog_item("alice", ITEM_HANDLE)

        assert item["id"] == ITEM_HANDLE
        assert item["numberOfVMs"] == 1
