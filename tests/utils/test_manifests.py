# tests/utils/test_manifests.py
import logging

import pytest

from vdcbridge.database import models
from vdcbridge.utils import manifests

ORG_ID = "1b2c3d4e-5f60-4a7b-8c9d-0e1f2a3b4c5d"
VDC_ID = "6f1c2a4e-0b9d-4c57-a8e2-3d5f7b9c1e20"


@pytest.fixture
def org() -> models.Organization:
    return models.Organization(id=ORG_ID, name="Acme Corp", display_name="Acme", description="", enabled=True)


@pytest.fixture
def vdc() -> models.VDC:
    return models.VDC(
        id=VDC_ID, name="dev", description="Development", organization_id=ORG_ID,
        namespace="vdc-acme-corp-dev", cpu_limit=4, cpu_units="cores",
        memory_limit=8192, memory_units="MB", is_enabled=True,
    )


class TestQuota:
    def test_cores_and_memory_limits(self, vdc):
        hard = manifests.quota_hard_limits(vdc)

        assert hard["requests.cpu"] == hard["limits.cpu"] == "4000m"
        assert hard["requests.memory"] == hard["limits.memory"] == "8192Mi"
        assert hard["pods"] == "50"
        assert hard["persistentvolumeclaims"] == "20"

    def test_millicores(self, vdc):
        vdc.cpu_units = "millicores"
        vdc.cpu_limit = 1500

        assert manifests.quota_hard_limits(vdc)["limits.cpu"] == "1500m"

    def test_mhz_cpu_is_skipped_with_warning(self, vdc, caplog):
        """클러스터가 이해할 수 없는 CPU 단위(MHz)는 변환하지 않고 경고만 남깁니다."""
        # === Arrange ===
        vdc.cpu_units = "MHz"
        vdc.cpu_limit = 2000

        # === Act ===
        with caplog.at_level(logging.WARNING, logger="vdcbridge.utils.manifests"):
            hard = manifests.quota_hard_limits(vdc)

        # === Assert ===
        assert "requests.cpu" not in hard
        assert "limits.cpu" not in hard
        assert hard["limits.memory"] == "8192Mi"
        assert any("Skipping CPU quota" in r.getMessage() for r in caplog.records)

    def test_zero_limits_leave_defaults_only(self, vdc):
        vdc.cpu_limit = 0
        vdc.memory_limit = 0

        assert manifests.quota_hard_limits(vdc) == manifests.DEFAULT_HARD_LIMITS

    def test_quota_body_is_deterministic(self, vdc):
        assert manifests.build_resource_quota(vdc) == manifests.build_resource_quota(vdc)
        assert manifests.build_resource_quota(vdc)["metadata"]["name"] == "vdc-quota"


class TestNamespace:
    def test_labels(self, vdc, org):
        body = manifests.build_namespace(vdc, org)

        labels = body["metadata"]["labels"]
        assert body["metadata"]["name"] == "vdc-acme-corp-dev"
        assert labels[manifests.ORG_LABEL] == "Acme-Corp"
        assert labels[manifests.VDC_ID_LABEL] == VDC_ID
        assert labels[manifests.MANAGED_BY_LABEL] == "vdcbridge"

    def test_disabled_vdc_annotation(self, vdc, org):
        """비활성 VDC는 생성 본문에 vdc-disabled 표시가 붙고, 활성 VDC의 patch는 표시를 지웁니다."""
        vdc.is_enabled = False
        disabled = manifests.build_namespace(vdc, org)
        vdc.is_enabled = True
        patch = manifests.build_namespace_patch(vdc, org)

        assert disabled["metadata"]["annotations"][manifests.DISABLED_ANNOTATION] == "true"
        assert patch["metadata"]["annotations"][manifests.DISABLED_ANNOTATION] is None

    def test_orphan_patch(self):
        patch = manifests.build_orphan_patch("2026-01-01T00:00:00+00:00")

        assert patch["metadata"]["annotations"] == {
            manifests.ORPHANED_ANNOTATION: "true",
            manifests.ORPHANED_AT_ANNOTATION: "2026-01-01T00:00:00+00:00",
        }


class TestNetworkPolicy:
    def test_default_deny_with_dns_egress(self, vdc):
        body = manifests.build_network_policy(vdc, "openshift-dns")

        spec = body["spec"]
        assert spec["ingress"] == []
        assert spec["policyTypes"] == ["Ingress", "Egress"]
        egress = spec["egress"][0]
        assert egress["to"][0]["namespaceSelector"]["matchLabels"] == {"name": "openshift-dns"}
        assert {p["protocol"] for p in egress["ports"]} == {"UDP", "TCP"}


class TestTemplateInstance:
    TEMPLATE = {
        "apiVersion": "template.openshift.io/v1",
        "kind": "Template",
        "metadata": {
            "name": "fedora-server",
            "namespace": "openshift",
            "uid": "abc",
            "resourceVersion": "42",
            "labels": {manifests.TEMPLATE_VERSION_LABEL: "v1"},
            "annotations": {manifests.CONTAINER_DISKS_ANNOTATION: "quay.io/fedora"},
        },
        "objects": [{"kind": "VirtualMachine"}],
        "parameters": [{"name": "NAME"}],
    }

    def test_embeds_full_template_without_server_metadata(self):
        """TemplateInstance는 템플릿을 이름이 아닌 전체 본문으로 포함합니다."""
        body = manifests.build_template_instance("web", "vdc-acme-dev", self.TEMPLATE, labels={"x": "y"})

        embedded = body["spec"]["template"]
        assert embedded["objects"] == self.TEMPLATE["objects"]
        assert "uid" not in embedded["metadata"]
        assert "resourceVersion" not in embedded["metadata"]
        assert body["spec"]["secret"] == {"name": "web-params"}
        assert body["metadata"]["labels"]["x"] == "y"
        assert body["metadata"]["labels"][manifests.TEMPLATE_NAME_LABEL] == "fedora-server"

    def test_owner_reference_patch(self):
        owner = {
            "apiVersion": "template.openshift.io/v1",
            "kind": "TemplateInstance",
            "metadata": {"name": "web", "uid": "uid-1"},
        }

        ref = manifests.build_owner_reference_patch(owner)["metadata"]["ownerReferences"][0]

        assert ref["uid"] == "uid-1"
        assert ref["controller"] is True
        assert ref["blockOwnerDeletion"] is True

    def test_catalog_template_filter(self):
        assert manifests.is_catalog_template(self.TEMPLATE)
        assert not manifests.is_catalog_template({"metadata": {"name": "plain"}})

    def test_params_secret(self):
        body = manifests.build_params_secret("web", "vdc-acme-dev", {"NAME": "web"})

        assert body["metadata"]["name"] == "web-params"
        assert body["stringData"] == {"NAME": "web"}
