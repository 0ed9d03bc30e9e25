# vdcbridge/utils/manifests.py
"""
클러스터에 보낼 리소스 본문(dict)을 만드는 순수 함수 모음.

같은 입력이면 항상 같은 본문을 만들어야 합니다. (시간, 난수 등 비결정적 값 금지)
네임스페이스 ensure의 멱등성이 이 성질에 의존합니다.
"""
import logging
from typing import Any, Dict, Optional

from vdcbridge.utils import urn
from vdcbridge.utils.k8s_names import sanitize_label_value

LOGGER = logging.getLogger(__name__)

LABEL_PREFIX = "vdcbridge.io"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
COMPONENT_LABEL = "app.kubernetes.io/component"
MANAGED_BY = "vdcbridge"
CREATED_BY = "vdcbridge-api-server"

ORG_LABEL = f"{LABEL_PREFIX}/organization"
ORG_ID_LABEL = f"{LABEL_PREFIX}/organization-id"
VDC_LABEL = f"{LABEL_PREFIX}/vdc"
VDC_ID_LABEL = f"{LABEL_PREFIX}/vdc-id"
TEMPLATE_NAME_LABEL = f"{LABEL_PREFIX}/template-name"
TEMPLATE_INSTANCE_LABEL = f"{LABEL_PREFIX}/template-instance"

DISABLED_ANNOTATION = f"{LABEL_PREFIX}/vdc-disabled"
ORPHANED_ANNOTATION = f"{LABEL_PREFIX}/orphaned"
ORPHANED_AT_ANNOTATION = f"{LABEL_PREFIX}/orphaned-timestamp"

QUOTA_NAME = "vdc-quota"
NETWORK_POLICY_NAME = "vdc-isolation"
PARAMS_SECRET_SUFFIX = "-params"

# 카탈로그 항목으로 노출할 템플릿의 조건
TEMPLATE_VERSION_LABEL = "template.kubevirt.io/version"
CONTAINER_DISKS_ANNOTATION = "template.kubevirt.io/containerdisks"

TEMPLATE_GROUP = "template.openshift.io"
TEMPLATE_VERSION = "v1"
TEMPLATE_PLURAL = "templates"
TEMPLATE_INSTANCE_PLURAL = "templateinstances"
TEMPLATE_INSTANCE_KIND = "TemplateInstance"

KUBEVIRT_GROUP = "kubevirt.io"
KUBEVIRT_VERSION = "v1"
VIRTUAL_MACHINE_PLURAL = "virtualmachines"

RUN_STRATEGY_ALWAYS = "Always"
RUN_STRATEGY_HALTED = "Halted"

DEFAULT_HARD_LIMITS = {
    "pods": "50",
    "persistentvolumeclaims": "20",
    "services": "10",
    "secrets": "50",
    "configmaps": "50",
}

# 서버가 채우는 메타데이터. TemplateInstance에 템플릿 본문을 넣을 때 제거합니다.
_SERVER_METADATA_FIELDS = ("uid", "resourceVersion", "generation", "creationTimestamp", "managedFields", "selfLink")


def namespace_labels(vdc, org) -> Dict[str, str]:
    return {
        ORG_LABEL: sanitize_label_value(org.name),
        ORG_ID_LABEL: org.id,
        VDC_LABEL: sanitize_label_value(vdc.name),
        VDC_ID_LABEL: vdc.id,
        MANAGED_BY_LABEL: MANAGED_BY,
        COMPONENT_LABEL: "vdc",
    }


def namespace_annotations(vdc, org) -> Dict[str, Optional[str]]:
    """
    네임스페이스 annotation을 만듭니다.
    비활성화된 VDC에는 vdc-disabled 표시를 붙이고, 활성 VDC는 값을 None으로 두어
    merge patch 시 기존 표시가 제거되도록 합니다.
    """
    return {
        f"{LABEL_PREFIX}/organization-display-name": org.display_name or "",
        f"{LABEL_PREFIX}/organization-description": org.description or "",
        f"{LABEL_PREFIX}/organization-urn": urn.encode(urn.ORG, org.id),
        f"{LABEL_PREFIX}/vdc-description": vdc.description or "",
        f"{LABEL_PREFIX}/vdc-urn": urn.encode(urn.VDC, vdc.id),
        f"{LABEL_PREFIX}/created-by": CREATED_BY,
        DISABLED_ANNOTATION: None if vdc.is_enabled else "true",
    }


def build_namespace(vdc, org) -> Dict[str, Any]:
    """새 네임스페이스 생성 본문. 생성 시에는 값이 None인 annotation을 넣지 않습니다."""
    annotations = {k: v for k, v in namespace_annotations(vdc, org).items() if v is not None}
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": vdc.namespace,
            "labels": namespace_labels(vdc, org),
            "annotations": annotations,
        },
    }


def build_namespace_patch(vdc, org) -> Dict[str, Any]:
    """기존 네임스페이스의 label/annotation을 현재 VDC/조직 속성으로 맞추는 merge patch"""
    return {
        "metadata": {
            "labels": namespace_labels(vdc, org),
            "annotations": namespace_annotations(vdc, org),
        }
    }


def build_orphan_patch(timestamp: str) -> Dict[str, Any]:
    return {
        "metadata": {
            "annotations": {
                ORPHANED_ANNOTATION: "true",
                ORPHANED_AT_ANNOTATION: timestamp,
            }
        }
    }


def quota_hard_limits(vdc) -> Dict[str, str]:
    """
    VDC 설정으로부터 ResourceQuota의 spec.hard 값을 계산합니다.

    CPU 상한은 클러스터가 이해하는 단위(cores, millicores)일 때만 설정합니다.
    MHz 등 다른 단위는 잘못 변환하지 않도록 건너뛰고 경고를 남깁니다.
    메모리 상한은 MB 값을 그대로 Mi로 사용합니다.
    """
    hard = dict(DEFAULT_HARD_LIMITS)

    if vdc.cpu_limit and vdc.cpu_limit > 0:
        if vdc.cpu_units == "cores":
            cpu = f"{vdc.cpu_limit * 1000}m"
        elif vdc.cpu_units == "millicores":
            cpu = f"{vdc.cpu_limit}m"
        else:
            cpu = None
            LOGGER.warning(
                "Skipping CPU quota: units not supported by the cluster",
                extra={"vdc_id": vdc.id, "cpu_units": vdc.cpu_units},
            )
        if cpu:
            hard["requests.cpu"] = cpu
            hard["limits.cpu"] = cpu

    if vdc.memory_limit and vdc.memory_limit > 0:
        memory = f"{vdc.memory_limit}Mi"
        hard["requests.memory"] = memory
        hard["limits.memory"] = memory

    return hard


def build_resource_quota(vdc) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": {
            "name": QUOTA_NAME,
            "namespace": vdc.namespace,
            "labels": {
                VDC_LABEL: sanitize_label_value(vdc.name),
                VDC_ID_LABEL: vdc.id,
                MANAGED_BY_LABEL: MANAGED_BY,
                COMPONENT_LABEL: "resource-quota",
            },
            "annotations": {
                f"{LABEL_PREFIX}/vdc-urn": urn.encode(urn.VDC, vdc.id),
                f"{LABEL_PREFIX}/vdc-description": vdc.description or "",
                f"{LABEL_PREFIX}/created-by": CREATED_BY,
            },
        },
        "spec": {"hard": quota_hard_limits(vdc)},
    }


def build_network_policy(vdc, dns_namespace_label: str = "openshift-dns") -> Dict[str, Any]:
    """
    VDC 네임스페이스 격리용 NetworkPolicy.
    모든 ingress를 막고, egress는 DNS 네임스페이스의 53번 포트(UDP/TCP)만 허용합니다.
    """
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {
            "name": NETWORK_POLICY_NAME,
            "namespace": vdc.namespace,
            "labels": {
                VDC_ID_LABEL: vdc.id,
                MANAGED_BY_LABEL: MANAGED_BY,
            },
        },
        "spec": {
            "podSelector": {},
            "policyTypes": ["Ingress", "Egress"],
            "ingress": [],
            "egress": [
                {
                    "to": [{"namespaceSelector": {"matchLabels": {"name": dns_namespace_label}}}],
                    "ports": [
                        {"protocol": "UDP", "port": 53},
                        {"protocol": "TCP", "port": 53},
                    ],
                }
            ],
        },
    }


def params_secret_name(instance_name: str) -> str:
    return f"{instance_name}{PARAMS_SECRET_SUFFIX}"


def build_params_secret(instance_name: str, namespace: str, parameters: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": params_secret_name(instance_name),
            "namespace": namespace,
            "labels": {
                MANAGED_BY_LABEL: MANAGED_BY,
                TEMPLATE_INSTANCE_LABEL: instance_name,
            },
        },
        "stringData": dict(parameters or {}),
    }


def strip_server_metadata(template: Dict[str, Any]) -> Dict[str, Any]:
    body = dict(template)
    metadata = {k: v for k, v in (template.get("metadata") or {}).items() if k not in _SERVER_METADATA_FIELDS}
    body["metadata"] = metadata
    body.pop("status", None)
    return body


def build_template_instance(instance_name: str, namespace: str, template: Dict[str, Any],
                            labels: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    TemplateInstance 본문을 만듭니다.
    템플릿을 이름으로 참조하지 않고 전체 본문을 포함하므로, 생성 이후 원본 템플릿이
    수정되어도 이 인스턴스에는 영향이 없습니다.
    """
    template_name = (template.get("metadata") or {}).get("name", "")
    instance_labels = {
        MANAGED_BY_LABEL: MANAGED_BY,
        TEMPLATE_NAME_LABEL: sanitize_label_value(template_name),
    }
    instance_labels.update(labels or {})
    return {
        "apiVersion": f"{TEMPLATE_GROUP}/{TEMPLATE_VERSION}",
        "kind": TEMPLATE_INSTANCE_KIND,
        "metadata": {
            "name": instance_name,
            "namespace": namespace,
            "labels": instance_labels,
        },
        "spec": {
            "template": strip_server_metadata(template),
            "secret": {"name": params_secret_name(instance_name)},
        },
    }


def build_owner_reference(owner: Dict[str, Any]) -> Dict[str, Any]:
    """생성된 TemplateInstance 객체로부터 가비지 컬렉션용 ownerReference를 만듭니다."""
    metadata = owner.get("metadata") or {}
    return {
        "apiVersion": owner.get("apiVersion", f"{TEMPLATE_GROUP}/{TEMPLATE_VERSION}"),
        "kind": owner.get("kind", TEMPLATE_INSTANCE_KIND),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": True,
        "blockOwnerDeletion": True,
    }


def build_owner_reference_patch(owner: Dict[str, Any]) -> Dict[str, Any]:
    return {"metadata": {"ownerReferences": [build_owner_reference(owner)]}}


def build_run_strategy_patch(run_strategy: str) -> Dict[str, Any]:
    return {"spec": {"runStrategy": run_strategy}}


def is_catalog_template(template: Dict[str, Any]) -> bool:
    """카탈로그 항목으로 노출할 템플릿인지 확인합니다."""
    metadata = template.get("metadata") or {}
    labels = metadata.get("labels") or {}
    annotations = metadata.get("annotations") or {}
    return TEMPLATE_VERSION_LABEL in labels and CONTAINER_DISKS_ANNOTATION in annotations
