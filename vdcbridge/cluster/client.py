# vdcbridge/cluster/client.py
"""
쿠버네티스 클러스터 접근 계층.

ClusterClient는 서비스 생성자에 명시적으로 전달되는 자원 핸들입니다. (모듈 전역 싱글턴 금지)
읽기(네임스페이스, 카탈로그 템플릿)는 주기적으로 재동기화되는 ClusterCache에서 제공하고,
쓰기(create/replace/patch/delete)는 항상 캐시를 거치지 않고 API를 직접 호출합니다.
ApiException과 연결 오류는 이 모듈에서만 도메인 예외로 변환됩니다.
"""
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from vdcbridge.config import KubernetesConfig
from vdcbridge.services.exceptions import (
    ClusterConflictError,
    ClusterNotFoundError,
    ClusterOperationFailedError,
    ClusterUnavailableError,
)
from vdcbridge.utils import manifests

LOGGER = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"

_UNAVAILABLE_STATUSES = {0, 502, 503, 504}


def translate_api_exception(exc: ApiException, action: str):
    """ApiException을 HTTP 상태 코드에 따라 도메인 예외로 변환합니다."""
    status = exc.status or 0
    detail = f"{action}: {status} {exc.reason or ''}".strip()
    if status == 404:
        return ClusterNotFoundError(f"{action}: resource not found", detail=detail, api_status=status)
    if status == 409:
        return ClusterConflictError(f"{action}: resource conflict", detail=detail, api_status=status)
    if status in _UNAVAILABLE_STATUSES:
        return ClusterUnavailableError(f"{action}: cluster unavailable", detail=detail, api_status=status)
    return ClusterOperationFailedError(f"{action} failed", detail=detail, api_status=status)


def _load_json(response) -> Dict[str, Any]:
    data = response.data
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return json.loads(data) if data else {}


def _name_of(obj: Dict[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("name", "")


class ClusterCache:
    """
    네임스페이스와 카탈로그 템플릿 목록을 메모리에 보관하는 캐시.
    백그라운드 스레드가 resync_seconds 주기로 전체 목록을 다시 읽어옵니다.
    """

    def __init__(self, cluster: "ClusterClient", resync_seconds: int):
        self._cluster = cluster
        self._resync_seconds = resync_seconds
        self._lock = threading.RLock()
        self._namespaces: Dict[str, Dict[str, Any]] = {}
        self._templates: Dict[str, Dict[str, Any]] = {}
        self._synced = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def synced(self) -> bool:
        return self._synced.is_set()

    def start(self, sync_timeout: float) -> bool:
        """
        재동기화 스레드를 시작하고 첫 동기화를 최대 sync_timeout초 동안 기다립니다.
        제한 시간 안에 동기화되지 않으면 False를 반환하며, 그동안 읽기는 직접 호출로 처리됩니다.
        """
        if self._thread and self._thread.is_alive():
            return self.synced
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="ClusterCacheResync", daemon=True)
        self._thread.start()
        return self._synced.wait(timeout=sync_timeout)

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._synced.clear()

    def _run(self):
        while not self._stop_event.is_set():
            try:
                self.resync()
            except (ClusterUnavailableError, ClusterOperationFailedError) as e:
                LOGGER.warning("Cluster cache resync failed", extra={"error": str(e)})
            self._stop_event.wait(self._resync_seconds)

    def resync(self):
        namespaces = self._cluster.list_namespaces_direct()
        templates = self._cluster.list_templates_direct()
        with self._lock:
            self._namespaces = {_name_of(ns): ns for ns in namespaces}
            self._templates = {_name_of(t): t for t in templates}
        self._synced.set()
        LOGGER.debug(
            "Cluster cache resynced",
            extra={"namespaces": len(namespaces), "templates": len(templates)},
        )

    # --- reads ---
    def get_namespace(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._namespaces.get(name)

    def list_namespaces(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._namespaces.values())

    def get_template(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._templates.get(name)

    def list_templates(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._templates.values())

    # --- write-through ---
    def remember_namespace(self, obj: Dict[str, Any]):
        with self._lock:
            self._namespaces[_name_of(obj)] = obj

    def forget_namespace(self, name: str):
        with self._lock:
            self._namespaces.pop(name, None)


class ClusterClient:
    def __init__(self, settings: KubernetesConfig, api_client=None,
                 core_v1=None, networking_v1=None, custom_objects=None):
        self.settings = settings
        self.template_namespace = settings.template_namespace
        self.core_v1 = core_v1 or client.CoreV1Api(api_client)
        self.networking_v1 = networking_v1 or client.NetworkingV1Api(api_client)
        self.custom_objects = custom_objects or client.CustomObjectsApi(api_client)
        self.cache = ClusterCache(self, settings.cache_resync_seconds)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> bool:
        synced = self.cache.start(self.settings.cache_sync_timeout_seconds)
        if synced:
            LOGGER.info("Cluster cache synced")
        else:
            LOGGER.warning(
                "Cluster cache did not sync in time; reads fall back to direct calls",
                extra={"timeout_seconds": self.settings.cache_sync_timeout_seconds},
            )
        return synced

    def stop(self):
        self.cache.stop()
        LOGGER.info("Cluster client stopped")

    def health_check(self, timeout: Optional[float] = None):
        with self._api_call("health check"):
            self.core_v1.list_namespace(limit=1, _request_timeout=self._timeout(timeout))

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _timeout(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self.settings.request_timeout_seconds

    @contextmanager
    def _api_call(self, action: str):
        try:
            yield
        except ApiException as e:
            raise translate_api_exception(e, action) from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterUnavailableError(f"{action}: cluster unreachable", detail=str(e)) from e

    # ------------------------------------------------------------------
    # namespaces
    # ------------------------------------------------------------------
    def list_namespaces_direct(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        with self._api_call("list namespaces"):
            response = self.core_v1.list_namespace(
                _preload_content=False, _request_timeout=self._timeout(timeout)
            )
        return _load_json(response).get("items", [])

    def get_namespace(self, name: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """네임스페이스를 조회합니다. 존재하지 않으면 None을 반환합니다."""
        if self.cache.synced:
            return self.cache.get_namespace(name)
        try:
            with self._api_call(f"read namespace {name}"):
                response = self.core_v1.read_namespace(
                    name, _preload_content=False, _request_timeout=self._timeout(timeout)
                )
        except ClusterNotFoundError:
            return None
        return _load_json(response)

    def list_managed_namespaces(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        namespaces = self.cache.list_namespaces() if self.cache.synced else self.list_namespaces_direct(timeout)
        return [
            ns for ns in namespaces
            if ((ns.get("metadata") or {}).get("labels") or {}).get(manifests.MANAGED_BY_LABEL) == manifests.MANAGED_BY
        ]

    def create_namespace(self, body: Dict[str, Any], timeout: Optional[float] = None):
        name = _name_of(body)
        with self._api_call(f"create namespace {name}"):
            self.core_v1.create_namespace(body, _request_timeout=self._timeout(timeout))
        self.cache.remember_namespace(body)

    def patch_namespace(self, name: str, body: Dict[str, Any], timeout: Optional[float] = None):
        """
        Raises:
            ClusterNotFoundError: 네임스페이스가 없을 때. 캐시의 해당 항목도 함께 지웁니다.
        """
        try:
            with self._api_call(f"patch namespace {name}"):
                self.core_v1.patch_namespace(name, body, _request_timeout=self._timeout(timeout))
        except ClusterNotFoundError:
            self.cache.forget_namespace(name)
            raise

    def delete_namespace(self, name: str, timeout: Optional[float] = None):
        """
        Raises:
            ClusterNotFoundError: 네임스페이스가 이미 없을 때. 이 경우에도 캐시 항목은 지웁니다.
        """
        try:
            with self._api_call(f"delete namespace {name}"):
                self.core_v1.delete_namespace(name, _request_timeout=self._timeout(timeout))
        except ClusterNotFoundError:
            self.cache.forget_namespace(name)
            raise
        self.cache.forget_namespace(name)

    # ------------------------------------------------------------------
    # quota / network policy
    # ------------------------------------------------------------------
    def create_resource_quota(self, namespace: str, body: Dict[str, Any], timeout: Optional[float] = None):
        with self._api_call(f"create resource quota in {namespace}"):
            self.core_v1.create_namespaced_resource_quota(
                namespace, body, _request_timeout=self._timeout(timeout)
            )

    def replace_resource_quota(self, namespace: str, name: str, body: Dict[str, Any],
                               timeout: Optional[float] = None):
        with self._api_call(f"replace resource quota {namespace}/{name}"):
            self.core_v1.replace_namespaced_resource_quota(
                name, namespace, body, _request_timeout=self._timeout(timeout)
            )

    def create_network_policy(self, namespace: str, body: Dict[str, Any], timeout: Optional[float] = None):
        with self._api_call(f"create network policy in {namespace}"):
            self.networking_v1.create_namespaced_network_policy(
                namespace, body, _request_timeout=self._timeout(timeout)
            )

    def replace_network_policy(self, namespace: str, name: str, body: Dict[str, Any],
                               timeout: Optional[float] = None):
        with self._api_call(f"replace network policy {namespace}/{name}"):
            self.networking_v1.replace_namespaced_network_policy(
                name, namespace, body, _request_timeout=self._timeout(timeout)
            )

    # ------------------------------------------------------------------
    # templates
    # ------------------------------------------------------------------
    def list_templates_direct(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        with self._api_call(f"list templates in {self.template_namespace}"):
            result = self.custom_objects.list_namespaced_custom_object(
                manifests.TEMPLATE_GROUP,
                manifests.TEMPLATE_VERSION,
                self.template_namespace,
                manifests.TEMPLATE_PLURAL,
                label_selector=manifests.TEMPLATE_VERSION_LABEL,
                _request_timeout=self._timeout(timeout),
            )
        return result.get("items", [])

    def list_templates(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        if self.cache.synced:
            return self.cache.list_templates()
        return self.list_templates_direct(timeout)

    def get_template(self, name: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        템플릿 전체 본문을 조회합니다.

        Raises:
            ClusterNotFoundError: 템플릿 네임스페이스에 해당 이름의 템플릿이 없을 때.
        """
        if self.cache.synced:
            cached = self.cache.get_template(name)
            if cached is not None:
                return cached
        with self._api_call(f"get template {self.template_namespace}/{name}"):
            return self.custom_objects.get_namespaced_custom_object(
                manifests.TEMPLATE_GROUP,
                manifests.TEMPLATE_VERSION,
                self.template_namespace,
                manifests.TEMPLATE_PLURAL,
                name,
                _request_timeout=self._timeout(timeout),
            )

    # ------------------------------------------------------------------
    # secrets / template instances
    # ------------------------------------------------------------------
    def create_secret(self, namespace: str, body: Dict[str, Any], timeout: Optional[float] = None):
        with self._api_call(f"create secret in {namespace}"):
            self.core_v1.create_namespaced_secret(namespace, body, _request_timeout=self._timeout(timeout))

    def patch_secret(self, namespace: str, name: str, body: Dict[str, Any], timeout: Optional[float] = None):
        with self._api_call(f"patch secret {namespace}/{name}"):
            self.core_v1.patch_namespaced_secret(name, namespace, body, _request_timeout=self._timeout(timeout))

    def delete_secret(self, namespace: str, name: str, timeout: Optional[float] = None):
        with self._api_call(f"delete secret {namespace}/{name}"):
            self.core_v1.delete_namespaced_secret(name, namespace, _request_timeout=self._timeout(timeout))

    def create_template_instance(self, namespace: str, body: Dict[str, Any],
                                 timeout: Optional[float] = None) -> Dict[str, Any]:
        with self._api_call(f"create template instance in {namespace}"):
            return self.custom_objects.create_namespaced_custom_object(
                manifests.TEMPLATE_GROUP,
                manifests.TEMPLATE_VERSION,
                namespace,
                manifests.TEMPLATE_INSTANCE_PLURAL,
                body,
                _request_timeout=self._timeout(timeout),
            )

    def delete_template_instance(self, namespace: str, name: str, timeout: Optional[float] = None):
        """TemplateInstance와 그 파라미터 Secret을 삭제합니다. 이미 없는 경우는 성공으로 봅니다."""
        try:
            with self._api_call(f"delete template instance {namespace}/{name}"):
                self.custom_objects.delete_namespaced_custom_object(
                    manifests.TEMPLATE_GROUP,
                    manifests.TEMPLATE_VERSION,
                    namespace,
                    manifests.TEMPLATE_INSTANCE_PLURAL,
                    name,
                    _request_timeout=self._timeout(timeout),
                )
        except ClusterNotFoundError:
            LOGGER.info("Template instance already absent", extra={"namespace": namespace, "instance": name})

        try:
            self.delete_secret(namespace, manifests.params_secret_name(name), timeout)
        except ClusterNotFoundError:
            pass

    # ------------------------------------------------------------------
    # virtual machines
    # ------------------------------------------------------------------
    def get_virtual_machine(self, namespace: str, name: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        with self._api_call(f"get virtual machine {namespace}/{name}"):
            return self.custom_objects.get_namespaced_custom_object(
                manifests.KUBEVIRT_GROUP,
                manifests.KUBEVIRT_VERSION,
                namespace,
                manifests.VIRTUAL_MACHINE_PLURAL,
                name,
                _request_timeout=self._timeout(timeout),
            )

    def patch_virtual_machine(self, namespace: str, name: str, body: Dict[str, Any],
                              timeout: Optional[float] = None) -> Dict[str, Any]:
        with self._api_call(f"patch virtual machine {namespace}/{name}"):
            return self.custom_objects.patch_namespaced_custom_object(
                manifests.KUBEVIRT_GROUP,
                manifests.KUBEVIRT_VERSION,
                namespace,
                manifests.VIRTUAL_MACHINE_PLURAL,
                name,
                body,
                _content_type=MERGE_PATCH,
                _request_timeout=self._timeout(timeout),
            )


def build_cluster_client(settings: KubernetesConfig) -> Optional[ClusterClient]:
    """
    설정에 따라 ClusterClient를 생성합니다.
    클러스터 백엔드가 비활성화되어 있으면 None을 반환합니다. (오프라인 모드)
    """
    if not settings.enabled:
        LOGGER.info("Cluster backend disabled; running in offline mode")
        return None

    if settings.in_cluster:
        config.load_incluster_config()
        api_client = client.ApiClient()
    else:
        api_client = config.new_client_from_config(config_file=settings.kubeconfig, context=settings.context)

    return ClusterClient(settings, api_client=api_client)
