# vdcbridge/services/exceptions.py
from typing import Any, Dict, Optional


class VdcBridgeError(Exception):
    """모든 도메인 예외의 기반 클래스. kind는 기계가 읽는 오류 종류입니다."""
    kind = "Internal"
    status = 500

    def __init__(self, message: str = "", detail: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.detail = detail


# --- Caller input ---
class MalformedHandleError(VdcBridgeError):
    """URN 형식이 잘못되었거나 기대한 종류(kind)와 다를 때"""
    kind = "MalformedHandle"
    status = 400


class InvalidCatalogReferenceError(VdcBridgeError):
    """카탈로그 항목 URN의 카탈로그 UUID 부분이 유효하지 않을 때"""
    kind = "InvalidCatalogReference"
    status = 400


class ValidationError(VdcBridgeError):
    """요청 값(이름 형식, 할당 모델 등)이 유효하지 않을 때"""
    kind = "ValidationError"
    status = 400


# --- Visibility ---
class NotFoundError(VdcBridgeError):
    """리소스가 없거나, 다른 조직의 리소스라 보이지 않을 때"""
    kind = "NotFound"
    status = 404


class ResourceNotFoundInClusterError(NotFoundError):
    """DB 기록은 있지만 클러스터에 대응하는 리소스가 없을 때"""
    kind = "ResourceNotFoundInCluster"
    status = 404


class AccessDeniedError(VdcBridgeError):
    """리소스는 존재하지만 호출자에게 권한이 없을 때"""
    kind = "AccessDenied"
    status = 403


# --- State ---
class NameConflictError(VdcBridgeError):
    """이름 유일성 제약을 위반했을 때"""
    kind = "NameConflict"
    status = 409


class InvalidTransitionError(VdcBridgeError):
    """현재 상태에서 허용되지 않는 상태 전이를 요청했을 때"""
    kind = "InvalidTransition"
    status = 400


class ResourceConflictError(VdcBridgeError):
    """리소스가 삭제 중이거나 삭제되어 작업과 충돌할 때"""
    kind = "ResourceConflict"
    status = 409


class RunningVMsPresentError(ResourceConflictError):
    """force 없이 실행 중인 VM이 있는 vApp을 삭제하려고 할 때"""
    kind = "RunningVMsPresent"
    status = 409


class ResourceNotEmptyError(ResourceConflictError):
    """종속 리소스가 남아있는 조직/VDC를 삭제하려고 할 때"""
    kind = "ResourceNotEmpty"
    status = 409


# --- Cluster ---
class ClusterError(VdcBridgeError):
    """클러스터 호출 실패의 기반 클래스"""
    kind = "ClusterOperationFailed"
    status = 500

    def __init__(self, message: str = "", detail: Optional[str] = None, api_status: Optional[int] = None):
        super().__init__(message, detail)
        self.api_status = api_status


class ClusterUnavailableError(ClusterError):
    """클러스터 백엔드가 설정되지 않았거나 연결할 수 없을 때"""
    kind = "ClusterUnavailable"
    status = 503


class ClusterOperationFailedError(ClusterError):
    """클러스터 API가 오류를 반환했을 때 (원본 오류는 detail에 보존)"""
    kind = "ClusterOperationFailed"
    status = 500


class ClusterNotFoundError(ClusterOperationFailedError):
    """클러스터 API가 404를 반환했을 때"""
    kind = "ClusterNotFound"
    status = 404


class ClusterConflictError(ClusterOperationFailedError):
    """클러스터 API가 409(AlreadyExists/Conflict)를 반환했을 때"""
    kind = "ClusterConflict"
    status = 409


GENERIC_MESSAGES = {
    500: "Internal server error",
    503: "Cluster backend is unavailable",
}


def to_error_body(exc: Exception) -> Dict[str, Any]:
    """
    예외를 응답 본문(dict)으로 변환합니다.

    도메인 예외는 kind와 message를 그대로 사용하지만, 5xx 오류는 클러스터 구성이
    노출되지 않도록 일반 메시지로 대체합니다. 알 수 없는 예외는 Internal로 처리됩니다.
    """
    if isinstance(exc, VdcBridgeError):
        message = GENERIC_MESSAGES.get(exc.status, exc.message)
        body = {"error": exc.kind, "message": message}
        if exc.detail and exc.status < 500:
            body["detail"] = exc.detail
        return body
    return {"error": "Internal", "message": GENERIC_MESSAGES[500]}


def status_of(exc: Exception) -> int:
    return exc.status if isinstance(exc, VdcBridgeError) else 500
