# vdcbridge/utils/k8s_names.py
import re

MAX_LABEL_LENGTH = 63

# vApp 이름 등 클러스터 리소스 이름으로 그대로 쓰이는 값의 형식 (DNS-1123 label)
DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$")

_LABEL_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")
_NAME_INVALID_CHARS = re.compile(r"[^a-z0-9\-]")

# 충돌 시 붙는 접미사("-999")를 포함해도 63자를 넘지 않도록 기본 이름 길이를 제한합니다.
_NAMESPACE_BASE_LENGTH = MAX_LABEL_LENGTH - 4


def sanitize_label_value(value: str) -> str:
    """
    임의의 문자열을 쿠버네티스 label 값으로 사용할 수 있게 정리합니다.
    허용되지 않는 문자는 '-'로 바꾸고, 앞뒤의 '-', '_', '.'를 제거한 뒤 63자로 자릅니다.
    빈 문자열은 그대로 두고, 정리 후 비어버린 값은 'unknown'이 됩니다.
    """
    if not value:
        return ""

    sanitized = _LABEL_INVALID_CHARS.sub("-", value).strip("-_.")
    if not sanitized:
        return "unknown"

    if len(sanitized) > MAX_LABEL_LENGTH:
        sanitized = sanitized[:MAX_LABEL_LENGTH].rstrip("-_.")
    return sanitized


def sanitize_name_segment(name: str) -> str:
    """네임스페이스 이름의 한 구간을 소문자, 숫자, '-'만 남도록 정리합니다."""
    segment = _NAME_INVALID_CHARS.sub("", name.lower().replace("_", "-")).strip("-")
    return segment or "default"


def namespace_name_for(org_name: str, vdc_name: str) -> str:
    """조직 이름과 VDC 이름으로 'vdc-<org>-<vdc>' 형식의 네임스페이스 이름을 만듭니다."""
    base = f"vdc-{sanitize_name_segment(org_name)}-{sanitize_name_segment(vdc_name)}"
    return base[:_NAMESPACE_BASE_LENGTH].rstrip("-")


def namespace_candidates(org_name: str, vdc_name: str, max_suffix: int = 999):
    """
    충돌 시 시도할 네임스페이스 이름을 순서대로 생성합니다.
    기본 이름 다음에 '-1'부터 '-<max_suffix>'까지 접미사가 붙은 이름이 이어집니다.
    """
    base = namespace_name_for(org_name, vdc_name)
    yield base
    for suffix in range(1, max_suffix + 1):
        yield f"{base}-{suffix}"


def is_dns_label(value: str) -> bool:
    return isinstance(value, str) and DNS_LABEL_PATTERN.fullmatch(value) is not None
