# vdcbridge/utils/urn.py
"""
리소스 핸들(URN) 인코딩/디코딩.

모든 핸들은 ``urn:vcloud:<kind>:<payload>`` 형식입니다. payload는 대부분 UUID이며,
카탈로그 항목만 ``<catalog-uuid>:<url-escaped-name>`` (신규) 또는 ``<name>`` (레거시)
두 가지 형태를 가집니다. 카탈로그 항목 payload는 디코딩 시점에 한 번만
ScopedItemRef / LegacyItemRef로 구분됩니다.
"""
import re
import uuid
from typing import NamedTuple, Tuple, Union
from urllib.parse import quote_plus, unquote_plus

from vdcbridge.services.exceptions import InvalidCatalogReferenceError, MalformedHandleError

URN_PREFIX = "urn:vcloud:"

USER = "user"
ORG = "org"
ROLE = "role"
SESSION = "session"
VDC = "vdc"
CATALOG = "catalog"
CATALOG_ITEM = "catalogitem"
VAPP = "vapp"
VM = "vm"

KINDS = frozenset({USER, ORG, ROLE, SESSION, VDC, CATALOG, CATALOG_ITEM, VAPP, VM})

_UUID = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_HEX32 = re.compile(r"^[0-9a-fA-F]{32}$")
_LEGACY_NAME = re.compile(r"^[A-Za-z0-9._~\-]+$")
_ESCAPED_NAME = re.compile(r"^(?:[A-Za-z0-9._~+\-]|%[0-9A-Fa-f]{2})+$")


class ScopedItemRef(NamedTuple):
    """카탈로그 UUID를 포함한 신규 형식의 카탈로그 항목 참조"""
    catalog_id: str
    name: str


class LegacyItemRef(NamedTuple):
    """카탈로그 정보가 없는 레거시 형식의 카탈로그 항목 참조"""
    name: str


ItemRef = Union[ScopedItemRef, LegacyItemRef]
Key = Union[str, ScopedItemRef, LegacyItemRef]


def encode(kind: str, key: Key) -> str:
    """
    (kind, key) 쌍을 URN 문자열로 인코딩합니다.

    Raises:
        MalformedHandleError: 알 수 없는 kind이거나 key가 해당 kind에 맞지 않을 때.
    """
    if kind not in KINDS:
        raise MalformedHandleError(f"Unknown resource kind '{kind}'.")

    if kind == CATALOG_ITEM:
        if isinstance(key, ScopedItemRef):
            if not key.name:
                raise MalformedHandleError("Catalog item name is empty.")
            catalog_id = _checked_uuid(key.catalog_id, CATALOG)
            return f"{URN_PREFIX}{kind}:{catalog_id}:{quote_plus(key.name, safe='')}"
        if isinstance(key, LegacyItemRef):
            if not key.name or not _LEGACY_NAME.fullmatch(key.name):
                raise MalformedHandleError("Invalid legacy catalog item name.")
            return f"{URN_PREFIX}{kind}:{key.name}"
        raise MalformedHandleError("Catalog item keys must be ScopedItemRef or LegacyItemRef.")

    if not isinstance(key, str):
        raise MalformedHandleError(f"Key for '{kind}' must be a UUID string.")
    return f"{URN_PREFIX}{kind}:{_checked_uuid(key, kind)}"


def decode(handle: str) -> Tuple[str, Key]:
    """
    URN 문자열을 (kind, key) 쌍으로 디코딩합니다.

    Raises:
        MalformedHandleError: 접두사나 kind를 인식할 수 없거나 payload가 유효하지 않을 때.
        InvalidCatalogReferenceError: 신규 형식 카탈로그 항목의 카탈로그 UUID가 유효하지 않을 때.
    """
    if not isinstance(handle, str) or not handle.startswith(URN_PREFIX):
        raise MalformedHandleError("Handle must start with 'urn:vcloud:'.")

    kind, sep, payload = handle[len(URN_PREFIX):].partition(":")
    if not sep or kind not in KINDS:
        raise MalformedHandleError(f"Unrecognized handle kind in '{handle}'.")
    if not payload:
        raise MalformedHandleError(f"Handle '{handle}' has an empty payload.")

    if kind == CATALOG_ITEM:
        return kind, _decode_item_payload(payload)
    return kind, _checked_uuid(payload, kind)


def decode_as(handle: str, expected_kind: str) -> Key:
    """핸들을 디코딩하고 kind가 기대값과 일치하는지 검사한 뒤 key만 반환합니다."""
    kind, key = decode(handle)
    if kind != expected_kind:
        raise MalformedHandleError(f"Expected a '{expected_kind}' handle but got '{kind}'.")
    return key


def kind_of(handle: str) -> str:
    return decode(handle)[0]


def normalize_vm_id(value: str) -> str:
    """
    VM 식별자를 표준 UUID로 정규화합니다.
    URN(urn:vcloud:vm:<uuid>), 하이픈 없는 32자리 hex, 일반 UUID 세 가지 입력을 받습니다.
    """
    if not isinstance(value, str) or not value:
        raise MalformedHandleError("Invalid VM ID format.")
    if value.startswith(URN_PREFIX):
        return decode_as(value, VM)
    if _HEX32.fullmatch(value):
        return str(uuid.UUID(hex=value))
    return _checked_uuid(value, VM)


def _checked_uuid(value, kind: str) -> str:
    """UUID 형식을 검사하고 소문자 정규형으로 반환합니다. 대소문자만 다른 키는 같은 리소스입니다."""
    if not isinstance(value, str) or not _UUID.fullmatch(value):
        raise MalformedHandleError(f"Invalid UUID '{value}' for '{kind}' handle.")
    return value.lower()


def _decode_item_payload(payload: str) -> ItemRef:
    # 마지막 콜론이 카탈로그 UUID와 항목 이름의 구분자입니다.
    catalog_part, sep, name_part = payload.rpartition(":")
    if not sep:
        if not _LEGACY_NAME.fullmatch(payload):
            raise MalformedHandleError("Invalid catalog item identifier.")
        return LegacyItemRef(payload)

    if not _UUID.fullmatch(catalog_part):
        raise InvalidCatalogReferenceError(
            "Invalid catalog UUID in catalog item URN.", detail=catalog_part
        )

    if not _ESCAPED_NAME.fullmatch(name_part):
        raise MalformedHandleError("Invalid catalog item name encoding.")
    try:
        name = unquote_plus(name_part, errors="strict")
    except UnicodeDecodeError:
        raise MalformedHandleError("Invalid catalog item name encoding.") from None
    return ScopedItemRef(catalog_part.lower(), name)
