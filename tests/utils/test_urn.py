# tests/utils/test_urn.py
import pytest

from vdcbridge.services.exceptions import InvalidCatalogReferenceError, MalformedHandleError
from vdcbridge.utils import urn

VDC_ID = "6f1c2a4e-0b9d-4c57-a8e2-3d5f7b9c1e20"
CATALOG_ID = "0d4e8f7a-51b3-4c2e-9a6d-7e8f9a0b1c2d"


class TestEncodeDecode:
    def test_uuid_handle_round_trip(self):
        """UUID 키를 가진 핸들은 인코딩 후 디코딩하면 원래 값이 됩니다."""
        handle = urn.encode(urn.VDC, VDC_ID)

        assert handle == f"urn:vcloud:vdc:{VDC_ID}"
        assert urn.decode(handle) == (urn.VDC, VDC_ID)

    def test_uppercase_uuid_is_normalized(self):
        assert urn.decode(f"urn:vcloud:vdc:{VDC_ID.upper()}") == (urn.VDC, VDC_ID)

    def test_uppercase_key_is_canonicalized_on_encode(self):
        """대문자 UUID 키는 소문자로 정규화되며, 정규화된 핸들은 다시 인코딩해도 바뀌지 않습니다."""
        # === Act ===
        handle = urn.encode(urn.VDC, VDC_ID.upper())
        kind, key = urn.decode(handle)

        # === Assert ===
        assert (kind, key) == (urn.VDC, VDC_ID)
        assert urn.encode(kind, key) == handle

    def test_scoped_item_catalog_uuid_is_canonicalized_but_name_kept(self):
        handle = urn.encode(urn.CATALOG_ITEM, urn.ScopedItemRef(CATALOG_ID.upper(), "Fedora-Server"))

        assert urn.decode_as(handle, urn.CATALOG_ITEM) == urn.ScopedItemRef(CATALOG_ID, "Fedora-Server")

    def test_scoped_item_name_is_escaped_and_restored(self):
        """카탈로그 항목 이름의 공백과 콜론은 이스케이프되고, 디코딩하면 복원됩니다."""
        ref = urn.ScopedItemRef(CATALOG_ID, "fedora 39:server")

        handle = urn.encode(urn.CATALOG_ITEM, ref)

        assert handle == f"urn:vcloud:catalogitem:{CATALOG_ID}:fedora+39%3Aserver"
        assert urn.decode(handle) == (urn.CATALOG_ITEM, ref)

    def test_legacy_item_payload(self):
        kind, key = urn.decode("urn:vcloud:catalogitem:rhel9-server")

        assert kind == urn.CATALOG_ITEM
        assert key == urn.LegacyItemRef("rhel9-server")

    def test_kind_of(self):
        assert urn.kind_of(f"urn:vcloud:catalog:{CATALOG_ID}") == urn.CATALOG


class TestMalformedHandles:
    @pytest.mark.parametrize("handle", [
        "",
        "vdc:" + VDC_ID,
        "urn:vcloud:",
        "urn:vcloud:vdc",
        "urn:vcloud:vdc:",
        "urn:vcloud:unknown:" + VDC_ID,
        "urn:vcloud:vdc:not-a-uuid",
        f"urn:vcloud:vdc:{VDC_ID}\n",
        "urn:vcloud:catalogitem:bad name",
        f"urn:vcloud:catalogitem:{CATALOG_ID}:",
        f"urn:vcloud:catalogitem:{CATALOG_ID}:%ff",
    ])
    def test_rejected_with_malformed_handle(self, handle):
        with pytest.raises(MalformedHandleError):
            urn.decode(handle)

    def test_non_string_input(self):
        with pytest.raises(MalformedHandleError):
            urn.decode(None)

    def test_invalid_catalog_uuid_in_item_handle(self):
        """신규 형식 카탈로그 항목의 카탈로그 부분이 UUID가 아니면 InvalidCatalogReferenceError입니다."""
        with pytest.raises(InvalidCatalogReferenceError) as exc_info:
            urn.decode("urn:vcloud:catalogitem:not-a-uuid:fedora")

        assert exc_info.value.detail == "not-a-uuid"

    def test_decode_as_rejects_other_kind(self):
        """기대한 종류와 다른 핸들은 변환하지 않고 거부합니다."""
        with pytest.raises(MalformedHandleError):
            urn.decode_as(f"urn:vcloud:vapp:{VDC_ID}", urn.VDC)

    def test_encode_rejects_unknown_kind(self):
        with pytest.raises(MalformedHandleError):
            urn.encode("datastore", VDC_ID)

    def test_encode_rejects_empty_item_name(self):
        with pytest.raises(MalformedHandleError):
            urn.encode(urn.CATALOG_ITEM, urn.ScopedItemRef(CATALOG_ID, ""))


class TestNormalizeVmId:
    @pytest.mark.parametrize("value", [
        f"urn:vcloud:vm:{VDC_ID}",
        VDC_ID.replace("-", ""),
        VDC_ID.upper(),
        VDC_ID,
    ])
    def test_accepted_forms(self, value):
        assert urn.normalize_vm_id(value) == VDC_ID

    @pytest.mark.parametrize("value", ["", "1234", f"urn:vcloud:vapp:{VDC_ID}", "z" * 32])
    def test_rejected_forms(self, value):
        with pytest.raises(MalformedHandleError):
            urn.normalize_vm_id(value)
