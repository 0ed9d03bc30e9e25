# tests/utils/test_k8s_names.py
import pytest

from vdcbridge.utils.k8s_names import (
    is_dns_label,
    namespace_candidates,
    namespace_name_for,
    sanitize_label_value,
)


class TestSanitizeLabelValue:
    @pytest.mark.parametrize("value, expected", [
        ("Acme Corp", "Acme-Corp"),
        ("dev_team.1", "dev_team.1"),
        ("--edge--", "edge"),
        ("", ""),
        ("!!!", "unknown"),
    ])
    def test_values(self, value, expected):
        assert sanitize_label_value(value) == expected

    def test_truncated_and_retrimmed(self):
        """63자를 넘으면 잘라낸 뒤 끝에 남은 구분 문자를 다시 제거합니다."""
        value = "a" * 62 + "-b"

        result = sanitize_label_value(value)

        assert result == "a" * 62
        assert len(result) <= 63


class TestNamespaceNames:
    def test_base_name(self):
        assert namespace_name_for("Acme_Corp", "Dev VDC") == "vdc-acme-corp-devvdc"

    def test_empty_segments_fall_back_to_default(self):
        assert namespace_name_for("!!!", "") == "vdc-default-default"

    def test_candidates_append_suffixes(self):
        candidates = list(namespace_candidates("acme", "dev", max_suffix=3))

        assert candidates == ["vdc-acme-dev", "vdc-acme-dev-1", "vdc-acme-dev-2", "vdc-acme-dev-3"]

    def test_long_names_stay_within_label_length(self):
        """접미사 '-999'를 붙여도 63자를 넘지 않습니다."""
        candidates = list(namespace_candidates("o" * 80, "v" * 80))

        assert len(candidates) == 1000
        assert all(len(name) <= 63 and is_dns_label(name) for name in candidates)


class TestDnsLabel:
    @pytest.mark.parametrize("value", ["web", "web-01", "a", "a" * 63])
    def test_valid(self, value):
        assert is_dns_label(value)

    @pytest.mark.parametrize("value", ["", "Web", "-web", "web-", "web_01", "a" * 64, "web\n", None, 123])
    def test_invalid(self, value):
        assert not is_dns_label(value)
