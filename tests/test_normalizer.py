"""Unit tests for identifier and version normalization."""

import pytest

from feed_ingestor.app.normalizer import normalize_identifier, normalize_version


class TestNormalizeIdentifier:
    """Test normalize_identifier function."""

    def test_splits_platform_and_version(self):
        raw = "cpe:2.3:o:microsoft:windows_10:-:*:*:*:*:*:*:*"
        result = normalize_identifier(raw)
        assert result == "cpe:2.3:o:microsoft:windows:10:-:*:*:*:*:*:*:*"

    def test_adds_exactly_one_field(self):
        raw = "cpe:2.3:o:apple:macos_13:*:*:*:*:*:*:*:*"
        result = normalize_identifier(raw)
        assert len(result.split(":")) == len(raw.split(":")) + 1
        assert result.split(":")[5] == "13"
        assert result.split(":")[4] == "macos"

    def test_later_fields_shift_right(self):
        raw = "cpe:2.3:a:vendor:prod_x:1.0:update1"
        assert normalize_identifier(raw).split(":")[6:] == ["1.0", "update1"]

    @pytest.mark.parametrize(
        "raw",
        [
            "cpe:2.3:a:example:widget:*:*:*:*:*:*:*:*",
            "cpe:2.3:a:example:http_server_pro:2.4:*:*:*:*:*:*:*",
            "cpe:2.3:a",
            "",
            "no colons at all",
        ],
    )
    def test_identity_when_product_does_not_split_in_two(self, raw):
        assert normalize_identifier(raw) == raw

    def test_empty_halves_still_count_as_two_parts(self):
        # "widget_" splits into ["widget", ""]
        assert normalize_identifier("cpe:2.3:a:ex:widget_:*") == "cpe:2.3:a:ex:widget::*"

    def test_product_as_last_field(self):
        assert normalize_identifier("cpe:2.3:o:ex:os_11") == "cpe:2.3:o:ex:os:11"


class TestNormalizeVersion:
    """Test normalize_version function."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2.4.1", "2.4.1"),
            ("2.4.1-rc1", "2.4.1"),
            ("10", "10"),
            ("1.2.", "1.2"),
            ("3.0beta", "3.0"),
            ("2024.01.15_hotfix", "2024.01.15"),
        ],
    )
    def test_keeps_leading_dotted_numeric_run(self, raw, expected):
        assert normalize_version(raw) == expected

    @pytest.mark.parametrize("raw", ["", "v1.2", "-", "*", ".5", None])
    def test_returns_empty_without_numeric_prefix(self, raw):
        assert normalize_version(raw) == ""
