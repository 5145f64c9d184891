"""Tests for customer id helpers."""

import pytest

from src.mcctree.utils.formatters import (
    customer_id_from_resource_name,
    format_customer_id,
    normalize_customer_id,
)


class TestNormalizeCustomerId:
    """Test customer id normalisation."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("123-456-7890", "1234567890"),
            (" 1234567890 ", "1234567890"),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_customer_id(value) == expected

    def test_rejects_non_digits(self):
        with pytest.raises(ValueError, match="Expected digits only"):
            normalize_customer_id("12a-456-7890")


class TestFormatCustomerId:
    """Test the xxx-xxx-xxxx display form."""

    def test_formats_ten_digits(self):
        assert format_customer_id("1234567890") == "123-456-7890"

    def test_other_ids_unchanged(self):
        assert format_customer_id("999") == "999"

    def test_empty(self):
        assert format_customer_id(None) == ""


class TestResourceNames:
    """Test resource name parsing."""

    def test_extracts_id(self):
        assert customer_id_from_resource_name("customers/1234567890") == "1234567890"

    def test_falls_back_to_last_segment(self):
        assert customer_id_from_resource_name("something/else/42") == "42"
