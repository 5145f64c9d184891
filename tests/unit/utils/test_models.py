"""Tests for account and traversal result models."""

import pytest

from src.mcctree.utils.models import (
    AccessLevel,
    Account,
    AccountDetails,
    HierarchyNode,
    TraversalResult,
    format_traversal_summary,
)


def _account(account_id="1234567890", name="Client", is_manager=False, level=0, via=None):
    return Account(
        id=account_id,
        display_name=name,
        currency_code="USD",
        time_zone="America/New_York",
        is_manager=is_manager,
        level=level,
        discovered_via=via or account_id,
        access_level=AccessLevel.DIRECT_ACCESS if via is None else AccessLevel.VIA_MANAGER,
    )


class TestSummary:
    """Test the one-line traversal summary."""

    def test_exact_summary_text(self):
        result = TraversalResult(
            elapsed_millis=120,
            total_discovered=5,
            direct_access_count=2,
            via_manager_count=3,
            max_depth_reached=2,
            error_count=1,
            inaccessible_ids=("999",),
        )

        assert result.summary() == (
            "Traversal completed in 120 ms. Found 5 total accounts "
            "(2 direct access, 3 via manager). Max depth: 2. Errors: 1. Inaccessible: 1."
        )

    def test_empty_result_summary(self):
        assert format_traversal_summary(0, 0, 0, 0, 0, 0, 0) == (
            "Traversal completed in 0 ms. Found 0 total accounts "
            "(0 direct access, 0 via manager). Max depth: 0. Errors: 0. Inaccessible: 0."
        )


class TestAccount:
    """Test the Account model."""

    def test_from_details(self):
        details = AccountDetails("Brand", "EUR", "Europe/Paris", is_manager=True)

        account = Account.from_details("42", details, 1, "7", AccessLevel.VIA_MANAGER)

        assert account.display_name == "Brand"
        assert account.is_manager is True
        assert account.level == 1
        assert account.account_type == "Manager"
        assert account.resource_name == "customers/42"
        assert account.is_entry_point() is False

    def test_placeholder_details(self):
        placeholder = AccountDetails.placeholder()

        assert placeholder.display_name == "Unknown"
        assert placeholder.currency_code == ""
        assert placeholder.is_manager is False

    def test_to_dict(self):
        data = _account().to_dict()

        assert data["customerId"] == "1234567890"
        assert data["accountType"] == "Client"
        assert data["accessLevel"] == "DirectAccess"
        assert data["discoveredVia"] == "1234567890"

    def test_accounts_are_immutable(self):
        account = _account()

        with pytest.raises(AttributeError):
            account.level = 3


class TestTraversalResult:
    """Test navigation helpers on the result."""

    def setup_method(self):
        child = HierarchyNode(_account("2", "Child", level=1, via="1"))
        root = HierarchyNode(_account("1", "Root", is_manager=True), (child,))
        self.result = TraversalResult(
            forest=(root, HierarchyNode(_account("3", "Other"))),
            total_discovered=3,
        )

    def test_iter_accounts_in_display_order(self):
        assert [a.id for a in self.result.iter_accounts()] == ["1", "2", "3"]

    def test_find(self):
        assert self.result.find("2").account.display_name == "Child"
        assert self.result.find("missing") is None

    def test_to_dict_nests_children(self):
        data = self.result.to_dict()

        assert [node["customerId"] for node in data["hierarchy"]] == ["1", "3"]
        assert data["hierarchy"][0]["children"][0]["customerId"] == "2"
        assert data["timedOut"] is False
        assert data["summary"] == self.result.summary()
