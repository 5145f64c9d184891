"""Tests for the hierarchy traversal engine."""

import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from src.mcctree.directory.errors import DirectoryUnavailable, NotFound, SetupFailure
from src.mcctree.hierarchy.child_listers import TraversalStrategy
from src.mcctree.hierarchy.engine import HierarchyTraversalEngine, TraversalConfig, VisitedSet
from src.mcctree.utils.models import AccessLevel, AccountDetails
from tests.fixtures.directory import (
    AGENCY_ID,
    ALPHA_ID,
    BRAVO_ID,
    DIRECT_CLIENT_ID,
    SUB_MANAGER_ID,
    ZULU_ID,
    InMemoryAccountDirectory,
    build_agency_directory,
    make_credential,
)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


@pytest.fixture
def directory():
    """Agency hierarchy; any hung call is released on teardown."""
    directory = build_agency_directory()
    yield directory
    directory.release()


def _forest_ids(result):
    return [root.id for root in result.forest]


def _manager_chain_directory(length=5):
    """Managers 100 -> 101 -> ... each listing one client (200, 201, ...)."""
    accounts = {}
    children = {}
    for level in range(length):
        manager_id = f"10{level}"
        client_id = f"20{level}"
        accounts[manager_id] = AccountDetails(f"Manager {level}", is_manager=True)
        accounts[client_id] = AccountDetails(f"Client {level}")
        children[manager_id] = [client_id]
        if level < length - 1:
            children[manager_id].append(f"10{level + 1}")
    return InMemoryAccountDirectory(visible_ids=["100"], accounts=accounts, children=children)


class TestTraversalConfig:
    """Test strategy resolution and validation."""

    def test_deep_strategy_defaults(self):
        config = TraversalConfig()

        assert config.strategy == TraversalStrategy.DEEP
        assert config.max_depth == 10

    def test_flat_strategy_defaults(self):
        config = TraversalConfig(strategy=TraversalStrategy.FLAT)

        assert config.max_depth == 1

    def test_explicit_depth_overrides_strategy(self):
        config = TraversalConfig(strategy=TraversalStrategy.FLAT, max_depth=3)

        assert config.max_depth == 3

    def test_from_dict_accepts_strategy_name(self):
        config = TraversalConfig.from_dict(
            {"strategy": "FLAT", "max_depth": None, "run_budget_seconds": 5, "max_workers": 2}
        )

        assert config.strategy == TraversalStrategy.FLAT
        assert config.max_depth == 1
        assert config.run_budget_seconds == 5.0
        assert config.max_workers == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_depth": -1},
            {"run_budget_seconds": 0},
            {"call_timeout_seconds": -5},
            {"max_workers": 0},
        ],
    )
    def test_invalid_limits_are_rejected(self, kwargs):
        with pytest.raises(ValueError):
            TraversalConfig(**kwargs)


class TestVisitedSet:
    """Test the per-run visited set."""

    def test_claim_once(self):
        visited = VisitedSet()

        assert visited.claim("1") is True
        assert visited.claim("1") is False
        assert "1" in visited
        assert len(visited) == 1

    def test_concurrent_claims_have_single_winner(self):
        visited = VisitedSet()
        results = []
        barrier = threading.Barrier(8)

        def claim():
            barrier.wait()
            results.append(visited.claim("shared"))

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert len(visited) == 1


class TestDeepTraversal:
    """Test a full traversal of the agency hierarchy."""

    def test_discovers_every_reachable_account(self, directory):
        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert result.total_discovered == 6
        assert result.entry_point_manager_ids == (AGENCY_ID,)
        assert result.direct_access_count == 2
        assert result.via_manager_count == 4
        assert result.error_count == 0
        assert result.inaccessible_ids == ()
        assert result.max_depth_reached == 2
        assert result.timed_out is False
        assert result.depth_limited_ids == ()

    def test_forest_shape_and_sibling_order(self, directory):
        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert _forest_ids(result) == [AGENCY_ID, DIRECT_CLIENT_ID]
        agency = result.forest[0]
        assert [child.account.display_name for child in agency.children] == [
            "Sub Manager",
            "Alpha",
            "bravo",
        ]
        sub_manager = agency.children[0]
        assert [child.id for child in sub_manager.children] == [ZULU_ID]

    def test_levels_and_attribution(self, directory):
        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        agency = result.find(AGENCY_ID).account
        zulu = result.find(ZULU_ID).account
        direct_client = result.find(DIRECT_CLIENT_ID).account

        assert agency.level == 0
        assert agency.discovered_via == AGENCY_ID
        assert agency.access_level == AccessLevel.DIRECT_ACCESS
        assert zulu.level == 2
        assert zulu.discovered_via == SUB_MANAGER_ID
        assert zulu.access_level == AccessLevel.VIA_MANAGER
        assert direct_client.level == 0
        assert direct_client.is_entry_point()
        assert direct_client.access_level == AccessLevel.DIRECT_ACCESS

    def test_calls_act_as_the_manager_that_reached_the_account(self, directory):
        HierarchyTraversalEngine(directory).traverse(make_credential())

        details_calls = dict(
            (account_id, login) for login, account_id in directory.calls_for("fetch_account_details")
        )
        assert details_calls[AGENCY_ID] == AGENCY_ID
        assert details_calls[BRAVO_ID] == AGENCY_ID
        assert details_calls[ALPHA_ID] == AGENCY_ID
        assert details_calls[SUB_MANAGER_ID] == SUB_MANAGER_ID
        assert details_calls[ZULU_ID] == SUB_MANAGER_ID
        assert details_calls[DIRECT_CLIENT_ID] is None

        assert directory.calls_for("list_directly_visible_accounts") == [(None, None)]
        assert sorted(directory.calls_for("list_immediate_children")) == [
            (AGENCY_ID, AGENCY_ID),
            (SUB_MANAGER_ID, SUB_MANAGER_ID),
        ]

    def test_initial_acting_as_id_is_ignored_for_first_listing(self, directory):
        result = HierarchyTraversalEngine(directory).traverse(make_credential("999-999-9999"))

        assert directory.calls_for("list_directly_visible_accounts") == [(None, None)]
        assert result.total_discovered == 6

    def test_summary_matches_counts(self, directory):
        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        summary = result.summary()
        assert summary.startswith(f"Traversal completed in {result.elapsed_millis} ms.")
        assert summary.endswith(
            "Found 6 total accounts (2 direct access, 4 via manager). "
            "Max depth: 2. Errors: 0. Inaccessible: 0."
        )


class TestRevisitGuard:
    """Test that each account is expanded once per run."""

    def test_shared_client_is_attributed_to_first_manager(self):
        directory = InMemoryAccountDirectory(
            visible_ids=["100", "200"],
            accounts={
                "100": AccountDetails("First", is_manager=True),
                "200": AccountDetails("Second", is_manager=True),
                "300": AccountDetails("Shared"),
            },
            children={"100": ["300"], "200": ["300"]},
        )

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        accounts = list(result.iter_accounts())
        assert [a.id for a in accounts].count("300") == 1
        assert result.find("300").account.discovered_via == "100"
        assert result.find("200").children == ()
        assert result.error_count == 0

    def test_cycle_between_managers_terminates(self):
        directory = InMemoryAccountDirectory(
            visible_ids=["100"],
            accounts={
                "100": AccountDetails("Top", is_manager=True),
                "200": AccountDetails("Loop", is_manager=True),
            },
            children={"100": ["200"], "200": ["100"]},
        )

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert result.total_discovered == 2
        assert _forest_ids(result) == ["100"]
        assert result.find("200").account.discovered_via == "100"
        assert len(directory.calls_for("list_immediate_children")) == 2

    def test_direct_client_reached_through_manager_is_not_duplicated(self):
        directory = InMemoryAccountDirectory(
            visible_ids=["100", "300"],
            accounts={
                "100": AccountDetails("Manager", is_manager=True),
                "300": AccountDetails("Client"),
            },
            children={"100": ["300"]},
        )

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert _forest_ids(result) == ["100"]
        client = result.find("300").account
        assert client.level == 1
        assert client.discovered_via == "100"
        assert client.access_level == AccessLevel.DIRECT_ACCESS


class TestDepthCutoff:
    """Test the depth policy."""

    def test_depth_zero_lists_no_children(self, directory):
        engine = HierarchyTraversalEngine(directory, TraversalConfig(max_depth=0))

        result = engine.traverse(make_credential())

        assert _forest_ids(result) == [AGENCY_ID, DIRECT_CLIENT_ID]
        assert result.total_discovered == 2
        assert result.depth_limited_ids == (AGENCY_ID,)
        assert result.error_count == 0
        assert result.inaccessible_ids == ()
        assert directory.calls_for("list_immediate_children") == []

    def test_depth_one_stops_below_first_level(self, directory):
        engine = HierarchyTraversalEngine(directory, TraversalConfig(max_depth=1))

        result = engine.traverse(make_credential())

        assert result.find(ZULU_ID) is None
        assert result.find(SUB_MANAGER_ID) is not None
        assert result.depth_limited_ids == (SUB_MANAGER_ID,)
        assert result.max_depth_reached == 1
        assert result.error_count == 0

    @pytest.mark.parametrize("max_depth", [2, 3])
    def test_no_account_below_max_depth(self, max_depth):
        directory = _manager_chain_directory()
        engine = HierarchyTraversalEngine(directory, TraversalConfig(max_depth=max_depth))

        result = engine.traverse(make_credential())

        levels = [account.level for account in result.iter_accounts()]
        assert max(levels) == max_depth
        assert all(level <= max_depth for level in levels)
        assert result.total_discovered == 2 * max_depth + 1
        assert result.depth_limited_ids == (f"10{max_depth}",)
        assert result.find(f"10{max_depth + 1}") is None


class TestPartialFailures:
    """Test that a failure only stops its own branch."""

    def test_failed_child_listing_keeps_node_and_siblings(self, directory):
        directory.fail(
            "list_immediate_children",
            SUB_MANAGER_ID,
            DirectoryUnavailable("quota exceeded", account_id=SUB_MANAGER_ID),
        )

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert result.find(SUB_MANAGER_ID) is not None
        assert result.find(ZULU_ID) is None
        assert result.find(ALPHA_ID) is not None
        assert result.find(BRAVO_ID) is not None
        assert result.error_count == 1
        assert result.inaccessible_ids == (SUB_MANAGER_ID,)

    def test_failed_details_record_placeholder(self, directory):
        directory.fail(
            "fetch_account_details",
            BRAVO_ID,
            NotFound(BRAVO_ID, operation="fetch_account_details", acting_as_id=AGENCY_ID),
        )

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        bravo = result.find(BRAVO_ID).account
        assert bravo.display_name == "Unknown"
        assert bravo.discovered_via == AGENCY_ID
        assert result.inaccessible_ids == (BRAVO_ID,)
        assert result.error_count == 1
        assert result.total_discovered == 6

    def test_failed_manager_check_marks_access_unknown(self, directory):
        directory.fail("is_manager", DIRECT_CLIENT_ID, DirectoryUnavailable("timeout"))

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        direct_client = result.find(DIRECT_CLIENT_ID).account
        assert direct_client.access_level == AccessLevel.UNKNOWN
        assert direct_client.level == 0
        assert result.direct_access_count == 1
        assert result.error_count == 0

    def test_unexpected_exception_is_isolated(self, directory):
        directory.fail("fetch_account_details", ALPHA_ID, RuntimeError("boom"))

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert result.find(ALPHA_ID).account.display_name == "Unknown"
        assert result.find(BRAVO_ID).account.display_name == "bravo"
        assert result.error_count == 1

    def test_first_listing_failure_propagates(self, directory):
        directory.fail("list_directly_visible_accounts", "", DirectoryUnavailable("auth failed"))

        with pytest.raises(DirectoryUnavailable, match="auth failed"):
            HierarchyTraversalEngine(directory).traverse(make_credential())

    def test_no_visible_accounts_gives_empty_result(self):
        directory = InMemoryAccountDirectory(visible_ids=[], accounts={}, children={})

        result = HierarchyTraversalEngine(directory).traverse(make_credential())

        assert result.forest == ()
        assert result.total_discovered == 0
        assert result.max_depth_reached == 0


class TestSetupFailures:
    """Test credential validation before any remote call."""

    def test_missing_secret_raises_setup_failure(self, directory):
        credential = make_credential()
        object.__setattr__(credential, "refresh_token", "")

        with pytest.raises(SetupFailure) as exc_info:
            HierarchyTraversalEngine(directory).traverse(credential)

        assert exc_info.value.missing_fields == ["refresh_token"]
        assert directory.calls == []

    def test_wrong_credential_type_raises_setup_failure(self, directory):
        with pytest.raises(SetupFailure):
            HierarchyTraversalEngine(directory).traverse({"client_id": "x"})


class TestFlatStrategy:
    """Test the single-listing strategy."""

    def test_flat_strategy_reuses_listing_details(self, directory):
        engine = HierarchyTraversalEngine(
            directory, TraversalConfig(strategy=TraversalStrategy.FLAT)
        )

        result = engine.traverse(make_credential())

        fetched = {account_id for _, account_id in directory.calls_for("fetch_account_details")}
        assert fetched == {AGENCY_ID, DIRECT_CLIENT_ID}
        assert directory.calls_for("list_immediate_children") == [(AGENCY_ID, AGENCY_ID)]
        assert result.find(ALPHA_ID).account.currency_code == "USD"
        assert result.find(ZULU_ID) is None
        assert result.depth_limited_ids == (SUB_MANAGER_ID,)
        assert result.max_depth_reached == 1


class TestTimeouts:
    """Test the per-call timeout and the run budget."""

    def test_slow_call_times_out_as_branch_failure(self, directory):
        directory.hang("list_immediate_children", SUB_MANAGER_ID)
        engine = HierarchyTraversalEngine(
            directory, TraversalConfig(run_budget_seconds=5, call_timeout_seconds=0.2)
        )

        result = engine.traverse(make_credential())

        assert result.timed_out is False
        assert result.inaccessible_ids == (SUB_MANAGER_ID,)
        assert result.error_count == 1
        assert result.find(ALPHA_ID) is not None
        assert result.find(DIRECT_CLIENT_ID).account.display_name == "Direct Client"

    def test_budget_exhaustion_returns_partial_result(self, directory):
        directory.hang("list_immediate_children", AGENCY_ID)
        engine = HierarchyTraversalEngine(directory, TraversalConfig(run_budget_seconds=0.05))

        started = time.monotonic()
        result = engine.traverse(make_credential())
        elapsed = time.monotonic() - started

        assert elapsed < 2
        assert result.timed_out is True
        assert result.find(AGENCY_ID) is not None
        assert result.find(DIRECT_CLIENT_ID) is not None
        assert result.find(ZULU_ID) is None

    def test_directory_workers_are_daemon_threads(self, directory):
        directory.hang("list_immediate_children", AGENCY_ID)
        engine = HierarchyTraversalEngine(directory, TraversalConfig(run_budget_seconds=0.05))

        engine.traverse(make_credential())

        workers = [t for t in threading.enumerate() if t.name.startswith("mcctree-directory")]
        assert workers
        assert all(worker.daemon for worker in workers)

    def test_abandoned_call_does_not_delay_process_exit(self):
        script = textwrap.dedent(
            """
            from src.mcctree.hierarchy.engine import HierarchyTraversalEngine, TraversalConfig
            from tests.fixtures.directory import AGENCY_ID, build_agency_directory, make_credential

            directory = build_agency_directory()
            directory.hang("list_immediate_children", AGENCY_ID)
            engine = HierarchyTraversalEngine(directory, TraversalConfig(run_budget_seconds=0.05))
            print(engine.traverse(make_credential()).timed_out)
            """
        )

        started = time.monotonic()
        completed = subprocess.run(
            [sys.executable, "-c", script],
            cwd=PROJECT_ROOT,
            capture_output=True,
            text=True,
            timeout=30,
        )
        elapsed = time.monotonic() - started

        assert completed.returncode == 0, completed.stderr
        assert completed.stdout.strip() == "True"
        # The hung call only returns after ten seconds
        assert elapsed < 8
