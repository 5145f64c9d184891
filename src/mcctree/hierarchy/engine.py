"""Traversal engine discovering the account hierarchy behind manager accounts."""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from ..directory.credentials import CredentialContext
from ..directory.errors import DirectoryUnavailable, NotFound, SetupFailure
from ..directory.interfaces import AccountDirectory
from ..utils.logging_config import log_operation_end, log_operation_start
from ..utils.models import AccessLevel, Account, AccountDetails, ChildAccount, TraversalResult
from .assembler import assemble_forest
from .child_listers import ChildLister, TraversalStrategy

logger = logging.getLogger(__name__)

DEFAULT_RUN_BUDGET_SECONDS = 60.0
DEFAULT_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_WORKERS = 4


@dataclass
class TraversalConfig:
    """Tunable limits for one traversal engine."""

    strategy: TraversalStrategy = TraversalStrategy.DEEP
    max_depth: Optional[int] = None
    run_budget_seconds: float = DEFAULT_RUN_BUDGET_SECONDS
    call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self):
        """Resolve the strategy default depth and validate limits."""
        if not isinstance(self.strategy, TraversalStrategy):
            self.strategy = TraversalStrategy(str(self.strategy).lower())
        if self.max_depth is None:
            self.max_depth = self.strategy.default_max_depth
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be zero or greater, got {self.max_depth}")
        if self.run_budget_seconds <= 0:
            raise ValueError("run_budget_seconds must be positive")
        if self.call_timeout_seconds <= 0:
            raise ValueError("call_timeout_seconds must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TraversalConfig":
        """Create a config from the ``traversal`` configuration section."""
        max_depth = data.get("max_depth")
        return cls(
            strategy=data.get("strategy", TraversalStrategy.DEEP),
            max_depth=int(max_depth) if max_depth is not None else None,
            run_budget_seconds=float(data.get("run_budget_seconds", DEFAULT_RUN_BUDGET_SECONDS)),
            call_timeout_seconds=float(
                data.get("call_timeout_seconds", DEFAULT_CALL_TIMEOUT_SECONDS)
            ),
            max_workers=int(data.get("max_workers", DEFAULT_MAX_WORKERS)),
        )


class VisitedSet:
    """Account ids already claimed for expansion in one run."""

    def __init__(self) -> None:
        self._ids: Set[str] = set()
        self._lock = threading.Lock()

    def claim(self, account_id: str) -> bool:
        """Atomically insert an id; return False if it was already present."""
        with self._lock:
            if account_id in self._ids:
                return False
            self._ids.add(account_id)
            return True

    def __contains__(self, account_id: object) -> bool:
        with self._lock:
            return account_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class _DaemonThreadPool:
    """
    Run directory calls on at most ``max_workers`` daemon threads.

    Same submit/Future contract as ``ThreadPoolExecutor``, but workers are
    never joined: a call abandoned on timeout does not hold up interpreter exit.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str):
        self._max_workers = max_workers
        self._thread_name_prefix = thread_name_prefix
        self._work: "queue.SimpleQueue[Optional[_WorkItem]]" = queue.SimpleQueue()
        self._threads: List[threading.Thread] = []
        self._idle = threading.Semaphore(0)
        self._shutdown = False
        self._lock = threading.Lock()

    def submit(self, func: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot submit directory calls after shutdown")
            self._work.put(_WorkItem(future, func, args))
            if not self._idle.acquire(blocking=False) and len(self._threads) < self._max_workers:
                thread = threading.Thread(
                    target=self._worker,
                    name=f"{self._thread_name_prefix}_{len(self._threads)}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
        return future

    def _worker(self) -> None:
        while True:
            item = self._work.get()
            if item is None:
                return
            item.run()
            del item
            self._idle.release()

    def shutdown(self) -> None:
        """Cancel queued calls and stop idle workers without joining them."""
        with self._lock:
            self._shutdown = True
            while True:
                try:
                    item = self._work.get_nowait()
                except queue.Empty:
                    break
                if item is not None:
                    item.future.cancel()
            for _ in self._threads:
                self._work.put(None)


class _WorkItem:
    def __init__(self, future: Future, func: Callable[..., Any], args: Tuple[Any, ...]):
        self.future = future
        self.func = func
        self.args = args

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.func(*self.args)
        except BaseException as e:
            self.future.set_exception(e)
        else:
            self.future.set_result(result)


class _BudgetExhausted(Exception):
    """Raised inside a run when the overall time budget is used up."""


class _TraversalRun:
    """Mutable state owned by a single ``traverse`` call."""

    def __init__(self, credential: CredentialContext, config: TraversalConfig):
        self.credential = credential
        self.started = time.monotonic()
        self.deadline = self.started + config.run_budget_seconds
        self.executor = _DaemonThreadPool(
            max_workers=config.max_workers, thread_name_prefix="mcctree-directory"
        )
        self.visited = VisitedSet()
        self.nodes: Dict[str, Account] = {}
        self.edges: Dict[str, str] = {}
        self.direct_ids: List[str] = []
        self.unknown_ids: Set[str] = set()
        self.entry_point_ids: List[str] = []
        self.inaccessible_ids: List[str] = []
        self.depth_limited_ids: List[str] = []
        self.error_count = 0
        self.timed_out = False
        self._direct_id_set: Set[str] = set()
        self._contexts: Dict[Optional[str], CredentialContext] = {}
        self._lock = threading.Lock()

    def remaining_seconds(self) -> float:
        return self.deadline - time.monotonic()

    def check_budget(self) -> None:
        if self.remaining_seconds() <= 0:
            raise _BudgetExhausted()

    def set_direct_ids(self, account_ids: List[str]) -> None:
        # Keep first occurrence order, drop repeats from the remote listing
        self.direct_ids = list(dict.fromkeys(account_ids))
        self._direct_id_set = set(self.direct_ids)

    def context_for(self, acting_as_id: Optional[str]) -> CredentialContext:
        with self._lock:
            context = self._contexts.get(acting_as_id)
            if context is None:
                context = self.credential.acting_as(acting_as_id)
                self._contexts[acting_as_id] = context
            return context

    def access_level_for(self, account_id: str) -> AccessLevel:
        if account_id in self.unknown_ids:
            return AccessLevel.UNKNOWN
        if account_id in self._direct_id_set:
            return AccessLevel.DIRECT_ACCESS
        return AccessLevel.VIA_MANAGER

    def record_node(self, account: Account, parent_id: Optional[str] = None) -> None:
        with self._lock:
            self.nodes[account.id] = account
            if parent_id is not None and parent_id != account.id:
                self.edges[account.id] = parent_id

    def record_failure(self, account_id: str) -> None:
        with self._lock:
            self.error_count += 1
            if account_id not in self.inaccessible_ids:
                self.inaccessible_ids.append(account_id)

    def record_depth_limit(self, account_id: str) -> None:
        with self._lock:
            self.depth_limited_ids.append(account_id)

    def record_unvisited_direct_accounts(self) -> None:
        """Keep every directly visible id in the result, even if never described."""
        for account_id in self.direct_ids:
            if self.visited.claim(account_id):
                self.record_node(
                    Account.from_details(
                        account_id,
                        AccountDetails.placeholder(),
                        level=0,
                        discovered_via=account_id,
                        access_level=self.access_level_for(account_id),
                    )
                )

    def elapsed_millis(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def build_result(self) -> TraversalResult:
        with self._lock:
            accounts = list(self.nodes.values())
            forest = assemble_forest(dict(self.nodes), dict(self.edges))
            return TraversalResult(
                forest=forest,
                entry_point_manager_ids=tuple(self.entry_point_ids),
                total_discovered=len(accounts),
                direct_access_count=sum(
                    1 for a in accounts if a.access_level is AccessLevel.DIRECT_ACCESS
                ),
                via_manager_count=sum(
                    1 for a in accounts if a.access_level is AccessLevel.VIA_MANAGER
                ),
                error_count=self.error_count,
                inaccessible_ids=tuple(self.inaccessible_ids),
                max_depth_reached=max((a.level for a in accounts), default=0),
                elapsed_millis=self.elapsed_millis(),
                depth_limited_ids=tuple(self.depth_limited_ids),
                timed_out=self.timed_out,
            )

    def close(self) -> None:
        # Calls that never answered are abandoned, not joined
        self.executor.shutdown()


class HierarchyTraversalEngine:
    """
    Discover every account reachable from the caller's directly visible managers.

    The engine lists the directly visible accounts, classifies the managers
    among them, and walks each manager's clients depth first. Manager clients
    are walked acting as themselves; client accounts use the access of the
    manager that reached them. Each account is expanded at most once per run
    (first expansion wins), recursion is bounded by ``max_depth``, and a
    failure while expanding one account only stops that branch.

    Remote calls run on a per-run thread pool so each can be bounded by the
    per-call timeout and the overall run budget. The walk itself stays on the
    calling thread, which keeps attribution deterministic.
    """

    def __init__(
        self,
        directory: AccountDirectory,
        config: Optional[TraversalConfig] = None,
        child_lister: Optional[ChildLister] = None,
    ):
        """
        Initialize the engine.

        Args:
            directory: Remote account directory to query
            config: Traversal limits; defaults to the deep strategy
            child_lister: Child fetch capability; defaults to the one paired with
                the configured strategy
        """
        self.directory = directory
        self.config = config or TraversalConfig()
        self.child_lister = child_lister or self.config.strategy.create_child_lister(directory)

    def traverse(self, credential: CredentialContext) -> TraversalResult:
        """
        Run one hierarchy discovery.

        Args:
            credential: The caller's credential; any acting-as id is ignored for
                the initial listing

        Returns:
            TraversalResult: Possibly partial result; per-account failures are
            counted inside it

        Raises:
            SetupFailure: If the credential is malformed
            DirectoryError: If the initial listing of visible accounts fails
        """
        if not isinstance(credential, CredentialContext):
            raise SetupFailure(
                f"Expected a CredentialContext, got {type(credential).__name__}"
            )
        credential.validate()

        run = _TraversalRun(credential.acting_as(None), self.config)
        operation_id = log_operation_start(
            logger,
            "hierarchy_traversal",
            strategy=self.config.strategy.value,
            max_depth=self.config.max_depth,
        )
        try:
            try:
                visible_ids = self._call(
                    run,
                    "list_directly_visible_accounts",
                    None,
                    self.directory.list_directly_visible_accounts,
                    run.credential,
                )
            except _BudgetExhausted:
                run.timed_out = True
                logger.warning("Run budget exhausted while listing directly visible accounts")
                return self._finish(run, operation_id)
            except Exception:
                log_operation_end(
                    logger,
                    "hierarchy_traversal",
                    operation_id,
                    success=False,
                    duration_ms=run.elapsed_millis(),
                )
                raise

            run.set_direct_ids([str(account_id) for account_id in visible_ids])
            logger.info(f"Found {len(run.direct_ids)} directly accessible accounts")

            try:
                for manager_id in self._classify_direct_accounts(run):
                    self._expand(
                        run,
                        account_id=manager_id,
                        acting_as_id=manager_id,
                        depth=0,
                        discovered_via=manager_id,
                        listing=ChildAccount(account_id=manager_id, is_manager=True),
                    )
                self._record_direct_clients(run)
            except _BudgetExhausted:
                run.timed_out = True
                logger.warning(
                    f"Run budget of {self.config.run_budget_seconds}s exhausted; "
                    f"returning {len(run.nodes)} accounts collected so far"
                )
                run.record_unvisited_direct_accounts()

            return self._finish(run, operation_id)
        finally:
            run.close()

    def _finish(self, run: _TraversalRun, operation_id: str) -> TraversalResult:
        result = run.build_result()
        log_operation_end(
            logger,
            "hierarchy_traversal",
            operation_id,
            success=True,
            duration_ms=result.elapsed_millis,
            total_accounts=result.total_discovered,
            errors=result.error_count,
        )
        logger.info(result.summary())
        return result

    def _call(
        self,
        run: _TraversalRun,
        operation: str,
        account_id: Optional[str],
        func: Callable[..., Any],
        *args: Any,
    ) -> Any:
        run.check_budget()
        return self._await(run, run.executor.submit(func, *args), operation, account_id)

    def _await(
        self, run: _TraversalRun, future: Future, operation: str, account_id: Optional[str]
    ) -> Any:
        remaining = run.remaining_seconds()
        timeout = min(self.config.call_timeout_seconds, remaining)
        if timeout <= 0:
            future.cancel()
            raise _BudgetExhausted()
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            if future.done():
                # The directory itself raised a TimeoutError
                raise
            future.cancel()
            if remaining <= self.config.call_timeout_seconds or run.remaining_seconds() <= 0:
                raise _BudgetExhausted()
            raise DirectoryUnavailable(
                f"{operation} did not answer within {timeout:.2f}s",
                account_id=account_id,
                operation=operation,
            )

    def _classify_direct_accounts(self, run: _TraversalRun) -> List[str]:
        """Return directly visible manager ids in listing order."""
        run.check_budget()
        futures = [
            (account_id, run.executor.submit(self.directory.is_manager, run.credential, account_id))
            for account_id in run.direct_ids
        ]
        for account_id, future in futures:
            try:
                is_manager = self._await(run, future, "is_manager", account_id)
            except _BudgetExhausted:
                raise
            except Exception as e:
                logger.warning(f"Could not determine if account {account_id} is a manager: {e}")
                run.unknown_ids.add(account_id)
                continue
            if is_manager:
                run.entry_point_ids.append(account_id)

        logger.info(
            f"Found {len(run.entry_point_ids)} entry-point manager accounts: {run.entry_point_ids}"
        )
        return list(run.entry_point_ids)

    def _expand(
        self,
        run: _TraversalRun,
        account_id: str,
        acting_as_id: Optional[str],
        depth: int,
        discovered_via: str,
        listing: Optional[ChildAccount] = None,
    ) -> None:
        """Record ``account_id`` and, for managers, walk its clients."""
        if depth > self.config.max_depth:
            logger.debug(f"Depth limit reached before account {account_id}")
            return

        if not run.visited.claim(account_id):
            logger.debug(
                f"Account {account_id} already visited; ignoring listing under {discovered_via}"
            )
            return

        parent_id = discovered_via if depth > 0 else None
        access_level = run.access_level_for(account_id)
        credential = run.context_for(acting_as_id)

        details = listing.details if listing is not None else None
        if details is None:
            try:
                details = self._call(
                    run,
                    "fetch_account_details",
                    account_id,
                    self.directory.fetch_account_details,
                    credential,
                    account_id,
                )
            except _BudgetExhausted:
                run.record_node(
                    self._placeholder(account_id, depth, discovered_via, access_level), parent_id
                )
                raise
            except Exception as e:
                self._log_branch_failure("fetch_account_details", account_id, acting_as_id, e)
                run.record_node(
                    self._placeholder(account_id, depth, discovered_via, access_level), parent_id
                )
                run.record_failure(account_id)
                return

        is_manager = details.is_manager or (listing is not None and listing.is_manager)
        run.record_node(
            Account(
                id=account_id,
                display_name=details.display_name,
                currency_code=details.currency_code,
                time_zone=details.time_zone,
                is_manager=is_manager,
                level=depth,
                discovered_via=discovered_via,
                access_level=access_level,
            ),
            parent_id,
        )

        if not is_manager:
            return

        if depth >= self.config.max_depth:
            logger.debug(f"Not listing clients of manager {account_id} at depth {depth}")
            run.record_depth_limit(account_id)
            return

        try:
            children = self._call(
                run,
                "list_children",
                account_id,
                self.child_lister.list_children,
                credential,
                account_id,
            )
        except _BudgetExhausted:
            raise
        except Exception as e:
            self._log_branch_failure("list_children", account_id, acting_as_id, e)
            run.record_failure(account_id)
            return

        logger.debug(f"Manager {account_id} lists {len(children)} clients at depth {depth}")
        for child in children:
            self._expand(
                run,
                account_id=child.account_id,
                acting_as_id=child.account_id if child.is_manager else acting_as_id,
                depth=depth + 1,
                discovered_via=account_id,
                listing=child,
            )

    def _record_direct_clients(self, run: _TraversalRun) -> None:
        """Record directly visible non-managers that no manager listing reached."""
        for account_id in run.direct_ids:
            if not run.visited.claim(account_id):
                continue
            access_level = run.access_level_for(account_id)
            try:
                details = self._call(
                    run,
                    "fetch_account_details",
                    account_id,
                    self.directory.fetch_account_details,
                    run.credential,
                    account_id,
                )
            except _BudgetExhausted:
                run.record_node(self._placeholder(account_id, 0, account_id, access_level))
                raise
            except Exception as e:
                self._log_branch_failure("fetch_account_details", account_id, None, e)
                run.record_node(self._placeholder(account_id, 0, account_id, access_level))
                run.record_failure(account_id)
                continue

            run.record_node(
                Account.from_details(account_id, details, 0, account_id, access_level)
            )

    @staticmethod
    def _placeholder(
        account_id: str, level: int, discovered_via: str, access_level: AccessLevel
    ) -> Account:
        return Account.from_details(
            account_id, AccountDetails.placeholder(), level, discovered_via, access_level
        )

    @staticmethod
    def _log_branch_failure(
        operation: str, account_id: str, acting_as_id: Optional[str], error: Exception
    ) -> None:
        if isinstance(error, NotFound):
            logger.warning(
                f"Account {account_id} not found while running {operation} "
                f"as {acting_as_id or 'the authenticated user'}"
            )
        elif isinstance(error, DirectoryUnavailable):
            logger.warning(f"Directory unavailable for {operation} on account {account_id}: {error}")
        else:
            logger.warning(
                f"Unexpected {type(error).__name__} during {operation} on account {account_id}: {error}"
            )
