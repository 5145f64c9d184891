"""Google Ads implementation of the account directory."""

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, cast

from google.ads.googleads.client import GoogleAdsClient
from google.ads.googleads.errors import GoogleAdsException
from google.auth.exceptions import RefreshError

from ..utils.formatters import customer_id_from_resource_name
from ..utils.models import AccountDetails, ChildAccount
from .credentials import CredentialContext
from .errors import DirectoryError, DirectoryUnavailable, NotFound
from .interfaces import AccountDirectory

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

CUSTOMER_DETAILS_QUERY = (
    "SELECT customer.id, customer.descriptive_name, customer.currency_code, "
    "customer.time_zone, customer.manager "
    "FROM customer"
)

MANAGER_FLAG_QUERY = "SELECT customer.id, customer.manager FROM customer"

IMMEDIATE_CHILDREN_QUERY = (
    "SELECT customer_client.client_customer, customer_client.id, "
    "customer_client.descriptive_name, customer_client.level, customer_client.manager, "
    "customer_client.currency_code, customer_client.time_zone "
    "FROM customer_client "
    "WHERE customer_client.status = 'ENABLED' "
    "AND customer_client.level = 1"
)

# gRPC status codes that mean "this identity cannot see that account"
NOT_FOUND_STATUS_CODES = {"NOT_FOUND", "PERMISSION_DENIED"}
NON_RETRYABLE_STATUS_CODES = {"INVALID_ARGUMENT", "UNAUTHENTICATED", "FAILED_PRECONDITION"}


def with_retry(max_retries: int = 3, base_delay: float = 0.5) -> Callable[[F], F]:
    """
    Retry a directory call on retryable ``DirectoryUnavailable`` errors.

    When the directory has a ``call_timeout``, the whole call (every attempt
    and every backoff sleep) must finish within it. Once the next backoff
    would pass that deadline the last error is raised instead.
    """

    def decorator(func: F) -> F:
        def wrapper(self, *args: Any, **kwargs: Any) -> Any:
            attempts = getattr(self, "max_retries", max_retries)
            call_timeout = getattr(self, "call_timeout", None)
            deadline = time.monotonic() + call_timeout if call_timeout else None
            self._call_state.deadline = deadline
            try:
                for attempt in range(attempts):
                    try:
                        return func(self, *args, **kwargs)
                    except DirectoryUnavailable as e:
                        if not e.retryable or attempt == attempts - 1:
                            raise
                        delay = getattr(self, "retry_base_delay", base_delay) * (2**attempt)
                        if deadline is not None and time.monotonic() + delay >= deadline:
                            logger.warning(
                                f"Giving up on {func.__name__} after {attempt + 1} attempt(s): "
                                f"call timeout of {call_timeout}s reached: {e}"
                            )
                            raise
                        logger.warning(
                            f"Retry {attempt + 1}/{attempts} for {func.__name__} in {delay:.1f}s: {e}"
                        )
                        time.sleep(delay)
                # Only reached when attempts is zero
                return func(self, *args, **kwargs)
            finally:
                self._call_state.deadline = None

        return cast(F, wrapper)

    return decorator


def _create_client(credential: CredentialContext) -> GoogleAdsClient:
    return GoogleAdsClient.load_from_dict(credential.to_client_config())


def translate_google_ads_error(
    error: Exception, operation: str, account_id: Optional[str], acting_as_id: Optional[str]
) -> DirectoryError:
    """Map a Google Ads client failure onto the directory error taxonomy."""
    if isinstance(error, GoogleAdsException):
        status_name = error.error.code().name
        messages = "; ".join(err.message for err in error.failure.errors) or str(error)
        if status_name in NOT_FOUND_STATUS_CODES and account_id:
            return NotFound(account_id, operation=operation, acting_as_id=acting_as_id)
        return DirectoryUnavailable(
            f"{operation} failed with {status_name} (request {error.request_id}): {messages}",
            account_id=account_id,
            operation=operation,
            retryable=status_name not in NON_RETRYABLE_STATUS_CODES,
            context={"status": status_name, "request_id": error.request_id},
        )
    if isinstance(error, RefreshError):
        return DirectoryUnavailable(
            f"{operation} failed: OAuth refresh token was rejected: {error}",
            account_id=account_id,
            operation=operation,
            retryable=False,
        )
    return DirectoryUnavailable(
        f"{operation} failed: {error}",
        account_id=account_id,
        operation=operation,
    )


class GoogleAdsAccountDirectory(AccountDirectory):
    """
    Account directory backed by the Google Ads API.

    One ``GoogleAdsClient`` is created per distinct credential context (the
    acting-as id is part of the context) and reused for the lifetime of the
    directory. Calls are thread safe.

    With a ``call_timeout`` every API request carries a gRPC deadline, so a
    call the caller has stopped waiting for does not keep running.
    """

    def __init__(
        self,
        client_factory: Optional[Callable[[CredentialContext], Any]] = None,
        max_retries: int = 3,
        retry_base_delay: float = 0.5,
        call_timeout: Optional[float] = None,
    ):
        """
        Initialize the directory.

        Args:
            client_factory: Builds a Google Ads client for a credential context
            max_retries: Attempts per call for retryable failures
            retry_base_delay: First backoff delay in seconds, doubled per attempt
            call_timeout: Seconds one call may take, retries included; None means
                the client library defaults
        """
        self._client_factory = client_factory or _create_client
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.call_timeout = call_timeout
        self._clients: Dict[CredentialContext, Any] = {}
        self._lock = threading.Lock()
        self._call_state = threading.local()

    def _get_client(self, credential: CredentialContext) -> Any:
        with self._lock:
            client = self._clients.get(credential)
            if client is None:
                logger.debug(f"Creating Google Ads client acting as {credential.login_customer_id}")
                client = self._client_factory(credential)
                self._clients[credential] = client
            return client

    def _request_options(self) -> Dict[str, Any]:
        deadline = getattr(self._call_state, "deadline", None)
        if deadline is None:
            return {}
        return {"timeout": max(deadline - time.monotonic(), 0.001)}

    def _search(self, credential: CredentialContext, customer_id: str, query: str) -> Iterator[Any]:
        service = self._get_client(credential).get_service("GoogleAdsService")
        stream = service.search_stream(
            customer_id=customer_id, query=query, **self._request_options()
        )
        for batch in stream:
            for row in batch.results:
                yield row

    @with_retry()
    def list_directly_visible_accounts(self, credential: CredentialContext) -> List[str]:
        try:
            service = self._get_client(credential).get_service("CustomerService")
            response = service.list_accessible_customers(**self._request_options())
            return [customer_id_from_resource_name(name) for name in response.resource_names]
        except Exception as e:
            raise translate_google_ads_error(
                e, "list_directly_visible_accounts", None, credential.login_customer_id
            ) from e

    @with_retry()
    def is_manager(self, credential: CredentialContext, account_id: str) -> bool:
        try:
            for row in self._search(credential, account_id, MANAGER_FLAG_QUERY):
                return bool(row.customer.manager)
        except Exception as e:
            raise translate_google_ads_error(
                e, "is_manager", account_id, credential.login_customer_id
            ) from e
        raise NotFound(account_id, operation="is_manager", acting_as_id=credential.login_customer_id)

    @with_retry()
    def fetch_account_details(
        self, credential: CredentialContext, account_id: str
    ) -> AccountDetails:
        try:
            for row in self._search(credential, account_id, CUSTOMER_DETAILS_QUERY):
                customer = row.customer
                return AccountDetails(
                    display_name=customer.descriptive_name or "",
                    currency_code=customer.currency_code or "",
                    time_zone=customer.time_zone or "",
                    is_manager=bool(customer.manager),
                )
        except Exception as e:
            raise translate_google_ads_error(
                e, "fetch_account_details", account_id, credential.login_customer_id
            ) from e
        raise NotFound(
            account_id,
            operation="fetch_account_details",
            acting_as_id=credential.login_customer_id,
        )

    @with_retry()
    def list_immediate_children(
        self, credential: CredentialContext, account_id: str
    ) -> List[ChildAccount]:
        children = []
        try:
            for row in self._search(credential, account_id, IMMEDIATE_CHILDREN_QUERY):
                client = row.customer_client
                child_id = str(client.id)
                if child_id == account_id:
                    continue
                children.append(
                    ChildAccount(
                        account_id=child_id,
                        is_manager=bool(client.manager),
                        details=AccountDetails(
                            display_name=client.descriptive_name or "",
                            currency_code=client.currency_code or "",
                            time_zone=client.time_zone or "",
                            is_manager=bool(client.manager),
                        ),
                    )
                )
        except Exception as e:
            raise translate_google_ads_error(
                e, "list_immediate_children", account_id, credential.login_customer_id
            ) from e
        return children
