"""Data models for manager account hierarchies and traversal results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

PLACEHOLDER_DISPLAY_NAME = "Unknown"

SUMMARY_TEMPLATE = (
    "Traversal completed in {ms} ms. Found {total} total accounts "
    "({direct} direct access, {via_manager} via manager). "
    "Max depth: {depth}. Errors: {errors}. Inaccessible: {inaccessible}."
)


class AccessLevel(str, Enum):
    """How the authenticated caller can reach an account."""

    DIRECT_ACCESS = "DirectAccess"
    VIA_MANAGER = "ViaManager"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class AccountDetails:
    """Display attributes of a single account as reported by the directory."""

    display_name: str
    currency_code: str = ""
    time_zone: str = ""
    is_manager: bool = False

    @classmethod
    def placeholder(cls) -> "AccountDetails":
        """Details used when the directory could not describe an account."""
        return cls(display_name=PLACEHOLDER_DISPLAY_NAME)


@dataclass(frozen=True)
class ChildAccount:
    """
    One row of a manager's immediate client listing.

    ``details`` is only set when the listing itself carried the display
    attributes of the child.
    """

    account_id: str
    is_manager: bool
    details: Optional[AccountDetails] = None


@dataclass(frozen=True)
class Account:
    """A discovered account, positioned relative to the traversal entry root."""

    id: str
    display_name: str
    currency_code: str
    time_zone: str
    is_manager: bool
    level: int
    discovered_via: str
    access_level: AccessLevel

    @classmethod
    def from_details(
        cls,
        account_id: str,
        details: AccountDetails,
        level: int,
        discovered_via: str,
        access_level: AccessLevel,
    ) -> "Account":
        """Build an account node from directory details."""
        return cls(
            id=account_id,
            display_name=details.display_name,
            currency_code=details.currency_code,
            time_zone=details.time_zone,
            is_manager=details.is_manager,
            level=level,
            discovered_via=discovered_via,
            access_level=access_level,
        )

    @property
    def resource_name(self) -> str:
        return f"customers/{self.id}"

    @property
    def account_type(self) -> str:
        return "Manager" if self.is_manager else "Client"

    def is_entry_point(self) -> bool:
        """Check if this account was discovered as a traversal root."""
        return self.discovered_via == self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customerId": self.id,
            "resourceName": self.resource_name,
            "descriptiveName": self.display_name,
            "currencyCode": self.currency_code,
            "timeZone": self.time_zone,
            "isManager": self.is_manager,
            "accountType": self.account_type,
            "level": self.level,
            "discoveredVia": self.discovered_via,
            "accessLevel": self.access_level.value,
        }


@dataclass(frozen=True)
class HierarchyNode:
    """An account together with its ordered, already assembled children."""

    account: Account
    children: Tuple["HierarchyNode", ...] = ()

    @property
    def id(self) -> str:
        return self.account.id

    def has_children(self) -> bool:
        return bool(self.children)

    def walk(self) -> Iterator["HierarchyNode"]:
        """Yield this node and all descendants in depth-first pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        data = self.account.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


def format_traversal_summary(
    elapsed_millis: int,
    total: int,
    direct: int,
    via_manager: int,
    max_depth: int,
    errors: int,
    inaccessible: int,
) -> str:
    """Render the one-line traversal summary."""
    return SUMMARY_TEMPLATE.format(
        ms=elapsed_millis,
        total=total,
        direct=direct,
        via_manager=via_manager,
        depth=max_depth,
        errors=errors,
        inaccessible=inaccessible,
    )


@dataclass(frozen=True)
class TraversalResult:
    """
    Outcome of one hierarchy traversal.

    Built once by the traversal engine at the end of a run and never mutated
    afterwards. Partial results (errors, budget exhaustion) are still valid
    results.
    """

    forest: Tuple[HierarchyNode, ...] = ()
    entry_point_manager_ids: Tuple[str, ...] = ()
    total_discovered: int = 0
    direct_access_count: int = 0
    via_manager_count: int = 0
    error_count: int = 0
    inaccessible_ids: Tuple[str, ...] = ()
    max_depth_reached: int = 0
    elapsed_millis: int = 0
    depth_limited_ids: Tuple[str, ...] = field(default_factory=tuple)
    timed_out: bool = False

    def summary(self) -> str:
        """Human readable one-line summary of the run."""
        return format_traversal_summary(
            elapsed_millis=self.elapsed_millis,
            total=self.total_discovered,
            direct=self.direct_access_count,
            via_manager=self.via_manager_count,
            max_depth=self.max_depth_reached,
            errors=self.error_count,
            inaccessible=len(self.inaccessible_ids),
        )

    def iter_accounts(self) -> Iterator[Account]:
        """Yield every account in the forest in display order."""
        for root in self.forest:
            for node in root.walk():
                yield node.account

    def find(self, account_id: str) -> Optional[HierarchyNode]:
        """Locate the node for an account id anywhere in the forest."""
        for root in self.forest:
            for node in root.walk():
                if node.id == account_id:
                    return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hierarchy": [root.to_dict() for root in self.forest],
            "entryPointMccIds": list(self.entry_point_manager_ids),
            "totalAccountsDiscovered": self.total_discovered,
            "directAccessAccounts": self.direct_access_count,
            "mccDiscoveredAccounts": self.via_manager_count,
            "errorsEncountered": self.error_count,
            "inaccessibleAccounts": list(self.inaccessible_ids),
            "maxDepthReached": self.max_depth_reached,
            "traversalTimeMs": self.elapsed_millis,
            "depthLimitedAccounts": list(self.depth_limited_ids),
            "timedOut": self.timed_out,
            "summary": self.summary(),
        }
