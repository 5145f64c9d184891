"""Assemble discovered accounts into an ordered, immutable forest."""

from typing import Dict, Iterable, List, Mapping, Set, Tuple

from ..utils.models import Account, HierarchyNode


def sibling_sort_key(account: Account) -> Tuple[bool, bytes]:
    """
    Ordering key for accounts that share a parent.

    Managers come before clients. Within each group names compare byte-wise
    on their UTF-8 encoding, so ``"Zulu"`` sorts before ``"apple"``. A missing
    name sorts as the empty string.
    """
    return (not account.is_manager, (account.display_name or "").encode("utf-8"))


def sort_siblings(accounts: Iterable[Account]) -> List[Account]:
    """Return accounts in display order; ties keep their incoming order."""
    return sorted(accounts, key=sibling_sort_key)


def assemble_forest(
    nodes: Mapping[str, Account], edges: Mapping[str, str]
) -> Tuple[HierarchyNode, ...]:
    """
    Build the forest described by flat node and edge records.

    Args:
        nodes: Account id to account, in discovery order
        edges: Child id to parent id

    Returns:
        Root nodes in discovery order, each with its sorted children attached.
        A child whose parent is unknown (or is itself) becomes a root, and
        accounts caught in an edge cycle are promoted at the first member in
        discovery order, so every account appears exactly once.
    """
    children_by_parent: Dict[str, List[str]] = {}
    root_ids: List[str] = []

    for account_id in nodes:
        parent_id = edges.get(account_id)
        if parent_id is None or parent_id == account_id or parent_id not in nodes:
            root_ids.append(account_id)
        else:
            children_by_parent.setdefault(parent_id, []).append(account_id)

    placed: Set[str] = set()

    def build(account_id: str) -> HierarchyNode:
        placed.add(account_id)
        child_accounts = sort_siblings(
            nodes[child_id]
            for child_id in children_by_parent.get(account_id, [])
            if child_id not in placed
        )
        children = tuple(build(child.id) for child in child_accounts if child.id not in placed)
        return HierarchyNode(account=nodes[account_id], children=children)

    forest = [build(root_id) for root_id in root_ids]

    # Anything still unplaced only hangs off a cycle
    for account_id in nodes:
        if account_id not in placed:
            forest.append(build(account_id))

    return tuple(forest)
