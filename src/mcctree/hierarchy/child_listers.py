"""Strategies for fetching a manager's immediate clients during traversal."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List

from ..directory.credentials import CredentialContext
from ..directory.interfaces import AccountDirectory
from ..utils.models import ChildAccount

DEEP_MAX_DEPTH = 10
FLAT_MAX_DEPTH = 1


class ChildLister(ABC):
    """Capability injected into the traversal engine to enumerate children."""

    def __init__(self, directory: AccountDirectory):
        self.directory = directory

    @abstractmethod
    def list_children(self, credential: CredentialContext, account_id: str) -> List[ChildAccount]:
        """List the immediate children of ``account_id`` acting as ``credential``."""


class ImmediateChildLister(ChildLister):
    """
    Return only child ids and manager flags.

    The engine then fetches each child's details acting as the manager that
    reached it, which is what the deep traversal relies on.
    """

    def list_children(self, credential: CredentialContext, account_id: str) -> List[ChildAccount]:
        return [
            ChildAccount(account_id=child.account_id, is_manager=child.is_manager)
            for child in self.directory.list_immediate_children(credential, account_id)
        ]


class DescriptiveChildLister(ChildLister):
    """Return children together with the display attributes carried by the listing."""

    def list_children(self, credential: CredentialContext, account_id: str) -> List[ChildAccount]:
        return list(self.directory.list_immediate_children(credential, account_id))


class TraversalStrategy(str, Enum):
    """Named presets pairing a depth limit with a child lister."""

    DEEP = "deep"
    FLAT = "flat"

    @property
    def default_max_depth(self) -> int:
        return DEEP_MAX_DEPTH if self is TraversalStrategy.DEEP else FLAT_MAX_DEPTH

    def create_child_lister(self, directory: AccountDirectory) -> ChildLister:
        if self is TraversalStrategy.FLAT:
            return DescriptiveChildLister(directory)
        return ImmediateChildLister(directory)
