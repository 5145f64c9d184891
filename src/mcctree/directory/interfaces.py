"""Abstract interface for the remote account directory."""

from abc import ABC, abstractmethod
from typing import List

from ..utils.models import AccountDetails, ChildAccount
from .credentials import CredentialContext


class AccountDirectory(ABC):
    """
    Remote source of account visibility and manager/client relationships.

    Every method takes the credential context explicitly; implementations must
    not keep an ambient "current" identity. Retrying failed calls is the
    implementation's responsibility.
    """

    @abstractmethod
    def list_directly_visible_accounts(self, credential: CredentialContext) -> List[str]:
        """
        List account ids directly visible to the credential.

        Raises:
            DirectoryUnavailable: On transport or authentication errors
        """

    @abstractmethod
    def is_manager(self, credential: CredentialContext, account_id: str) -> bool:
        """
        Check whether an account is a manager account.

        Raises:
            DirectoryUnavailable: If the lookup fails
        """

    @abstractmethod
    def fetch_account_details(
        self, credential: CredentialContext, account_id: str
    ) -> AccountDetails:
        """
        Fetch display attributes and the manager flag of one account.

        Raises:
            DirectoryUnavailable: If the lookup fails
            NotFound: If the account is missing or not visible to the acting-as identity
        """

    @abstractmethod
    def list_immediate_children(
        self, credential: CredentialContext, account_id: str
    ) -> List[ChildAccount]:
        """
        List the direct clients of a manager account, one level only.

        Raises:
            DirectoryUnavailable: If the listing fails
        """
