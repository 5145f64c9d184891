"""Remote account directory interface, credentials and implementations."""

from .credentials import CredentialContext
from .errors import DirectoryError, DirectoryUnavailable, NotFound, SetupFailure
from .interfaces import AccountDirectory

__all__ = [
    "AccountDirectory",
    "CredentialContext",
    "DirectoryError",
    "DirectoryUnavailable",
    "NotFound",
    "SetupFailure",
]
