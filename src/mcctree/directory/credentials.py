"""Credential context passed explicitly to every directory call."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from ..utils.formatters import normalize_customer_id
from .errors import SetupFailure

REQUIRED_FIELDS = ("client_id", "client_secret", "refresh_token", "developer_token")

ENV_VARIABLES = {
    "developer_token": "GOOGLE_ADS_DEVELOPER_TOKEN",
    "client_id": "GOOGLE_ADS_CLIENT_ID",
    "client_secret": "GOOGLE_ADS_CLIENT_SECRET",
    "refresh_token": "GOOGLE_ADS_REFRESH_TOKEN",
    "login_customer_id": "GOOGLE_ADS_LOGIN_CUSTOMER_ID",
}


@dataclass(frozen=True)
class CredentialContext:
    """
    Immutable OAuth credential bundle plus an optional acting-as account.

    ``login_customer_id`` selects whose access grants authorise a call.
    Switching it with :meth:`acting_as` only builds a new value; nothing talks
    to the remote side until a directory call is made with it. Secrets are
    excluded from ``repr`` so contexts can be logged safely.
    """

    client_id: str
    client_secret: str = field(repr=False)
    refresh_token: str = field(repr=False)
    developer_token: str = field(repr=False)
    login_customer_id: Optional[str] = None

    def __post_init__(self):
        """Normalise the acting-as id to plain digits."""
        if self.login_customer_id is not None:
            try:
                normalized = normalize_customer_id(self.login_customer_id)
            except ValueError as e:
                raise SetupFailure(f"Invalid login customer id: {e}") from e
            object.__setattr__(self, "login_customer_id", normalized)

    def acting_as(self, account_id: Optional[str]) -> "CredentialContext":
        """Return a context that issues calls as ``account_id`` (None clears it)."""
        if account_id == self.login_customer_id:
            return self
        return replace(self, login_customer_id=account_id)

    def validate(self) -> None:
        """
        Check that every required secret is present.

        Raises:
            SetupFailure: If any required field is missing or blank
        """
        missing = [name for name in REQUIRED_FIELDS if not str(getattr(self, name) or "").strip()]
        if missing:
            raise SetupFailure(
                f"Credential is missing required fields: {', '.join(missing)}",
                missing_fields=missing,
            )

    def to_client_config(self) -> Dict[str, Any]:
        """Build the configuration dictionary understood by ``GoogleAdsClient.load_from_dict``."""
        config: Dict[str, Any] = {
            "developer_token": self.developer_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "use_proto_plus": True,
        }
        if self.login_customer_id:
            config["login_customer_id"] = self.login_customer_id
        return config

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CredentialContext":
        """
        Create a context from a profile or ``google-ads.yaml`` style mapping.

        Both ``login_customer_id`` and ``login-customer-id`` keys are accepted.
        """
        login_customer_id = data.get("login_customer_id") or data.get("login-customer-id")
        return cls(
            client_id=str(data.get("client_id") or ""),
            client_secret=str(data.get("client_secret") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            developer_token=str(data.get("developer_token") or ""),
            login_customer_id=str(login_customer_id) if login_customer_id else None,
        )

    @classmethod
    def from_google_ads_yaml(cls, path: Union[str, Path]) -> "CredentialContext":
        """
        Load a context from a ``google-ads.yaml`` configuration file.

        Raises:
            SetupFailure: If the file is missing or is not valid YAML
        """
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise SetupFailure(f"Google Ads configuration file not found: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise SetupFailure(f"{config_path} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise SetupFailure(f"{config_path} does not contain a configuration mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CredentialContext":
        """Load a context from the standard ``GOOGLE_ADS_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls.from_mapping(
            {name: env.get(variable) for name, variable in ENV_VARIABLES.items()}
        )
