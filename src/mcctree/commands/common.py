"""Common command infrastructure for mcctree CLI commands.

This module provides shared functionality for all CLI commands including:
- Standard --profile and --verbose options
- Profile resolution into a credential context
- Logging setup from configuration
- Error handling
"""

import logging
from typing import Any, Dict, Optional, Tuple

import typer
from rich.console import Console

from ..directory.credentials import CredentialContext
from ..directory.errors import DirectoryError, DirectoryUnavailable, NotFound, SetupFailure
from ..directory.google_ads import GoogleAdsAccountDirectory
from ..utils.config import DEFAULT_TRAVERSAL_CONFIG, Config
from ..utils.logging_config import LoggingConfig, LogLevel, setup_logging

# Shared instances
console = Console()
logger = logging.getLogger(__name__)


def profile_option() -> Any:
    """Create a standardized --profile option for commands."""
    return typer.Option(
        None,
        "--profile",
        "-p",
        help="Credential profile to use (uses default profile, then GOOGLE_ADS_* variables)",
    )


def verbose_option() -> Any:
    """Create a verbose option for CLI commands."""
    return typer.Option(False, "--verbose", "-v", help="Show detailed output")


def configure_logging(config: Config, verbose: bool = False) -> None:
    """Install log handlers from the ``logging`` config section."""
    logging_config = LoggingConfig.from_dict(config.get_logging_config())
    if verbose and logging_config.level not in (LogLevel.DEBUG, LogLevel.INFO):
        logging_config.level = LogLevel.INFO
    setup_logging(logging_config)


def validate_profile(
    config: Config, profile_name: Optional[str] = None
) -> Tuple[Optional[str], Dict[str, Any]]:
    """
    Validate the profile and return profile name and data.

    Args:
        config: Configuration holding the profiles
        profile_name: Profile name to use; falls back to the default profile

    Returns:
        Tuple of (profile_name, profile_data). Both are empty when no profile
        was requested and no default is set.

    Raises:
        typer.Exit: If a named profile does not exist
    """
    profile_name = profile_name or config.get("default_profile")
    if not profile_name:
        return None, {}

    profiles = config.get_profiles()
    if profile_name not in profiles:
        console.print(f"[red]Error: Profile '{profile_name}' does not exist.[/red]")
        console.print("Use 'mcctree profile add' to create a new profile.")
        raise typer.Exit(1)

    return profile_name, profiles[profile_name] or {}


def credential_from_profile(profile_data: Dict[str, Any]) -> CredentialContext:
    """
    Build a credential context from stored profile data.

    A profile either carries the OAuth fields inline or points at a
    ``google-ads.yaml`` file. A ``login_customer_id`` on the profile overrides
    the one in the file.
    """
    google_ads_yaml = profile_data.get("google_ads_yaml")
    if google_ads_yaml:
        credential = CredentialContext.from_google_ads_yaml(google_ads_yaml)
        if profile_data.get("login_customer_id"):
            credential = credential.acting_as(
                CredentialContext.from_mapping(profile_data).login_customer_id
            )
        return credential
    return CredentialContext.from_mapping(profile_data)


def resolve_credential(config: Config, profile_name: Optional[str] = None) -> CredentialContext:
    """
    Resolve the credential used by a command.

    Raises:
        typer.Exit: If no usable credential can be found
    """
    name, profile_data = validate_profile(config, profile_name)
    if name:
        logger.debug(f"Using credential profile '{name}'")
        credential = credential_from_profile(profile_data)
    else:
        logger.debug("No profile configured, reading GOOGLE_ADS_* environment variables")
        credential = CredentialContext.from_env()

    try:
        credential.validate()
    except SetupFailure as e:
        if name:
            console.print(f"[red]Error: Profile '{name}' is incomplete: {e}[/red]")
            console.print(f"Use 'mcctree profile update {name}' to fill in the missing fields.")
        else:
            console.print("[red]Error: No profile specified and no default profile set.[/red]")
            console.print(
                "Use --profile, set a default with 'mcctree profile set-default', "
                "or export the GOOGLE_ADS_* environment variables."
            )
        raise typer.Exit(1)
    return credential


def create_directory(traversal_config: Optional[Dict[str, Any]] = None) -> GoogleAdsAccountDirectory:
    """Create the Google Ads account directory used by commands."""
    traversal_config = traversal_config or DEFAULT_TRAVERSAL_CONFIG
    return GoogleAdsAccountDirectory(
        max_retries=int(traversal_config.get("max_retries", DEFAULT_TRAVERSAL_CONFIG["max_retries"])),
        call_timeout=float(
            traversal_config.get(
                "call_timeout_seconds", DEFAULT_TRAVERSAL_CONFIG["call_timeout_seconds"]
            )
        ),
    )


def handle_command_error(error: Exception, operation: str, verbose: bool = False) -> None:
    """
    Handle errors consistently across commands.

    Args:
        error: The error that occurred
        operation: Description of the operation that failed
        verbose: Whether to show detailed error information
    """
    if isinstance(error, SetupFailure):
        console.print(f"[red]Setup error in {operation}: {error}[/red]")
    elif isinstance(error, NotFound):
        console.print(f"[red]Account not found in {operation}: {error}[/red]")
    elif isinstance(error, DirectoryUnavailable):
        console.print(f"[red]Google Ads API error in {operation}: {error}[/red]")
    elif isinstance(error, DirectoryError):
        console.print(f"[red]Directory error in {operation}: {error}[/red]")
    else:
        console.print(f"[red]Error in {operation}: {error}[/red]")

    if verbose:
        console.print(f"[dim]{type(error).__name__}[/dim]")
        console.print_exception()
