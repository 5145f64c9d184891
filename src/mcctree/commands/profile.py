"""Profile management commands for mcctree."""

from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..directory.credentials import REQUIRED_FIELDS
from ..utils.config import Config
from ..utils.formatters import format_customer_id, normalize_customer_id

app = typer.Typer(help="Manage Google Ads credential profiles.")
console = Console()
config = Config()


def _validated_login_customer_id(login_customer_id: Optional[str]) -> Optional[str]:
    try:
        return normalize_customer_id(login_customer_id)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _profile_source(profile_data: Dict[str, Any]) -> str:
    if profile_data.get("google_ads_yaml"):
        return str(profile_data["google_ads_yaml"])
    missing = [field for field in REQUIRED_FIELDS if not profile_data.get(field)]
    if missing:
        return f"incomplete (missing {', '.join(missing)})"
    return "inline"


@app.command("list")
def list_profiles():
    """List all configured credential profiles."""
    profiles = config.get_profiles()

    if not profiles:
        console.print("No profiles configured. Use 'mcctree profile add' to add a profile.")
        return

    table = Table(title="Google Ads Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Login Customer ID", style="green")
    table.add_column("Credentials", style="blue")
    table.add_column("Default", style="yellow")

    default_profile = config.get("default_profile")

    for name, profile_data in profiles.items():
        profile_data = profile_data or {}
        is_default = "✓" if name == default_profile else ""
        table.add_row(
            name,
            format_customer_id(profile_data.get("login_customer_id")),
            _profile_source(profile_data),
            is_default,
        )

    console.print(table)


@app.command("add")
def add_profile(
    name: str = typer.Argument(...),
    developer_token: Optional[str] = typer.Option(
        None, "--developer-token", help="Google Ads API developer token"
    ),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth client id"),
    client_secret: Optional[str] = typer.Option(
        None, "--client-secret", help="OAuth client secret"
    ),
    refresh_token: Optional[str] = typer.Option(
        None, "--refresh-token", help="OAuth refresh token"
    ),
    login_customer_id: Optional[str] = typer.Option(
        None, "--login-customer-id", help="Manager account to act as by default"
    ),
    google_ads_yaml: Optional[Path] = typer.Option(
        None, "--google-ads-yaml", help="Read credentials from a google-ads.yaml file instead"
    ),
    set_default: bool = typer.Option(False, "--default", "-d", help="Set as default profile"),
):
    """Add a new credential profile."""
    profiles = config.get_profiles()

    if name in profiles:
        console.print(
            f"[yellow]Profile '{name}' already exists. Use 'mcctree profile update' to modify it.[/yellow]"
        )
        return

    profile_data: Dict[str, Any] = {}
    if google_ads_yaml is not None:
        profile_data["google_ads_yaml"] = str(google_ads_yaml)
    else:
        values = {
            "developer_token": developer_token,
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
        missing = [field for field in REQUIRED_FIELDS if not values.get(field)]
        if missing:
            options = ", ".join(f"--{field.replace('_', '-')}" for field in missing)
            console.print(f"[red]Error: Missing {options} (or pass --google-ads-yaml).[/red]")
            raise typer.Exit(1)
        profile_data.update(values)

    normalized_login_id = _validated_login_customer_id(login_customer_id)
    if normalized_login_id:
        profile_data["login_customer_id"] = normalized_login_id

    profiles[name] = profile_data
    config.set("profiles", profiles)

    if set_default or not config.get("default_profile"):
        config.set("default_profile", name)
        console.print(f"[green]Profile '{name}' added and set as default.[/green]")
    else:
        console.print(f"[green]Profile '{name}' added.[/green]")


@app.command("update")
def update_profile(
    name: str = typer.Argument(...),
    developer_token: Optional[str] = typer.Option(
        None, "--developer-token", help="Google Ads API developer token"
    ),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth client id"),
    client_secret: Optional[str] = typer.Option(
        None, "--client-secret", help="OAuth client secret"
    ),
    refresh_token: Optional[str] = typer.Option(
        None, "--refresh-token", help="OAuth refresh token"
    ),
    login_customer_id: Optional[str] = typer.Option(
        None, "--login-customer-id", help="Manager account to act as by default"
    ),
    google_ads_yaml: Optional[Path] = typer.Option(
        None, "--google-ads-yaml", help="Read credentials from a google-ads.yaml file"
    ),
    set_default: bool = typer.Option(False, "--default", "-d", help="Set as default profile"),
):
    """Update an existing credential profile."""
    profiles = config.get_profiles()

    if name not in profiles:
        console.print(
            f"[red]Profile '{name}' does not exist. Use 'mcctree profile add' to create it.[/red]"
        )
        return

    profile_data = profiles[name] or {}
    updates = {
        "developer_token": developer_token,
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
    }
    for field, value in updates.items():
        if value:
            profile_data[field] = value
    if google_ads_yaml is not None:
        profile_data["google_ads_yaml"] = str(google_ads_yaml)
    if login_customer_id is not None:
        normalized_login_id = _validated_login_customer_id(login_customer_id)
        if normalized_login_id:
            profile_data["login_customer_id"] = normalized_login_id
        else:
            profile_data.pop("login_customer_id", None)

    profiles[name] = profile_data
    config.set("profiles", profiles)

    if set_default:
        config.set("default_profile", name)
        console.print(f"[green]Profile '{name}' updated and set as default.[/green]")
    else:
        console.print(f"[green]Profile '{name}' updated.[/green]")


@app.command("remove")
def remove_profile(
    name: str = typer.Argument(...),
    force: bool = typer.Option(False, "--force", "-f", help="Force removal without confirmation"),
):
    """Remove a credential profile."""
    profiles = config.get_profiles()

    if name not in profiles:
        console.print(f"[red]Profile '{name}' does not exist.[/red]")
        return

    if not force:
        confirm = typer.confirm(f"Are you sure you want to remove profile '{name}'?")
        if not confirm:
            console.print("Operation cancelled.")
            return

    del profiles[name]
    config.set("profiles", profiles)

    default_profile = config.get("default_profile")
    if default_profile == name:
        if profiles:
            new_default = next(iter(profiles.keys()))
            config.set("default_profile", new_default)
            console.print(f"[yellow]Default profile changed to '{new_default}'.[/yellow]")
        else:
            config.delete("default_profile")

    console.print(f"[green]Profile '{name}' removed.[/green]")


@app.command("set-default")
def set_default_profile(
    name: str = typer.Argument(...),
):
    """Set the default credential profile."""
    profiles = config.get_profiles()

    if name not in profiles:
        console.print(
            f"[red]Profile '{name}' does not exist. Use 'mcctree profile add' to create it.[/red]"
        )
        return

    config.set("default_profile", name)
    console.print(f"[green]Default profile set to '{name}'.[/green]")
