"""Manager account hierarchy commands for mcctree."""

import json
from typing import List, Optional

import typer
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from ..hierarchy.child_listers import TraversalStrategy
from ..hierarchy.engine import HierarchyTraversalEngine, TraversalConfig
from ..utils.config import Config
from ..utils.formatters import format_customer_id
from ..utils.models import AccessLevel, HierarchyNode, TraversalResult
from .common import (
    configure_logging,
    console,
    create_directory,
    handle_command_error,
    profile_option,
    resolve_credential,
    verbose_option,
)

app = typer.Typer(
    help="Explore manager (MCC) account hierarchies. Discover every account reachable from your managers."
)
config = Config()


@app.command("tree")
def tree(
    strategy: Optional[TraversalStrategy] = typer.Option(
        None,
        "--strategy",
        "-s",
        case_sensitive=False,
        help="Traversal strategy: deep walks nested managers, flat lists one level per manager",
    ),
    max_depth: Optional[int] = typer.Option(
        None, "--max-depth", min=0, help="Maximum manager depth to descend (overrides strategy)"
    ),
    budget: Optional[float] = typer.Option(
        None, "--budget", min=0.001, help="Overall time budget for the traversal in seconds"
    ),
    flat: bool = typer.Option(
        False, "--flat", help="Display in flat format instead of tree format"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """Display every account reachable through your manager accounts.

    Starts from the accounts your credential can see directly, walks each
    manager's clients, and renders the resulting forest with a summary line.
    """
    try:
        configure_logging(config, verbose)
        credential = resolve_credential(config, profile)

        traversal_settings = config.get_traversal_config()
        if strategy is not None:
            traversal_settings["strategy"] = strategy.value
            # An explicit strategy brings its own depth unless --max-depth is given
            traversal_settings["max_depth"] = None
        if max_depth is not None:
            traversal_settings["max_depth"] = max_depth
        if budget is not None:
            traversal_settings["run_budget_seconds"] = budget
        traversal_config = TraversalConfig.from_dict(traversal_settings)

        if verbose and not json_output:
            console.print(
                f"[blue]Strategy: {traversal_config.strategy.value}, "
                f"max depth: {traversal_config.max_depth}, "
                f"budget: {traversal_config.run_budget_seconds}s[/blue]"
            )

        engine = HierarchyTraversalEngine(create_directory(traversal_settings), traversal_config)

        if not json_output:
            console.print("[blue]Discovering account hierarchy...[/blue]")
        result = engine.traverse(credential)

        if json_output:
            _output_tree_json(result)
            return

        if flat:
            _output_tree_flat(result)
        else:
            _output_tree_visual(result)
        _output_summary(result, verbose)

    except typer.Exit:
        raise
    except Exception as e:
        handle_command_error(e, "discovering account hierarchy", verbose=verbose)
        raise typer.Exit(1)


@app.command("accounts")
def accounts(
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """List the accounts your credential can access directly."""
    try:
        configure_logging(config, verbose)
        credential = resolve_credential(config, profile).acting_as(None)
        directory = create_directory(config.get_traversal_config())

        account_ids = directory.list_directly_visible_accounts(credential)
        rows = []
        for account_id in account_ids:
            try:
                is_manager: Optional[bool] = directory.is_manager(credential, account_id)
            except Exception as e:
                if verbose:
                    console.print(f"[yellow]Could not classify {account_id}: {e}[/yellow]")
                is_manager = None
            rows.append((account_id, is_manager))

        if json_output:
            data = [{"customerId": account_id, "isManager": flag} for account_id, flag in rows]
            console.print(
                json.dumps(data, indent=2), soft_wrap=True, markup=False, highlight=False, emoji=False
            )
            return

        if not rows:
            console.print("[yellow]No directly accessible accounts found.[/yellow]")
            return

        table = Table(title="Accessible Accounts")
        table.add_column("ID", style="yellow")
        table.add_column("Type", style="cyan")
        for account_id, flag in rows:
            account_type = "Unknown" if flag is None else ("Manager" if flag else "Client")
            table.add_row(format_customer_id(account_id), account_type)
        console.print(table)
        console.print(f"\n[green]Found {len(rows)} directly accessible account(s)[/green]")

    except typer.Exit:
        raise
    except Exception as e:
        handle_command_error(e, "listing accessible accounts", verbose=verbose)
        raise typer.Exit(1)


def _node_label(node: HierarchyNode) -> str:
    account = node.account
    if account.is_manager:
        prefix = "[bold cyan]Manager:[/bold cyan]"
    else:
        prefix = "[bold green]Client:[/bold green]"
    label = f"{prefix} {escape(account.display_name)} ({format_customer_id(account.id)})"
    if account.access_level is AccessLevel.DIRECT_ACCESS:
        label += " [dim]direct[/dim]"
    elif account.access_level is AccessLevel.UNKNOWN:
        label += " [dim]access unknown[/dim]"
    if account.currency_code:
        label += f" [dim]{escape(account.currency_code)}[/dim]"
    return label


def _output_tree_json(result: TraversalResult) -> None:
    """Output the traversal result in JSON format."""
    console.print(
        json.dumps(result.to_dict(), indent=2),
        soft_wrap=True,
        markup=False,
        highlight=False,
        emoji=False,
    )


def _output_tree_flat(result: TraversalResult) -> None:
    """Output the hierarchy in flat format."""
    table = Table(title="Manager Account Hierarchy (Flat View)")
    table.add_column("Type", style="cyan")
    table.add_column("ID", style="yellow")
    table.add_column("Name", style="green")
    table.add_column("Level", justify="right")
    table.add_column("Access", style="magenta")
    table.add_column("Path", style="blue")

    def add_node_to_table(node: HierarchyNode, path: Optional[List[str]] = None) -> None:
        current_path = (path or []) + [node.account.display_name]
        table.add_row(
            node.account.account_type,
            format_customer_id(node.id),
            escape(node.account.display_name),
            str(node.account.level),
            node.account.access_level.value,
            escape(" → ".join(current_path)),
        )
        for child in node.children:
            add_node_to_table(child, current_path)

    for root in result.forest:
        add_node_to_table(root)

    console.print(table)


def _output_tree_visual(result: TraversalResult) -> None:
    """Output the hierarchy in visual tree format."""

    def add_node_to_tree(rich_tree: Tree, node: HierarchyNode) -> None:
        branch = rich_tree.add(_node_label(node))
        for child in node.children:
            add_node_to_tree(branch, child)

    main_tree = Tree("[bold blue]Manager Account Hierarchy[/bold blue]")
    if not result.forest:
        main_tree.add("[yellow]No accounts found[/yellow]")
    for root in result.forest:
        add_node_to_tree(main_tree, root)

    console.print(main_tree)


def _output_summary(result: TraversalResult, verbose: bool = False) -> None:
    """Print the summary line and any partial-result notes."""
    console.print()
    console.print(result.summary(), soft_wrap=True, markup=False, highlight=False)

    if result.timed_out:
        console.print(
            "[yellow]Warning: the time budget ran out; the hierarchy above is incomplete.[/yellow]",
            soft_wrap=True,
        )
    if result.inaccessible_ids:
        ids = ", ".join(format_customer_id(account_id) for account_id in result.inaccessible_ids)
        console.print(f"[yellow]Inaccessible accounts: {ids}[/yellow]", soft_wrap=True)
    if verbose and result.depth_limited_ids:
        ids = ", ".join(format_customer_id(account_id) for account_id in result.depth_limited_ids)
        console.print(f"[blue]Clients not listed (depth limit): {ids}[/blue]", soft_wrap=True)
