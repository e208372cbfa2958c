#!/usr/bin/env python3
"""
Command-line interface for Paranoid Toolkit.

Provides configuration inspection and a description of how registered models
destroy and restore.
"""

import importlib
import sys
from typing import Any, Dict, List, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import CascadeFailurePolicy, ParanoidConfig, get_config
from .soft_delete.models import RelationshipDescriptor
from .soft_delete.registry import Registration, default_registry

console = Console()


def load_model(target: str) -> type:
    """
    Import ``module:Class`` and return the class.

    Raises:
        click.BadParameter: Malformed target or nothing found
    """
    module_name, sep, class_name = target.partition(":")
    if not sep or not module_name or not class_name:
        raise click.BadParameter(f"Expected MODULE:CLASS, got '{target}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"Cannot import module '{module_name}': {e}")

    model = getattr(module, class_name, None)
    if not isinstance(model, type):
        raise click.BadParameter(f"'{class_name}' is not a class in '{module_name}'")
    return model


def restore_rule(relationship: RelationshipDescriptor) -> str:
    if relationship.restores_by_default:
        return "restored by default"
    return "only when included"


def target_label(row: Dict[str, Any]) -> str:
    if row["target_paranoid"]:
        return str(row["target"])
    return f"{row['target']} [dim](not paranoid)[/dim]"


def describe_registration(registration: Registration) -> Dict[str, Any]:
    """Printable description of a registered model."""
    relationships: List[Dict[str, Any]] = []
    for relationship in registration.relationships:
        target = default_registry.get(relationship.target_type)
        relationships.append(
            {
                "name": relationship.name,
                "direction": relationship.direction.value,
                "target": relationship.target_type.__name__,
                "target_paranoid": target is not None,
                "cascades_destroy": relationship.cascades_destroy
                and target is not None,
                "restore": restore_rule(relationship) if target else "never",
            }
        )

    return {
        "model": registration.name,
        "policy": registration.policy.describe(),
        "relationships": relationships,
    }


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Paranoid Toolkit - Soft delete policies for SQLAlchemy models."""
    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Paranoid Toolkit[/bold blue] v{__version__}\n"
                "[dim]Soft delete policies for SQLAlchemy models[/dim]\n\n"
                "Use [bold]paranoid --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect toolkit configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config = get_config()
        config_dict = config.to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Paranoid Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")
            table.add_column("Description", style="dim")

            categories = {
                "General": ["timezone", "default_tombstone_field", "log_transitions"],
                "Cascade": [
                    "cascade_destroy_enabled",
                    "cascade_restore_enabled",
                    "cascade_failure_policy",
                ],
                "Variants": [
                    "including_deleted_suffix",
                    "deleted_only_suffix",
                    "include_deleted_option",
                ],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "", "")
                for setting in settings:
                    value = config_dict[setting]
                    if isinstance(value, bool):
                        value = "✓" if value else "✗"
                    description = ParanoidConfig.model_fields[setting].description
                    table.add_row(f"  {setting}", str(value), description or "")

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@config.command("validate")
@click.option(
    "--file",
    "path",
    type=click.Path(exists=True, dir_okay=False),
    help="Validate a JSON/YAML configuration file instead of the environment",
)
def config_validate(path: Optional[str]) -> None:
    """Validate configuration from the environment or a file."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Validating configuration...", total=None)

        try:
            if path:
                config = ParanoidConfig.from_file(path)
            else:
                config = ParanoidConfig.from_env()
        except ValidationError as e:
            progress.stop()
            console.print("[red]✗ Configuration validation failed:[/red]")
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"])
                console.print(f"  [red]• {location}: {error['msg']}[/red]")
            sys.exit(1)
        except ValueError as e:
            progress.stop()
            console.print(f"[red]Error validating configuration: {e}[/red]")
            sys.exit(1)

        progress.stop()

    warnings = []
    continues = config.cascade_failure_policy is CascadeFailurePolicy.CONTINUE
    if not config.cascade_restore_enabled and continues:
        warnings.append(
            "cascade_failure_policy has no effect while cascade_restore_enabled is off"
        )
    if not config.cascade_destroy_enabled and config.cascade_restore_enabled:
        warnings.append(
            "Dependents are no longer destroyed with their owner but are still "
            "restored with it"
        )

    console.print("[green]✓ Configuration is valid[/green]")
    if warnings:
        console.print("\n[yellow]⚠ Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]• {warning}[/yellow]")


@cli.command()
@click.argument("target")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
def describe(target: str, format: str) -> None:
    """Describe the soft delete policy of MODULE:CLASS."""
    model = load_model(target)
    registration = default_registry.get(model)
    if registration is None:
        console.print(
            f"[red]Error: {model.__name__} is not configured for soft delete[/red]"
        )
        sys.exit(1)

    description = describe_registration(registration)

    if format == "json":
        console.print_json(data=description, default=str)
        return

    policy = Table(title=f"{description['model']} scope policy", show_header=True)
    policy.add_column("Setting", style="cyan")
    policy.add_column("Value", style="green")
    for key, value in description["policy"].items():
        policy.add_row(key, repr(value))
    console.print(policy)

    if not description["relationships"]:
        console.print("[dim]No relationships[/dim]")
        return

    relationships = Table(title="Relationships", show_header=True)
    relationships.add_column("Name", style="cyan")
    relationships.add_column("Direction")
    relationships.add_column("Target")
    relationships.add_column("Destroy cascade")
    relationships.add_column("Restore")
    for row in description["relationships"]:
        relationships.add_row(
            row["name"],
            row["direction"],
            target_label(row),
            "✓" if row["cascades_destroy"] else "✗",
            row["restore"],
        )
    console.print(relationships)


if __name__ == "__main__":
    cli()
