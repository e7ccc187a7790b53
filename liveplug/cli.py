"""liveplug CLI - manage the plugins of a store directory."""

import asyncio
import json
from pathlib import Path
import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
import structlog

from liveplug import __version__
from liveplug.bootstrap import discover_installed
from liveplug.config import ManagerConfig
from liveplug.errors import LivePlugError
from liveplug.logging import setup_logging
from liveplug.manager import InstallOptions, PluginManager

console = Console()
log = structlog.get_logger()


def _run(ctx: click.Context, operation):
    """Run ``operation(manager)`` on a manager bootstrapped from the store."""
    manager = PluginManager(ctx.obj["config"])
    discover_installed(manager)

    try:
        return asyncio.run(operation(manager))
    except LivePlugError as e:
        log.debug("command_failed", error=str(e))
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        ctx.exit(1)


def _print_installed(plugin):
    console.print(f"[green]✓ Installed: {plugin.name} v{plugin.version}[/green]")
    console.print(f"  [dim]Path: {plugin.location}[/dim]")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--plugins-path",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Store directory (default: ./plugin_packages)",
)
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, plugins_path: Path = None, config_path: str = None, verbose: bool = False):
    """liveplug - install and load plugins at runtime"""
    config = ManagerConfig.load(config_path, plugins_path=plugins_path)
    if verbose:
        config.log_level = "DEBUG"

    setup_logging(config.log_level, str(config.log_file) if config.log_file else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.argument("name")
@click.argument("version", required=False)
@click.pass_context
def install(ctx: click.Context, name: str, version: str = None):
    """Install a plugin from the registry or GitHub.

    VERSION can be a version, a range, a dist-tag or owner/repo#ref.

    Examples:
        liveplug install text-formatter
        liveplug install text-formatter "^1.2.0"
        liveplug install greeter acme/greeter#v2.0.0
    """

    async def execute(manager: PluginManager):
        return await manager.install(name, version)

    _print_installed(_run(ctx, execute))


@cli.command("install-path")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--force", "-f", is_flag=True, help="Reinstall even if the version is installed")
@click.pass_context
def install_path(ctx: click.Context, path: Path, force: bool = False):
    """Install a plugin from a local directory.

    Example:
        liveplug install-path ./my-plugin --force
    """

    async def execute(manager: PluginManager):
        return await manager.install_from_path(path, InstallOptions(force=force))

    _print_installed(_run(ctx, execute))


@cli.command("install-github")
@click.argument("repository")
@click.pass_context
def install_github(ctx: click.Context, repository: str):
    """Install a plugin from a GitHub repository.

    Example:
        liveplug install-github acme/greeter#main
    """

    async def execute(manager: PluginManager):
        return await manager.install_from_github(repository)

    _print_installed(_run(ctx, execute))


@cli.command()
@click.argument("name")
@click.pass_context
def uninstall(ctx: click.Context, name: str):
    """Uninstall a plugin."""

    async def execute(manager: PluginManager):
        return await manager.uninstall(name)

    if _run(ctx, execute):
        console.print(f"[green]✓ Uninstalled: {name}[/green]")
    else:
        console.print(f"[yellow]Plugin '{name}' is not installed.[/yellow]")


@cli.command("uninstall-all")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def uninstall_all(ctx: click.Context, yes: bool = False):
    """Uninstall every plugin in the store."""
    if not yes and not click.confirm("Uninstall all plugins?"):
        console.print("[yellow]Cancelled.[/yellow]")
        return

    async def execute(manager: PluginManager):
        count = len(manager.list())
        await manager.uninstall_all()
        return count

    console.print(f"[green]✓ Uninstalled {_run(ctx, execute)} plugin(s)[/green]")


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def list_plugins(ctx: click.Context, as_json: bool = False):
    """List installed plugins."""

    async def execute(manager: PluginManager):
        return manager.list()

    plugins = _run(ctx, execute)

    if as_json:
        click.echo(json.dumps([p.to_dict() for p in plugins], indent=2))
        return

    if not plugins:
        console.print("[yellow]No plugins installed.[/yellow]")
        return

    table = Table(
        title=f"Installed Plugins ({len(plugins)})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Dependencies")
    table.add_column("Location", style="dim")

    for plugin in plugins:
        dependencies = ", ".join(f"{k}@{v}" for k, v in plugin.dependencies.items())
        table.add_row(plugin.name, plugin.version, dependencies or "-", str(plugin.location))

    console.print(table)


@cli.command()
@click.argument("name")
@click.pass_context
def info(ctx: click.Context, name: str):
    """Show an installed plugin."""

    async def execute(manager: PluginManager):
        return manager.get_info(name)

    plugin = _run(ctx, execute)
    if plugin is None:
        console.print(f"[red]Plugin '{name}' is not installed.[/red]")
        ctx.exit(1)

    console.print(f"[bold cyan]Plugin: {plugin.name}[/bold cyan]\n")
    console.print(f"  Version: {plugin.version}")
    console.print(f"  Location: {plugin.location}")
    console.print(f"  Entry file: {plugin.main_file}")
    if plugin.dependencies:
        console.print("  Dependencies:")
        for dependency, version in plugin.dependencies.items():
            console.print(f"    • {dependency} {version}")


@cli.command()
@click.argument("name")
@click.argument("version", required=False)
@click.pass_context
def query(ctx: click.Context, name: str, version: str = None):
    """Resolve a package without installing it.

    Examples:
        liveplug query text-formatter "^1.0.0"
        liveplug query greeter acme/greeter
    """

    async def execute(manager: PluginManager):
        return await manager.query_package(name, version)

    package = _run(ctx, execute)

    console.print(f"[bold cyan]{package.name}[/bold cyan] v{package.version}")
    if package.dependencies:
        for dependency, range_ in package.dependencies.items():
            console.print(f"  [dim]{dependency} {range_}[/dim]")


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
