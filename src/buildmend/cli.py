"""CLI for the buildmend configuration reconciliation engine."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .catalog import load_catalog
from .config import EngineConfig, FeatureFlags, load_config
from .errors import BuildmendError
from .nfo_config import setup_logging
from .policy import EXIT_ABORT, EXIT_INTERRUPTED, EXIT_OK, EXIT_USAGE
from .resolver import DependencyResolver
from .runner import ReconciliationRunner
from .store import ArtifactStore

DEFAULT_CONFIG = "buildmend.yaml"

console = Console()


def _parse_flags(pairs: tuple[str, ...]) -> dict[str, str]:
    flags = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint="--flag")
        name, value = pair.split("=", 1)
        flags[name.strip()] = value
    return flags


def _load_engine_config(
    config_path: Optional[str],
    project_root: Optional[str],
    platforms: tuple[str, ...],
    report: Optional[str],
    no_lint: bool = False,
) -> EngineConfig:
    if config_path:
        config = load_config(config_path)
    elif Path(DEFAULT_CONFIG).exists():
        config = load_config(DEFAULT_CONFIG)
    else:
        config = EngineConfig()

    if project_root:
        # a cache dir left at its default follows the project root
        default_cache = Path(".buildmend/cache")
        if config.cache_dir in (default_cache, config.project_root / default_cache):
            config.cache_dir = Path(project_root) / default_cache
        config.project_root = Path(project_root)
    if platforms:
        config.platforms = [p.lower() for p in platforms]
    if report:
        config.report = Path(report)
    if no_lint:
        config.lint = False
    config.network = config.network.with_env()
    return config


def _load_flags(config: EngineConfig, env_file: Optional[str], flag_pairs: tuple[str, ...]) -> FeatureFlags:
    env_path = Path(env_file) if env_file else config.env_file
    return FeatureFlags.from_env(env_file=env_path, overrides=_parse_flags(flag_pairs))


def _configure_console_logging(verbose: int) -> None:
    if not verbose:
        return
    level = logging.DEBUG if verbose > 1 else logging.INFO
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    root = logging.getLogger("buildmend")
    root.setLevel(level)
    root.addHandler(handler)


def _engine_options(fn):
    """Options shared by the commands that run the engine."""
    decorators = [
        click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False),
                     help=f"Engine config (default: ./{DEFAULT_CONFIG} when present)"),
        click.option("--project-root", "-C", type=click.Path(file_okay=False),
                     help="Flutter project root"),
        click.option("--platform", "-p", "platforms", multiple=True,
                     type=click.Choice(["ios", "android"], case_sensitive=False),
                     help="Restrict to a platform (repeatable)"),
        click.option("--flag", "-f", "flag_pairs", multiple=True, metavar="NAME=VALUE",
                     help="Override a feature flag (repeatable)"),
        click.option("--env-file", type=click.Path(dir_okay=False),
                     help="Read feature flags from a .env file"),
    ]
    for decorator in reversed(decorators):
        fn = decorator(fn)
    return fn


@click.group()
@click.version_option(version=__version__, prog_name="buildmend")
@click.option("--verbose", "-v", count=True, help="Log to the console (-vv for debug)")
def cli(verbose: int):
    """buildmend – validate and repair mobile build configuration."""
    _configure_console_logging(verbose)
    if os.environ.get("BUILDMEND_LOG_DIR"):
        setup_logging()


def _run_engine(
    *,
    check_only: bool,
    config_path: Optional[str],
    project_root: Optional[str],
    platforms: tuple[str, ...],
    flag_pairs: tuple[str, ...],
    env_file: Optional[str],
    strict: bool,
    report: Optional[str],
    no_lint: bool,
    quiet: bool,
) -> None:
    try:
        config = _load_engine_config(config_path, project_root, platforms, report, no_lint)
        flags = _load_flags(config, env_file, flag_pairs)
        catalog = load_catalog(config.catalog)
        problems = flags.check_types(catalog.flag_types())
        if problems:
            for problem in problems:
                console.print(f"[red]✗ {escape(problem)}[/red]")
            sys.exit(EXIT_USAGE)

        runner = ReconciliationRunner(config, catalog=catalog, check_only=check_only, strict=strict)
        report_obj = runner.run(flags)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except (BuildmendError, ValueError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_USAGE)

    if quiet:
        click.echo(report_obj.render_text(), nl=False)
    else:
        report_obj.print(console)
    if config.report:
        console.print(f"[dim]Report: {config.report}[/dim]")

    code = report_obj.exit_code
    if code == EXIT_OK:
        verb = "All artifacts valid" if check_only else "Reconciliation complete"
        console.print(f"[green]✓ {verb}[/green]")
    sys.exit(code)


@cli.command()
@_engine_options
@click.option("--strict", is_flag=True, help="Treat every failed artifact as fatal")
@click.option("--report", "-r", type=click.Path(dir_okay=False), help="Write the text report here")
@click.option("--no-lint", is_flag=True, help="Skip plutil/xmllint checks")
@click.option("--quiet", "-q", is_flag=True, help="Plain text report only")
def reconcile(config_path, project_root, platforms, flag_pairs, env_file, strict, report, no_lint, quiet):
    """Validate every active artifact and repair the invalid ones."""
    _run_engine(
        check_only=False,
        config_path=config_path,
        project_root=project_root,
        platforms=platforms,
        flag_pairs=flag_pairs,
        env_file=env_file,
        strict=strict,
        report=report,
        no_lint=no_lint,
        quiet=quiet,
    )


@cli.command()
@_engine_options
@click.option("--strict", is_flag=True, help="Treat every invalid artifact as fatal")
@click.option("--report", "-r", type=click.Path(dir_okay=False), help="Write the text report here")
@click.option("--quiet", "-q", is_flag=True, help="Plain text report only")
def check(config_path, project_root, platforms, flag_pairs, env_file, strict, report, quiet):
    """Validate without writing anything."""
    _run_engine(
        check_only=True,
        config_path=config_path,
        project_root=project_root,
        platforms=platforms,
        flag_pairs=flag_pairs,
        env_file=env_file,
        strict=strict,
        report=report,
        no_lint=True,
        quiet=quiet,
    )


@cli.command()
@_engine_options
def graph(config_path, project_root, platforms, flag_pairs, env_file):
    """Show the artifact dependency graph (* = active for the given flags)."""
    try:
        config = _load_engine_config(config_path, project_root, platforms, None)
        flags = _load_flags(config, env_file, flag_pairs)
        resolver = DependencyResolver(load_catalog(config.catalog))
        console.print(Panel(escape(resolver.print_graph(flags)), title="Dependency Graph"))

        issues = resolver.validate()
        if issues:
            console.print("[red]Catalog issues:[/red]")
            for issue in issues:
                console.print(f"  [red]✗[/red] {escape(issue)}")
            sys.exit(EXIT_USAGE)
        console.print("[green]✓ Catalog is valid[/green]")
    except (BuildmendError, ValueError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_USAGE)


@cli.command()
@_engine_options
def flags(config_path, project_root, platforms, flag_pairs, env_file):
    """List the declared feature flags and their current values."""
    try:
        config = _load_engine_config(config_path, project_root, platforms, None)
        current = _load_flags(config, env_file, flag_pairs)
        catalog = load_catalog(config.catalog)
    except (BuildmendError, ValueError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_USAGE)

    table = Table(title="Feature flags")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="blue")
    table.add_column("Value")
    table.add_column("Description", style="dim")

    for name, decl in catalog.flags.items():
        value = current.get_str(name)
        shown = escape(value) if value is not None else "[dim]-[/dim]"
        table.add_row(name, decl.type, shown, escape(decl.description))

    console.print(table)
    problems = current.check_types(catalog.flag_types())
    for problem in problems:
        console.print(f"[red]✗ {escape(problem)}[/red]")
    if problems:
        sys.exit(EXIT_USAGE)


@cli.command()
@click.option("--output", "-o", default=DEFAULT_CONFIG, help="Output file")
@click.option("--platform", "-p", "platforms", multiple=True,
              type=click.Choice(["ios", "android"], case_sensitive=False))
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(output: str, platforms: tuple[str, ...], force: bool):
    """Create a buildmend.yaml with default settings."""
    output_path = Path(output)
    if output_path.exists() and not force:
        console.print(f"[red]{output_path} already exists (use --force)[/red]")
        sys.exit(EXIT_ABORT)

    config = EngineConfig(
        project_root=Path("."),
        platforms=[p.lower() for p in platforms] or ["ios", "android"],
        report=Path("build/buildmend-report.txt"),
        cache_dir=Path(".buildmend/cache"),
        env_file=Path(".env"),
        policy={"ios_app_icon": "warn", "android_launcher_icon": "warn"},
    )
    config.to_yaml(output_path)

    console.print(f"[green]Created {output_path}[/green]")
    console.print("\nNext steps:")
    console.print(f"  buildmend check -c {output}")
    console.print(f"  buildmend reconcile -c {output}")


@cli.command()
@click.argument("artifact")
@_engine_options
@click.option("--backup", "-b", "backup_path", type=click.Path(dir_okay=False),
              help="Backup file to restore (default: the newest one)")
def restore(artifact, config_path, project_root, platforms, flag_pairs, env_file, backup_path):
    """Restore ARTIFACT from a backup created by an earlier run."""
    try:
        config = _load_engine_config(config_path, project_root, platforms, None)
        catalog = load_catalog(config.catalog)
        flag_set = _load_flags(config, env_file, flag_pairs)
        matches = [a for a in catalog.declared(flag_set) if a.name == artifact]
        if not matches:
            console.print(f"[red]Unknown artifact: {escape(artifact)}[/red]")
            sys.exit(EXIT_USAGE)
        target = matches[0]

        store = ArtifactStore(config.project_root)
        source = Path(backup_path) if backup_path else store.latest_backup(target.path)
        if source is None:
            console.print(f"[yellow]No backups of {escape(str(target.path))}[/yellow]")
            sys.exit(EXIT_ABORT)
        store.restore(source, target.path)
        console.print(f"[green]✓ Restored {escape(str(target.path))} from {escape(source.name)}[/green]")
    except (BuildmendError, ValueError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_USAGE)


def main(argv=None):
    """Main entry point."""
    cli(argv)


if __name__ == "__main__":
    main()
