"""principles-sync CLI — the entry point used by git hooks and session hooks."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from principles_sync import __version__
from principles_sync.log import configure_logging, get_logger, stderr_console

console = Console()
log = get_logger("cli")


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context):
    """principles-sync — keep coding principles and permissions up to date.

    With no command, runs the full sync: refresh the principles mirror,
    detect the technologies in the current directory, write the active
    principles document and merge shared permissions into your settings.
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(sync)


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="Show progress details")
@click.option("--categories", "-c", multiple=True, help="Extra category to include (repeatable)")
@click.option("--output", "-o", default=None, help="Where to write the active principles")
@click.option("--skip-settings", is_flag=True, help="Do not touch the settings file")
@click.option("--config", "config_file", default=None, help="YAML config file")
def sync(verbose: bool, categories: tuple, output: str | None, skip_settings: bool, config_file: str | None):
    """Run the full pipeline. Exits 0 unless no principles could be obtained."""
    from principles_sync.config import ConfigError, load_config
    from principles_sync.pipeline import Pipeline
    from principles_sync.sync.mirror import MirrorUnavailableError

    try:
        config = load_config(
            config_file=config_file,
            verbose=verbose or None,
            categories=list(categories) or None,
            output=output,
            skip_settings=skip_settings or None,
        )
    except ConfigError as e:
        configure_logging()
        log.error("%s", e)
        raise SystemExit(1)

    configure_logging(verbose=config.verbose)

    try:
        result = Pipeline(config).run()
    except MirrorUnavailableError as e:
        log.error("%s", e)
        for endpoint, reason in e.attempts:
            log.debug("  %s: %s", endpoint, reason)
        stderr_console.print("principles-sync: no principles available", highlight=False, soft_wrap=True)
        raise SystemExit(1)
    except Exception as e:
        if config.verbose:
            log.exception("Sync failed")
        else:
            log.error("Sync failed: %s (run with --verbose for details)", e)
        stderr_console.print("principles-sync: sync failed", highlight=False, soft_wrap=True)
        raise SystemExit(1)

    stderr_console.print(result.summary(), highlight=False, markup=False, soft_wrap=True)


# ── Detect ───────────────────────────────────────────────────────────


@main.command()
@click.argument("path", default=".")
@click.option("--depth", default=3, show_default=True, help="How deep to scan")
@click.option("--categories", "-c", multiple=True, help="Extra category to include (repeatable)")
def detect(path: str, depth: int, categories: tuple):
    """Print the principle categories that apply to PATH."""
    from principles_sync.analyzers.detector import detect as detect_categories

    for label in detect_categories(Path(path), extra=categories, max_depth=depth):
        console.print(label, highlight=False)


# ── Settings ─────────────────────────────────────────────────────────


@main.command(name="merge-settings")
@click.option("--settings-file", default=None, help="Settings file to update")
@click.option("--partial", default=None, help="Permission partial (default: from the mirror)")
@click.option("--verbose", "-v", is_flag=True, help="Show progress details")
def merge_settings(settings_file: str | None, partial: str | None, verbose: bool):
    """Merge shared permissions into the settings file without removing anything."""
    from principles_sync.config import ConfigError, load_config
    from principles_sync.models.results import MergeStatus
    from principles_sync.sync.settings import SettingsMerger

    try:
        config = load_config(settings_file=settings_file, verbose=verbose or None)
    except ConfigError as e:
        configure_logging()
        log.error("%s", e)
        raise SystemExit(1)
    configure_logging(verbose=config.verbose)

    merger = SettingsMerger(config.settings_file)
    result = merger.merge_from(partial or config.permission_partial, enabled=not config.skip_settings)

    if result.status == MergeStatus.MERGED:
        console.print(f"[green]Merged[/] {result.added_count} new entries into {result.settings_path}")
        for field_path, entries in result.added.items():
            console.print(f"  {field_path}: {', '.join(map(str, entries))}", highlight=False)
    elif result.status == MergeStatus.UNCHANGED:
        console.print(f"Settings already up to date: {result.settings_path}")
    else:
        console.print(f"[yellow]Settings not merged:[/] {result.status.value}")

    if not result.ok:
        raise SystemExit(1)


# ── Hooks ────────────────────────────────────────────────────────────


@main.command()
@click.option("--principles-only", is_flag=True, help="Only install the principles refresh hooks")
@click.option("--formatting-only", is_flag=True, help="Only install the pre-commit formatter")
@click.option("--auto-install-tools", is_flag=True, help="Install missing formatters with npm")
@click.option("--uninstall", is_flag=True, help="Remove hooks and restore originals")
@click.option("--no-fetch", is_flag=True, help="Do not run a first sync after installing")
@click.option("--verbose", "-v", is_flag=True, envvar="VERBOSE", help="Show progress details")
def install(
    principles_only: bool,
    formatting_only: bool,
    auto_install_tools: bool,
    uninstall: bool,
    no_fetch: bool,
    verbose: bool,
):
    """Install git hooks into the current repository."""
    from principles_sync.config import ConfigError, load_config
    from principles_sync.hooks.installer import (
        HookInstaller,
        InstallError,
        install_tools,
        missing_tools,
        session_start_snippet,
    )

    configure_logging(verbose=verbose)

    if principles_only and formatting_only:
        raise click.UsageError("--principles-only and --formatting-only are mutually exclusive")

    try:
        installer = HookInstaller()
    except InstallError as e:
        console.print(f"[red]Error:[/] {e}")
        raise SystemExit(1)

    if uninstall:
        for action in installer.uninstall():
            console.print(f"  [green]v[/] {action}")
        console.print("[green]Uninstallation complete[/]")
        return

    principles = not formatting_only
    formatting = not principles_only

    console.print("\n[bold blue]principles-sync[/] — installing hooks\n")
    try:
        installed = installer.install(principles=principles, formatting=formatting)
    except InstallError as e:
        console.print(f"[red]Error:[/] {e}")
        raise SystemExit(1)
    for hook in installed:
        console.print(f"  [green]v[/] Installed {hook.name}")

    if formatting:
        missing = missing_tools()
        if missing and auto_install_tools:
            console.print("Installing missing tools with npm...")
            for tool, ok in install_tools(missing).items():
                if ok:
                    console.print(f"  [green]v[/] Installed {tool}")
                else:
                    console.print(f"  [yellow]![/] Failed to install {tool}")
            missing = missing_tools()
        if missing:
            table = Table(title="Missing formatting tools")
            table.add_column("Tool", style="cyan")
            table.add_column("Effect")
            for tool in missing:
                table.add_row(tool, "files needing it are skipped by pre-commit")
            console.print(table)
            if not auto_install_tools:
                console.print("Run with --auto-install-tools to install them with npm.")
        else:
            console.print("  [green]v[/] All formatting tools are installed")

    if principles:
        try:
            output = load_config(verbose=verbose or None).output
        except ConfigError as e:
            log.error("%s", e)
        else:
            console.print("\nTo load the principles when a session starts, add to your settings file:")
            console.print_json(data=session_start_snippet(installer.command, output))
            console.print("Shared permissions are merged on every sync; set SKIP_SETTINGS=true to disable.")

    if principles and not no_fetch:
        console.print("\nFetching principles for the first time...")
        ctx = click.get_current_context()
        try:
            ctx.invoke(sync, verbose=verbose)
        except SystemExit as e:
            if e.code:
                console.print("[yellow]Failed to fetch principles; run `principles-sync` manually.[/]")


# ── Format / lint ────────────────────────────────────────────────────


@main.command(name="format-lint")
@click.argument("files", nargs=-1, type=click.Path())
@click.option(
    "--mode",
    type=click.Choice(["fix", "check"]),
    default="fix",
    envvar="FORMAT_LINT_MODE",
    show_default=True,
    help="Rewrite files or only report problems",
)
@click.option("--verbose", "-v", is_flag=True, envvar="VERBOSE", help="Show progress details")
def format_lint(files: tuple, mode: str, verbose: bool):
    """Format and lint FILES (default: the files staged in git)."""
    from principles_sync.hooks.format_lint import Mode, format_lint as run_format_lint

    configure_logging(verbose=verbose)

    report = run_format_lint([Path(f) for f in files], mode=Mode(mode))
    if report.failures:
        stderr_console.print(
            f"format-lint: {len(report.failures)} problem(s) in {report.checked} file(s)",
            highlight=False,
        )
    raise SystemExit(report.exit_code)


if __name__ == "__main__":
    main()
