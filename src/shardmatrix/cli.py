"""shardmatrix CLI — top-level command group."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import yaml
from rich.logging import RichHandler
from rich.markup import escape

from shardmatrix import __version__
from shardmatrix.config import CONFIG_FILE_NAME, load_config, validate_config
from shardmatrix.reporters.terminal import console, err_console, reporter
from shardmatrix.sharding.changed_files import MalformedChangedFilesError, parse_changed_files
from shardmatrix.sharding.matrix import plan_matrix
from shardmatrix.sharding.partitioner import InvalidCapacityError
from shardmatrix.sharding.resolver import UnknownShardError, resolve_run_config
from shardmatrix.sharding.selector import attribute_files, select_shards
from shardmatrix.utils.ci_context import detect_ci_context, write_step_outputs
from shardmatrix.utils.host import detect_host_stats, recommend_worker_settings

if TYPE_CHECKING:
    from shardmatrix.config import ShardMatrixConfig
    from shardmatrix.sharding.registry import ShardRegistry

logger = logging.getLogger(__name__)

_PATH_OPTION = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory (where .shardmatrix.yml lives).",
)


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _load(path: str) -> tuple[ShardMatrixConfig, ShardRegistry]:
    """Load configuration and build the shard registry, aborting on failure."""
    try:
        config = load_config(path)
    except Exception as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e

    try:
        registry = config.registry()
    except ValueError as e:
        reporter.print_error(f"Invalid shard configuration: {e}")
        raise click.Abort from e

    try:
        config.base_run_config()
    except ValueError as e:
        reporter.print_error(f"Invalid defaults configuration: {e}")
        raise click.Abort from e

    return config, registry


def _parse_changed_files_option(raw: str) -> list[str]:
    try:
        return parse_changed_files(raw)
    except MalformedChangedFilesError as e:
        reporter.print_error(str(e))
        raise click.Abort from e


def _config_to_dict(config: ShardMatrixConfig) -> dict[str, Any]:
    """Convert ShardMatrixConfig to the same shape as ``.shardmatrix.yml``."""
    return {
        "root": config.root,
        "suffixes": asdict(config.suffixes),
        "defaults": asdict(config.defaults),
        "shards": {
            shard.name: {
                "match_paths": list(shard.match_paths),
                "threshold": dict(shard.threshold),
            }
            for shard in config.shards
        },
        "platforms": {
            platform.runs_on: {
                "max_instances": platform.max_instances,
                "coverage": platform.coverage,
                "runner_timeout_minutes": platform.resolved_runner_timeout(),
                "test_timeout_milliseconds": platform.resolved_test_timeout(),
            }
            for platform in config.platforms
        },
    }


@click.group()
@click.option(
    "--ci",
    is_flag=True,
    help="CI mode: size workers for CI runners even if no CI environment is detected.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging on stderr.")
@click.version_option(version=__version__, prog_name="shardmatrix")
@click.pass_context
def cli(ctx: click.Context, *, ci: bool, verbose: bool) -> None:
    """shardmatrix — test shard resolution and CI runner-matrix scheduling."""
    ctx.ensure_object(dict)
    ctx.obj["ci"] = ci
    _configure_logging(verbose=verbose)


@cli.command()
@_PATH_OPTION
@click.option(
    "--shard",
    "shard_name",
    envvar="TEST_SHARD",
    default=None,
    help="Shard to resolve (env: TEST_SHARD). Omit for a full fallback run.",
)
def resolve(path: str, shard_name: str | None) -> None:
    """Print the test-runner config for a single shard as JSON.

    Shards declared before the requested one are excluded from its test
    match and coverage collection.  Without a shard, the configured
    defaults are printed unchanged.

    Example:
      shardmatrix resolve --shard managers-1
    """
    config, registry = _load(path)

    try:
        run_config = resolve_run_config(shard_name, config.base_run_config(), registry)
    except UnknownShardError as e:
        reporter.print_error(str(e))
        raise click.Abort from e

    click.echo(json.dumps(run_config.to_dict(), indent=2))


@cli.command("select")
@_PATH_OPTION
@click.argument("files", nargs=-1)
@click.option(
    "--changed-files",
    "changed_files_raw",
    envvar="CHANGED_FILES",
    default=None,
    help="JSON array of changed file paths (env: CHANGED_FILES).",
)
@click.option("--json-output", "as_json", is_flag=True, help="Output a JSON list.")
@click.option("--explain", is_flag=True, help="Show which shard claimed each file.")
def select_command(
    path: str,
    files: tuple[str, ...],
    changed_files_raw: str | None,
    *,
    as_json: bool,
    explain: bool,
) -> None:
    """Print the shards affected by the given changed files.

    Each file is claimed by the first shard whose patterns match it; the
    shards are printed in registry order.

    Example:
      shardmatrix select lib/util/git/index.ts lib/workers/global/index.ts
    """
    _config, registry = _load(path)

    changed_files = list(files)
    if changed_files_raw:
        changed_files.extend(_parse_changed_files_option(changed_files_raw))

    if explain:
        reporter.print_attribution(attribute_files(changed_files, registry))

    selected = select_shards(changed_files, registry)
    if as_json:
        click.echo(json.dumps(selected))
        return
    for name in selected:
        click.echo(name)


@cli.command()
@_PATH_OPTION
@click.option(
    "--changed-files",
    "changed_files_raw",
    envvar="CHANGED_FILES",
    default=None,
    help="JSON array of changed file paths (env: CHANGED_FILES).",
)
@click.option(
    "--filter-shards/--no-filter-shards",
    envvar="FILTER_SHARDS",
    default=False,
    help="Only schedule shards matching the changed files (env: FILTER_SHARDS).",
)
@click.option(
    "--all-platforms/--primary-platform",
    envvar="ALL_PLATFORMS",
    default=False,
    help="Schedule every configured platform, not only the first (env: ALL_PLATFORMS).",
)
@click.option(
    "--output-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also append the output lines to this file (e.g. $GITHUB_OUTPUT).",
)
@click.option("--preview", is_flag=True, help="Show the matrix as a table instead.")
def schedule(
    path: str,
    changed_files_raw: str | None,
    *,
    filter_shards: bool,
    all_platforms: bool,
    output_file: str | None,
    preview: bool,
) -> None:
    """Partition shards into CI runner groups and print the matrix outputs.

    Prints ``test-shard-matrix=<json>`` and ``test-coverage-files=<list>``,
    or ``test-matrix-empty=true`` when no shard matches the changed files.
    Nothing else is written to stdout, so the output can be consumed as-is
    by the CI setup job.

    Example:
      CHANGED_FILES='["lib/util/git/index.ts"]' shardmatrix schedule --filter-shards
    """
    config, registry = _load(path)

    changed_files: list[str] | None = None
    if filter_shards and changed_files_raw:
        changed_files = _parse_changed_files_option(changed_files_raw)
        logger.debug("Scheduling against %d changed files", len(changed_files))

    try:
        plan = plan_matrix(
            registry,
            config.platforms,
            changed_files=changed_files,
            filter_shards=filter_shards,
            all_platforms=all_platforms,
        )
    except InvalidCapacityError as e:
        reporter.print_error(f"Invalid platform configuration: {e}")
        raise click.Abort from e

    if preview:
        if plan.empty:
            reporter.print_info("No shards matched the changed files.")
        else:
            reporter.print_matrix(plan.groups)
        return

    lines = plan.output_lines()
    for line in lines:
        click.echo(line)

    if output_file is not None:
        write_step_outputs(lines, Path(output_file))


@cli.command()
@_PATH_OPTION
def shards(path: str) -> None:
    """Show the configured shards in priority order."""
    config, registry = _load(path)

    if not len(registry):
        reporter.print_warning(f"No shards configured in {CONFIG_FILE_NAME}")
        return

    reporter.print_registry(registry, config.base_run_config().coverage_threshold)


@cli.command()
@click.option("--json-output", "as_json", is_flag=True, help="Output JSON to stdout.")
@click.pass_context
def host(ctx: click.Context, *, as_json: bool) -> None:
    """Show host stats and the recommended test-runner worker settings."""
    ci_mode = bool(ctx.obj.get("ci", False)) if ctx.obj else False
    ci_context = detect_ci_context()

    stats = detect_host_stats()
    settings = recommend_worker_settings(stats, ci=ci_mode or ci_context.is_ci)

    if as_json:
        click.echo(json.dumps({"host": asdict(stats), "workers": asdict(settings)}, indent=2))
        return

    reporter.print_host_stats(stats, settings)


@cli.group("config")
def config_group() -> None:
    """Inspect `.shardmatrix.yml` configuration."""


@config_group.command("show")
@_PATH_OPTION
@click.option(
    "--json-output",
    "as_json",
    is_flag=True,
    help="Output as JSON instead of YAML.",
)
def config_show(path: str, *, as_json: bool) -> None:
    """Display the resolved configuration.

    Example:
      shardmatrix config show --json-output
    """
    try:
        config = load_config(path)
    except Exception as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e

    config_dict = _config_to_dict(config)

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@_PATH_OPTION
def config_validate(path: str) -> None:
    """Validate `.shardmatrix.yml`.

    Checks shard patterns, thresholds and platform capacities.

    Example:
      shardmatrix config validate
    """
    try:
        config = load_config(path)
    except Exception as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e

    errors = validate_config(config)

    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    for idx, error in enumerate(errors, start=1):
        err_console.print(f"  {idx}. [red]{escape(error)}[/red]")

    raise click.Abort
