"""Configuration parsing from ``.shardmatrix.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from shardmatrix.sharding.matrix import DEFAULT_PLATFORMS, PlatformSpec
from shardmatrix.sharding.patterns import DEFAULT_SUFFIXES, FileSuffixes
from shardmatrix.sharding.registry import (
    THRESHOLD_FIELDS,
    CoverageThreshold,
    ShardDefinition,
    ShardRegistry,
    validate_shards,
)
from shardmatrix.sharding.resolver import RunConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".shardmatrix.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_MAX_PERCENTAGE = 100.0


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    """Return ``raw[key]`` when it is a mapping, otherwise an empty dict."""
    value = raw.get(key, {})
    return value if isinstance(value, dict) else {}


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


@dataclass
class DefaultsConfig:
    """Base (fallback) run configuration used when no shard is targeted."""

    test_match: list[str] = field(default_factory=list)
    """Test file globs for a full run (empty = runner default)."""

    collect_coverage_from: list[str] = field(default_factory=list)
    """Coverage globs; ``!`` exclusions are carried into every shard."""

    coverage_threshold: dict[str, float] = field(default_factory=dict)
    """Partial global threshold; omitted fields default to 100."""

    coverage_directory: str = "./coverage"
    """Coverage output directory; shard runs write below ``<dir>/shard/<name>``."""


@dataclass
class ShardMatrixConfig:
    """Complete ``.shardmatrix.yml`` configuration."""

    root: str
    """Project root directory."""

    suffixes: FileSuffixes = DEFAULT_SUFFIXES
    """Test and source file suffixes."""

    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    """Fallback run configuration."""

    shards: list[ShardDefinition] = field(default_factory=list)
    """Shard definitions in priority order."""

    platforms: list[PlatformSpec] = field(default_factory=lambda: list(DEFAULT_PLATFORMS))
    """Runner platforms; the first one is the primary platform."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML, for debugging."""

    def registry(self) -> ShardRegistry:
        """Build the shard registry.

        Raises:
            ValueError: If the shard definitions are invalid.
        """
        return ShardRegistry(self.shards, self.suffixes)

    def base_run_config(self) -> RunConfig:
        """Return the run config used in fallback mode.

        Raises:
            ValueError: If the defaults section is invalid.
        """
        errors = _validate_defaults(self.defaults)
        if errors:
            raise ValueError("; ".join(errors))

        return RunConfig(
            test_match=list(self.defaults.test_match),
            collect_coverage_from=list(self.defaults.collect_coverage_from),
            coverage_threshold=CoverageThreshold().merged(self.defaults.coverage_threshold),
            coverage_directory=self.defaults.coverage_directory,
        )


def _parse_threshold(raw: Any, prefix: str) -> dict[str, float]:
    """Parse a partial threshold mapping, dropping non-numeric values."""
    if not isinstance(raw, dict):
        return {}

    threshold: dict[str, float] = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Ignoring non-numeric %s.%s: %r", prefix, key, value)
            continue
        threshold[str(key)] = float(value)
    return threshold


def _parse_suffixes(raw: dict[str, Any]) -> FileSuffixes:
    """Parse the test/source suffix section from raw YAML."""
    suffixes_raw = _section(raw, "suffixes")
    return FileSuffixes(
        test=str(suffixes_raw.get("test", DEFAULT_SUFFIXES.test)),
        source=str(suffixes_raw.get("source", DEFAULT_SUFFIXES.source)),
    )


def _parse_defaults(raw: dict[str, Any]) -> DefaultsConfig:
    """Parse the fallback run configuration from raw YAML."""
    defaults_raw = _section(raw, "defaults")
    return DefaultsConfig(
        test_match=_string_list(defaults_raw.get("test_match", [])),
        collect_coverage_from=_string_list(defaults_raw.get("collect_coverage_from", [])),
        coverage_threshold=_parse_threshold(
            defaults_raw.get("coverage_threshold", {}), "defaults.coverage_threshold"
        ),
        coverage_directory=str(defaults_raw.get("coverage_directory", "./coverage")),
    )


def _parse_shards(raw: dict[str, Any]) -> list[ShardDefinition]:
    """Parse the ordered shard mapping from raw YAML.

    A shard may be given in full (``{match_paths: [...], threshold: {...}}``)
    or as a bare list of patterns.
    """
    shards_raw = _section(raw, "shards")
    shards: list[ShardDefinition] = []

    for name, shard_raw in shards_raw.items():
        if isinstance(shard_raw, dict):
            match_paths = _string_list(shard_raw.get("match_paths", []))
            threshold = _parse_threshold(shard_raw.get("threshold", {}), f"shards.{name}.threshold")
        else:
            match_paths = _string_list(shard_raw)
            threshold = {}

        shards.append(
            ShardDefinition(name=str(name), match_paths=tuple(match_paths), threshold=threshold)
        )

    return shards


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _parse_platforms(raw: dict[str, Any]) -> list[PlatformSpec]:
    """Parse the ordered platform mapping from raw YAML.

    A platform may be given in full or as a bare instance count.
    """
    platforms_raw = _section(raw, "platforms")
    if not platforms_raw:
        return list(DEFAULT_PLATFORMS)

    platforms: list[PlatformSpec] = []
    for runs_on, platform_raw in platforms_raw.items():
        if not isinstance(platform_raw, dict):
            platform_raw = {"max_instances": platform_raw}

        platforms.append(
            PlatformSpec(
                runs_on=str(runs_on),
                max_instances=int(platform_raw.get("max_instances", 1)),
                coverage=bool(platform_raw.get("coverage", False)),
                runner_timeout_minutes=_optional_int(platform_raw.get("runner_timeout_minutes")),
                test_timeout_milliseconds=_optional_int(
                    platform_raw.get("test_timeout_milliseconds")
                ),
            )
        )

    return platforms


def load_config(root: str | Path) -> ShardMatrixConfig:
    """Load and parse the complete ``.shardmatrix.yml`` configuration.

    Falls back to defaults (no shards, default platforms) when the YAML
    file is missing or incomplete.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILE_NAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        text = config_file.read_text(encoding="utf-8")
        parsed = yaml.safe_load(text)
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
    else:
        logger.debug("No %s found in %s, using defaults", CONFIG_FILE_NAME, root_path)

    return ShardMatrixConfig(
        root=str(root_path),
        suffixes=_parse_suffixes(raw),
        defaults=_parse_defaults(raw),
        shards=_parse_shards(raw),
        platforms=_parse_platforms(raw),
        raw=raw,
    )


def _validate_suffixes(suffixes: FileSuffixes) -> list[str]:
    """Validate test/source suffixes."""
    errors: list[str] = []

    if not suffixes.test:
        errors.append("suffixes.test must not be empty")
    if not suffixes.source:
        errors.append("suffixes.source must not be empty")
    if suffixes.test and suffixes.test == suffixes.source:
        errors.append(f"suffixes.test and suffixes.source must differ (got: {suffixes.test})")

    return errors


def _validate_defaults(defaults: DefaultsConfig) -> list[str]:
    """Validate the fallback run configuration."""
    errors: list[str] = []

    for key, value in defaults.coverage_threshold.items():
        if key not in THRESHOLD_FIELDS:
            errors.append(
                f"defaults.coverage_threshold.{key} is not one of: {', '.join(THRESHOLD_FIELDS)}"
            )
        elif not 0.0 <= value <= _MAX_PERCENTAGE:
            errors.append(
                f"defaults.coverage_threshold.{key} must be between 0 and 100 (got: {value})"
            )

    if not defaults.coverage_directory:
        errors.append("defaults.coverage_directory must not be empty")

    return errors


def _validate_platforms(platforms: list[PlatformSpec]) -> list[str]:
    """Validate runner platforms."""
    errors: list[str] = []

    if not platforms:
        errors.append("platforms must define at least one platform")

    for platform in platforms:
        prefix = f"platforms.{platform.runs_on}"
        if platform.max_instances < 1:
            errors.append(f"{prefix}.max_instances must be >= 1 (got: {platform.max_instances})")
        if platform.runner_timeout_minutes is not None and platform.runner_timeout_minutes < 1:
            errors.append(
                f"{prefix}.runner_timeout_minutes must be positive "
                f"(got: {platform.runner_timeout_minutes})"
            )
        if (
            platform.test_timeout_milliseconds is not None
            and platform.test_timeout_milliseconds < 1
        ):
            errors.append(
                f"{prefix}.test_timeout_milliseconds must be positive "
                f"(got: {platform.test_timeout_milliseconds})"
            )

    return errors


def validate_config(config: ShardMatrixConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    errors.extend(_validate_suffixes(config.suffixes))
    errors.extend(_validate_defaults(config.defaults))
    errors.extend(validate_shards(config.shards, config.suffixes))
    errors.extend(_validate_platforms(config.platforms))

    return errors
