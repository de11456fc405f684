"""Resolve the run configuration for a single shard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shardmatrix.sharding.patterns import FileKind, normalize_pattern
from shardmatrix.sharding.registry import CoverageThreshold

if TYPE_CHECKING:
    from shardmatrix.sharding.registry import ShardRegistry

logger = logging.getLogger(__name__)

ROOT_DIR_TOKEN = "<rootDir>"
"""Prefix the test runner expands to the project root."""

_EXCLUDE = "!"


class UnknownShardError(Exception):
    """Raised when the requested shard is not in the registry."""

    def __init__(self, shard_name: str, valid_names: list[str]) -> None:
        self.shard_name = shard_name
        self.valid_names = valid_names
        super().__init__(
            f"Unknown shard: {shard_name} (possible values: {', '.join(valid_names)})"
        )


@dataclass
class RunConfig:
    """Subset of test-runner config that is relevant for a sharded run."""

    test_match: list[str] = field(default_factory=list)
    """Test file globs; entries starting with ``!`` exclude."""

    collect_coverage_from: list[str] = field(default_factory=list)
    """Source file globs to instrument; entries starting with ``!`` exclude."""

    coverage_threshold: CoverageThreshold = field(default_factory=CoverageThreshold)
    """Global coverage threshold to enforce."""

    coverage_directory: str = "./coverage"
    """Where the coverage report is written."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "test_match": list(self.test_match),
            "collect_coverage_from": list(self.collect_coverage_from),
            "coverage_threshold": self.coverage_threshold.to_dict(),
            "coverage_directory": self.coverage_directory,
        }


def resolve_run_config(
    shard_name: str | None,
    base: RunConfig,
    registry: ShardRegistry,
) -> RunConfig:
    """Build the run config for *shard_name*, or fall back to *base*.

    Shards declared before the target are excluded from both the test match
    and the coverage collection, since they are covered by their own runs.
    The walk stops at the target, so later shards need no handling.

    Args:
        shard_name: Shard to run, or ``None``/empty for a full run.
        base: Fallback config; also supplies the default threshold, the
            coverage exclusions and the coverage directory.
        registry: Shard registry, in priority order.

    Returns:
        *base* itself when no shard is given, otherwise a fresh RunConfig.

    Raises:
        UnknownShardError: If *shard_name* is not registered.
    """
    if not shard_name:
        return base

    if shard_name not in registry:
        raise UnknownShardError(shard_name, registry.names)

    suffixes = registry.suffixes
    test_match: list[str] = []
    collect_coverage_from = [p for p in base.collect_coverage_from if p.startswith(_EXCLUDE)]
    threshold = base.coverage_threshold

    for shard in registry:
        test_globs = [normalize_pattern(p, FileKind.TEST, suffixes) for p in shard.match_paths]
        source_globs = [
            normalize_pattern(p, FileKind.SOURCE, suffixes) for p in shard.match_paths
        ]

        if shard.name == shard_name:
            test_match.extend(f"{ROOT_DIR_TOKEN}/{glob}" for glob in test_globs)
            collect_coverage_from.extend(source_globs)
            threshold = threshold.merged(shard.threshold)
            break

        test_match.extend(f"{_EXCLUDE}**/{glob}" for glob in test_globs)
        collect_coverage_from.extend(f"{_EXCLUDE}{glob}" for glob in source_globs)

    test_match.reverse()
    collect_coverage_from.reverse()

    logger.info(
        "Resolved shard %s: %d test globs, %d coverage globs",
        shard_name,
        len(test_match),
        len(collect_coverage_from),
    )

    return RunConfig(
        test_match=test_match,
        collect_coverage_from=collect_coverage_from,
        coverage_threshold=threshold,
        coverage_directory=f"{base.coverage_directory.rstrip('/')}/shard/{shard_name}",
    )
