"""Build the CI runner matrix from the selected shards.

Not all runners are created equal: Windows and macOS minutes are more
expensive and we can't run as many of them as Linux runners.  Shards are
therefore partitioned into as many groups as each platform allows, and
every group becomes one CI job.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shardmatrix.sharding.partitioner import partition
from shardmatrix.sharding.selector import select_shards

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping, Sequence

    from shardmatrix.sharding.registry import ShardRegistry

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────

RUNNER_TIMEOUT_MINUTES = {"ubuntu": 10, "windows": 20, "macos": 20}
DEFAULT_RUNNER_TIMEOUT_MINUTES = 20

TEST_TIMEOUT_MILLISECONDS = {"windows": 240_000}
DEFAULT_TEST_TIMEOUT_MILLISECONDS = 120_000

COVERAGE_REPORTS_DIR = "./coverage-reports"

MATRIX_EMPTY_OUTPUT = "test-matrix-empty=true"
MATRIX_OUTPUT_KEY = "test-shard-matrix"
COVERAGE_FILES_OUTPUT_KEY = "test-coverage-files"

# ── Data models ───────────────────────────────────────────────────


@dataclass(frozen=True)
class PlatformSpec:
    """A runner platform and how many instances of it we may use."""

    runs_on: str
    """Runner label, e.g. ``ubuntu-latest``."""

    max_instances: int
    """Upper bound on parallel runner groups for this platform."""

    coverage: bool = False
    """Whether coverage is collected on this platform."""

    runner_timeout_minutes: int | None = None
    """Job timeout; ``None`` uses the per-platform default."""

    test_timeout_milliseconds: int | None = None
    """Per-test timeout; ``None`` uses the per-platform default."""

    @property
    def short_name(self) -> str:
        """Runner label without the ``-latest`` suffix."""
        return self.runs_on.removesuffix("-latest")

    def resolved_runner_timeout(self) -> int:
        """Return the job timeout in minutes."""
        if self.runner_timeout_minutes is not None:
            return self.runner_timeout_minutes
        return RUNNER_TIMEOUT_MINUTES.get(self.short_name, DEFAULT_RUNNER_TIMEOUT_MINUTES)

    def resolved_test_timeout(self) -> int:
        """Return the per-test timeout in milliseconds."""
        if self.test_timeout_milliseconds is not None:
            return self.test_timeout_milliseconds
        return TEST_TIMEOUT_MILLISECONDS.get(self.short_name, DEFAULT_TEST_TIMEOUT_MILLISECONDS)


DEFAULT_PLATFORMS: tuple[PlatformSpec, ...] = (
    PlatformSpec("ubuntu-latest", max_instances=16, coverage=True),
    PlatformSpec("windows-latest", max_instances=8),
    PlatformSpec("macos-latest", max_instances=4),
)


@dataclass
class RunnerGroup:
    """A batch of shards assigned to one CI job."""

    os: str
    """Input for the job's ``runs-on`` field."""

    coverage: bool
    """Whether coverage is collected for this group."""

    name: str
    """Job name, e.g. ``test (2/16)``."""

    shards: str
    """Space-separated shard keys, meant for a shell for-loop."""

    cache_key: str
    """Content hash of the member shards, used for test-runner caching."""

    runner_timeout_minutes: int
    test_timeout_milliseconds: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dict consumed by the CI matrix."""
        return {
            "os": self.os,
            "coverage": self.coverage,
            "name": self.name,
            "shards": self.shards,
            "cache-key": self.cache_key,
            "runner-timeout-minutes": self.runner_timeout_minutes,
            "test-timeout-milliseconds": self.test_timeout_milliseconds,
        }


@dataclass
class MatrixPlan:
    """Shards to run for a commit and the runner groups that run them."""

    shard_names: list[str] = field(default_factory=list)
    """Selected shards, in registry order."""

    groups: list[RunnerGroup] = field(default_factory=list)
    """Runner groups across all scheduled platforms."""

    @property
    def empty(self) -> bool:
        """True when no shard needs to run."""
        return not self.shard_names

    @property
    def coverage_files(self) -> list[str]:
        """Expected coverage report location of every selected shard."""
        return [f"{COVERAGE_REPORTS_DIR}/{shard}.json" for shard in self.shard_names]

    def output_lines(self) -> list[str]:
        """Render the ``key=value`` lines consumed by the CI setup job."""
        if self.empty:
            return [MATRIX_EMPTY_OUTPUT]
        matrix = json.dumps([g.to_dict() for g in self.groups], separators=(",", ":"))
        return [
            f"{MATRIX_OUTPUT_KEY}={matrix}",
            f"{COVERAGE_FILES_OUTPUT_KEY}={','.join(self.coverage_files)}",
        ]


# ── Public API ────────────────────────────────────────────────────


def cache_key(shard_names: Sequence[str]) -> str:
    """Return a stable content hash of the member shard list."""
    return hashlib.md5(":".join(shard_names).encode("utf-8"), usedforsecurity=False).hexdigest()


def platforms_from_caps(
    caps: Mapping[str, int],
    coverage_platforms: Collection[str] = (),
) -> list[PlatformSpec]:
    """Build platform specs from a ``runs_on -> max instances`` mapping."""
    return [
        PlatformSpec(runs_on, max_instances=cap, coverage=runs_on in coverage_platforms)
        for runs_on, cap in caps.items()
    ]


def build_matrix(
    shard_names: Sequence[str],
    platforms: Sequence[PlatformSpec],
) -> list[RunnerGroup]:
    """Partition *shard_names* for every platform and describe each group.

    The first platform is the primary one: its jobs are named
    ``test (i/n)``, other platforms get ``test-<platform> (i/n)``.

    Raises:
        InvalidCapacityError: If a platform allows no instances.
    """
    groups: list[RunnerGroup] = []
    for platform_idx, platform in enumerate(platforms):
        partitions = partition(shard_names, platform.max_instances)
        prefix = "test" if platform_idx == 0 else f"test-{platform.short_name}"
        total = len(partitions)

        for idx, members in enumerate(partitions, start=1):
            groups.append(
                RunnerGroup(
                    os=platform.runs_on,
                    coverage=platform.coverage,
                    name=f"{prefix} ({idx}/{total})",
                    shards=" ".join(members),
                    cache_key=cache_key(members),
                    runner_timeout_minutes=platform.resolved_runner_timeout(),
                    test_timeout_milliseconds=platform.resolved_test_timeout(),
                )
            )

        logger.debug("Platform %s: %d runner groups", platform.runs_on, total)

    return groups


def plan_matrix(
    registry: ShardRegistry,
    platforms: Sequence[PlatformSpec] = DEFAULT_PLATFORMS,
    *,
    changed_files: Sequence[str] | None = None,
    filter_shards: bool = False,
    all_platforms: bool = False,
) -> MatrixPlan:
    """Decide which shards run for a commit and group them per platform.

    Args:
        registry: Shard registry, in priority order.
        platforms: Candidate platforms; the first is the primary one.
        changed_files: Files touched by the change, if known.
        filter_shards: Narrow the shards to those matching *changed_files*.
        all_platforms: Schedule every platform instead of only the primary.

    Returns:
        The plan.  It is empty, with no partitioning done, when filtering
        matches no shard or the registry has none.
    """
    shard_names = registry.names
    if filter_shards and changed_files is not None:
        shard_names = select_shards(changed_files, registry)

    if not shard_names:
        logger.info("No shards matched, the test matrix is empty")
        return MatrixPlan()

    scheduled = list(platforms) if all_platforms else list(platforms[:1])
    groups = build_matrix(shard_names, scheduled)
    logger.info(
        "Scheduled %d shards as %d runner groups on %s",
        len(shard_names),
        len(groups),
        ", ".join(p.runs_on for p in scheduled),
    )
    return MatrixPlan(shard_names=shard_names, groups=groups)
