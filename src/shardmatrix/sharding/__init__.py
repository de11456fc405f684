"""Shard resolution, selection and runner-matrix scheduling."""

from shardmatrix.sharding.changed_files import MalformedChangedFilesError, parse_changed_files
from shardmatrix.sharding.matrix import (
    DEFAULT_PLATFORMS,
    MatrixPlan,
    PlatformSpec,
    RunnerGroup,
    build_matrix,
    plan_matrix,
    platforms_from_caps,
)
from shardmatrix.sharding.partitioner import InvalidCapacityError, partition
from shardmatrix.sharding.patterns import FileKind, FileSuffixes, glob_match, normalize_pattern
from shardmatrix.sharding.registry import CoverageThreshold, ShardDefinition, ShardRegistry
from shardmatrix.sharding.resolver import RunConfig, UnknownShardError, resolve_run_config
from shardmatrix.sharding.selector import attribute_files, responsible_shard, select_shards

__all__ = [
    "DEFAULT_PLATFORMS",
    "CoverageThreshold",
    "FileKind",
    "FileSuffixes",
    "InvalidCapacityError",
    "MalformedChangedFilesError",
    "MatrixPlan",
    "PlatformSpec",
    "RunConfig",
    "RunnerGroup",
    "ShardDefinition",
    "ShardRegistry",
    "UnknownShardError",
    "attribute_files",
    "build_matrix",
    "glob_match",
    "normalize_pattern",
    "parse_changed_files",
    "partition",
    "plan_matrix",
    "platforms_from_caps",
    "resolve_run_config",
    "responsible_shard",
    "select_shards",
]
