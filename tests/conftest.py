"""Shared fixtures for shardmatrix tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from shardmatrix.sharding.registry import ShardDefinition, ShardRegistry

# ── Registry fixtures ────────────────────────────────────────────


def make_registry(spec: dict[str, list[str]]) -> ShardRegistry:
    """Build a registry from ``name -> match_paths`` without thresholds."""
    return ShardRegistry(
        ShardDefinition(name=name, match_paths=tuple(paths)) for name, paths in spec.items()
    )


@pytest.fixture()
def registry() -> ShardRegistry:
    """A small registry shaped like a real project's shard layout."""
    return ShardRegistry(
        [
            ShardDefinition(
                "datasources-1",
                ("lib/modules/datasource/[a-g]*",),
                {"branches": 96.95},
            ),
            ShardDefinition(
                "datasources-2",
                ("lib/modules/datasource",),
                {"statements": 99.35, "branches": 96.0, "functions": 98.25, "lines": 99.35},
            ),
            ShardDefinition(
                "workers-1",
                ("lib/workers/repository/extract", "lib/workers/repository/init"),
            ),
            ShardDefinition("git-1", ("lib/util/git/index.spec.ts",), {"functions": 97.55}),
            ShardDefinition("git-2", ("lib/util/git",)),
            ShardDefinition("util", ("lib/util",)),
            ShardDefinition("other", ("lib",)),
        ]
    )


# ── Config file helpers ──────────────────────────────────────────


def write_config(root: Path, data: dict[str, Any]) -> Path:
    """Write ``.shardmatrix.yml`` with *data* under *root*."""
    path = root / ".shardmatrix.yml"
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


SAMPLE_CONFIG: dict[str, Any] = {
    "defaults": {
        "test_match": ["<rootDir>/lib/**/*.spec.ts"],
        "collect_coverage_from": [
            "lib/**/*.{js,ts}",
            "!lib/**/*.{d,spec}.ts",
            "!lib/**/types.ts",
        ],
        "coverage_threshold": {"branches": 98},
        "coverage_directory": "./coverage",
    },
    "shards": {
        "git-1": {
            "match_paths": ["lib/util/git/index.spec.ts"],
            "threshold": {"functions": 97.55},
        },
        "util": {"match_paths": ["lib/util"]},
        "other": ["lib"],
    },
    "platforms": {
        "ubuntu-latest": {"max_instances": 2, "coverage": True},
        "windows-latest": {"max_instances": 1},
    },
}


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """A project directory with a sample ``.shardmatrix.yml``."""
    write_config(tmp_path, SAMPLE_CONFIG)
    return tmp_path
