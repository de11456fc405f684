"""Select the shards affected by a set of changed files."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shardmatrix.sharding.patterns import changed_file_globs, glob_match

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shardmatrix.sharding.registry import ShardRegistry

logger = logging.getLogger(__name__)


def responsible_shard(path: str, registry: ShardRegistry) -> str | None:
    """Return the first shard whose patterns match *path*, or ``None``.

    A file that matches several shards belongs to the one declared first,
    mirroring the exclusion order used when resolving a shard run.
    """
    for shard in registry:
        for pattern in shard.match_paths:
            if any(glob_match(path, g) for g in changed_file_globs(pattern, registry.suffixes)):
                return shard.name
    return None


def attribute_files(
    changed_files: Iterable[str],
    registry: ShardRegistry,
) -> dict[str | None, list[str]]:
    """Group changed files by their responsible shard.

    Returns:
        Mapping of shard name to files, in registry order.  Files no shard
        claims are listed last under ``None``.
    """
    by_shard: dict[str | None, list[str]] = {}
    for path in changed_files:
        name = responsible_shard(path, registry)
        logger.debug("Changed file %s -> %s", path, name or "<no shard>")
        by_shard.setdefault(name, []).append(path)

    ordered: dict[str | None, list[str]] = {
        name: by_shard[name] for name in registry.names if name in by_shard
    }
    if None in by_shard:
        ordered[None] = by_shard[None]
    return ordered


def select_shards(changed_files: Iterable[str], registry: ShardRegistry) -> list[str]:
    """Given the files affected by a commit, return the shards that test them.

    The result is in registry order, not input order, so downstream
    consumers see a canonical ordering.  An empty input yields an empty
    list, which callers must treat as "nothing to run".
    """
    selected = [name for name in attribute_files(changed_files, registry) if name is not None]
    logger.info("Selected %d of %d shards", len(selected), len(registry))
    return selected
