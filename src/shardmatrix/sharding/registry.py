"""Ordered registry of named test shards.

For each shard we specify a subset of tests to run.  The tests from
previous shards are excluded from the next shard, so registry order is
priority order and the last entry is usually a catch-all (e.g. ``lib``).

When a shard's coverage does not reach 100%, the optional ``threshold``
override lowers only the fields it names.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING

from shardmatrix.sharding.patterns import DEFAULT_SUFFIXES, FileSuffixes

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

_MAX_PERCENTAGE = 100.0


@dataclass(frozen=True)
class CoverageThreshold:
    """Minimum coverage percentages a shard must reach."""

    branches: float = _MAX_PERCENTAGE
    functions: float = _MAX_PERCENTAGE
    lines: float = _MAX_PERCENTAGE
    statements: float = _MAX_PERCENTAGE

    def merged(self, override: Mapping[str, float] | None) -> CoverageThreshold:
        """Return a copy with the fields named in *override* replaced."""
        if not override:
            return self
        return replace(self, **{key: float(value) for key, value in override.items()})

    def to_dict(self) -> dict[str, float]:
        """Return the four fields as a plain dict."""
        return {
            "branches": self.branches,
            "functions": self.functions,
            "lines": self.lines,
            "statements": self.statements,
        }


THRESHOLD_FIELDS = tuple(f.name for f in fields(CoverageThreshold))


@dataclass(frozen=True)
class ShardDefinition:
    """A single named shard."""

    name: str
    """Unique shard key, e.g. ``managers-1``."""

    match_paths: tuple[str, ...]
    """Single test files or directories, in declaration order."""

    threshold: Mapping[str, float] = field(default_factory=dict)
    """Partial coverage threshold override; omitted fields stay at the default."""


class ShardRegistry:
    """Immutable, ordered collection of shard definitions.

    Args:
        shards: Shard definitions in priority order.
        suffixes: Test/source file suffixes used by every pattern.

    Raises:
        ValueError: If a shard name repeats, a shard has no patterns, a
            threshold override is malformed, or a single-file pattern does not
            reference a test file.
    """

    def __init__(
        self,
        shards: Iterable[ShardDefinition],
        suffixes: FileSuffixes = DEFAULT_SUFFIXES,
    ) -> None:
        self._shards: tuple[ShardDefinition, ...] = tuple(shards)
        self.suffixes = suffixes
        errors = validate_shards(self._shards, suffixes)
        if errors:
            raise ValueError("; ".join(errors))
        self._index = {shard.name: idx for idx, shard in enumerate(self._shards)}

    def __iter__(self) -> Iterator[ShardDefinition]:
        return iter(self._shards)

    def __len__(self) -> int:
        return len(self._shards)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __repr__(self) -> str:
        return f"ShardRegistry({list(self._index)!r})"

    @property
    def names(self) -> list[str]:
        """Shard names in registry order."""
        return [shard.name for shard in self._shards]

    def get(self, name: str) -> ShardDefinition | None:
        """Return the shard called *name*, or ``None``."""
        idx = self._index.get(name)
        return None if idx is None else self._shards[idx]

    def position(self, name: str) -> int:
        """Return the zero-based registry position of *name*.

        Raises:
            KeyError: If *name* is not registered.
        """
        return self._index[name]


def validate_shards(
    shards: Iterable[ShardDefinition],
    suffixes: FileSuffixes = DEFAULT_SUFFIXES,
) -> list[str]:
    """Collect every problem with *shards* as human-readable messages."""
    errors: list[str] = []
    seen: set[str] = set()

    for shard in shards:
        if not shard.name:
            errors.append("shard name must not be empty")
        if shard.name in seen:
            errors.append(f"duplicate shard name: {shard.name}")
        seen.add(shard.name)

        if not shard.match_paths:
            errors.append(f"shards.{shard.name}.match_paths must not be empty")

        for pattern in shard.match_paths:
            if not pattern:
                errors.append(f"shards.{shard.name}.match_paths contains an empty pattern")
            elif pattern.endswith(suffixes.source) and not suffixes.is_test_file(pattern):
                errors.append(
                    f"shards.{shard.name}.match_paths: file pattern must end with "
                    f"{suffixes.test} (got: {pattern})"
                )

        for key, value in shard.threshold.items():
            if key not in THRESHOLD_FIELDS:
                errors.append(
                    f"shards.{shard.name}.threshold.{key} is not one of: "
                    f"{', '.join(THRESHOLD_FIELDS)}"
                )
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(
                    f"shards.{shard.name}.threshold.{key} must be a number (got: {value!r})"
                )
            elif not 0.0 <= value <= _MAX_PERCENTAGE:
                errors.append(
                    f"shards.{shard.name}.threshold.{key} must be between 0 and 100 "
                    f"(got: {value})"
                )

    return errors
