"""Shard path patterns: normalization to concrete globs and glob matching.

A shard pattern is one of two things:

1. A particular test file, e.g. ``lib/util/git/index.spec.ts``.  It must end
   with the test-file suffix and selects only that test; coverage is
   collected from the source file with the same stem (``lib/util/git/index.ts``).

2. A whole directory, e.g. ``lib/modules/datasource``.  It selects every test
   file under the directory and collects coverage from every source file
   under it.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from enum import Enum

GLOBSTAR = "**"


class FileKind(Enum):
    """Which flavour of glob a pattern should be normalized into."""

    TEST = "test"
    SOURCE = "source"


@dataclass(frozen=True)
class FileSuffixes:
    """File suffixes that tell test files and source files apart."""

    test: str = ".spec.ts"
    """Suffix of test files (``.spec.ts``)."""

    source: str = ".ts"
    """Suffix of source files (``.ts``)."""

    def for_kind(self, kind: FileKind) -> str:
        """Return the suffix used for *kind*."""
        return self.test if kind is FileKind.TEST else self.source

    def is_test_file(self, pattern: str) -> bool:
        """Return True when *pattern* references a single test file."""
        return pattern.endswith(self.test)

    def to_source_file(self, pattern: str) -> str:
        """Rewrite a test-file pattern to the source file it covers."""
        return pattern[: -len(self.test)] + self.source


DEFAULT_SUFFIXES = FileSuffixes()


def normalize_pattern(
    pattern: str,
    kind: FileKind,
    suffixes: FileSuffixes = DEFAULT_SUFFIXES,
) -> str:
    """Convert a shard pattern into a glob matching test or source files.

    Args:
        pattern: Single test file or directory pattern.
        kind: Whether to match test files or source files.
        suffixes: Test/source suffixes in use.

    Returns:
        The concrete glob, e.g. ``lib/util/**/*.spec.ts``.
    """
    if suffixes.is_test_file(pattern):
        if kind is FileKind.SOURCE:
            return suffixes.to_source_file(pattern)
        return pattern
    return f"{pattern.rstrip('/')}/{GLOBSTAR}/*{suffixes.for_kind(kind)}"


def changed_file_globs(pattern: str, suffixes: FileSuffixes = DEFAULT_SUFFIXES) -> list[str]:
    """Return the globs that decide whether a changed file belongs to *pattern*.

    A directory pattern claims anything below it.  A single test file claims
    both itself and its source file.
    """
    if suffixes.is_test_file(pattern):
        return [suffixes.to_source_file(pattern), pattern]
    return [f"{pattern.rstrip('/')}/{GLOBSTAR}/*"]


def glob_match(path: str, pattern: str) -> bool:
    """Match a relative path against a glob with ``**`` support.

    Matching is done segment by segment: ``*``, ``?`` and character classes
    never cross a ``/``, while ``**`` spans zero or more whole segments.
    Dot-files are matched like any other name, so ``lib/**/*`` claims
    ``lib/.eslintrc.js``.

    Args:
        path: Repository-relative file path.
        pattern: Glob pattern, e.g. ``lib/modules/manager/[a-c]*/**/*``.

    Returns:
        True if the path matches the pattern.
    """
    path = path.removeprefix("./")
    return _match_segments(path.split("/"), pattern.split("/"))


def _match_segments(segments: list[str], parts: list[str]) -> bool:
    if not parts:
        return not segments

    head, rest = parts[0], parts[1:]
    if head == GLOBSTAR:
        # Collapse consecutive ** so the search below stays linear per level
        while rest and rest[0] == GLOBSTAR:
            rest = rest[1:]
        return any(_match_segments(segments[i:], rest) for i in range(len(segments) + 1))

    if not segments or not fnmatch.fnmatchcase(segments[0], head):
        return False
    return _match_segments(segments[1:], rest)
