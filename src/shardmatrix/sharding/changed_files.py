"""Parsing of the changed-file list handed over by the diff step."""

from __future__ import annotations

import json


class MalformedChangedFilesError(ValueError):
    """Raised when the changed-file input is not a JSON list of paths."""


def parse_changed_files(raw: str) -> list[str]:
    """Parse a JSON array of repository-relative paths.

    Args:
        raw: JSON text, e.g. ``'["lib/util/git/index.ts"]'``.

    Returns:
        The paths, in input order.

    Raises:
        MalformedChangedFilesError: If *raw* is not valid JSON, not an array,
            or contains a non-string element.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        msg = f"Changed files must be a JSON array of strings: {e}"
        raise MalformedChangedFilesError(msg) from e

    if not isinstance(data, list):
        msg = f"Changed files must be a JSON array of strings (got: {type(data).__name__})"
        raise MalformedChangedFilesError(msg)

    for idx, item in enumerate(data):
        if not isinstance(item, str):
            msg = f"Changed files entry {idx} must be a string (got: {item!r})"
            raise MalformedChangedFilesError(msg)

    return data
