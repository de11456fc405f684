"""CI context detection and step-output utilities."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

# (environment flag, provider name), checked in order
_CI_PROVIDERS = (
    ("GITHUB_ACTIONS", "github-actions"),
    ("GITLAB_CI", "gitlab-ci"),
    ("CIRCLECI", "circleci"),
)


@dataclass
class CIContext:
    """Detected CI execution context."""

    is_ci: bool
    """Running in CI environment."""

    provider: str | None
    """CI provider name, or ``None`` for generic/no CI."""

    step_output_path: str | None = None
    """Step-output file (``$GITHUB_OUTPUT``) when the provider offers one."""


def _is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


def detect_ci_context() -> CIContext:
    """Detect CI context from environment variables.

    Supports GitHub Actions, GitLab CI, CircleCI, and generic ``CI`` detection.
    """
    for flag, provider in _CI_PROVIDERS:
        if _is_truthy(os.getenv(flag)):
            return CIContext(
                is_ci=True,
                provider=provider,
                step_output_path=(
                    os.getenv("GITHUB_OUTPUT") or None if provider == "github-actions" else None
                ),
            )

    if _is_truthy(os.getenv("CI")):
        return CIContext(is_ci=True, provider=None)

    return CIContext(is_ci=False, provider=None)


def write_step_outputs(lines: Iterable[str], path: Path) -> None:
    """Append ``key=value`` lines to a CI step-output file."""
    text = "".join(f"{line}\n" for line in lines)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(text)
    logger.debug("Wrote %d step outputs to %s", text.count("\n"), path)
