"""Reporters for shard and matrix command output."""

from __future__ import annotations

from shardmatrix.reporters.terminal import CLIReporter, reporter

__all__ = ["CLIReporter", "reporter"]
