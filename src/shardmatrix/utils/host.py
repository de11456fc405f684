"""Host descriptors used to size test-runner worker concurrency."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 1024**3

# GitHub-hosted runners are memory constrained, so CI workers get a larger
# idle limit and one worker per CPU.
CI_WORKER_IDLE_MEMORY_LIMIT = "1500MB"
LOCAL_WORKER_IDLE_MEMORY_LIMIT = "500MB"


@dataclass
class HostStats:
    """CPU and memory descriptors of the current host."""

    cpus: int
    """Number of logical CPUs."""

    memory_bytes: int | None
    """Total physical memory, if known."""

    address_space_limit_bytes: int | None
    """Soft address-space limit of this process; ``None`` when unlimited."""


@dataclass
class WorkerSettings:
    """Worker concurrency knobs handed to the test runner."""

    max_workers: int | None
    """Parallel workers; ``None`` leaves the runner default."""

    worker_idle_memory_limit: str
    """Memory after which an idle worker is recycled."""


def _total_memory() -> int | None:
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, OSError, ValueError):
        logger.debug("Total memory is not available on this platform")
        return None


def _address_space_limit() -> int | None:
    if sys.platform == "win32":
        return None

    import resource

    try:
        soft, _hard = resource.getrlimit(resource.RLIMIT_AS)
    except (AttributeError, OSError, ValueError):
        return None
    return None if soft == resource.RLIM_INFINITY else soft


def detect_host_stats() -> HostStats:
    """Read CPU and memory descriptors of the current host."""
    return HostStats(
        cpus=os.cpu_count() or 1,
        memory_bytes=_total_memory(),
        address_space_limit_bytes=_address_space_limit(),
    )


def recommend_worker_settings(stats: HostStats, *, ci: bool) -> WorkerSettings:
    """Size the worker pool for *stats*.

    In CI every CPU gets a worker; locally the runner picks its own count.
    """
    if ci:
        return WorkerSettings(
            max_workers=stats.cpus,
            worker_idle_memory_limit=CI_WORKER_IDLE_MEMORY_LIMIT,
        )
    return WorkerSettings(
        max_workers=None,
        worker_idle_memory_limit=LOCAL_WORKER_IDLE_MEMORY_LIMIT,
    )


def _format_gb(value: int | None) -> str:
    if value is None:
        return "unknown"
    return f"{value / _BYTES_PER_GB:.2f} GB"


def format_host_stats(stats: HostStats) -> str:
    """Render *stats* as the multi-line block printed before a test run."""
    limit = (
        "unlimited"
        if stats.address_space_limit_bytes is None
        else _format_gb(stats.address_space_limit_bytes)
    )
    return (
        "Host stats:\n"
        f"    Cpus:      {stats.cpus}\n"
        f"    Memory:    {_format_gb(stats.memory_bytes)}\n"
        f"    MemLimit:  {limit}\n"
    )
