"""
Process health tracking for the bot service.
"""

import os
import resource
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict


@dataclass
class HealthReport:
    healthy: bool
    uptime: float
    memory_mb: float
    requests: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "uptime": round(self.uptime, 3),
            "memory": {"used_mb": round(self.memory_mb, 2)},
            "requests": self.requests,
        }


STATM_PATH = "/proc/self/statm"


def resident_memory_mb(statm_path: str = STATM_PATH) -> float:
    """Current resident set size of this process in MB.

    Read from procfs where it exists. Elsewhere only the peak is available,
    from ``getrusage``.
    """
    try:
        with open(statm_path) as f:
            resident_pages = int(f.read().split()[1])
    except OSError:
        return peak_resident_memory_mb()
    return resident_pages * os.sysconf("SC_PAGE_SIZE") / (1024 * 1024)


def peak_resident_memory_mb() -> float:
    """Peak resident set size of this process in MB."""
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS and kilobytes elsewhere
    if sys.platform == "darwin":
        return usage / (1024 * 1024)
    return usage / 1024


class HealthMonitor:
    """Uptime, request count and memory for the status endpoint.

    A process reports unhealthy while it is still warming up or when its
    resident memory exceeds ``max_memory_mb``.
    """

    def __init__(
        self,
        warmup_seconds: float = 10.0,
        max_memory_mb: float = 512,
        clock: Callable[[], float] = time.time,
        memory_reader: Callable[[], float] = resident_memory_mb,
    ):
        self.warmup_seconds = warmup_seconds
        self.max_memory_mb = max_memory_mb
        self._clock = clock
        self._memory_reader = memory_reader
        self.start_time = clock()
        self.request_count = 0

    def record_request(self):
        self.request_count += 1

    def uptime(self) -> float:
        return self._clock() - self.start_time

    def get_health(self) -> HealthReport:
        uptime = self.uptime()
        memory_mb = self._memory_reader()
        return HealthReport(
            healthy=memory_mb < self.max_memory_mb and uptime > self.warmup_seconds,
            uptime=uptime,
            memory_mb=memory_mb,
            requests=self.request_count,
        )
