"""
Metrics sampling and bounded retention.

This module provides the psutil-backed ResourceSampler and the MetricsCollector
that keeps an ascending, time-ordered buffer of SystemMetrics samples, evicts
by age and by count on every collection, and raises performance alerts when
memory or CPU thresholds are breached.

The CPU percentage is a lifetime average (cumulative CPU seconds divided by
process uptime), not an instantaneous load sample.
"""

import os
import platform
import threading
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional

import psutil

from ..alerts.manager import AlertManager, AlertSeverity, AlertType
from ..config import MonitoringConfig
from ..utils.errors import MetricsError
from ..utils.logging import get_logger
from .collaborators import EntityCounts, GatewaySnapshot, Pingable, resolve


@dataclass
class CpuMetrics:
    """Cumulative process CPU time in seconds and OS load averages."""
    usage: float = 0.0
    load_average: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])


@dataclass
class HeapMetrics:
    used: int = 0
    total: int = 0


@dataclass
class MemoryMetrics:
    """Resident memory against total system memory."""
    used: int = 0
    total: int = 0
    percentage: float = 0.0
    heap: HeapMetrics = field(default_factory=HeapMetrics)


@dataclass
class ProcessMetrics:
    uptime: float = 0.0
    pid: int = 0
    runtime_version: str = ""


@dataclass
class GatewayMetrics:
    guilds: int = 0
    users: int = 0
    channels: int = 0
    latency: float = 0.0


@dataclass
class DatastoreMetrics:
    connections: int = 0
    queries: int = 0
    response_time: float = 0.0


@dataclass
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    keys: int = 0
    memory: int = 0


@dataclass
class SystemMetrics:
    """One metrics sample."""
    timestamp: datetime
    cpu: CpuMetrics
    memory: MemoryMetrics
    process: ProcessMetrics
    gateway: Optional[GatewayMetrics] = None
    datastore: Optional[DatastoreMetrics] = None
    cache: Optional[CacheMetrics] = None

    @property
    def cpu_percentage(self) -> float:
        """Lifetime-average CPU percentage."""
        if self.process.uptime <= 0:
            return 0.0
        return (self.cpu.usage / self.process.uptime) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


class ResourceSampler:
    """Samples process and OS resources through psutil."""

    def __init__(self, process: Optional[psutil.Process] = None):
        self.logger = get_logger(__name__)
        self._process = process or psutil.Process(os.getpid())
        self._runtime_version = platform.python_version()

    def memory(self) -> MemoryMetrics:
        mem = self._process.memory_info()
        total = psutil.virtual_memory().total
        return MemoryMetrics(
            used=mem.rss,
            total=total,
            percentage=(mem.rss / total) * 100 if total else 0.0,
            # Data segment where the platform reports it, rss otherwise
            heap=HeapMetrics(used=getattr(mem, 'data', mem.rss), total=mem.vms)
        )

    def cpu(self) -> CpuMetrics:
        times = self._process.cpu_times()

        try:
            load_average = list(psutil.getloadavg())
        except (AttributeError, OSError):
            load_average = [0.0, 0.0, 0.0]

        return CpuMetrics(usage=times.user + times.system, load_average=load_average)

    def process_info(self) -> ProcessMetrics:
        return ProcessMetrics(
            uptime=max(time.time() - self._process.create_time(), 0.0),
            pid=self._process.pid,
            runtime_version=self._runtime_version
        )

    def sample(self, timestamp: datetime) -> SystemMetrics:
        """Build one sample without collaborator enrichment."""
        try:
            return SystemMetrics(
                timestamp=timestamp,
                cpu=self.cpu(),
                memory=self.memory(),
                process=self.process_info()
            )
        except psutil.Error as e:
            raise MetricsError(
                f"Failed to sample process resources: {e}",
                metric_name='system',
                original_exception=e
            )


class MetricsCollector:
    """
    Bounded, time-ordered metrics buffer.

    Each ``collect()`` appends one sample, drops samples older than the
    retention period, trims to the in-memory limit keeping the newest, and
    then evaluates the memory and CPU thresholds.
    """

    def __init__(
        self,
        config: MonitoringConfig,
        alert_manager: AlertManager,
        sampler: Optional[ResourceSampler] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize metrics collector.

        Args:
            config: Monitoring configuration
            alert_manager: Receives threshold breaches
            sampler: Resource sampler (defaults to psutil on this process)
            clock: Source of sample timestamps (defaults to datetime.now)
        """
        self.config = config
        self.alert_manager = alert_manager
        self.sampler = sampler or ResourceSampler()
        self.logger = get_logger(__name__)

        self.gateway: Optional[GatewaySnapshot] = None
        self.datastore: Optional[Pingable] = None
        self.cache: Optional[Pingable] = None

        self._clock = clock or datetime.now
        self._buffer: Deque[SystemMetrics] = deque()
        self._lock = threading.RLock()

    async def collect(self) -> SystemMetrics:
        """Take one sample, buffer it and evaluate thresholds."""
        now = self._clock()
        sample = self.sampler.sample(now)

        if self.gateway is not None:
            sample.gateway = await self._gateway_metrics()

        # Placeholders until the collaborators report real counters
        if self.datastore is not None:
            sample.datastore = DatastoreMetrics()
        if self.cache is not None:
            sample.cache = CacheMetrics()

        self._store(sample, now)
        self._check_performance_thresholds(sample)

        return sample

    def get_metrics(self) -> List[SystemMetrics]:
        """Snapshot of the buffer, oldest first."""
        with self._lock:
            return list(self._buffer)

    def latest(self) -> Optional[SystemMetrics]:
        with self._lock:
            return self._buffer[-1] if self._buffer else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def _store(self, sample: SystemMetrics, now: datetime) -> None:
        retention = self.config.metrics
        cutoff = now - timedelta(milliseconds=retention.retention_period)

        with self._lock:
            self._buffer.append(sample)
            self._buffer = deque(m for m in self._buffer if m.timestamp > cutoff)

            while len(self._buffer) > retention.max_metrics_in_memory:
                self._buffer.popleft()

    async def _gateway_metrics(self) -> Optional[GatewayMetrics]:
        try:
            counts: EntityCounts = await resolve(self.gateway.entity_counts())
            latency = await resolve(self.gateway.latency())
            return GatewayMetrics(
                guilds=counts.guilds,
                users=counts.users,
                channels=counts.channels,
                latency=float(latency)
            )
        except Exception as e:
            self.logger.error(f"Failed to get gateway metrics: {e}")
            return None

    def _check_performance_thresholds(self, sample: SystemMetrics) -> None:
        thresholds = self.config.performance

        if sample.memory.percentage > thresholds.memory_usage_threshold:
            self.alert_manager.create_alert(
                AlertType.PERFORMANCE,
                AlertSeverity.HIGH,
                'system',
                f"High memory usage: {sample.memory.percentage:.2f}%",
                details={'memory_usage': asdict(sample.memory)}
            )

        cpu_percentage = sample.cpu_percentage
        if cpu_percentage > thresholds.cpu_usage_threshold:
            self.alert_manager.create_alert(
                AlertType.PERFORMANCE,
                AlertSeverity.HIGH,
                'system',
                f"High CPU usage: {cpu_percentage:.2f}%",
                details={'cpu_usage': asdict(sample.cpu)}
            )
