"""
Pytest configuration and fixtures for the hawkwatch test suite.

Provides fast test configurations, fake collaborators, a fake resource sampler
and a virtual clock so periodic loops can be driven without real waits.
"""

import asyncio
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
import yaml

from hawkwatch.alerts.manager import AlertManager
from hawkwatch.config import AlertPolicy, MetricsRetention, MonitoringConfig, PerformanceThresholds
from hawkwatch.monitoring.collaborators import EntityCounts
from hawkwatch.monitoring.metrics import (
    CpuMetrics,
    HeapMetrics,
    MemoryMetrics,
    ProcessMetrics,
    SystemMetrics
)
from hawkwatch.utils.async_utils import Clock


class VirtualClock(Clock):
    """Clock whose time only moves when ``advance`` is awaited."""

    def __init__(self):
        self.now = 0.0
        self._waiters: List[Tuple[float, asyncio.Future]] = []

    def monotonic(self) -> float:
        return self.now

    async def wait(self, stop_event: asyncio.Event, timeout: float) -> bool:
        if stop_event.is_set():
            return True

        deadline = asyncio.get_running_loop().create_future()
        waiter = (self.now + timeout, deadline)
        self._waiters.append(waiter)
        stop_waiter = asyncio.ensure_future(stop_event.wait())

        try:
            await asyncio.wait({deadline, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_waiter.cancel()
            if waiter in self._waiters:
                self._waiters.remove(waiter)

        return stop_event.is_set()

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def advance(self, seconds: float) -> None:
        """Move time forward, firing every deadline reached on the way."""
        await settle()
        target = self.now + seconds

        while True:
            due = sorted(
                (w for w in self._waiters if w[0] <= target and not w[1].done()),
                key=lambda w: w[0]
            )
            if not due:
                break

            deadline, future = due[0]
            self.now = deadline
            self._waiters.remove((deadline, future))
            future.set_result(None)
            await settle()

        self.now = target
        await settle()


async def settle(rounds: int = 20) -> None:
    """Let ready callbacks and freshly created tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeSampler:
    """Resource sampler returning fixed figures."""

    def __init__(self, memory_percentage: float = 10.0, cpu_seconds: float = 1.0, uptime: float = 100.0):
        self.memory_percentage = memory_percentage
        self.cpu_seconds = cpu_seconds
        self.uptime = uptime
        self.samples = 0

    def memory(self) -> MemoryMetrics:
        total = 16 * 1024 ** 3
        used = int(total * self.memory_percentage / 100)
        return MemoryMetrics(
            used=used,
            total=total,
            percentage=self.memory_percentage,
            heap=HeapMetrics(used=used // 2, total=used)
        )

    def cpu(self) -> CpuMetrics:
        return CpuMetrics(usage=self.cpu_seconds, load_average=[0.5, 0.4, 0.3])

    def process_info(self) -> ProcessMetrics:
        return ProcessMetrics(uptime=self.uptime, pid=4242, runtime_version="3.12.0")

    def sample(self, timestamp: datetime) -> SystemMetrics:
        self.samples += 1
        return SystemMetrics(
            timestamp=timestamp,
            cpu=self.cpu(),
            memory=self.memory(),
            process=self.process_info()
        )


class FakePingable:
    """Datastore or cache stand-in with an async ``ping``."""

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.delay = delay
        self.error = error
        self.pings = 0

    async def ping(self) -> None:
        self.pings += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error


class FakeGateway:
    """Chat gateway stand-in with synchronous accessors."""

    def __init__(self, ready: bool = True, latency: float = 42.0, counts: Optional[EntityCounts] = None):
        self.ready = ready
        self.ping_latency = latency
        self.counts = counts or EntityCounts(guilds=3, users=120, channels=17)

    def is_ready(self) -> bool:
        return self.ready

    def latency(self) -> float:
        return self.ping_latency

    def entity_counts(self) -> EntityCounts:
        return self.counts


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def config_path(temp_dir):
    """Create a test configuration file."""
    path = temp_dir / "monitoring.yaml"
    config_data = {
        "health_check_interval": 15000,
        "health_check_timeout": 2000,
        "metrics_collection_interval": 20000,
        "performance": {
            "memory_usage_threshold": 90,
            "cpu_usage_threshold": 75
        },
        "gateway": {
            "latency_threshold": 800
        },
        "alerts": {
            "max_active_alerts": 20
        },
        "logging": {
            "level": "DEBUG",
            "format": "text"
        }
    }

    with open(path, 'w') as f:
        yaml.dump(config_data, f)

    return path


@pytest.fixture
def monitoring_config():
    """Configuration with short timeouts for fast tests."""
    return MonitoringConfig(
        health_check_interval=1000,
        health_check_timeout=100,
        metrics_collection_interval=2000,
        performance=PerformanceThresholds(memory_usage_threshold=85, response_time_threshold=500),
        alerts=AlertPolicy(max_active_alerts=10, critical_alert_threshold=2),
        metrics=MetricsRetention(retention_period=60000, max_metrics_in_memory=5)
    )


@pytest.fixture
def alert_manager():
    return AlertManager(AlertPolicy(max_active_alerts=10))


@pytest.fixture
def virtual_clock():
    return VirtualClock()


@pytest.fixture
def fake_sampler():
    return FakeSampler()
