"""
Tests for metrics collection, retention and threshold alerts.
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import psutil
import pytest

from hawkwatch.alerts.manager import AlertManager, AlertSeverity, AlertType
from hawkwatch.config import MetricsRetention, MonitoringConfig, PerformanceThresholds
from hawkwatch.monitoring.metrics import MetricsCollector, ResourceSampler
from hawkwatch.utils.errors import MetricsError
from tests.conftest import FakeGateway, FakePingable, FakeSampler


class ManualClock:
    """Timestamp source moved by hand."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def tick(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_collector(config=None, sampler=None, clock=None, alert_manager=None):
    return MetricsCollector(
        config or MonitoringConfig(),
        alert_manager if alert_manager is not None else AlertManager(),
        sampler=sampler or FakeSampler(),
        clock=clock
    )


class TestMetricsCollection:
    """Test sample construction and enrichment."""

    @pytest.mark.asyncio
    async def test_collect_sample(self):
        collector = make_collector()

        sample = await collector.collect()

        assert sample.memory.percentage == 10.0
        assert sample.process.pid == 4242
        assert sample.gateway is None
        assert sample.datastore is None
        assert collector.latest() is sample
        assert len(collector) == 1

    @pytest.mark.asyncio
    async def test_gateway_enrichment(self):
        collector = make_collector()
        collector.gateway = FakeGateway(latency=87.5)

        sample = await collector.collect()

        assert sample.gateway.guilds == 3
        assert sample.gateway.users == 120
        assert sample.gateway.channels == 17
        assert sample.gateway.latency == 87.5

    @pytest.mark.asyncio
    async def test_gateway_failure_leaves_section_empty(self):
        gateway = Mock()
        gateway.entity_counts.side_effect = RuntimeError("gateway offline")

        collector = make_collector()
        collector.gateway = gateway
        sample = await collector.collect()

        assert sample.gateway is None
        assert len(collector) == 1

    @pytest.mark.asyncio
    async def test_gateway_without_latency_keeps_sample(self):
        collector = make_collector()
        collector.gateway = FakeGateway(ready=False, latency=None)

        sample = await collector.collect()

        assert sample is not None
        assert sample.gateway is None
        assert collector.get_metrics() == [sample]

    @pytest.mark.asyncio
    async def test_datastore_and_cache_placeholders(self):
        collector = make_collector()
        collector.datastore = FakePingable()
        collector.cache = FakePingable()

        sample = await collector.collect()

        assert sample.datastore.connections == 0
        assert sample.cache.hits == 0

    @pytest.mark.asyncio
    async def test_to_dict(self):
        collector = make_collector()
        sample = await collector.collect()

        data = sample.to_dict()
        assert data['timestamp'] == sample.timestamp.isoformat()
        assert data['memory']['heap']['used'] == sample.memory.heap.used
        assert data['cpu']['load_average'] == [0.5, 0.4, 0.3]

    def test_cpu_percentage_is_lifetime_average(self):
        sample = FakeSampler(cpu_seconds=30, uptime=60).sample(datetime.now())
        assert sample.cpu_percentage == 50.0

        idle = FakeSampler(cpu_seconds=30, uptime=0).sample(datetime.now())
        assert idle.cpu_percentage == 0.0


class TestMetricsRetention:
    """Test bounded retention."""

    @pytest.mark.asyncio
    async def test_count_bound(self):
        config = MonitoringConfig(metrics=MetricsRetention(max_metrics_in_memory=3))
        clock = ManualClock()
        collector = make_collector(config=config, clock=clock)

        for _ in range(10):
            await collector.collect()
            clock.tick(seconds=1)
            assert len(collector) <= 3

        timestamps = [m.timestamp for m in collector.get_metrics()]
        assert timestamps == sorted(timestamps)
        assert timestamps[-1] == datetime(2024, 1, 1, 12, 0, 9)

    @pytest.mark.asyncio
    async def test_age_bound(self):
        config = MonitoringConfig(metrics=MetricsRetention(retention_period=60000))
        clock = ManualClock()
        collector = make_collector(config=config, clock=clock)

        await collector.collect()
        clock.tick(seconds=30)
        await collector.collect()
        clock.tick(seconds=31)
        await collector.collect()

        remaining = collector.get_metrics()
        assert len(remaining) == 2
        cutoff = clock.now - timedelta(milliseconds=60000)
        assert all(m.timestamp > cutoff for m in remaining)


class TestThresholdAlerts:
    """Test performance threshold alerts."""

    @pytest.mark.asyncio
    async def test_high_memory_alert(self):
        alerts = AlertManager()
        config = MonitoringConfig(performance=PerformanceThresholds(memory_usage_threshold=85))
        collector = make_collector(config=config, sampler=FakeSampler(memory_percentage=90), alert_manager=alerts)

        await collector.collect()

        [alert] = alerts.get_active_alerts()
        assert alert.type == AlertType.PERFORMANCE
        assert alert.severity == AlertSeverity.HIGH
        assert alert.service == 'system'
        assert alert.message == "High memory usage: 90.00%"
        assert alert.details['memory_usage']['percentage'] == 90

    @pytest.mark.asyncio
    async def test_high_cpu_alert(self):
        alerts = AlertManager()
        sampler = FakeSampler(cpu_seconds=90, uptime=100)
        collector = make_collector(sampler=sampler, alert_manager=alerts)

        await collector.collect()

        [alert] = alerts.get_active_alerts()
        assert alert.message == "High CPU usage: 90.00%"
        assert alert.details['cpu_usage']['usage'] == 90

    @pytest.mark.asyncio
    async def test_within_thresholds_no_alert(self):
        alerts = AlertManager()
        collector = make_collector(alert_manager=alerts)

        await collector.collect()

        assert alerts.get_active_alerts() == []

    @pytest.mark.asyncio
    async def test_every_collection_alerts_again(self):
        alerts = AlertManager()
        collector = make_collector(sampler=FakeSampler(memory_percentage=95), alert_manager=alerts)

        await collector.collect()
        await collector.collect()

        assert len(alerts.get_active_alerts()) == 2


class TestResourceSampler:
    """Test the psutil-backed sampler."""

    def test_samples_current_process(self):
        sample = ResourceSampler().sample(datetime.now())

        assert sample.memory.used > 0
        assert sample.memory.total >= sample.memory.used
        assert 0 < sample.memory.percentage < 100
        assert sample.process.pid > 0
        assert sample.process.uptime >= 0
        assert len(sample.cpu.load_average) == 3

    def test_psutil_errors_wrapped(self):
        process = Mock()
        process.cpu_times.side_effect = psutil.NoSuchProcess(pid=1)

        with pytest.raises(MetricsError):
            ResourceSampler(process=process).sample(datetime.now())
