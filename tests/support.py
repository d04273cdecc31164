"""Shared test helpers: in-memory OpenTelemetry metrics and an instrumented Processor."""
import asyncio

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from pathfinder.telemetry import MetricsRegistry
from pathfinder.utils.processor import Processor


class RecordedMetrics:
    """A MetricsRegistry wired to an SDK meter provider with an in-memory reader."""

    def __init__(self):
        self.reader = InMemoryMetricReader()
        self.provider = MeterProvider(metric_readers=[self.reader])
        self.registry = MetricsRegistry(self.provider)

    def shutdown(self):
        self.provider.shutdown()

    def points(self, name: str, **attributes) -> list:
        data = self.reader.get_metrics_data()
        if data is None:
            return []

        points = []
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name != name:
                        continue
                    for point in metric.data.data_points:
                        if all(point.attributes.get(k) == v for k, v in attributes.items()):
                            points.append(point)
        return points

    def counter_total(self, name: str, **attributes) -> int:
        return sum(point.value for point in self.points(name, **attributes))

    def histogram_count(self, name: str, **attributes) -> int:
        return sum(point.count for point in self.points(name, **attributes))


class RecordingProcessor(Processor):
    """Processor that tracks how many evaluations are in flight at once.

    The thread pool is sized generously so that any bound observed comes from the caller.
    """

    def __init__(self, concurrency: int = 16, delay: float = 0.01):
        super().__init__(concurrency)
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.calls = 0

    def evaluate(self, func, *args, label=None):
        async def tracked():
            self.active += 1
            self.calls += 1
            self.peak = max(self.peak, self.active)
            try:
                await asyncio.sleep(self.delay)
                return await super(RecordingProcessor, self).evaluate(func, *args, label=label)
            finally:
                self.active -= 1

        return tracked()
