"""Logging and metrics plumbing.

Pathfinder logs through the standard logging module. Instances wrap their logger in a
PathfinderLoggerAdapter so each record carries the pathfinder domain, the instance's
correlation id and a structured context dictionary:

    record.domain          -> 'pathfinder'
    record.correlation_id  -> correlation id of the emitting instance
    record.context         -> per-call details (path, code, operation, ...)

Metrics go to a MetricsRegistry exposing counter(name).inc() and
histogram(name).observe(duration_ms) on top of an OpenTelemetry meter. A process-wide
registry bound to the global meter provider is used unless another one is injected.
"""
import logging
import threading
import uuid
from pathlib import Path
from typing import Mapping

from opentelemetry import metrics as otel_metrics

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


class PathfinderLoggerAdapter(logging.LoggerAdapter):
    """Attach domain, correlation id and structured context to every record.

    Usage:
        log = PathfinderLoggerAdapter(logging.getLogger(__name__), correlation_id)
        log.warning("Path escapes constraint root", extra={'context': {'path': p}})
    """

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, correlation_id: str):
        super().__init__(logger, {'domain': 'pathfinder', 'correlation_id': correlation_id})

    @property
    def correlation_id(self) -> str:
        return self.extra['correlation_id']

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        context = dict(kwargs.get('extra', {}).get('context') or {})
        context.setdefault('correlation_id', self.extra['correlation_id'])
        extra['context'] = context
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(path: str | Path | None = None, level: int | str | None = None) -> bool:
    """Configure the root logger to write to a file.

    Preserves the current logging level if already configured and no level is given.

    Returns:
        True if logging was configured, False if no path was given
    """
    if path is None:
        return False

    if level is None:
        level = logging.root.level if logging.root.level != logging.NOTSET else logging.INFO

    # Reset logging configuration
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(filename=str(path), level=level, format=DEFAULT_LOG_FORMAT)
    return True


METER_NAME = 'pathfinder'


class Counter:
    """Counter instrument bound to one attribute set."""

    def __init__(self, instrument: otel_metrics.Counter, attributes: Mapping[str, str] | None = None):
        self._instrument = instrument
        self.attributes = dict(attributes or {})

    def inc(self, amount: int = 1) -> None:
        self._instrument.add(amount, self.attributes)


class Histogram:
    """Histogram instrument bound to one attribute set."""

    def __init__(self, instrument: otel_metrics.Histogram, attributes: Mapping[str, str] | None = None):
        self._instrument = instrument
        self.attributes = dict(attributes or {})

    def observe(self, value: float) -> None:
        self._instrument.record(value, self.attributes)


class MetricsRegistry:
    """Counters and histograms backed by an OpenTelemetry meter.

    Instruments are created once per name; tags become the attributes of each
    measurement. Without an explicit meter provider the global one is used, which is a
    no-op until the application installs an SDK provider.

    Usage:
        registry = MetricsRegistry(MeterProvider(metric_readers=[reader]))
        registry.counter('pathfinder_security_warnings', {'correlation_id': cid}).inc()
        registry.histogram('pathfinder_find_ms', {'correlation_id': cid}).observe(12.5)
    """

    def __init__(self, meter_provider: otel_metrics.MeterProvider | None = None):
        self._meter = otel_metrics.get_meter(METER_NAME, meter_provider=meter_provider)
        self._lock = threading.Lock()
        self._counters: dict[str, otel_metrics.Counter] = {}
        self._histograms: dict[str, otel_metrics.Histogram] = {}

    def counter(self, name: str, tags: Mapping[str, str] | None = None) -> Counter:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = self._meter.create_counter(name)
            return Counter(self._counters[name], tags)

    def histogram(self, name: str, tags: Mapping[str, str] | None = None) -> Histogram:
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = self._meter.create_histogram(name, unit='ms')
            return Histogram(self._histograms[name], tags)


metrics = MetricsRegistry()
