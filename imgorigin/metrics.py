import time
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

NAMESPACE = 'imgorigin'


class Metrics:
  """Counters and timers reported under one private Prometheus registry."""

  def __init__(self, registry: Optional[CollectorRegistry] = None):
    self.registry = registry if registry is not None else CollectorRegistry()
    self.events = Counter(
        'events', 'Request events by name', ['name'], namespace=NAMESPACE, registry=self.registry)
    self.operations = Histogram(
        'operation_seconds',
        'Duration of timed operations',
        ['operation'],
        namespace=NAMESPACE,
        registry=self.registry)

  def increment(self, name: str) -> None:
    self.events.labels(name).inc()

  @contextmanager
  def time(self, operation: str) -> Generator[None, None, None]:
    start_ns = time.perf_counter_ns()
    try:
      yield
    finally:
      self.operations.labels(operation).observe((time.perf_counter_ns() - start_ns) / 1e9)

  def exposition(self) -> bytes:
    return generate_latest(self.registry)
