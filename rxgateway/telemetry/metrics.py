"""Counters describing gateway session health."""

from opentelemetry.metrics import Counter, MeterProvider, NoOpMeterProvider


class GatewayMetrics:
    """Counter instruments shared by a client and its heartbeat workers.

    Args:
        meter_provider: Provider to take the meter from. ``None`` records
            nothing.
        attributes: Attributes attached to every measurement, e.g. the shard.

    Example::

        metrics = GatewayMetrics(configure_metrics(), {"shard": "0/4"})
        metrics.add(metrics.resumes)
    """

    def __init__(
        self,
        meter_provider: MeterProvider | None = None,
        attributes: dict[str, str] | None = None,
    ):
        provider = meter_provider if meter_provider is not None else NoOpMeterProvider()
        meter = provider.get_meter("rxgateway")
        self._attributes = dict(attributes or {})
        self.dispatches = self._counter(meter, "gateway.dispatches", "Dispatch frames received")
        self.heartbeats = self._counter(meter, "gateway.heartbeats", "Heartbeats written")
        self.send_failures = self._counter(
            meter, "gateway.send_failures", "Frames the worker failed to write"
        )
        self.resumes = self._counter(meter, "gateway.resumes", "Successful session resumes")
        self.reconnects = self._counter(meter, "gateway.reconnects", "Full reconnects")

    @staticmethod
    def _counter(meter, name: str, description: str) -> Counter:
        return meter.create_counter(name, description=description, unit="1")

    def add(self, counter: Counter, amount: int = 1) -> None:
        counter.add(amount, self._attributes)
