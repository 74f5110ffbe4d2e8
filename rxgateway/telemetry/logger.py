"""OTel logger wrapper and log context for gateway components.

:class:`OTelLogger` wraps an OTel ``Logger`` with ``info``/``debug``/
``warning``/``error`` helpers. :class:`LogContext` carries the dimensions
shared by every record of one connection (service, shard, session).
"""

import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from opentelemetry._logs import LogRecord, SeverityNumber


@dataclass(frozen=True)
class LogContext:
    """Immutable bundle of dimensional log attributes."""

    service: str = ""
    component: str = ""
    shard: str = ""
    session_id: str = ""

    def as_attributes(self) -> dict[str, str]:
        """Convert to OTel attributes, omitting empty values."""
        attrs = {
            "service.name": self.service,
            "component.name": self.component,
            "gateway.shard": self.shard,
            "gateway.session_id": self.session_id,
        }
        return {key: value for key, value in attrs.items() if value}

    def child(self, **overrides: str) -> "LogContext":
        return LogContext(**{**asdict(self), **overrides})


def format_log_record(record: LogRecord) -> str:
    """Render a record as ``TIME [LEVEL] [trace:span] dims source\\t: body``."""
    timestamp = datetime.fromtimestamp((record.timestamp or 0) / 1e9, tz=UTC)
    attrs = record.attributes or {}
    source = attrs.get("log.source", "Unknown")
    dims = [
        str(attrs[key])
        for key in ("service.name", "gateway.shard", "gateway.session_id")
        if attrs.get(key)
    ]
    dim_prefix = "/".join(dims) + " " if dims else ""

    trace_part = ""
    if record.trace_id and record.span_id:
        trace_hex = f"{record.trace_id:032x}"
        span_hex = f"{record.span_id:016x}"
        trace_part = f" [{trace_hex[:8]}:{span_hex[:8]}]"

    return (
        f"{timestamp:%Y-%m-%dT%H:%M:%SZ} [{record.severity_text}]{trace_part} "
        f"{dim_prefix}{source}\t: {record.body!r}\n"
    )


class OTelLogger:
    """Familiar logging facade that emits OTel log records.

    Example:
        >>> logger = OTelLogger(provider.get_logger("rxgateway"), source="GatewayClient")
        >>> logger.info("Connected", endpoint="wss://gateway.example")
        >>> shard_logger = logger.with_context(shard="0/4")
    """

    _LEVELS = {
        "DEBUG": SeverityNumber.DEBUG,
        "INFO": SeverityNumber.INFO,
        "WARN": SeverityNumber.WARN,
        "ERROR": SeverityNumber.ERROR,
    }

    def __init__(
        self,
        logger,
        source: str,
        context: LogContext | None = None,
        min_severity: SeverityNumber | None = None,
    ):
        """
        Args:
            logger: OTel Logger from ``LoggerProvider.get_logger()``.
            source: Value of the ``log.source`` attribute.
            context: Dimensions attached to every record.
            min_severity: Records below this severity are dropped.
        """
        self._logger = logger
        self._source = source
        self._context = context or LogContext()
        self._min_severity = min_severity

    @property
    def source(self) -> str:
        return self._source

    def debug(self, message: str, **attrs) -> None:
        self.log("DEBUG", message, **attrs)

    def info(self, message: str, **attrs) -> None:
        self.log("INFO", message, **attrs)

    def warning(self, message: str, **attrs) -> None:
        self.log("WARN", message, **attrs)

    def error(self, message: str, **attrs) -> None:
        self.log("ERROR", message, **attrs)

    def log(self, level: str, message: str, **attrs) -> None:
        severity = self._LEVELS.get(level, SeverityNumber.INFO)
        if self._min_severity and severity.value < self._min_severity.value:
            return
        record = LogRecord(
            timestamp=time.time_ns(),
            body=message,
            severity_text=level,
            severity_number=severity,
            attributes={
                "log.source": self._source,
                **self._context.as_attributes(),
                **attrs,
            },
        )
        self._logger.emit(record)

    def with_context(self, **overrides) -> "OTelLogger":
        """Derive a logger with extra dimensions; ``source=`` renames it."""
        source = overrides.pop("source", self._source)
        return OTelLogger(
            self._logger,
            source=source,
            context=self._context.child(**overrides),
            min_severity=self._min_severity,
        )
