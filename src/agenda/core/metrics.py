"""OpenTelemetry metrics for reminder scheduling.

Instruments
-----------
  agenda.reminders.scheduled          Counter  (label: kind=task|meeting)
      Triggers created.

  agenda.reminders.skipped            Counter  (labels: kind, reason)
      Schedule calls that deliberately created nothing
      (reason=past_deadline|permission_denied).

  agenda.reminders.failed             Counter  (labels: kind, operation)
      Backend errors or timeouts while creating/cancelling triggers.

  agenda.reminders.cancelled          Counter  (label: scope=single|all)
      Explicit cancellations.

Instruments are created lazily from the global MeterProvider.  Until the host
application installs a real provider every recording is a silent no-op.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "agenda"


def init_metrics(service_name: str) -> metrics.Meter:
    """Install an OTLP-exporting MeterProvider when OTEL_EXPORTER_OTLP_ENDPOINT is set.

    Otherwise the global no-op provider stays in place.
    """
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    # SDK and exporter are optional extras; import only when exporting.
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    exporter = OTLPMetricExporter(endpoint=endpoint)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=15_000)
    provider = MeterProvider(resource=resource, metric_readers=[reader])

    metrics.set_meter_provider(provider)
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider."""
    return metrics.get_meter(_METER_NAME)


class ReminderMetrics:
    """Lazily created counters for the reminder scheduler."""

    def __init__(self) -> None:
        self.__scheduled: metrics.Counter | None = None
        self.__skipped: metrics.Counter | None = None
        self.__failed: metrics.Counter | None = None
        self.__cancelled: metrics.Counter | None = None

    @property
    def _scheduled(self) -> metrics.Counter:
        if self.__scheduled is None:
            self.__scheduled = get_meter().create_counter(
                name="agenda.reminders.scheduled",
                description="Reminder triggers created",
                unit="triggers",
            )
        return self.__scheduled

    @property
    def _skipped(self) -> metrics.Counter:
        if self.__skipped is None:
            self.__skipped = get_meter().create_counter(
                name="agenda.reminders.skipped",
                description="Schedule calls that created no trigger by policy",
                unit="calls",
            )
        return self.__skipped

    @property
    def _failed(self) -> metrics.Counter:
        if self.__failed is None:
            self.__failed = get_meter().create_counter(
                name="agenda.reminders.failed",
                description="Trigger create/cancel calls that errored or timed out",
                unit="calls",
            )
        return self.__failed

    @property
    def _cancelled(self) -> metrics.Counter:
        if self.__cancelled is None:
            self.__cancelled = get_meter().create_counter(
                name="agenda.reminders.cancelled",
                description="Explicit reminder cancellations",
                unit="calls",
            )
        return self.__cancelled

    def record_scheduled(self, kind: str) -> None:
        self._scheduled.add(1, {"kind": kind})

    def record_skipped(self, kind: str, reason: str) -> None:
        self._skipped.add(1, {"kind": kind, "reason": str(reason)})

    def record_failed(self, kind: str, operation: str) -> None:
        self._failed.add(1, {"kind": kind, "operation": operation})

    def record_cancelled(self, scope: str) -> None:
        self._cancelled.add(1, {"scope": scope})
