"""
Routing Metrics
===============

In-process counters for the routing core, optionally pushed to Grafana Cloud
via OTLP after each escalation sweep.

Counters:
- assignments_total{strategy}: Assignment decisions by strategy
- escalations_created_total{reason,level}: Escalation records created
- escalation_max_level_total{reason}: Tickets stalled at the top of the hierarchy
- escalation_sweeps_total: Completed sweeps
- escalation_sweep_failures_total: Tickets (or whole sweeps) whose processing raised
- escalation_conflicts_skipped_total: Tickets skipped because they changed mid-sweep
- tickets_auto_closed_total: Resolved tickets closed after the verification window
- notifications_sent_total{channel} / notification_failures_total{channel}
"""

import base64
import threading
import time
from collections import defaultdict
from typing import Dict, Optional, Tuple

import httpx

from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CounterKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class MetricsRegistry:
    """Thread-safe monotonically increasing counters with string labels."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[CounterKey, int] = defaultdict(int)

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        key = (name, tuple(sorted((k, str(v)) for k, v in labels.items())))
        with self._lock:
            self._counters[key] += amount

    def value(self, name: str, **labels: str) -> int:
        """Current value of one labelled counter (0 if never incremented)."""
        key = (name, tuple(sorted((k, str(v)) for k, v in labels.items())))
        with self._lock:
            return self._counters.get(key, 0)

    def total(self, name: str) -> int:
        """Sum of a counter across all label sets."""
        with self._lock:
            return sum(v for (n, _), v in self._counters.items() if n == name)

    def snapshot(self) -> Dict[CounterKey, int]:
        with self._lock:
            return dict(self._counters)


class GrafanaOTLPExporter:
    """
    Export routing counters to Grafana Cloud via the OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) JSON format; every counter becomes a
    gauge data point carrying its labels as attributes.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        service_name: str = "hostel-helpdesk",
        service_version: str = "1.0.0",
        environment: str = "development",
    ):
        self._host = host
        self._api_key = api_key
        self._instance_id = instance_id
        self._service_name = service_name
        self._service_version = service_version
        self._environment = environment
        self._enabled = bool(host and api_key and instance_id)

        if self._enabled:
            auth_pair = f"{instance_id}:{api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in host:
                self._url = f"{host}/otlp/v1/metrics"
            else:
                self._url = host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": host, "instance_id": instance_id}
            )
        else:
            logger.info("Grafana OTLP exporter not configured - metrics stay in-process")

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    def build_payload(self, counters: Dict[CounterKey, int]) -> dict:
        """Build an OTLP metrics payload from a registry snapshot."""
        timestamp_ns = int(time.time() * 1_000_000_000)
        by_name: Dict[str, list] = defaultdict(list)

        for (name, labels), value in sorted(counters.items()):
            attributes = [{"key": "service", "value": {"stringValue": self._service_name}}]
            attributes.extend(
                {"key": k, "value": {"stringValue": v}} for k, v in labels
            )
            by_name[name].append({
                "asInt": value,
                "timeUnixNano": timestamp_ns,
                "attributes": attributes,
            })

        metrics = [
            {"name": name, "unit": "1", "gauge": {"dataPoints": points}}
            for name, points in by_name.items()
        ]

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": self._service_name}},
                            {"key": "service.version", "value": {"stringValue": self._service_version}},
                            {"key": "deployment.environment", "value": {"stringValue": self._environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}],
                }
            ]
        }

    async def export(self, registry: MetricsRegistry) -> bool:
        """
        Push the current counters to Grafana.

        Returns:
            True if export succeeded, False otherwise (never raises)
        """
        if not self._enabled:
            return False

        counters = registry.snapshot()
        if not counters:
            return False

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id),
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    self._url,
                    headers=headers,
                    json=self.build_payload(counters),
                )
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            logger.debug("Routing metrics exported", extra={"series": len(counters)})
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url,
            }
        )
        return False
