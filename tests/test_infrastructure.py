"""Tests for metrics, structured logging and the background scheduler."""

import json
import logging
import unittest

from helpdesk.escalation.infrastructure import EscalationScheduler
from helpdesk.shared.infrastructure.logging import CustomJsonFormatter, get_context_logger
from helpdesk.shared.infrastructure.metrics import GrafanaOTLPExporter, MetricsRegistry


class MetricsRegistryTests(unittest.TestCase):
    def test_labelled_counters(self) -> None:
        metrics = MetricsRegistry()
        metrics.increment("assignments_total", strategy="EXACT_LOCATION")
        metrics.increment("assignments_total", 2, strategy="CATEGORY_WIDE")
        metrics.increment("assignments_total", strategy="EXACT_LOCATION")

        self.assertEqual(metrics.value("assignments_total", strategy="EXACT_LOCATION"), 2)
        self.assertEqual(metrics.value("assignments_total", strategy="NONE"), 0)
        self.assertEqual(metrics.total("assignments_total"), 4)
        self.assertEqual(len(metrics.snapshot()), 2)


class GrafanaOTLPExporterTests(unittest.IsolatedAsyncioTestCase):
    def test_disabled_without_credentials(self) -> None:
        self.assertFalse(GrafanaOTLPExporter(host="https://otlp.example").is_enabled())

    async def test_disabled_export_is_a_no_op(self) -> None:
        metrics = MetricsRegistry()
        metrics.increment("escalation_sweeps_total")
        self.assertFalse(await GrafanaOTLPExporter().export(metrics))

    def test_payload_carries_labels(self) -> None:
        metrics = MetricsRegistry()
        metrics.increment("escalations_created_total", reason="SLA_BREACH", level="TEAM_LEAD")
        exporter = GrafanaOTLPExporter(
            host="https://otlp.example", api_key="key", instance_id="42", environment="test"
        )

        payload = exporter.build_payload(metrics.snapshot())

        resource = payload["resourceMetrics"][0]
        metric = resource["scopeMetrics"][0]["metrics"][0]
        self.assertEqual(metric["name"], "escalations_created_total")
        point = metric["gauge"]["dataPoints"][0]
        self.assertEqual(point["asInt"], 1)
        attributes = {a["key"]: a["value"]["stringValue"] for a in point["attributes"]}
        self.assertEqual(attributes["reason"], "SLA_BREACH")
        self.assertEqual(attributes["level"], "TEAM_LEAD")
        self.assertEqual(attributes["service"], "hostel-helpdesk")


class LoggingTests(unittest.TestCase):
    def format(self, **extra) -> dict:
        formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
        record = logging.LogRecord("helpdesk.test", logging.INFO, __file__, 1, "Slack configured", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return json.loads(formatter.format(record))

    def test_sensitive_fields_are_redacted(self) -> None:
        output = self.format(
            slack_webhook_url="https://hooks.slack.example/secret",
            grafana_api_key="abc",
            access_token="xyz",
            ticket_id="TKT-2026-0001",
        )

        self.assertEqual(output["slack_webhook_url"], "***REDACTED***")
        self.assertEqual(output["grafana_api_key"], "***REDACTED***")
        self.assertEqual(output["access_token"], "***REDACTED***")
        self.assertEqual(output["ticket_id"], "TKT-2026-0001")
        self.assertEqual(output["environment"], "test")
        self.assertIn("timestamp", output)

    def test_context_logger_stamps_correlation_id(self) -> None:
        logger = get_context_logger("helpdesk.test", correlation_id="sweep-1")

        with self.assertLogs("helpdesk.test", level="INFO") as logs:
            logger.info("Sweep started", extra={"tickets": 3})

        record = logs.records[0]
        self.assertEqual(record.correlation_id, "sweep-1")
        self.assertEqual(record.tickets, 3)
        self.assertEqual(self.format(correlation_id="sweep-1")["correlation_id"], "sweep-1")


class EscalationSchedulerTests(unittest.IsolatedAsyncioTestCase):
    async def test_start_registers_jobs_and_stop_shuts_down(self) -> None:
        async def job() -> None:
            pass

        scheduler = EscalationScheduler(sweep_interval_minutes=15, auto_close_interval_minutes=60)
        await scheduler.start(job, job)
        try:
            self.assertTrue(scheduler.is_running)
            self.assertEqual(
                sorted(scheduler.job_ids()),
                [EscalationScheduler.AUTO_CLOSE_JOB_ID, EscalationScheduler.SWEEP_JOB_ID],
            )
            await scheduler.start(job)
        finally:
            await scheduler.stop()

        self.assertFalse(scheduler.is_running)

    async def test_sweep_only(self) -> None:
        async def job() -> None:
            pass

        scheduler = EscalationScheduler()
        self.assertEqual(scheduler.job_ids(), [])
        await scheduler.start(job)
        try:
            self.assertEqual(scheduler.job_ids(), [EscalationScheduler.SWEEP_JOB_ID])
        finally:
            await scheduler.stop()
