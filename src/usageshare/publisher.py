import time
from importlib.metadata import PackageNotFoundError, version
from typing import Sequence

import structlog

from usageshare.access_keys import MetricsIdResolver
from usageshare.clock import Clock
from usageshare.collector_client import MetricsCollectorClient
from usageshare.metrics import FEATURE_REPORT, USAGE_REPORT, PublisherMetrics
from usageshare.models import (
    DailyDataLimitMetricsReport,
    DailyFeatureMetricsReport,
    HourlyServerMetricsReport,
    HourlyUserMetricsReport,
    KeyUsage,
)
from usageshare.server_config import JsonConfig
from usageshare.usage.base import UsageMetrics

logger = structlog.get_logger()

MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR

# traffic attributed only to these jurisdictions is never published
SANCTIONED_COUNTRIES: "frozenset[str]" = frozenset({"CU", "KP", "SY"})


def _package_version() -> "str":
    try:
        return version("usageshare")
    except PackageNotFoundError:
        return "unknown"


def is_sanctioned_only(countries: "Sequence[str]") -> "bool":
    """
    true when the list is non-empty and every country in it is
    sanctioned. Mixed lists are still reported.
    """
    return bool(countries) and all(c in SANCTIONED_COUNTRIES for c in countries)


class SharedMetricsPublisher:
    """
    SharedMetricsPublisher reports anonymized usage and feature
    metrics to the metrics collector when the server admin opts in.

    Two timers run for the lifetime of the process: an hourly usage
    report and a daily feature report. Both check the opt-in flag in
    the server config on every tick, so start_sharing()/stop_sharing()
    take effect on the next tick. Errors in a tick are logged and
    swallowed, the next tick runs as scheduled.

    Each usage report covers [start, end), where start is the end of
    the previous report. The window and the usage baseline move on
    even when delivery fails, so a failed window is dropped rather
    than re-sent.
    """

    def __init__(
        self,
        clock: "Clock",
        server_config: "JsonConfig",
        usage_metrics: "UsageMetrics",
        metrics_ids: "MetricsIdResolver",
        collector: "MetricsCollectorClient",
        hourly_interval_ms: "int" = MS_PER_HOUR,
        daily_interval_ms: "int" = MS_PER_DAY,
        server_version: "str | None" = None,
        metrics: "PublisherMetrics | None" = None,
    ) -> "None":
        self._clock = clock
        self._server_config = server_config
        self._usage_metrics = usage_metrics
        self._metrics_ids = metrics_ids
        self._collector = collector
        self._server_version = server_version or _package_version()
        self._metrics = metrics
        # start of the window covered by the next usage report
        self._report_start_timestamp_ms: "int" = clock.now()
        self._usage_report_running: "bool" = False

        if self._metrics is not None:
            self._metrics.set_sharing_enabled(self.is_sharing_enabled())

        clock.set_interval(self._on_usage_tick, hourly_interval_ms)
        clock.set_interval(self._on_feature_tick, daily_interval_ms)

    @property
    def report_start_timestamp_ms(self) -> "int":
        return self._report_start_timestamp_ms

    def start_sharing(self) -> "None":
        self._set_sharing(True)

    def stop_sharing(self) -> "None":
        self._set_sharing(False)

    def is_sharing_enabled(self) -> "bool":
        return bool(self._server_config.data.get("metricsEnabled", False))

    def _set_sharing(self, enabled: "bool") -> "None":
        self._server_config.data["metricsEnabled"] = enabled
        self._server_config.write()
        logger.info("metrics_sharing_changed", enabled=enabled)
        if self._metrics is not None:
            self._metrics.set_sharing_enabled(enabled)

    def _sharing_enabled_for_tick(self) -> "bool":
        # the flag may also change on disk, outside start/stop_sharing()
        enabled = self.is_sharing_enabled()
        if self._metrics is not None:
            self._metrics.set_sharing_enabled(enabled)
        return enabled

    async def _on_usage_tick(self) -> "None":
        if not self._sharing_enabled_for_tick():
            return

        # a tick still waiting on the network owns the current window
        if self._usage_report_running:
            logger.warning("usage_report_skipped", reason="previous_report_running")
            if self._metrics is not None:
                self._metrics.inc_report_skipped(USAGE_REPORT, "in_flight")
            return

        self._usage_report_running = True
        cycle_start = time.monotonic()
        stage = "fetch"
        try:
            usage = await self._usage_metrics.get_usage()
            self._usage_metrics.reset()

            stage = "build"
            report = self.build_usage_report(usage)

            stage = "deliver"
            await self._deliver_usage_report(report)

        except Exception:
            logger.exception("usage_report_failed", stage=stage)
            if self._metrics is not None:
                self._metrics.inc_report_error(USAGE_REPORT, stage)

        finally:
            self._usage_report_running = False
            if self._metrics is not None:
                self._metrics.observe_report_duration(
                    USAGE_REPORT, time.monotonic() - cycle_start
                )

    async def _on_feature_tick(self) -> "None":
        if not self._sharing_enabled_for_tick():
            return

        cycle_start = time.monotonic()
        try:
            await self.report_feature_metrics()

        except Exception:
            logger.exception("feature_report_failed")
            if self._metrics is not None:
                self._metrics.inc_report_error(FEATURE_REPORT, "deliver")

        finally:
            if self._metrics is not None:
                self._metrics.observe_report_duration(
                    FEATURE_REPORT, time.monotonic() - cycle_start
                )

    def build_usage_report(
        self, usage: "Sequence[KeyUsage]"
    ) -> "HourlyServerMetricsReport":
        """
        filters and anonymizes a usage snapshot into a report ending
        now, and moves the window start to that end.
        """
        report_end_timestamp_ms = self._clock.now()

        user_reports: "list[HourlyUserMetricsReport]" = []
        for key_usage in usage:
            if key_usage.inbound_bytes == 0:
                continue
            if is_sanctioned_only(key_usage.countries):
                continue

            user_reports.append(
                HourlyUserMetricsReport(
                    user_id=self._metrics_ids.to_metrics_id(key_usage.access_key_id)
                    or "",
                    countries=list(key_usage.countries),
                    bytes_transferred=key_usage.inbound_bytes,
                )
            )

        report = HourlyServerMetricsReport(
            server_id=self._server_config.data.get("serverId", ""),
            start_utc_ms=self._report_start_timestamp_ms,
            end_utc_ms=report_end_timestamp_ms,
            user_reports=user_reports,
        )
        self._report_start_timestamp_ms = report_end_timestamp_ms
        return report

    async def _deliver_usage_report(
        self, report: "HourlyServerMetricsReport"
    ) -> "None":
        if not report.user_reports:
            logger.debug(
                "usage_report_empty",
                start_utc_ms=report.start_utc_ms,
                end_utc_ms=report.end_utc_ms,
            )
            if self._metrics is not None:
                self._metrics.inc_report_skipped(USAGE_REPORT, "empty")
            return

        await self._collector.collect_server_usage_metrics(report)
        logger.info(
            "usage_report_sent",
            start_utc_ms=report.start_utc_ms,
            end_utc_ms=report.end_utc_ms,
            user_count=len(report.user_reports),
        )
        if self._metrics is not None:
            self._metrics.inc_report_sent(USAGE_REPORT)
            self._metrics.set_last_report_success(
                USAGE_REPORT, self._clock.now() / 1000
            )

    def build_feature_report(self) -> "DailyFeatureMetricsReport":
        data = self._server_config.data
        return DailyFeatureMetricsReport(
            server_id=data.get("serverId", ""),
            server_version=self._server_version,
            timestamp_utc_ms=self._clock.now(),
            data_limit=DailyDataLimitMetricsReport(
                enabled=data.get("accessKeyDataLimit") is not None
            ),
        )

    async def report_feature_metrics(self) -> "None":
        """
        builds the feature snapshot and delivers it. Errors propagate.
        """
        report = self.build_feature_report()
        await self._collector.collect_feature_metrics(report)
        logger.info("feature_report_sent", timestamp_utc_ms=report.timestamp_utc_ms)
        if self._metrics is not None:
            self._metrics.inc_report_sent(FEATURE_REPORT)
            self._metrics.set_last_report_success(
                FEATURE_REPORT, self._clock.now() / 1000
            )
