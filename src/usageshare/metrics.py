from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

# report kinds used as label values
USAGE_REPORT = "usage"
FEATURE_REPORT = "feature"


class PublisherMetrics:
    """
    PublisherMetrics records the outcome of every report cycle in
    Prometheus metrics. Report errors are swallowed by the publisher,
    this is where they stay observable.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._reports_sent: "Counter" = Counter(
            "usageshare_reports_sent_total",
            "Total reports delivered to the metrics collector",
            ["kind"],
            registry=registry,
        )
        self._report_errors: "Counter" = Counter(
            "usageshare_report_errors_total",
            "Total report cycles that failed, by kind and stage",
            ["kind", "stage"],
            registry=registry,
        )
        self._reports_skipped: "Counter" = Counter(
            "usageshare_reports_skipped_total",
            "Total report cycles that ended without a delivery",
            ["kind", "reason"],
            registry=registry,
        )
        self._last_report_success: "Gauge" = Gauge(
            "usageshare_last_report_success_timestamp_seconds",
            "Unix timestamp of the last successful report per kind",
            ["kind"],
            registry=registry,
        )
        self._report_duration: "Histogram" = Histogram(
            "usageshare_report_duration_seconds",
            "Duration of report cycles",
            ["kind"],
            registry=registry,
        )
        self._sharing_enabled: "Gauge" = Gauge(
            "usageshare_sharing_enabled",
            "1 when metrics sharing is opted in, 0 otherwise",
            registry=registry,
        )

    def inc_report_sent(self, kind: "str") -> "None":
        self._reports_sent.labels(kind=kind).inc()

    def inc_report_error(self, kind: "str", stage: "str") -> "None":
        self._report_errors.labels(kind=kind, stage=stage).inc()

    def inc_report_skipped(self, kind: "str", reason: "str") -> "None":
        self._reports_skipped.labels(kind=kind, reason=reason).inc()

    def set_last_report_success(self, kind: "str", timestamp: "float") -> "None":
        self._last_report_success.labels(kind=kind).set(timestamp)

    def observe_report_duration(self, kind: "str", duration_seconds: "float") -> "None":
        self._report_duration.labels(kind=kind).observe(duration_seconds)

    def set_sharing_enabled(self, enabled: "bool") -> "None":
        self._sharing_enabled.set(1 if enabled else 0)
