import json
from typing import Protocol

import httpx
import structlog

from usageshare.models import DailyFeatureMetricsReport, HourlyServerMetricsReport

logger = structlog.get_logger()

CONNECTIONS_PATH = "/connections"
FEATURES_PATH = "/features"


class MetricsCollectorError(Exception):
    """
    raised when a report could not be delivered. Carries the HTTP
    status code when the collector answered, None on transport errors.
    """

    def __init__(self, message: "str", status_code: "int | None" = None) -> "None":
        super().__init__(message)
        self.status_code = status_code


class MetricsCollectorClient(Protocol):
    async def collect_server_usage_metrics(
        self, report: "HourlyServerMetricsReport"
    ) -> "None": ...

    async def collect_feature_metrics(
        self, report: "DailyFeatureMetricsReport"
    ) -> "None": ...


class RestMetricsCollectorClient:
    """
    RestMetricsCollectorClient posts reports as JSON to the metrics
    collection service. Every call makes exactly one request attempt.
    The scheme of service_url picks plain HTTP or HTTPS.
    """

    def __init__(self, service_url: "str", timeout: "float | None" = 10.0) -> "None":
        self._service_url = service_url.rstrip("/")
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> "None":
        await self._client.aclose()

    async def collect_server_usage_metrics(
        self, report: "HourlyServerMetricsReport"
    ) -> "None":
        await self._post_metrics(CONNECTIONS_PATH, json.dumps(report.to_json()))

    async def collect_feature_metrics(
        self, report: "DailyFeatureMetricsReport"
    ) -> "None":
        await self._post_metrics(FEATURES_PATH, json.dumps(report.to_json()))

    async def _post_metrics(self, url_path: "str", report_json: "str") -> "None":
        url = f"{self._service_url}{url_path}"
        body = report_json.encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Content-Length": str(len(body)),
        }

        # operators audit exactly what leaves the process from this line
        logger.info("posting_metrics", url=url, payload=report_json)

        try:
            resp = await self._client.post(url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise MetricsCollectorError(
                f"metrics server request to {url} failed: {exc}"
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise MetricsCollectorError(
                f"metrics server request failed with status code {resp.status_code}",
                status_code=resp.status_code,
            )
