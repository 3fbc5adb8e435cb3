import math

import httpx
import structlog

from usageshare.clock import Clock
from usageshare.models import KeyUsage

logger = structlog.get_logger()

# traffic to and from the target, since that's what we are protecting
USAGE_QUERY_TEMPLATE = (
    'sum(increase(shadowsocks_data_bytes{{dir=~"p>t|p<t"}}[{seconds}s]))'
    " by (location, access_key)"
)


class PrometheusQueryError(Exception):
    """
    raised when Prometheus answers a query with an error status
    or a payload that can't be parsed.
    """


class PrometheusClient:
    """
    PrometheusClient runs instant queries against the
    Prometheus HTTP API.
    """

    def __init__(self, base_url: "str", timeout: "float" = 10.0) -> "None":
        self._base_url = base_url.rstrip("/")
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> "None":
        await self._client.aclose()

    async def query(self, query: "str") -> "list[dict]":
        """
        runs an instant query and returns the vector result entries,
        each one holding a "metric" label dict and a [ts, value] pair.
        """
        logger.debug("prometheus_query", query=query)
        resp = await self._client.get(
            f"{self._base_url}/api/v1/query", params={"query": query}
        )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise PrometheusQueryError(
                f"invalid response from Prometheus (status {resp.status_code})"
            ) from exc

        if not isinstance(payload, dict):
            raise PrometheusQueryError(
                f"unexpected response from Prometheus (status {resp.status_code})"
            )

        if payload.get("status") != "success":
            raise PrometheusQueryError(
                f"query failed: {payload.get('errorType', resp.status_code)}: "
                f"{payload.get('error', 'unknown error')}"
            )

        data = payload.get("data")
        if not isinstance(data, dict):
            raise PrometheusQueryError("query response has no data object")
        result = data.get("result")
        if data.get("resultType") != "vector" or not isinstance(result, list):
            raise PrometheusQueryError("query result is not a vector")
        return result


class PrometheusUsageMetrics:
    """
    PrometheusUsageMetrics implements the UsageMetrics protocol on top
    of Prometheus. Usage is the increase of the data bytes counter over
    the time elapsed since the last reset.
    """

    def __init__(self, prometheus_client: "PrometheusClient", clock: "Clock") -> "None":
        self._prometheus = prometheus_client
        self._clock = clock
        self._reset_time_ms: "int" = clock.now()

    async def get_usage(self) -> "list[KeyUsage]":
        time_delta_secs = _round_half_up(
            (self._clock.now() - self._reset_time_ms) / 1000
        )
        result = await self._prometheus.query(
            USAGE_QUERY_TEMPLATE.format(seconds=time_delta_secs)
        )

        usage: "list[KeyUsage]" = []
        for entry in result:
            metric = entry.get("metric") or {}
            try:
                inbound_bytes = _round_half_up(float(entry["value"][1]))
            except (KeyError, IndexError, TypeError, ValueError) as exc:
                raise PrometheusQueryError(f"malformed sample: {entry!r}") from exc

            usage.append(
                KeyUsage(
                    access_key_id=metric.get("access_key") or "",
                    countries=parse_countries(metric.get("location") or ""),
                    inbound_bytes=inbound_bytes,
                )
            )

        logger.debug(
            "usage_fetched",
            window_seconds=time_delta_secs,
            key_count=len(usage),
        )
        return usage

    def reset(self) -> "None":
        self._reset_time_ms = self._clock.now()


def parse_countries(location: "str") -> "tuple[str, ...]":
    """
    splits a comma-separated location label into trimmed country codes.
    """
    if not location:
        return ()
    return tuple(c.strip() for c in location.split(","))


def _round_half_up(value: "float") -> "int":
    return int(math.floor(value + 0.5))
