import httpx
import pytest
import respx

from usageshare.clock import ManualClock
from usageshare.models import KeyUsage
from usageshare.usage.prometheus import (
    PrometheusClient,
    PrometheusQueryError,
    PrometheusUsageMetrics,
    parse_countries,
)

PROMETHEUS_URL = "http://prometheus.test:9090"
QUERY_URL = f"{PROMETHEUS_URL}/api/v1/query"


def vector_response(result: "list[dict]") -> "httpx.Response":
    return httpx.Response(
        200,
        json={
            "status": "success",
            "data": {"resultType": "vector", "result": result},
        },
    )


class TestParseCountries:
    def test_trims_each_country(self) -> "None":
        assert parse_countries("US, CA ,MX") == ("US", "CA", "MX")

    def test_empty_location(self) -> "None":
        assert parse_countries("") == ()


class TestPrometheusUsageMetrics:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetches_and_parses_usage(self) -> "None":
        respx.get(QUERY_URL).mock(
            return_value=vector_response(
                [
                    {
                        "metric": {"access_key": "1", "location": "US,CA"},
                        "value": [1700000000.0, "1000.4"],
                    },
                    {
                        "metric": {"access_key": "2", "location": "KP"},
                        "value": [1700000000.0, "500"],
                    },
                ]
            )
        )

        clock = ManualClock(now_ms=0)
        usage_metrics = PrometheusUsageMetrics(PrometheusClient(PROMETHEUS_URL), clock)
        usage = await usage_metrics.get_usage()

        assert usage == [
            KeyUsage(access_key_id="1", countries=("US", "CA"), inbound_bytes=1000),
            KeyUsage(access_key_id="2", countries=("KP",), inbound_bytes=500),
        ]

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_labels_normalize_to_empty(self) -> "None":
        respx.get(QUERY_URL).mock(
            return_value=vector_response(
                [{"metric": {}, "value": [1700000000.0, "2.5"]}]
            )
        )

        usage_metrics = PrometheusUsageMetrics(
            PrometheusClient(PROMETHEUS_URL), ManualClock()
        )
        usage = await usage_metrics.get_usage()

        # rounds half up
        assert usage == [KeyUsage(access_key_id="", countries=(), inbound_bytes=3)]

    @pytest.mark.asyncio
    @respx.mock
    async def test_queries_elapsed_time_since_reset(self) -> "None":
        route = respx.get(QUERY_URL).mock(return_value=vector_response([]))

        clock = ManualClock(now_ms=10_000)
        usage_metrics = PrometheusUsageMetrics(PrometheusClient(PROMETHEUS_URL), clock)

        clock.now_ms += 3_600_400
        await usage_metrics.get_usage()
        query = route.calls.last.request.url.params["query"]
        assert query == (
            'sum(increase(shadowsocks_data_bytes{dir=~"p>t|p<t"}[3600s]))'
            " by (location, access_key)"
        )

        usage_metrics.reset()
        clock.now_ms += 1_500
        await usage_metrics.get_usage()
        assert "[2s]" in route.calls.last.request.url.params["query"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_double_reset_yields_empty_window(self) -> "None":
        route = respx.get(QUERY_URL).mock(return_value=vector_response([]))

        clock = ManualClock(now_ms=0)
        usage_metrics = PrometheusUsageMetrics(PrometheusClient(PROMETHEUS_URL), clock)
        clock.now_ms = 5_000_000

        usage_metrics.reset()
        usage_metrics.reset()
        usage = await usage_metrics.get_usage()

        assert usage == []
        assert "[0s]" in route.calls.last.request.url.params["query"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_query_error_propagates(self) -> "None":
        respx.get(QUERY_URL).mock(
            return_value=httpx.Response(
                400,
                json={
                    "status": "error",
                    "errorType": "bad_data",
                    "error": "parse error",
                },
            )
        )

        usage_metrics = PrometheusUsageMetrics(
            PrometheusClient(PROMETHEUS_URL), ManualClock()
        )
        with pytest.raises(PrometheusQueryError, match="bad_data"):
            await usage_metrics.get_usage()

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_sample_raises(self) -> "None":
        respx.get(QUERY_URL).mock(
            return_value=vector_response([{"metric": {"access_key": "1"}}])
        )

        usage_metrics = PrometheusUsageMetrics(
            PrometheusClient(PROMETHEUS_URL), ManualClock()
        )
        with pytest.raises(PrometheusQueryError):
            await usage_metrics.get_usage()


class TestPrometheusClient:
    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_response_raises(self) -> "None":
        respx.get(QUERY_URL).mock(return_value=httpx.Response(502, text="Bad Gateway"))

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(PrometheusQueryError, match="502"):
            await client.query("up")
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_propagates(self) -> "None":
        respx.get(QUERY_URL).mock(side_effect=httpx.ConnectError("refused"))

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(httpx.ConnectError):
            await client.query("up")
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_vector_result_raises(self) -> "None":
        respx.get(QUERY_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "status": "success",
                    "data": {"resultType": "scalar", "result": [1.0, "1"]},
                },
            )
        )

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(PrometheusQueryError):
            await client.query("1")
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_payload_raises(self) -> "None":
        respx.get(QUERY_URL).mock(return_value=httpx.Response(200, json=[1, 2]))

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(PrometheusQueryError, match="unexpected response"):
            await client.query("up")
        await client.close()
