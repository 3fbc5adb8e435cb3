import asyncio
import signal

import structlog
from prometheus_client import start_http_server

from usageshare.access_keys import AccessKeyMetricsIds
from usageshare.cli import parse_args
from usageshare.clock import RealClock
from usageshare.collector_client import RestMetricsCollectorClient
from usageshare.config import Config
from usageshare.logging import setup_logging
from usageshare.metrics import PublisherMetrics
from usageshare.publisher import SharedMetricsPublisher
from usageshare.server_config import FileJsonConfig, ensure_server_id
from usageshare.usage.prometheus import PrometheusClient, PrometheusUsageMetrics

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


async def _run(config: "Config") -> "None":
    server_config = FileJsonConfig(config.server_config_path)
    server_id = ensure_server_id(server_config)
    access_keys_config = FileJsonConfig(config.access_keys_config_path)

    clock = RealClock()
    prometheus = PrometheusClient(
        config.prometheus_url, timeout=config.http_timeout_or_none
    )
    collector = RestMetricsCollectorClient(
        config.collector_url, timeout=config.http_timeout_or_none
    )

    publisher = SharedMetricsPublisher(
        clock=clock,
        server_config=server_config,
        usage_metrics=PrometheusUsageMetrics(prometheus, clock),
        metrics_ids=AccessKeyMetricsIds(access_keys_config),
        collector=collector,
        hourly_interval_ms=config.hourly_interval * 1000,
        daily_interval_ms=config.daily_interval * 1000,
        metrics=PublisherMetrics(),
    )
    if config.sharing == "enable":
        publisher.start_sharing()
    elif config.sharing == "disable":
        publisher.stop_sharing()

    logger.info(
        "publisher_started",
        server_id=server_id,
        sharing_enabled=publisher.is_sharing_enabled(),
        collector_url=config.collector_url,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    # for SIGINT and SIGTERM, stop the timers and exit
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        # the current partial window is not flushed on shutdown
        logger.info("shutting_down")
        await clock.close()
        await prometheus.close()
        await collector.close()
        logger.info("shutdown_complete")


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_format)

    host, port = _parse_listen_address(config.listen_address)
    start_http_server(port, addr=host)
    logger.info("metrics_server_started", host=host, port=port)

    asyncio.run(_run(config))


if __name__ == "__main__":
    main()
