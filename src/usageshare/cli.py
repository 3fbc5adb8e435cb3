import argparse

from usageshare.config import Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    config = Config.from_env()

    parser = argparse.ArgumentParser(
        prog="usageshare",
        description="Publishes anonymized server usage metrics when opted in",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=config.listen_address,
        help="Address for the self-metrics endpoint (default: :9186)",
    )
    parser.add_argument(
        "--prometheus.url",
        dest="prometheus_url",
        default=config.prometheus_url,
        help="Prometheus server to read usage from",
    )
    parser.add_argument(
        "--collector.url",
        dest="collector_url",
        default=config.collector_url,
        help="Base URL of the metrics collection service",
    )
    parser.add_argument(
        "--config.file",
        dest="server_config_path",
        default=config.server_config_path,
        help="Server config JSON file holding the opt-in flag",
    )
    parser.add_argument(
        "--access-keys.file",
        dest="access_keys_config_path",
        default=config.access_keys_config_path,
        help="Access keys config JSON file",
    )
    parser.add_argument(
        "--report.hourly-interval",
        dest="hourly_interval",
        type=int,
        default=config.hourly_interval,
        help="Usage report interval in seconds (default: 3600)",
    )
    parser.add_argument(
        "--report.daily-interval",
        dest="daily_interval",
        type=int,
        default=config.daily_interval,
        help="Feature report interval in seconds (default: 86400)",
    )
    parser.add_argument(
        "--http.timeout",
        dest="http_timeout",
        type=float,
        default=config.http_timeout,
        help="Timeout for outbound requests in seconds, 0 for none (default: 10)",
    )
    parser.add_argument(
        "--sharing",
        dest="sharing",
        default="",
        choices=["enable", "disable"],
        help="Opt in to or out of metrics sharing before starting",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=["console", "json"],
        help="Log output format (default: console)",
    )

    args = parser.parse_args(argv)
    for name, value in vars(args).items():
        setattr(config, name, value)
    return config
