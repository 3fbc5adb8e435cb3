import os
from dataclasses import dataclass

DEFAULT_PROMETHEUS_URL = "http://localhost:9090"
DEFAULT_COLLECTOR_URL = "https://prod.metrics.getoutline.org"


@dataclass
class Config:
    # listen_address for the self-metrics endpoint: format
    # ":9186" or "0.0.0.0:9186"
    listen_address: "str" = ":9186"
    log_level: "str" = "info"
    log_format: "str" = "console"

    prometheus_url: "str" = DEFAULT_PROMETHEUS_URL
    collector_url: "str" = DEFAULT_COLLECTOR_URL
    # persisted server config holding metricsEnabled and serverId
    server_config_path: "str" = "shadowbox_server_config.json"
    # access keys config used to map key ids to metrics ids
    access_keys_config_path: "str" = "shadowbox_config.json"

    # report intervals in seconds
    hourly_interval: "int" = 60 * 60
    daily_interval: "int" = 24 * 60 * 60
    # timeout for outbound HTTP requests in seconds, 0 disables it
    http_timeout: "float" = 10.0

    # "enable", "disable" or "" to leave the persisted flag as is
    sharing: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            prometheus_url=os.environ.get(
                "USAGESHARE_PROMETHEUS_URL", DEFAULT_PROMETHEUS_URL
            ),
            collector_url=os.environ.get(
                "USAGESHARE_COLLECTOR_URL", DEFAULT_COLLECTOR_URL
            ),
            server_config_path=os.environ.get(
                "USAGESHARE_SERVER_CONFIG", "shadowbox_server_config.json"
            ),
            access_keys_config_path=os.environ.get(
                "USAGESHARE_ACCESS_KEYS_CONFIG", "shadowbox_config.json"
            ),
        )

    @property
    def http_timeout_or_none(self) -> "float | None":
        return self.http_timeout if self.http_timeout > 0 else None
