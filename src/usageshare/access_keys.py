from typing import Protocol

from usageshare.server_config import JsonConfig


class MetricsIdResolver(Protocol):
    """
    maps an access key id to the identifier published in reports.
    Returns None when the key is unknown.
    """

    def to_metrics_id(self, access_key_id: "str") -> "str | None": ...


class AccessKeyMetricsIds:
    """
    AccessKeyMetricsIds resolves metrics ids from the access keys
    config, shaped as {"accessKeys": [{"id": ..., "metricsId": ...}]}.
    Lookups go through the config's data on every call, so keys added
    to a file-backed config after startup resolve without a restart.
    """

    def __init__(self, access_keys_config: "JsonConfig") -> "None":
        self._config = access_keys_config

    def to_metrics_id(self, access_key_id: "str") -> "str | None":
        for key in self._config.data.get("accessKeys", []):
            if key.get("id") == access_key_id:
                return key.get("metricsId")
        return None
