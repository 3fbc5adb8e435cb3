import json

from usageshare.access_keys import AccessKeyMetricsIds
from usageshare.server_config import FileJsonConfig, InMemoryJsonConfig


class TestAccessKeyMetricsIds:
    def test_resolves_known_key(self) -> "None":
        config = InMemoryJsonConfig(
            {
                "accessKeys": [
                    {"id": "0", "metricsId": "metrics-0"},
                    {"id": "1", "metricsId": "metrics-1"},
                ]
            }
        )
        assert AccessKeyMetricsIds(config).to_metrics_id("1") == "metrics-1"

    def test_unknown_key_returns_none(self) -> "None":
        config = InMemoryJsonConfig({"accessKeys": [{"id": "0", "metricsId": "m"}]})
        assert AccessKeyMetricsIds(config).to_metrics_id("9") is None

    def test_missing_access_keys(self) -> "None":
        assert AccessKeyMetricsIds(InMemoryJsonConfig()).to_metrics_id("0") is None

    def test_sees_keys_added_later(self) -> "None":
        config = InMemoryJsonConfig({"accessKeys": []})
        resolver = AccessKeyMetricsIds(config)
        config.data["accessKeys"].append({"id": "5", "metricsId": "metrics-5"})
        assert resolver.to_metrics_id("5") == "metrics-5"

    def test_sees_keys_added_to_file_later(
        self, tmp_path: "object", rewrite_json: "object"
    ) -> "None":
        path = tmp_path / "shadowbox_config.json"
        path.write_text(json.dumps({"accessKeys": [{"id": "1", "metricsId": "m-1"}]}))
        resolver = AccessKeyMetricsIds(FileJsonConfig(str(path)))
        assert resolver.to_metrics_id("2") is None

        rewrite_json(
            path,
            {
                "accessKeys": [
                    {"id": "1", "metricsId": "m-1"},
                    {"id": "2", "metricsId": "m-2"},
                ]
            },
        )

        assert resolver.to_metrics_id("2") == "m-2"
