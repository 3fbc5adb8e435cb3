from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class KeyUsage:
    """
    KeyUsage represents the bytes transferred by a single
    access key since the last usage reset.
    """

    access_key_id: "str"
    # country codes the traffic was attributed to, may be empty
    countries: "tuple[str, ...]"
    inbound_bytes: "int"


# Report classes below serialize to the published JSON format.
# Field renames in to_json() will break backwards-compatibility.


@dataclass(frozen=True, slots=True)
class HourlyUserMetricsReport:
    user_id: "str"
    countries: "list[str]"
    bytes_transferred: "int"

    def to_json(self) -> "dict[str, object]":
        return {
            "userId": self.user_id,
            "countries": list(self.countries),
            "bytesTransferred": self.bytes_transferred,
        }


@dataclass(frozen=True, slots=True)
class HourlyServerMetricsReport:
    """
    HourlyServerMetricsReport covers the half-open window
    [start_utc_ms, end_utc_ms) of one usage cycle.
    """

    server_id: "str"
    start_utc_ms: "int"
    end_utc_ms: "int"
    user_reports: "list[HourlyUserMetricsReport]" = field(default_factory=list)

    def to_json(self) -> "dict[str, object]":
        return {
            "serverId": self.server_id,
            "startUtcMs": self.start_utc_ms,
            "endUtcMs": self.end_utc_ms,
            "userReports": [r.to_json() for r in self.user_reports],
        }


@dataclass(frozen=True, slots=True)
class DailyDataLimitMetricsReport:
    enabled: "bool"

    def to_json(self) -> "dict[str, object]":
        return {"enabled": self.enabled}


@dataclass(frozen=True, slots=True)
class DailyFeatureMetricsReport:
    """
    DailyFeatureMetricsReport is a point-in-time snapshot
    of the server's feature flags.
    """

    server_id: "str"
    server_version: "str"
    timestamp_utc_ms: "int"
    data_limit: "DailyDataLimitMetricsReport"

    def to_json(self) -> "dict[str, object]":
        return {
            "serverId": self.server_id,
            "serverVersion": self.server_version,
            "timestampUtcMs": self.timestamp_utc_ms,
            "dataLimit": self.data_limit.to_json(),
        }
