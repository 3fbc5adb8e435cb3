from typing import Protocol, Sequence

from usageshare.models import KeyUsage


class UsageMetrics(Protocol):
    """
    UsageMetrics stands as a common protocol for usage sources.

    Sources read bytes transferred per access key since the last
    reset() from a metrics backend. The backend stays the source
    of truth for raw counters, a source only keeps its baseline.
    """

    async def get_usage(self) -> "Sequence[KeyUsage]": ...

    def reset(self) -> "None": ...
