"""Log event and record types.

Upstream events arrive as LogEvent values grouped into a Page. The
paginator turns each event into one or more records (plain dicts) with
source metadata attached under the ``cloudwatch_logs`` namespace.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


METADATA_NAMESPACE = "cloudwatch_logs"
TIMESTAMP_FIELD = "@timestamp"


@dataclass(frozen=True)
class Timestamp:
    """Point in time split into whole seconds and nanoseconds."""
    seconds: int
    nanos: int = 0

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanos // 1_000_000

    def isoformat(self) -> str:
        """Render as UTC ISO-8601 with millisecond precision."""
        base = datetime.fromtimestamp(self.seconds, tz=timezone.utc)
        return f"{base.strftime('%Y-%m-%dT%H:%M:%S')}.{self.nanos // 1_000_000:03d}Z"


@dataclass
class LogEvent:
    """A single event returned by the upstream fetch interface."""
    timestamp_ms: int
    message: str
    ingestion_time_ms: int = 0
    event_id: Optional[str] = None
    stream_name: Optional[str] = None


@dataclass
class Page:
    """One page of events plus the continuation token, if more exist."""
    events: List[LogEvent] = field(default_factory=list)
    next_token: Optional[str] = None


def parse_time(millis: int) -> Timestamp:
    """Convert milliseconds since epoch to a Timestamp.

    Integer division and modulo only, no floating point.
    """
    millis = int(millis)
    return Timestamp(seconds=millis // 1000, nanos=(millis % 1000) * 1_000_000)


def attach_metadata(
    record: Dict[str, Any], event: LogEvent, log_group: str, log_stream: Optional[str]
) -> Dict[str, Any]:
    """Attach event timestamp and source metadata to a decoded record.

    Args:
        record: Decoded record, mutated in place
        event: The upstream event the record was decoded from
        log_group: Source log group name
        log_stream: Source log stream name

    Returns:
        The same record, for chaining
    """
    record[TIMESTAMP_FIELD] = parse_time(event.timestamp_ms)
    metadata = record.get(METADATA_NAMESPACE)
    if not isinstance(metadata, dict):
        metadata = record[METADATA_NAMESPACE] = {}
    metadata["ingestion_time"] = parse_time(event.ingestion_time_ms)
    metadata["log_group"] = log_group
    metadata["log_stream"] = log_stream
    metadata["event_id"] = event.event_id
    return record
