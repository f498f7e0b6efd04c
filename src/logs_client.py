"""CloudWatch Logs client abstraction module.

All boto3/botocore usage is isolated here. No other module imports from
boto3 or botocore. Quota violations reported by the service are re-raised
as QuotaExceededError so the poll loop can tell them apart from every
other failure.
"""

import logging
from typing import Any, List, Optional, Tuple

import boto3
from botocore.config import Config as BotocoreConfig
from botocore.exceptions import BotoCoreError, ClientError

from config import Config
from events import LogEvent, Page

logger = logging.getLogger(__name__)

QUOTA_ERROR_CODES = frozenset({"ThrottlingException"})

# Errors raised while building or calling the client, for callers that
# must not import botocore themselves
CLIENT_ERRORS = (BotoCoreError, ClientError)


class QuotaExceededError(Exception):
    """Raised when the upstream service reports a quota violation."""
    pass


def _is_quota_error(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in QUOTA_ERROR_CODES


def build_boto_client(config: Config) -> Any:
    """Construct a boto3 CloudWatch Logs client from configuration.

    The retry policy of the client (retry_limit) is the only retry layer
    for non-quota failures.

    Args:
        config: Configuration object containing AWS settings

    Returns:
        A boto3 ``logs`` client
    """
    aws = config.aws
    session = boto3.session.Session(
        profile_name=aws.profile,
        aws_access_key_id=aws.access_key_id,
        aws_secret_access_key=aws.secret_access_key,
        aws_session_token=aws.session_token,
        region_name=aws.region,
    )
    client_config = BotocoreConfig(
        retries={"max_attempts": aws.retry_limit, "mode": "standard"}
    )

    if aws.enable_client_logging:
        logging.getLogger("botocore").setLevel(logging.DEBUG)

    return session.client("logs", endpoint_url=aws.endpoint_url, config=client_config)


def build_logs_client(config: Config) -> "LogsClient":
    """Construct the LogsClient used by the poll loop.

    In stream mode the client is bound to the single configured log group
    and units of work are stream names; otherwise units are group names.
    """
    log_group = config.input.log_group[0] if config.input.stream_mode else None
    return LogsClient(build_boto_client(config), log_group=log_group)


class LogsClient:
    """Upstream fetch interface backed by a boto3 ``logs`` client."""

    def __init__(self, client: Any, log_group: Optional[str] = None) -> None:
        """Initialize the client wrapper.

        Args:
            client: boto3 CloudWatch Logs client
            log_group: Log group to bind to when units are stream names
        """
        self._client = client
        self.log_group = log_group

    def fetch_page(
        self, unit_id: str, start_time_ms: int, next_token: Optional[str] = None
    ) -> Page:
        """Fetch one page of events at or after start_time_ms.

        Args:
            unit_id: Stream name (bound group) or log group name
            start_time_ms: Lower time bound, milliseconds since epoch
            next_token: Continuation token from the previous page

        Returns:
            Page of events and the next continuation token, if any

        Raises:
            QuotaExceededError: If the service reports a quota violation
        """
        params = {
            "startTime": int(start_time_ms),
            "interleaved": True,
        }
        if self.log_group is not None:
            params["logGroupName"] = self.log_group
            params["logStreamNames"] = [unit_id]
        else:
            params["logGroupName"] = unit_id
        if next_token:
            params["nextToken"] = next_token

        try:
            resp = self._client.filter_log_events(**params)
        except ClientError as e:
            if _is_quota_error(e):
                raise QuotaExceededError(str(e)) from e
            raise

        events = [
            LogEvent(
                timestamp_ms=raw["timestamp"],
                message=raw.get("message", ""),
                ingestion_time_ms=raw.get("ingestionTime", 0),
                event_id=raw.get("eventId"),
                stream_name=raw.get("logStreamName"),
            )
            for raw in resp.get("events", [])
        ]
        return Page(events=events, next_token=resp.get("nextToken"))

    def list_units_by_prefix(
        self, prefix: str, next_token: Optional[str] = None
    ) -> Tuple[List[str], Optional[str]]:
        """List log group names starting with prefix, one page at a time.

        Returns:
            Tuple of (group names, next continuation token or None)

        Raises:
            QuotaExceededError: If the service reports a quota violation
        """
        params = {"logGroupNamePrefix": prefix}
        if next_token:
            params["nextToken"] = next_token

        try:
            resp = self._client.describe_log_groups(**params)
        except ClientError as e:
            if _is_quota_error(e):
                raise QuotaExceededError(str(e)) from e
            raise

        names = [group["logGroupName"] for group in resp.get("logGroups", [])]
        return names, resp.get("nextToken")

    def list_available_units(self, group_id: str) -> List[str]:
        """List every stream name in a log group.

        Used at startup to validate configured streams; follows
        continuation tokens until exhausted.
        """
        names: List[str] = []
        next_token = None
        while True:
            params = {"logGroupName": group_id}
            if next_token:
                params["nextToken"] = next_token
            resp = self._client.describe_log_streams(**params)
            names.extend(stream["logStreamName"] for stream in resp.get("logStreams", []))
            next_token = resp.get("nextToken")
            if not next_token:
                return names
