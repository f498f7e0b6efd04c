"""Pagination driver module.

Pages through the events of one unit of work, pushes decoded records to
the sink, advances the unit's cursor past every event seen and persists
the full cursor map after each page.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from events import LogEvent, Page, attach_metadata

logger = logging.getLogger(__name__)

FetchPage = Callable[[str, int, Optional[str]], Page]
DescribeSource = Callable[[str, LogEvent], Tuple[str, Optional[str]]]


def group_source(unit_id: str, event: LogEvent) -> Tuple[str, Optional[str]]:
    """Source of an event when units are log groups."""
    return unit_id, event.stream_name


def stream_source(log_group: str) -> DescribeSource:
    """Source describer for units that are streams of a single log group."""

    def describe(unit_id: str, event: LogEvent) -> Tuple[str, Optional[str]]:
        return log_group, unit_id

    return describe


class Paginator:
    """Drives pagination for one unit of work at a time."""

    def __init__(
        self,
        fetch_page: FetchPage,
        codec: Any,
        sink: Any,
        offset_store: Any,
        backoff: Any,
        max_pages: int = 0,
        describe_source: DescribeSource = group_source,
    ) -> None:
        """Initialize the paginator.

        Args:
            fetch_page: Upstream fetch callable (unit, start_ms, token) -> Page
            codec: Decoder with a decode(text) iterator method
            sink: Output sink with a put(record) method
            offset_store: Store with a save(cursors) method
            backoff: BackoffController notified after each successful page
            max_pages: Page cap per unit; values <= 0 disable the cap
            describe_source: Maps (unit, event) to (log_group, log_stream)
        """
        self._fetch_page = fetch_page
        self._codec = codec
        self._sink = sink
        self._offset_store = offset_store
        self._backoff = backoff
        self._max_pages = max_pages
        self._describe_source = describe_source

    def process_unit(self, unit_id: str, cursors: Dict[str, int]) -> int:
        """Fetch and emit all pending events of one unit.

        Args:
            unit_id: Stream or group identifier
            cursors: Cursor map, mutated in place

        Returns:
            Number of pages fetched
        """
        cursors.setdefault(unit_id, 0)
        num_pages = 0
        next_token = None

        while True:
            logger.debug(f"Fetching events for {unit_id} with token {next_token}")
            page = self._fetch_page(unit_id, cursors[unit_id], next_token)
            logger.debug(f"Fetched {len(page.events)} events for {unit_id}")

            for event in page.events:
                self._process_event(unit_id, event, cursors)

            self._offset_store.save(cursors)
            self._backoff.on_success()

            next_token = page.next_token
            num_pages += 1
            if not next_token or num_pages == self._max_pages:
                return num_pages

    def _process_event(self, unit_id: str, event: LogEvent, cursors: Dict[str, int]) -> None:
        log_group, log_stream = self._describe_source(unit_id, event)
        for record in self._codec.decode(event.message):
            attach_metadata(record, event, log_group, log_stream)
            self._sink.put(record)
        # Out-of-order events must not move the cursor backwards
        cursors[unit_id] = max(cursors[unit_id], event.timestamp_ms + 1)
