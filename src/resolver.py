"""Work-set resolution module.

Determines which units of work (log streams or log groups) are polled in
a cycle and in what order, and where previously unseen units start.

With prefix discovery enabled, units are ordered least recently processed
first: a unit that just finished moves to the end of the priority order
and units never processed sort ahead of everything else. This keeps one
busy log group from starving the others.
"""

import logging
import time
from collections import OrderedDict
from typing import Any, Dict, Iterator, List, Optional, Union

from config import ConfigError

logger = logging.getLogger(__name__)


def normalize_identifiers(value: Union[str, List[str], None]) -> List[str]:
    """Turn a single identifier or a list of identifiers into a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def now_millis() -> int:
    return time.time_ns() // 1_000_000


class PriorityOrder:
    """Units in processing-completion order, oldest first."""

    def __init__(self) -> None:
        self._order: "OrderedDict[str, None]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._order))

    def index_of(self, unit_id: str) -> Optional[int]:
        if unit_id not in self._order:
            return None
        for index, known in enumerate(self._order):
            if known == unit_id:
                return index
        return None

    def priority_of(self, unit_id: str) -> int:
        """Position in the order, or -1 for units never processed."""
        index = self.index_of(unit_id)
        return -1 if index is None else index

    def move_to_end(self, unit_id: str) -> None:
        self._order[unit_id] = None
        self._order.move_to_end(unit_id)

    def retain(self, unit_ids: List[str]) -> None:
        """Forget units that are no longer part of the work set."""
        keep = set(unit_ids)
        for unit_id in [u for u in self._order if u not in keep]:
            del self._order[unit_id]

    def sort(self, unit_ids: List[str]) -> List[str]:
        """Return unit_ids ordered by ascending priority (stable)."""
        positions = {unit_id: index for index, unit_id in enumerate(self._order)}
        return sorted(unit_ids, key=lambda unit_id: positions.get(unit_id, -1))


class WorkSetResolver:
    """Resolves the ordered list of units of work for each cycle."""

    def __init__(
        self,
        identifiers: Union[str, List[str]],
        client: Any = None,
        prefix: bool = False,
        priority: Optional[PriorityOrder] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            identifiers: Unit ids (static mode) or log group prefixes
            client: Upstream client providing list_units_by_prefix
            prefix: Enable prefix discovery
            priority: Priority order to share; a fresh one by default
        """
        self.identifiers = normalize_identifiers(identifiers)
        self.prefix = prefix
        self.priority = priority if priority is not None else PriorityOrder()
        self._client = client

    def resolve(self) -> List[str]:
        """Return this cycle's units in processing order."""
        if not self.prefix:
            return list(self.identifiers)

        units: List[str] = []
        seen = set()
        for prefix in self.identifiers:
            for unit_id in self._discover(prefix):
                if unit_id not in seen:
                    seen.add(unit_id)
                    units.append(unit_id)

        logger.debug(f"Discovered {len(units)} log group(s) for prefixes {self.identifiers}")
        self.priority.retain(units)
        return self.priority.sort(units)

    def _discover(self, prefix: str) -> List[str]:
        found: List[str] = []
        next_token = None
        while True:
            names, next_token = self._client.list_units_by_prefix(prefix, next_token)
            found.extend(names)
            if not next_token:
                return found

    def mark_processed(self, unit_id: str) -> None:
        """Record that a unit finished processing in this cycle."""
        if self.prefix:
            self.priority.move_to_end(unit_id)


def determine_start_position(
    units: List[str],
    cursors: Dict[str, int],
    start_position: Union[str, int],
    now_ms: Optional[int] = None,
) -> None:
    """Assign a starting cursor to every unit not yet in the cursor map.

    Units already tracked are left untouched so restarts resume.

    Args:
        units: Units of work about to be polled
        cursors: Cursor map, mutated in place
        start_position: ``beginning``, ``end`` or seconds to look back
        now_ms: Current time in milliseconds, defaults to the wall clock
    """
    if now_ms is None:
        now_ms = now_millis()

    for unit_id in units:
        if unit_id in cursors:
            continue
        if start_position == "beginning":
            cursors[unit_id] = 0
        elif start_position == "end":
            cursors[unit_id] = now_ms
        else:
            cursors[unit_id] = now_ms - int(start_position) * 1000
        logger.debug(f"Starting {unit_id} at {cursors[unit_id]} ({start_position})")


def validate_log_streams(
    client: Any, log_group: str, streams: List[str], ignore_unavailable: bool
) -> List[str]:
    """Check that configured streams exist in the log group.

    Args:
        client: Upstream client providing list_available_units
        log_group: Log group the streams belong to
        streams: Configured stream names
        ignore_unavailable: Warn and drop missing streams instead of failing

    Returns:
        The streams that are available, in configured order

    Raises:
        ConfigError: If streams are missing and ignore_unavailable is False
    """
    available = set(client.list_available_units(log_group))
    unavailable = [s for s in streams if s not in available]

    if not unavailable:
        return list(streams)

    if not ignore_unavailable:
        raise ConfigError(
            f"Some of the specified log streams are not available: {unavailable}. "
            "Exiting because ignore_unavailable is set to false!"
        )

    logger.warning(
        f"The log streams {unavailable} are not available. "
        "They will be ignored."
    )
    return [s for s in streams if s in available]
