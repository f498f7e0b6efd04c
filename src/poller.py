"""Poll loop module.

Runs the polling cycle until shutdown: resolve the work set, page through
every unit in order, recover from quota violations through the backoff
controller, then sleep for the configured interval.

Shutdown is only observed while sleeping. A page fetch that is in
progress always completes first.
"""

import enum
import logging
import threading
from typing import Any, Dict, List, Optional

from backoff import BackoffController, stoppable_sleep
from config import Config
from logs_client import QuotaExceededError
from paginator import Paginator, group_source, stream_source
from resolver import WorkSetResolver, determine_start_position

logger = logging.getLogger(__name__)


class PollerState(enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    THROTTLED = "throttled"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class CycleOutcome(enum.Enum):
    COMPLETED = "completed"
    THROTTLED = "throttled"


class Poller:
    """Single-threaded polling engine for one configured input.

    Owns the cursor map, the backoff controller and the priority order;
    nothing is shared between Poller instances.
    """

    def __init__(
        self,
        config: Config,
        client: Any,
        sink: Any,
        codec: Any,
        offset_store: Any,
        stop_event: threading.Event,
        resolver: Optional[WorkSetResolver] = None,
    ) -> None:
        """Initialize the poller.

        Args:
            config: Configuration object
            client: Upstream client (fetch_page, list_units_by_prefix)
            sink: Output sink receiving decoded records
            codec: Message decoder
            offset_store: Cursor map persistence
            stop_event: Event signalling shutdown
            resolver: Work-set resolver; built from config when omitted
        """
        self._config = config
        self._offset_store = offset_store
        self._stop_event = stop_event
        self.cursors: Dict[str, int] = {}
        self.state = PollerState.IDLE
        self._start_positions_pending = True

        input_config = config.input
        self.resolver = resolver if resolver is not None else WorkSetResolver(
            input_config.identifiers, client, prefix=input_config.log_group_prefix
        )
        self.backoff = BackoffController(
            input_config.backoff_time, input_config.max_failed_runs, stop_event
        )
        describe_source = (
            stream_source(input_config.log_group[0])
            if input_config.stream_mode
            else group_source
        )
        self.paginator = Paginator(
            client.fetch_page,
            codec,
            sink,
            offset_store,
            self.backoff,
            max_pages=input_config.max_pages,
            describe_source=describe_source,
        )

    def _transition(self, state: PollerState) -> None:
        if state is not self.state:
            logger.debug(f"Poller state {self.state.value} -> {state.value}")
            self.state = state

    def run(self) -> None:
        """Run the poll loop until the stop event is set.

        Errors other than quota violations propagate to the caller.
        """
        self.cursors = self._offset_store.load()
        self._start_positions_pending = True

        while not self._stop_event.is_set():
            outcome = self.run_cycle()

            if outcome is CycleOutcome.THROTTLED and self.backoff.is_enabled():
                self.backoff.on_quota_violation()

            self._transition(PollerState.SLEEPING)
            if stoppable_sleep(self._config.input.interval, self._stop_event):
                break

        self._transition(PollerState.STOPPED)
        logger.info("Poller stopped")

    def run_cycle(self) -> CycleOutcome:
        """Poll every unit of the current work set once.

        A quota violation aborts the remaining units of this cycle.

        Returns:
            COMPLETED, or THROTTLED if the upstream reported a quota violation
        """
        self._transition(PollerState.RESOLVING)
        try:
            units = self.resolver.resolve()
            if self._start_positions_pending:
                determine_start_position(
                    units, self.cursors, self._config.input.start_position
                )
                self._start_positions_pending = False

            self._process_units(units)
        except QuotaExceededError as e:
            self._transition(PollerState.THROTTLED)
            logger.warning(f"Reached service quota: {e}")
            return CycleOutcome.THROTTLED

        return CycleOutcome.COMPLETED

    def _process_units(self, units: List[str]) -> None:
        for unit_id in units:
            self._transition(PollerState.FETCHING)
            pages = self.paginator.process_unit(unit_id, self.cursors)
            logger.debug(f"Processed {pages} page(s) for {unit_id}")
            self.resolver.mark_processed(unit_id)
