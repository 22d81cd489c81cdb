"""
Sequential batch processing of address rows.

Each row is turned into an address string, resolved, and enriched. One bad
row never stops the run: its failure is stored on the item alongside the
original input so it can be retried or exported.
"""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from tqdm import tqdm

from ..enrichment.models import EnrichmentResult, EnrichmentSpec
from ..service import LocationService
from ..utils.errors import BatchAbortedError, InvalidQueryError, LocationNotFoundError

logger = logging.getLogger(__name__)

# Per-address estimate used before the first item finishes
BASE_SECONDS_PER_ITEM = 0.8
SECONDS_PER_ENRICHMENT = 0.3

_WHITESPACE = re.compile(r"\s+")


class BatchState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class FailureReason(StrEnum):
    EMPTY_ADDRESS = "empty_address"
    NOT_FOUND = "not_found"
    INVALID_QUERY = "invalid_query"
    ENRICHMENT_ERROR = "enrichment_error"


@dataclass(frozen=True)
class BatchFailure:
    """Why one row produced no result; keeps the row as it was given."""
    reason: FailureReason
    message: str
    input: Any = None


@dataclass
class BatchItem:
    index: int
    row: Any
    address: str
    outcome: EnrichmentResult | BatchFailure | None = None

    @property
    def processed(self) -> bool:
        return self.outcome is not None

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, EnrichmentResult)

    @property
    def failure(self) -> Optional[BatchFailure]:
        return self.outcome if isinstance(self.outcome, BatchFailure) else None

    def label(self) -> str:
        return self.address or f"row {self.index}"


@dataclass(frozen=True)
class BatchProgress:
    processed_count: int
    total_count: int
    current_item_label: str
    elapsed_seconds: float
    estimated_remaining_seconds: float

    @property
    def fraction(self) -> float:
        return self.processed_count / self.total_count if self.total_count else 1.0


@dataclass
class BatchRun:
    items: list[BatchItem] = field(default_factory=list)
    specs: tuple[EnrichmentSpec, ...] = ()
    state: BatchState = BatchState.IDLE
    current_index: int = 0
    elapsed_seconds: float = 0.0
    estimated_remaining_seconds: float = 0.0
    abort_reason: Optional[str] = None

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def processed_count(self) -> int:
        return sum(1 for item in self.items if item.processed)

    def results(self) -> list[EnrichmentResult]:
        return [item.outcome for item in self.items if item.ok]

    def failed_items(self) -> list[BatchItem]:
        return [item for item in self.items if item.failure is not None]

    def raise_for_state(self) -> None:
        """Raise ``BatchAbortedError`` if the run was aborted."""
        if self.state == BatchState.ABORTED:
            raise BatchAbortedError(self.abort_reason or "aborted", completed=self.processed_count)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    text = _WHITESPACE.sub(" ", str(value)).strip()
    if text.lower() in ("nan", "none", "null"):
        return ""
    return text


class BatchRunner:
    """
    Process rows one after another through a ``LocationService``.

    Args:
        service: Resolves and enriches a single address
        address_columns: Ordered ``{field: column}`` mapping (or a list of
            columns) whose non-blank values are joined into the address.
            Without it a string row is used as is and a mapping row uses its
            first column.
        clock: Monotonic seconds; injectable for tests
        show_progress: Display a tqdm progress bar
        on_progress: Called with a ``BatchProgress`` after every item
    """

    def __init__(
        self,
        service: LocationService,
        address_columns: Mapping[str, str] | Sequence[str] | None = None,
        clock: Callable[[], float] = time.perf_counter,
        show_progress: bool = False,
        on_progress: Optional[Callable[[BatchProgress], None]] = None,
    ):
        self.service = service
        if isinstance(address_columns, Mapping):
            self.address_columns = list(address_columns.values())
        else:
            self.address_columns = list(address_columns or [])
        self.clock = clock
        self.show_progress = show_progress
        self.on_progress = on_progress
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._run: Optional[BatchRun] = None
        self._current_label = ""

    @property
    def run(self) -> Optional[BatchRun]:
        return self._run

    @property
    def state(self) -> BatchState:
        return self._run.state if self._run is not None else BatchState.IDLE

    @property
    def progress(self) -> BatchProgress:
        with self._lock:
            run = self._run
            if run is None:
                return BatchProgress(0, 0, "", 0.0, 0.0)
            return BatchProgress(
                processed_count=run.processed_count,
                total_count=run.total_count,
                current_item_label=self._current_label,
                elapsed_seconds=run.elapsed_seconds,
                estimated_remaining_seconds=run.estimated_remaining_seconds,
            )

    def cancel(self) -> bool:
        """
        Stop the running batch before its next item.

        Only a batch that is already RUNNING can be cancelled; returns
        False when there was nothing to stop.
        """
        with self._lock:
            if self._run is None or self._run.state != BatchState.RUNNING:
                logger.debug("cancel() ignored: no batch is running")
                return False
            self._cancel.set()
            return True

    def build_address(self, row: Any) -> str:
        if isinstance(row, Mapping):
            if self.address_columns:
                values = [row.get(column) for column in self.address_columns]
            else:
                values = [next(iter(row.values()), None)]
        else:
            values = [row]
        return ", ".join(part for part in map(_clean, values) if part)

    def _missing_columns(self, rows: list[Any]) -> list[str]:
        mapped = [row for row in rows if isinstance(row, Mapping)]
        if not self.address_columns or not mapped:
            return []
        present: set[str] = set()
        for row in mapped:
            present.update(row.keys())
        return [column for column in self.address_columns if column not in present]

    def _process(self, item: BatchItem, specs: list[EnrichmentSpec]) -> EnrichmentResult | BatchFailure:
        if not item.address:
            return BatchFailure(FailureReason.EMPTY_ADDRESS, "Row has no address", item.row)
        try:
            location = self.service.resolve(item.address)
            return self.service.enrich(location, specs)
        except InvalidQueryError as e:
            return BatchFailure(FailureReason.INVALID_QUERY, str(e), item.row)
        except LocationNotFoundError as e:
            return BatchFailure(FailureReason.NOT_FOUND, str(e), item.row)
        except Exception as e:
            logger.error(f"Item {item.index} ('{item.label()}') failed: {type(e).__name__}: {e}")
            return BatchFailure(FailureReason.ENRICHMENT_ERROR, f"{type(e).__name__}: {e}", item.row)

    def _notify(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.progress)

    def start(self, inputs: Iterable[Any], specs: Iterable[EnrichmentSpec]) -> BatchRun:
        """
        Process every input in order and return the finished run.

        The run ends COMPLETED when every item was attempted, or ABORTED on
        cancellation or when none of the address columns exist in the input.
        """
        if self.state == BatchState.RUNNING:
            raise RuntimeError("A batch is already running on this runner")

        rows = list(inputs)
        specs = list(specs)
        items = [BatchItem(index=i, row=row, address=self.build_address(row)) for i, row in enumerate(rows)]
        run = BatchRun(items=items, specs=tuple(specs), state=BatchState.RUNNING)
        run.estimated_remaining_seconds = len(items) * (BASE_SECONDS_PER_ITEM + SECONDS_PER_ENRICHMENT * len(specs))
        with self._lock:
            self._cancel.clear()
            self._run = run
            self._current_label = ""

        missing = self._missing_columns(rows)
        if missing and len(missing) < len(self.address_columns):
            logger.warning(f"Address columns not found in input, building addresses without them: {missing}")
        elif missing:
            run.state = BatchState.ABORTED
            run.abort_reason = f"Address columns not found in input: {missing}"
            run.estimated_remaining_seconds = 0.0
            logger.error(run.abort_reason)
            return run

        logger.info(f"Starting batch of {len(items)} rows with {len(specs)} enrichments")
        started = self.clock()
        with tqdm(total=len(items), desc="Enriching addresses", disable=not self.show_progress) as pbar:
            for item in items:
                if self._cancel.is_set():
                    run.state = BatchState.ABORTED
                    run.abort_reason = "Cancelled"
                    break

                with self._lock:
                    run.current_index = item.index
                    self._current_label = item.label()
                outcome = self._process(item, specs)

                processed = item.index + 1
                elapsed = self.clock() - started
                with self._lock:
                    item.outcome = outcome
                    run.elapsed_seconds = elapsed
                    run.estimated_remaining_seconds = (len(items) - processed) * (elapsed / processed)
                pbar.update(1)
                self._notify()
            else:
                run.state = BatchState.COMPLETED

        if run.state == BatchState.ABORTED:
            run.estimated_remaining_seconds = 0.0
        failed = len(run.failed_items())
        logger.info(
            f"Batch {run.state}: {run.processed_count}/{run.total_count} processed, "
            f"{failed} failed, {run.elapsed_seconds:.1f}s"
        )
        return run

    def retry_failed(self, run: BatchRun, specs: Optional[Iterable[EnrichmentSpec]] = None) -> BatchRun:
        """Start a new run over the original inputs of ``run``'s failed items."""
        rows = [item.row for item in run.failed_items()]
        return self.start(rows, run.specs if specs is None else specs)
