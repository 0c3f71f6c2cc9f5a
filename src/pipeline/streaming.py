# src/pipeline/streaming.py
# Bulk operations report progress as newline-delimited JSON:
#
#   {"type": "progress", "processed": 3, "total": 11}
#   ...
#   {"type": "complete", "success": true, "importedCount": 10, ...}
#
# Exactly one `complete` record closes a healthy stream. Consumers treat that
# record as the only authoritative outcome; a stream that ends without one is
# reported as a failure.

import json
import logging
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from models.event_schema import validate_event
from shopify_admin.errors import StorefrontError

from .state import ItemError, StepResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

NDJSON = "application/x-ndjson"
NO_TERMINAL_EVENT = "no terminal event received"
GLOBAL_KEY = "_global"


class ItemRejected(Exception):
    """Raised by a per-item processor when the item cannot be attempted at all."""


class ItemOutcome(BaseModel):
    id: str
    warnings: List[str] = Field(default_factory=list)


class ProgressEvent(BaseModel):
    type: str = "progress"
    processed: int
    total: int


class CompleteEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "complete"
    success: bool
    imported_count: int = Field(0, alias="importedCount")
    failed_count: int = Field(0, alias="failedCount")
    total: int = 0
    processed: int = 0
    created_ids: List[str] = Field(default_factory=list, alias="createdIds")
    item_errors: List[ItemError] = Field(default_factory=list, alias="itemErrors")
    warnings: List[str] = Field(default_factory=list)
    message: str = ""


BulkEvent = Union[ProgressEvent, CompleteEvent]


def failed_stream(total: int, reason: str, message: str = "") -> Iterator[BulkEvent]:
    """Terminal-only stream for failures that happen before any item is attempted."""
    yield CompleteEvent(
        success=False,
        failed_count=total,
        total=total,
        processed=total,
        item_errors=[ItemError(key=GLOBAL_KEY, reason=reason)],
        message=message or reason,
    )


def stream_items(
    items: Sequence[Tuple[str, T]],
    process: Callable[[str, T], ItemOutcome],
    limiter=None,
    label: str = "items",
) -> Iterator[BulkEvent]:
    """Serial processing; one progress event per item, one complete event at the end."""
    total = len(items)
    created: List[str] = []
    errors: List[ItemError] = []
    warnings: List[str] = []
    processed = 0

    for key, item in items:
        try:
            if limiter is not None:
                with limiter():
                    outcome = process(key, item)
            else:
                outcome = process(key, item)
            created.append(outcome.id)
            warnings.extend(outcome.warnings)
        except (ItemRejected, StorefrontError) as exc:
            logger.warning("%s: %s failed: %s", label, key, exc)
            errors.append(ItemError(key=key, reason=str(exc)))
        except Exception as exc:
            logger.exception("%s: unexpected failure on %s", label, key)
            errors.append(ItemError(key=key, reason=f"unexpected error: {exc}"))
        processed += 1
        yield ProgressEvent(processed=processed, total=total)

    if errors:
        message = f"{len(created)} imported, {len(errors)} failed"
    else:
        message = f"{len(created)} {label} imported"
    yield CompleteEvent(
        success=len(created) > 0,
        imported_count=len(created),
        failed_count=len(errors),
        total=total,
        processed=processed,
        created_ids=created,
        item_errors=errors,
        warnings=warnings,
        message=message,
    )


# --------- wire format ---------
def encode_event(event: BulkEvent) -> str:
    return event.model_dump_json(by_alias=True) + "\n"


def encode_events(events: Iterable[BulkEvent]) -> Iterator[str]:
    for event in events:
        yield encode_event(event)


class NdjsonDecoder:
    """Incremental line splitter; partial trailing lines wait for the next chunk."""

    def __init__(self):
        self._buffer = ""

    def _parse(self, line: str) -> Optional[dict]:
        line = line.strip()
        if not line:
            return None
        try:
            record = json.loads(line)
        except ValueError:
            logger.debug("skipping malformed NDJSON line: %r", line[:200])
            return None
        ok, errs = validate_event(record)
        if not ok:
            logger.debug("skipping invalid event: %s", ",".join(errs))
            return None
        return record

    def feed(self, chunk: Union[str, bytes]) -> List[dict]:
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8")
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [r for r in (self._parse(line) for line in lines) if r is not None]

    def close(self) -> List[dict]:
        rest, self._buffer = self._buffer, ""
        record = self._parse(rest)
        return [record] if record is not None else []


def read_stream(
    chunks: Iterable[Union[str, bytes]],
    on_progress: Optional[Callable[[ProgressEvent], None]] = None,
) -> CompleteEvent:
    decoder = NdjsonDecoder()
    terminal: Optional[CompleteEvent] = None

    def handle(records: List[dict]) -> None:
        nonlocal terminal
        for record in records:
            if record["type"] == "progress":
                if on_progress is not None:
                    on_progress(ProgressEvent(**record))
            elif terminal is None:
                terminal = CompleteEvent.model_validate(record)
            else:
                logger.warning("ignoring extra complete event")

    for chunk in chunks:
        handle(decoder.feed(chunk))
    handle(decoder.close())

    if terminal is None:
        return CompleteEvent(
            success=False,
            item_errors=[ItemError(key=GLOBAL_KEY, reason=NO_TERMINAL_EVENT)],
            message=NO_TERMINAL_EVENT,
        )
    return terminal


def result_from_complete(event: CompleteEvent, ids_field: str = "product_ids") -> StepResult:
    return StepResult(
        success=event.success,
        message=event.message,
        errors=list(event.item_errors),
        warnings=list(event.warnings),
        payload={ids_field: list(event.created_ids)},
        details={
            "importedCount": event.imported_count,
            "failedCount": event.failed_count,
            "total": event.total,
        },
    )
