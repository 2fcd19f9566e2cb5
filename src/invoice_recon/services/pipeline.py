"""
Reconciliation pipeline: recognition -> extraction -> matching, per invoice.

Each submitted invoice becomes an InvoiceItem that moves through

    queued -> processing -> done | error

Recognition runs as one asyncio task per item (bounded by max_concurrency).
Tasks never touch the item list: they send messages over a queue back to the
pipeline, which is the single owner of the items, applies each message as a
state transition and publishes the resulting immutable snapshot to listeners.

Cancellation policy:
- an engine call that is cancelled marks its item as error
- cancelling a whole batch marks its in-flight (processing) items as error,
  items that were never dispatched stay queued, results already computed
  when the cancel arrives are still applied
"""

import asyncio
import uuid
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from loguru import logger

from ..models.invoice import BatchCounts, CandidateRecord, InvoiceItem, ItemStatus, MatchResult
from ..models.ledger import LedgerEntry
from .candidate_builder import build_candidate
from .matcher import InvoiceMatcher
from .recognition import ProgressCallback, RecognitionEngine

Listener = Callable[[InvoiceItem], None]
Recognizer = Callable[[ProgressCallback], Awaitable[str]]

_TRANSITIONS = {
    ItemStatus.QUEUED: {ItemStatus.PROCESSING},
    ItemStatus.PROCESSING: {ItemStatus.DONE, ItemStatus.ERROR},
    ItemStatus.DONE: set(),
    ItemStatus.ERROR: set(),
}


@dataclass(frozen=True)
class _Started:
    item_id: str


@dataclass(frozen=True)
class _Progress:
    item_id: str
    percent: int


@dataclass(frozen=True)
class _Completed:
    item_id: str
    raw_text: str
    candidate: CandidateRecord
    result: MatchResult


@dataclass(frozen=True)
class _Failed:
    item_id: str
    error: str


_BATCH_DONE = object()


def summarize(items: Iterable[InvoiceItem]) -> BatchCounts:
    """Count items per status; done items are split by match verdict"""
    counts = BatchCounts()
    for item in items:
        counts.total += 1
        if item.status == ItemStatus.QUEUED:
            counts.queued += 1
        elif item.status == ItemStatus.PROCESSING:
            counts.processing += 1
        elif item.status == ItemStatus.ERROR:
            counts.error += 1
        elif item.matched:
            counts.matched += 1
        else:
            counts.unmatched += 1
    return counts


def _passthrough(text: str) -> Recognizer:
    async def recognize(on_progress: ProgressCallback) -> str:
        on_progress(100)
        return text

    return recognize


class ReconciliationPipeline:
    """
    Tracks invoice items and reconciles them against a ledger snapshot.

    Items keep submission order whatever order they complete in, and an item
    that reached done or error is never modified again.
    """

    def __init__(
        self,
        engine: Optional[RecognitionEngine] = None,
        matcher: Optional[InvoiceMatcher] = None,
        max_concurrency: int = 1,
        recognition_timeout: Optional[float] = None,
    ):
        self.engine = engine
        self.matcher = matcher or InvoiceMatcher()
        self.max_concurrency = max(1, max_concurrency)
        self.recognition_timeout = recognition_timeout
        self._items: list[InvoiceItem] = []
        self._positions: dict[str, int] = {}
        self._listeners: list[Listener] = []
        self._active_batches = 0

    @property
    def items(self) -> tuple[InvoiceItem, ...]:
        return tuple(self._items)

    def get(self, item_id: str) -> Optional[InvoiceItem]:
        position = self._positions.get(item_id)
        return None if position is None else self._items[position]

    def counts(self) -> BatchCounts:
        return summarize(self._items)

    def subscribe(self, listener: Listener) -> None:
        """Register a callable receiving every new item snapshot"""
        self._listeners.append(listener)

    def clear(self) -> None:
        """Drop every item; refused while a batch is running"""
        if self._active_batches:
            raise RuntimeError("Cannot clear items while a batch is in flight")
        self._items.clear()
        self._positions.clear()

    def enqueue(self, source_names: Iterable[str]) -> list[InvoiceItem]:
        """Append one queued item per source name"""
        created = []
        for name in source_names:
            item = InvoiceItem(id=uuid.uuid4().hex, source_name=name)
            self._positions[item.id] = len(self._items)
            self._items.append(item)
            self._notify(item)
            created.append(item)
        return created

    async def process_images(
        self,
        files: Sequence[tuple[str, bytes]],
        ledger: Sequence[LedgerEntry],
    ) -> list[InvoiceItem]:
        """
        Recognize and reconcile a batch of invoice images.

        Args:
            files: (source name, image bytes) pairs, in submission order
            ledger: Reference ledger; snapshotted for the whole batch

        Returns:
            Final snapshots of the batch's items, in submission order
        """
        if self.engine is None:
            raise RuntimeError("No recognition engine configured")
        items = self.enqueue(name for name, _ in files)
        recognizers = [partial(self.engine.recognize, image) for _, image in files]
        return await self._run(items, recognizers, ledger)

    async def process_texts(
        self,
        texts: Sequence[tuple[str, str]],
        ledger: Sequence[LedgerEntry],
    ) -> list[InvoiceItem]:
        """Reconcile a batch of already-recognized texts, same lifecycle as images"""
        items = self.enqueue(name for name, _ in texts)
        recognizers = [_passthrough(text) for _, text in texts]
        return await self._run(items, recognizers, ledger)

    async def _run(
        self,
        items: list[InvoiceItem],
        recognizers: list[Recognizer],
        ledger: Sequence[LedgerEntry],
    ) -> list[InvoiceItem]:
        snapshot = tuple(ledger)
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        batch_cancelled = False

        # Engines may report progress from worker threads
        def send(message) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, message)

        async def work(item_id: str, recognize: Recognizer) -> None:
            async with semaphore:
                send(_Started(item_id))
                try:
                    text = await self._recognize(recognize, lambda percent: send(_Progress(item_id, percent)))
                except asyncio.CancelledError:
                    send(_Failed(item_id, "Batch cancelled" if batch_cancelled else "Recognition cancelled"))
                    raise
                except Exception as e:
                    logger.error("Recognition failed", item_id=item_id, error=str(e))
                    send(_Failed(item_id, str(e) or e.__class__.__name__))
                    return

                candidate = build_candidate(text)
                result = self.matcher.match(candidate, snapshot)
                send(_Completed(item_id, text or "", candidate, result))

        logger.info("Reconciliation batch started", items=len(items), ledger_size=len(snapshot))
        self._active_batches += 1

        tasks = [asyncio.create_task(work(item.id, recognize)) for item, recognize in zip(items, recognizers)]
        producers = asyncio.gather(*tasks, return_exceptions=True)
        producers.add_done_callback(lambda _: send(_BATCH_DONE))

        try:
            while True:
                message = await queue.get()
                if message is _BATCH_DONE:
                    break
                self._apply(message)
        finally:
            if not producers.done():
                batch_cancelled = True
                producers.cancel()
                # Results sent before the cancel are still pending loop callbacks
                await asyncio.wait(tasks)
                await asyncio.sleep(0)
                while not queue.empty():
                    message = queue.get_nowait()
                    if message is not _BATCH_DONE:
                        self._apply(message)
                for item in items:
                    if self.get(item.id).status == ItemStatus.PROCESSING:
                        self._apply(_Failed(item.id, "Batch cancelled"))
            self._active_batches -= 1

        # Extraction and matching never raise on bad text, anything here is a bug
        for outcome in producers.result():
            if isinstance(outcome, Exception):
                raise outcome

        finished = [self.get(item.id) for item in items]
        logger.info("Reconciliation batch finished", **summarize(finished).model_dump())
        return finished

    async def _recognize(self, recognize: Recognizer, on_progress: ProgressCallback) -> str:
        if self.recognition_timeout:
            return await asyncio.wait_for(recognize(on_progress), timeout=self.recognition_timeout)
        return await recognize(on_progress)

    def _apply(self, message) -> None:
        position = self._positions.get(message.item_id)
        if position is None:
            logger.warning("Message for unknown item", item_id=message.item_id)
            return
        current = self._items[position]

        if isinstance(message, _Progress):
            if current.status != ItemStatus.PROCESSING:
                return
            percent = min(100, max(current.progress, int(message.percent)))
            if percent == current.progress:
                return
            updated = current.model_copy(update={"progress": percent})
        elif isinstance(message, _Started):
            updated = self._transition(current, ItemStatus.PROCESSING, progress=0)
        elif isinstance(message, _Completed):
            updated = self._transition(
                current,
                ItemStatus.DONE,
                progress=100,
                raw_text=message.raw_text,
                candidate=message.candidate,
                matched=message.result.matched,
                matched_entry=message.result.entry,
            )
        else:
            updated = self._transition(current, ItemStatus.ERROR, progress=0, error=message.error)

        if updated is None:
            return
        self._items[position] = updated
        self._notify(updated)

    def _transition(self, current: InvoiceItem, status: ItemStatus, **changes) -> Optional[InvoiceItem]:
        if status not in _TRANSITIONS[current.status]:
            logger.warning(
                "Ignoring invalid item transition",
                item_id=current.id,
                current=current.status.value,
                requested=status.value,
            )
            return None

        logger.info(
            "Invoice item transition",
            item_id=current.id,
            source_name=current.source_name,
            status=status.value,
            matched=changes.get("matched"),
        )
        return current.model_copy(update={"status": status, **changes})

    def _notify(self, item: InvoiceItem) -> None:
        for listener in self._listeners:
            try:
                listener(item)
            except Exception as e:
                # A broken listener must not corrupt item state
                logger.warning("Pipeline listener failed", item_id=item.id, error=str(e))


_default_pipeline: Optional[ReconciliationPipeline] = None


def get_pipeline() -> ReconciliationPipeline:
    """
    Get the application-wide pipeline instance.

    Wired from settings: recognition engine, match tolerances, concurrency,
    timeout, and the Service Bus publisher as a listener.
    """
    global _default_pipeline
    if _default_pipeline is None:
        from ..core.config import settings
        from .events.event_publisher import get_event_publisher
        from .matcher import create_matcher
        from .recognition import get_recognition_engine

        _default_pipeline = ReconciliationPipeline(
            engine=get_recognition_engine(),
            matcher=create_matcher(),
            max_concurrency=settings.pipeline_max_concurrency,
            recognition_timeout=settings.recognition_timeout_seconds,
        )
        _default_pipeline.subscribe(get_event_publisher())
    return _default_pipeline
