import datetime as dt
from enum import Enum
from pydantic import BaseModel, Field
from .ledger import LedgerEntry


class CandidateRecord(BaseModel):
    """
    Structured fields extracted from one invoice's recognized text.

    Every field is independently optional. None means "not extracted", which
    the matcher treats as "not disqualifying"; it is never the same as 0 or "".
    """
    date: dt.date | None = None
    amount: float | None = Field(default=None, ge=0)
    price: float | None = Field(default=None, ge=0)
    product: str | None = Field(default=None, max_length=60)

    model_config = {"frozen": True}


class MatchResult(BaseModel):
    """Outcome of reconciling a candidate against a ledger snapshot"""
    matched: bool
    entry: LedgerEntry | None = None
    index: int | None = None  # Position of the matched entry in the ledger
    checks: dict[str, bool] = {}

    model_config = {"frozen": True}


class ItemStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.DONE, ItemStatus.ERROR)


class InvoiceItem(BaseModel):
    """
    Immutable snapshot of one invoice moving through the reconciliation pipeline.

    The pipeline publishes a new snapshot on every transition instead of
    mutating the previous one.
    """
    id: str
    source_name: str
    status: ItemStatus = ItemStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    raw_text: str | None = None
    candidate: CandidateRecord | None = None
    matched: bool | None = None  # None = not evaluated yet
    matched_entry: LedgerEntry | None = None
    error: str | None = None

    model_config = {"frozen": True}


class BatchCounts(BaseModel):
    """Per-status projection over the pipeline's items"""
    total: int = 0
    queued: int = 0
    processing: int = 0
    matched: int = 0  # done & matched
    unmatched: int = 0  # done & not matched
    error: int = 0
