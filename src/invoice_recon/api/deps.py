from pydantic import BaseModel, Field
from ..models.invoice import BatchCounts, CandidateRecord, InvoiceItem
from ..models.ledger import LedgerEntry


class ParseRequest(BaseModel):
    text: str = ""  # Raw recognized invoice text


class MatchRequest(BaseModel):
    candidate: CandidateRecord
    ledger: list[LedgerEntry] = Field(default_factory=list)
    relative_tolerance: float | None = None  # Optional per-request overrides
    absolute_tolerance: float | None = None


class InvoiceText(BaseModel):
    source_name: str
    text: str = ""


class TextBatchRequest(BaseModel):
    texts: list[InvoiceText]
    ledger: list[LedgerEntry] = Field(default_factory=list)


class BatchResponse(BaseModel):
    items: list[InvoiceItem]
    counts: BatchCounts
