import datetime as dt
from pydantic import BaseModel, field_validator


class LedgerEntry(BaseModel):
    """One already-normalized sales record the invoices are reconciled against"""
    date: dt.date | None = None
    product: str
    qty: float = 0.0
    price: float = 0.0
    revenue: float = 0.0
    region: str = ""

    model_config = {"frozen": True}

    @field_validator("date", mode="before")
    @classmethod
    def _truncate_to_day(cls, value):
        # Reconciliation compares calendar days, time-of-day is dropped
        if isinstance(value, dt.datetime):
            return value.date()
        return value
