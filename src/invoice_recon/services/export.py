"""
Tabular export of reconciliation results (one row per invoice item).
"""

import csv
import io
from typing import Iterable
from ..models.invoice import InvoiceItem

EXPORT_COLUMNS = ["file", "status", "match", "product_ocr", "price_ocr", "amount_ocr", "date_ocr"]

DEFAULT_MATCH_LABELS = {True: "matched", False: "unmatched", None: "—"}


def export_rows(items: Iterable[InvoiceItem], labels: dict = None) -> list[dict]:
    """Flatten item snapshots; absent fields become empty cells"""
    labels = labels or DEFAULT_MATCH_LABELS
    rows = []
    for item in items:
        candidate = item.candidate
        rows.append({
            "file": item.source_name,
            "status": item.status.value,
            "match": labels[item.matched],
            "product_ocr": (candidate.product or "") if candidate else "",
            "price_ocr": "" if candidate is None or candidate.price is None else candidate.price,
            "amount_ocr": "" if candidate is None or candidate.amount is None else candidate.amount,
            "date_ocr": candidate.date.isoformat() if candidate and candidate.date else "",
        })
    return rows


def to_csv(items: Iterable[InvoiceItem], labels: dict = None) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(export_rows(items, labels))
    return buffer.getvalue()
