from loguru import logger
from ..models.invoice import CandidateRecord
from .extractors import extract_amount, extract_date, extract_price, extract_product
from .text_normalizer import normalize


def build_candidate(text: str | None) -> CandidateRecord:
    """
    Run every field extractor over one invoice's recognized text.

    Never raises: a text with nothing recognizable yields a record whose
    fields are all None, which simply won't match any ledger entry.
    """
    normalized = normalize(text)

    candidate = CandidateRecord(
        date=extract_date(normalized),
        amount=extract_amount(normalized),
        price=extract_price(normalized),
        product=extract_product(normalized),
    )

    logger.debug(
        "Extracted candidate record",
        text_length=len(normalized),
        date=candidate.date,
        amount=candidate.amount,
        price=candidate.price,
        product=candidate.product,
    )

    return candidate
