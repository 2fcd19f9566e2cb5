"""
Reconciliation rules for matching extracted invoices against the sales ledger.

Centralizes the matching policy so it can be tested and tuned independently
of OCR and of the HTTP layer. The policy is conjunctive and order-sensitive:
the first ledger entry on which every field check passes is the match.
"""

from typing import Optional, Sequence
from loguru import logger
from pydantic import BaseModel
from ..models.invoice import CandidateRecord, MatchResult
from ..models.ledger import LedgerEntry


def similar_text(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive containment in either direction; empty never matches"""
    if not a or not b:
        return False
    a, b = a.lower(), b.lower()
    return a in b or b in a


def close_number(
    a: float,
    b: float,
    relative_tolerance: float = 0.05,
    absolute_tolerance: float = 1.0,
) -> bool:
    """
    True when |a - b| <= max(absolute_tolerance, relative_tolerance * max(a, b)).

    The bound is inclusive: 100 vs 105 is within 5%, 100 vs 106 is not.
    """
    return abs(a - b) <= max(absolute_tolerance, relative_tolerance * max(a, b))


class MatchRulesConfig(BaseModel):
    """Numeric tolerances for the price and amount checks (loaded from environment)"""
    relative_tolerance: float = 0.05
    absolute_tolerance: float = 1.0


class InvoiceMatcher:
    """
    Reconciles a candidate record against a ledger snapshot.

    Field checks, all of which must pass:
    - product: textual containment either way (always evaluated)
    - price: within tolerance of the entry's price, vacuous if not extracted
    - amount: within tolerance of the entry's revenue, vacuous if not extracted
    - date: same calendar day, vacuous if either side has no date

    Ledger entries are never ranked against each other. If several entries
    pass, the earliest one in ledger order is returned.
    """

    def __init__(self, config: MatchRulesConfig = None):
        self.config = config or MatchRulesConfig()

    def _close(self, a: float, b: float) -> bool:
        return close_number(
            a,
            b,
            relative_tolerance=self.config.relative_tolerance,
            absolute_tolerance=self.config.absolute_tolerance,
        )

    def check_entry(self, candidate: CandidateRecord, entry: LedgerEntry) -> dict[str, bool]:
        """Evaluate every field check of one ledger entry"""
        checks = {}
        checks["product_similar"] = similar_text(entry.product, candidate.product)
        checks["price_within_tolerance"] = (
            True if candidate.price is None else self._close(entry.price, candidate.price)
        )
        checks["amount_within_tolerance"] = (
            True if candidate.amount is None else self._close(entry.revenue, candidate.amount)
        )
        checks["date_equal"] = (
            True if candidate.date is None or entry.date is None else entry.date == candidate.date
        )
        return checks

    def match(self, candidate: CandidateRecord, ledger: Sequence[LedgerEntry]) -> MatchResult:
        """
        Find the first ledger entry that agrees with the candidate.

        Args:
            candidate: Fields extracted from one invoice
            ledger: Ordered, read-only ledger snapshot

        Returns:
            MatchResult with the matched entry, its ledger index and the check
            results, or matched=False when no entry passes every check
        """
        for index, entry in enumerate(ledger):
            checks = self.check_entry(candidate, entry)
            if all(checks.values()):
                logger.info(
                    "Invoice matched ledger entry",
                    index=index,
                    product=entry.product,
                    candidate_product=candidate.product,
                )
                return MatchResult(matched=True, entry=entry, index=index, checks=checks)

        logger.info(
            "No ledger entry matched invoice",
            candidate_product=candidate.product,
            ledger_size=len(ledger),
        )
        return MatchResult(matched=False)


def create_matcher(
    relative_tolerance: float = None,
    absolute_tolerance: float = None,
) -> InvoiceMatcher:
    """
    Factory function to create a matcher with optional overrides.

    Uses environment variables as defaults, can be overridden per request.
    """
    from ..core.config import settings

    config = MatchRulesConfig(
        relative_tolerance=relative_tolerance if relative_tolerance is not None else settings.match_relative_tolerance,
        absolute_tolerance=absolute_tolerance if absolute_tolerance is not None else settings.match_absolute_tolerance,
    )
    return InvoiceMatcher(config)


def match(candidate: CandidateRecord, ledger: Sequence[LedgerEntry]) -> MatchResult:
    """Match with the default tolerances (5%, floor of 1 unit)"""
    return InvoiceMatcher().match(candidate, ledger)
