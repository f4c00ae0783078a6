"""Duplicate-transaction detection and the bidirectional duplicate relation."""

import logging
from collections.abc import Callable, Iterable
from decimal import Decimal

from pydantic import BaseModel

from folio.models.transaction import DuplicateMatch, Transaction

logger = logging.getLogger(__name__)

SAME_DATE_POINTS = 40
NEXT_DAY_POINTS = 25
SAME_QUANTITY_POINTS = 30
SAME_PRICE_POINTS = 30
SIMILAR_PRICE_POINTS = 20
SAME_PRICE_TOLERANCE = Decimal("0.01")
SIMILAR_PRICE_TOLERANCE = Decimal("0.03")


class DuplicateDetector:
    """Scores transaction pairs for likely accidental re-import."""

    def __init__(self, threshold: int = 80, window_days: int = 3):
        self.threshold = threshold
        self.window_days = window_days

    def is_candidate(self, txn: Transaction, other: Transaction) -> bool:
        return (
            other.id != txn.id
            and other.symbol == txn.symbol
            and other.type == txn.type
            and abs((other.date - txn.date).days) <= self.window_days
        )

    def score_pair(self, txn: Transaction, existing: Transaction) -> DuplicateMatch:
        """Additive score of ``txn`` against an ``existing`` transaction."""
        score = 0
        reasons: list[str] = []

        days_apart = abs((existing.date - txn.date).days)
        if days_apart == 0:
            score += SAME_DATE_POINTS
            reasons.append("Same date")
        elif days_apart <= 1:
            score += NEXT_DAY_POINTS
            reasons.append("Within 1 day")

        if existing.quantity == txn.quantity:
            score += SAME_QUANTITY_POINTS
            reasons.append("Same quantity")

        price_diff = self._relative_price_diff(existing.price, txn.price)
        if price_diff is not None:
            if price_diff < SAME_PRICE_TOLERANCE:
                score += SAME_PRICE_POINTS
                reasons.append("Same price")
            elif price_diff < SIMILAR_PRICE_TOLERANCE:
                score += SIMILAR_PRICE_POINTS
                reasons.append("Similar price")

        return DuplicateMatch(transaction_id=existing.id, score=score, reasons=reasons)

    @staticmethod
    def _relative_price_diff(reference: Decimal, price: Decimal) -> Decimal | None:
        if reference == 0:
            return Decimal("0") if price == 0 else None
        return abs(reference - price) / reference

    def find_matches(
        self,
        txn: Transaction,
        existing: Iterable[Transaction],
        exclude_ids: Iterable[str] = (),
    ) -> list[DuplicateMatch]:
        """Likely duplicates of ``txn`` (score at or above the threshold), best first."""
        excluded = set(exclude_ids)
        matches = [
            self.score_pair(txn, other)
            for other in existing
            if other.id not in excluded and self.is_candidate(txn, other)
        ]
        matches = [m for m in matches if m.score >= self.threshold]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def best_match(
        self,
        txn: Transaction,
        existing: Iterable[Transaction],
        exclude_ids: Iterable[str] = (),
    ) -> DuplicateMatch | None:
        matches = self.find_matches(txn, existing, exclude_ids)
        return matches[0] if matches else None


class DuplicateLink(BaseModel):
    partner_id: str
    score: int


class DuplicatePairs:
    """The duplicate relation between transactions.

    Every mutation writes both sides, so a link from A to B is always matched
    by a link from B to A, or by B's link to a later duplicate that replaced A.
    ``changes()`` reports the rows to persist in one store transaction.
    """

    def __init__(self, links: dict[str, DuplicateLink] | None = None):
        self._links: dict[str, DuplicateLink] = dict(links or {})
        self._changed: set[str] = set()

    @classmethod
    def from_transactions(cls, transactions: Iterable[Transaction]) -> "DuplicatePairs":
        links = {
            txn.id: DuplicateLink(partner_id=txn.duplicate_of_id, score=txn.duplicate_score or 0)
            for txn in transactions
            if txn.is_duplicate_flag and txn.duplicate_of_id
        }
        return cls(links)

    def partner_of(self, txn_id: str) -> str | None:
        link = self._links.get(txn_id)
        return link.partner_id if link else None

    def score_of(self, txn_id: str) -> int | None:
        link = self._links.get(txn_id)
        return link.score if link else None

    def referrers(self, txn_id: str) -> list[str]:
        return sorted(tid for tid, link in self._links.items() if link.partner_id == txn_id)

    def link(self, a: str, b: str, score: int) -> None:
        if a == b:
            raise ValueError("a transaction cannot duplicate itself")
        self._set(a, DuplicateLink(partner_id=b, score=score))
        self._set(b, DuplicateLink(partner_id=a, score=score))

    def clear(self, txn_id: str) -> None:
        self._set(txn_id, None)

    def remove(
        self,
        deleted_id: str,
        rematch: Callable[[str], DuplicateMatch | None],
    ) -> None:
        """Drop a transaction from the relation and resolve whoever pointed at it.

        ``rematch`` finds the best remaining duplicate for a survivor, with the
        deleted transaction already excluded. Survivors without one are
        unflagged; the others are repointed.
        """
        self._links.pop(deleted_id, None)
        self._changed.discard(deleted_id)
        for survivor in self.referrers(deleted_id):
            match = rematch(survivor)
            if match is None or match.transaction_id == deleted_id:
                self.clear(survivor)
                continue
            self._set(survivor, DuplicateLink(partner_id=match.transaction_id, score=match.score))
            if self.partner_of(match.transaction_id) is None:
                self._set(match.transaction_id, DuplicateLink(partner_id=survivor, score=match.score))

    def dangling(self, existing_ids: Iterable[str]) -> list[str]:
        """Ids whose link targets a transaction that no longer exists."""
        known = set(existing_ids)
        return sorted(tid for tid, link in self._links.items() if link.partner_id not in known)

    def changes(self) -> dict[str, DuplicateLink | None]:
        return {tid: self._links.get(tid) for tid in sorted(self._changed)}

    def _set(self, txn_id: str, link: DuplicateLink | None) -> None:
        if link is None:
            self._links.pop(txn_id, None)
        else:
            self._links[txn_id] = link
        self._changed.add(txn_id)
