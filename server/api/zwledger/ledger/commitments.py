import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

from zwledger.crypto.hashing import check_amount, commitment_hash, digest_hex, normalize_identity, parse_digest
from zwledger.crypto.merkle import IncrementalAccumulator
from zwledger.errors import CapacityExceeded, IndexOutOfRange, JournalError
from zwledger.schemas.events import CommitmentAdded

logger = logging.getLogger(__name__)


class CommitmentRecord(NamedTuple):
    index: int
    commitment: bytes
    recipient: str
    amount: int

    def to_json(self) -> Dict:
        return {
            "index": self.index,
            "commitment": digest_hex(self.commitment),
            "recipient": self.recipient,
            "amount": self.amount,
        }


def check_range(start: int, length: int, count: int) -> None:
    if start < 0 or length < 0 or start + length > count:
        raise IndexOutOfRange(f"range [{start}, {start + length}) exceeds {count} commitments")


class CommitmentRecorder:
    """
    First-receipt policy. The first time an identity receives value through a
    transfer or a claim, Hash(identity, amount) becomes a leaf; later receipts
    are no-ops. Deposits never reach this class.

    plan() decides without mutating, apply() performs the insertion from the
    resulting event; record_if_first_receipt() is both in one call.
    """

    def __init__(self, accumulator: IncrementalAccumulator):
        self.accumulator = accumulator
        self._first_receipt: Dict[str, bool] = {}
        self._records: List[CommitmentRecord] = []

    def has_first_receipt(self, identity: str) -> bool:
        return self._first_receipt.get(normalize_identity(identity), False)

    def plan(self, identity: str, amount: int) -> Optional[CommitmentAdded]:
        identity = normalize_identity(identity)
        check_amount(amount)
        # zero-value receipts would let anyone burn another identity's only leaf
        if amount == 0 or self._first_receipt.get(identity, False):
            return None
        if self.accumulator.is_full:
            raise CapacityExceeded(f"accumulator full ({self.accumulator.capacity} leaves)")
        return CommitmentAdded(
            commitment=digest_hex(commitment_hash(identity, amount)),
            index=self.accumulator.next_index,
            recipient=identity,
            amount=amount,
        )

    def apply(self, ev: CommitmentAdded) -> CommitmentRecord:
        recipient = normalize_identity(ev.recipient)
        leaf = parse_digest(ev.commitment)
        if leaf != commitment_hash(recipient, ev.amount):
            raise JournalError(f"commitment {ev.commitment} does not match its recipient and amount")
        if ev.amount == 0 or self._first_receipt.get(recipient, False):
            raise JournalError(f"{recipient} is not eligible for a first-receipt commitment")
        if ev.index != self.accumulator.next_index:
            raise JournalError(f"commitment index {ev.index} != next index {self.accumulator.next_index}")

        index = self.accumulator.insert(leaf)
        self._first_receipt[recipient] = True
        rec = CommitmentRecord(index, leaf, recipient, ev.amount)
        self._records.append(rec)
        logger.info("commitment %d recorded for %s", index, recipient)
        return rec

    def record_if_first_receipt(self, identity: str, amount: int) -> Optional[CommitmentAdded]:
        ev = self.plan(identity, amount)
        if ev is not None:
            self.apply(ev)
        return ev

    def count(self) -> int:
        return len(self._records)

    def records(self, start: int, length: int) -> List[CommitmentRecord]:
        check_range(start, length, len(self._records))
        return self._records[start:start + length]

    def leaf_range(self, start: int, length: int) -> List[Tuple[str, int]]:
        return [(r.recipient, r.amount) for r in self.records(start, length)]
