from zwledger.crypto.hashing import parse_digest
from zwledger.crypto.merkle import IncrementalAccumulator
from zwledger.errors import JournalError, LedgerError
from zwledger.ledger.book import FeeSchedule, ValueBook
from zwledger.ledger.commitments import CommitmentRecorder
from zwledger.ledger.nullifiers import NullifierRegistry
from zwledger.ledger.roots import RootValidityLedger
from zwledger.schemas.events import (
    Approved, CommitmentAdded, Deposited, LedgerEvent, NullifierSpent, Reminted, Transferred, Withdrawn,
)


class LedgerState:
    """
    All mutable ledger state in one place. Components receive it (or the parts
    they need) by reference; the only way to change it is apply(event), which
    is shared by live operations and journal replay.
    """

    def __init__(self, depth: int, token_id: int = 0, fees: FeeSchedule = FeeSchedule()):
        self.token_id = token_id
        self.roots = RootValidityLedger()
        self.accumulator = IncrementalAccumulator(depth, roots=self.roots)
        self.recorder = CommitmentRecorder(self.accumulator)
        self.nullifiers = NullifierRegistry()
        self.book = ValueBook(fees)

    @property
    def fees(self) -> FeeSchedule:
        return self.book.fees

    def apply(self, ev: LedgerEvent) -> None:
        try:
            self._apply(ev)
        except JournalError:
            raise
        except LedgerError as e:
            # an event that fails here was never validly planned
            raise JournalError(f"cannot apply {ev.kind}: {e.detail}") from e

    def _apply(self, ev: LedgerEvent) -> None:
        book = self.book
        if isinstance(ev, CommitmentAdded):
            self.recorder.apply(ev)
        elif isinstance(ev, Deposited):
            book.lock_underlying(ev.amount)
            book.credit(ev.to, ev.amount - ev.fee)
            book.credit(self.fees.collector, ev.fee)
        elif isinstance(ev, Transferred):
            if ev.spender is not None:
                book.spend_allowance(ev.sender, ev.spender, ev.amount)
            book.move(ev.sender, ev.to, ev.amount)
        elif isinstance(ev, Approved):
            book.set_allowance(ev.owner, ev.spender, ev.amount)
        elif isinstance(ev, Withdrawn):
            book.debit(ev.owner, ev.amount)
            book.credit(self.fees.collector, ev.fee)
            book.release_underlying(ev.amount - ev.fee)
        elif isinstance(ev, NullifierSpent):
            self.nullifiers.consume(parse_digest(ev.nullifier))
        elif isinstance(ev, Reminted):
            book.credit(self.fees.collector, ev.fee)
            book.credit(ev.sender, ev.relayer_fee)
            if ev.withdraw_underlying:
                book.release_underlying(ev.net_amount)
            else:
                book.credit(ev.to, ev.net_amount)
        else:
            raise JournalError(f"unknown event {ev!r}")
