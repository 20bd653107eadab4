import logging, threading
from typing import Callable, List, Optional, Sequence, Tuple

from zwledger.config import Settings
from zwledger.crypto.hashing import check_amount, digest_hex, normalize_identity, parse_digest
from zwledger.crypto.merkle import MerkleProof
from zwledger.crypto.verifier import ProofVerifier, load_verifier
from zwledger.errors import IndexOutOfRange
from zwledger.ledger.book import FeeSchedule, require_recipient
from zwledger.ledger.claims import ClaimProtocol, ClaimStage, RemintRequest
from zwledger.ledger.commitments import CommitmentRecord
from zwledger.ledger.state import LedgerState
from zwledger.schemas.events import Approved, Deposited, LedgerEvent, Transferred, Withdrawn
from zwledger.store.journal import Journal, MemoryJournal, open_journal

logger = logging.getLogger(__name__)

Subscriber = Callable[[LedgerEvent], None]


class ZWLedger:
    """
    The coordinating module. Owns the LedgerState, the journal and the proof
    verifier, and serializes every mutation behind one lock:

        plan (all checks, no mutation) -> journal.append -> state.apply

    If planning or the journal write fails, state is untouched.
    """

    def __init__(self, settings: Optional[Settings] = None, *, journal: Optional[Journal] = None,
                 verifier: Optional[ProofVerifier] = None):
        self.settings = settings or Settings()
        s = self.settings
        self.state = LedgerState(s.tree_depth, token_id=s.token_id, fees=FeeSchedule.from_settings(s))
        self.journal = journal if journal is not None else MemoryJournal()
        self.verifier = verifier if verifier is not None else load_verifier(s)
        self.claims = ClaimProtocol(self.state, self.verifier)
        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []
        self._events: List[LedgerEvent] = []
        self._replay()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ZWLedger":
        return cls(settings, journal=open_journal(settings), verifier=load_verifier(settings))

    def _replay(self) -> None:
        n = 0
        for ev in self.journal.replay():
            self.state.apply(ev)
            self._events.append(ev)
            n += 1
        if n:
            logger.info("replayed %d events: %d commitments, root %s",
                        n, self.commitment_count(), digest_hex(self.root()))

    def subscribe(self, fn: Subscriber) -> None:
        self._subscribers.append(fn)

    def _commit(self, events: Sequence[LedgerEvent]) -> List[LedgerEvent]:
        events = list(events)
        self.journal.append(events)
        for ev in events:
            self.state.apply(ev)
            self._events.append(ev)
        for ev in events:
            for fn in self._subscribers:
                try:
                    fn(ev)
                except Exception:
                    # observers never roll back a committed batch
                    logger.exception("event subscriber failed on %s", ev.kind)
        return events

    # ---- value operations ----

    def deposit(self, to: str, amount: int) -> List[LedgerEvent]:
        with self._lock:
            to = require_recipient(to)
            fee = self.state.fees.fee(check_amount(amount), self.state.fees.deposit_bp)
            return self._commit([Deposited(to=to, amount=amount, fee=fee)])

    def approve(self, owner: str, spender: str, amount: int) -> List[LedgerEvent]:
        with self._lock:
            ev = Approved(owner=normalize_identity(owner), spender=require_recipient(spender),
                          amount=check_amount(amount))
            return self._commit([ev])

    def transfer(self, sender: str, to: str, amount: int) -> List[LedgerEvent]:
        with self._lock:
            return self._commit(self._plan_transfer(sender, to, amount))

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> List[LedgerEvent]:
        with self._lock:
            spender = normalize_identity(spender)
            self.state.book.check_allowance(owner, spender, check_amount(amount))
            return self._commit(self._plan_transfer(owner, to, amount, spender=spender))

    def _plan_transfer(self, sender: str, to: str, amount: int, spender: Optional[str] = None) -> List[LedgerEvent]:
        sender = normalize_identity(sender)
        to = require_recipient(to)
        self.state.book.check_debit(sender, amount)
        events: List[LedgerEvent] = [Transferred(sender=sender, to=to, amount=amount, spender=spender)]
        commitment = self.state.recorder.plan(to, amount)
        if commitment is not None:
            events.append(commitment)
        return events

    def withdraw(self, owner: str, to: str, amount: int) -> List[LedgerEvent]:
        with self._lock:
            owner = normalize_identity(owner)
            to = require_recipient(to)
            book = self.state.book
            book.check_debit(owner, amount)
            fee = self.state.fees.fee(amount, self.state.fees.withdraw_bp)
            book.check_release(amount - fee)
            return self._commit([Withdrawn(owner=owner, to=to, amount=amount, fee=fee)])

    def remint(self, req: RemintRequest, sender: Optional[str] = None) -> List[LedgerEvent]:
        """
        Proof-gated claim. `sender` is whoever submits it (a relayer, or the
        recipient itself when omitted) and collects the relayer fee.
        """
        with self._lock:
            events = self.claims.plan(req, sender or req.inputs.recipient)
            committed = self._commit(events)
            logger.info("claim %s: %s, %d to %s%s", digest_hex(req.inputs.nullifier),
                        ClaimStage.COMMITTED.value, req.inputs.amount, req.inputs.recipient,
                        " (underlying)" if req.inputs.withdraw_underlying else "")
            return committed

    def record_if_first_receipt(self, identity: str, amount: int) -> List[LedgerEvent]:
        """Run the first-receipt policy directly; journaled like any other operation."""
        with self._lock:
            ev = self.state.recorder.plan(identity, amount)
            return self._commit([ev]) if ev is not None else []

    # ---- queries ----

    def root(self) -> bytes:
        return self.state.accumulator.root

    def is_known_root(self, root) -> bool:
        return self.state.roots.is_valid(parse_digest(root))

    def commitment_count(self) -> int:
        return self.state.recorder.count()

    def get_leaf_range(self, start: int, length: int) -> List[Tuple[str, int]]:
        with self._lock:
            return self.state.recorder.leaf_range(start, length)

    def get_commitments(self, start: int, length: int) -> List[CommitmentRecord]:
        with self._lock:
            return self.state.recorder.records(start, length)

    def get_proof(self, index: int) -> MerkleProof:
        with self._lock:
            return self.state.accumulator.get_proof(index)

    def has_first_receipt(self, identity: str) -> bool:
        return self.state.recorder.has_first_receipt(identity)

    def is_nullifier_consumed(self, nullifier) -> bool:
        return self.state.nullifiers.is_consumed(parse_digest(nullifier))

    def balance_of(self, identity: str) -> int:
        return self.state.book.balance_of(identity)

    def allowance(self, owner: str, spender: str) -> int:
        return self.state.book.allowance(owner, spender)

    def reserve(self) -> int:
        return self.state.book.reserve

    def total_supply(self) -> int:
        return self.state.book.total_supply

    def events(self, since: int = 0, limit: int = 200) -> List[LedgerEvent]:
        if since < 0:
            raise IndexOutOfRange("since must be non-negative")
        with self._lock:
            return self._events[since:since + max(1, min(1000, int(limit)))]
