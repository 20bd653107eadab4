"""
Remint claims.

A claimant proves, without saying which leaf, that they know the secret behind
some first-receipt commitment under a known root, and asks for `amount` to be
minted (or released as underlying value) to `recipient`. The claim walks

    ROOT_PRESENTED -> ROOT_VALIDATED -> NULLIFIER_FRESH -> PROOF_VERIFIED -> COMMITTED

and every arrow is a hard gate. plan() runs the first three gates plus the
bookkeeping checks and returns the events that make up the commit; nothing is
mutated until the coordinating ledger applies them.
"""
import enum, logging
from typing import List, NamedTuple, Tuple

from zwledger.crypto.hashing import (
    check_amount, digest_hex, digest_to_int, identity_to_int, normalize_identity, parse_digest,
)
from zwledger.crypto.verifier import ProofVerifier
from zwledger.errors import InvalidFee, LedgerError, ProofRejected, UnsupportedTokenId
from zwledger.ledger.book import require_recipient
from zwledger.ledger.state import LedgerState
from zwledger.schemas.events import LedgerEvent, NullifierSpent, Reminted

logger = logging.getLogger(__name__)


class ClaimStage(enum.Enum):
    ROOT_PRESENTED = "root_presented"
    ROOT_VALIDATED = "root_validated"
    NULLIFIER_FRESH = "nullifier_fresh"
    PROOF_VERIFIED = "proof_verified"
    COMMITTED = "committed"


class PublicInputs(NamedTuple):
    """Everything a claimant controls. The proof must commit to all of it, in this order."""
    root: bytes
    nullifier: bytes
    recipient: str
    amount: int
    token_id: int
    withdraw_underlying: bool
    relayer_fee: int            # basis points of the fee denominator

    def as_words(self) -> Tuple[int, ...]:
        return (
            digest_to_int(self.root),
            digest_to_int(self.nullifier),
            identity_to_int(self.recipient),
            self.amount,
            self.token_id,
            int(self.withdraw_underlying),
            self.relayer_fee,
        )

    @classmethod
    def build(cls, root, nullifier, recipient: str, amount: int, token_id: int = 0,
              withdraw_underlying: bool = False, relayer_fee: int = 0) -> "PublicInputs":
        return cls(
            root=parse_digest(root),
            nullifier=parse_digest(nullifier),
            recipient=normalize_identity(recipient),
            amount=check_amount(amount),
            token_id=check_amount(token_id),
            withdraw_underlying=bool(withdraw_underlying),
            relayer_fee=check_amount(relayer_fee),
        )


class RemintRequest(NamedTuple):
    inputs: PublicInputs
    proof: bytes


class ClaimProtocol:

    def __init__(self, state: LedgerState, verifier: ProofVerifier):
        self.state = state
        self.verifier = verifier

    def split_fees(self, inputs: PublicInputs) -> Tuple[int, int]:
        fees = self.state.fees
        if inputs.relayer_fee > fees.denominator:
            raise InvalidFee(f"relayer fee {inputs.relayer_fee} exceeds denominator {fees.denominator}")
        fee = fees.fee(inputs.amount, fees.remint_bp)
        relayer_fee = fees.fee(inputs.amount, inputs.relayer_fee)
        if fee + relayer_fee > inputs.amount:
            raise InvalidFee("fees exceed the claimed amount")
        return fee, relayer_fee

    def admit(self, req: RemintRequest) -> ClaimStage:
        """Gates 1-3. Returns PROOF_VERIFIED or raises; never mutates."""
        st = self.state
        inputs = req.inputs
        stage = ClaimStage.ROOT_PRESENTED
        try:
            if inputs.token_id != st.token_id:
                raise UnsupportedTokenId(f"token id {inputs.token_id} (ledger serves {st.token_id})")

            st.roots.require_valid(inputs.root)
            stage = ClaimStage.ROOT_VALIDATED
            logger.debug("claim %s: %s", digest_hex(inputs.nullifier), stage.value)

            st.nullifiers.require_fresh(inputs.nullifier)
            stage = ClaimStage.NULLIFIER_FRESH
            logger.debug("claim %s: %s", digest_hex(inputs.nullifier), stage.value)

            if not self.verifier.verify(req.proof, inputs.as_words()):
                raise ProofRejected(f"{self.verifier.name} verifier rejected the proof")
            stage = ClaimStage.PROOF_VERIFIED
            logger.debug("claim %s: %s", digest_hex(inputs.nullifier), stage.value)
        except LedgerError as e:
            logger.warning("claim rejected after %s: %s", stage.value, e.code)
            raise
        return stage

    def plan(self, req: RemintRequest, sender: str) -> List[LedgerEvent]:
        """
        Run every gate and bookkeeping check, then describe the commit:
        NullifierSpent, Reminted and, for a first receipt, CommitmentAdded.
        """
        st = self.state
        inputs = req.inputs
        sender = normalize_identity(sender)
        to = require_recipient(inputs.recipient)
        fee, relayer_fee = self.split_fees(inputs)
        if relayer_fee:
            sender = require_recipient(sender)

        self.admit(req)

        net = inputs.amount - fee - relayer_fee
        if inputs.withdraw_underlying:
            st.book.check_release(net)
        commitment = st.recorder.plan(to, net)

        events: List[LedgerEvent] = [
            NullifierSpent(nullifier=digest_hex(inputs.nullifier)),
            Reminted(
                sender=sender,
                to=to,
                token_id=inputs.token_id,
                amount=inputs.amount,
                withdraw_underlying=inputs.withdraw_underlying,
                fee=fee,
                relayer_fee=relayer_fee,
                root=digest_hex(inputs.root),
                nullifier=digest_hex(inputs.nullifier),
            ),
        ]
        if commitment is not None:
            events.append(commitment)
        return events
