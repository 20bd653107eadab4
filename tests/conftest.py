"""Shared fixtures: small-depth ledgers, a prover key and claim helpers."""
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from zwledger.config import Settings
from zwledger.crypto.hashing import derive_identity, derive_nullifier
from zwledger.crypto.verifier import Ed25519AttestationVerifier, attest_public_inputs
from zwledger.ledger.claims import PublicInputs, RemintRequest
from zwledger.ledger.core import ZWLedger

KEY_ID = "prover-1"
FUNDER = "0x" + "aa" * 20
COLLECTOR = "0x" + "c0" * 20


def ident(n: int) -> str:
    return "0x%040x" % n


def fund_privacy_identity(ledger: ZWLedger, secret: int, amount: int, funder: str = FUNDER) -> str:
    """Deposit to `funder`, then send `amount` to the identity behind `secret`."""
    p = derive_identity(secret, ledger.state.token_id)
    ledger.deposit(funder, amount)
    ledger.transfer(funder, p, amount)
    return p


def claim_inputs(ledger: ZWLedger, secret: int, to: str, amount: int, **kw) -> PublicInputs:
    return PublicInputs.build(
        root=kw.pop("root", ledger.root()),
        nullifier=kw.pop("nullifier", derive_nullifier(secret, ledger.state.token_id)),
        recipient=to,
        amount=amount,
        token_id=kw.pop("token_id", ledger.state.token_id),
        **kw,
    )


@pytest.fixture
def ledger():
    return ZWLedger(Settings(tree_depth=4, verifier="stub"))


@pytest.fixture
def tiny_ledger():
    # two leaves
    return ZWLedger(Settings(tree_depth=1, verifier="stub"))


@pytest.fixture
def fee_ledger():
    return ZWLedger(Settings(tree_depth=4, verifier="stub", fee_collector=COLLECTOR, deposit_fee_bp=0,
                             remint_fee_bp=100, withdraw_fee_bp=50))


@pytest.fixture
def prover_key():
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def prover_pub_raw(prover_key):
    return prover_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


@pytest.fixture
def signed_ledger(prover_pub_raw):
    verifier = Ed25519AttestationVerifier({KEY_ID: prover_pub_raw})
    return ZWLedger(Settings(tree_depth=4, verifier="ed25519"), verifier=verifier)


@pytest.fixture
def attest(prover_key):
    def _attest(inputs: PublicInputs) -> RemintRequest:
        return RemintRequest(inputs, attest_public_inputs(prover_key, KEY_ID, inputs.as_words()))
    return _attest
