import base64, binascii, hmac
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from zwledger.crypto.hashing import digest_hex, normalize_identity
from zwledger.errors import ProofRejected
from zwledger.ledger.claims import PublicInputs, RemintRequest
from zwledger.ledger.core import ZWLedger
from zwledger.merkle.routes import get_ledger
from zwledger.schemas.api import (
    ApproveReq, CommitResponse, DepositReq, EventsResponse, RemintReq, TransferFromReq, TransferReq, WithdrawReq,
)
from zwledger.schemas.events import LedgerEvent, event_to_dict

router = APIRouter(prefix="/api/ledger", tags=["ledger"])


def require_operator(x_operator_key: Optional[str] = Header(default=None, alias="X-Operator-Key"),
                     ledger: ZWLedger = Depends(get_ledger)) -> None:
    expected = ledger.settings.operator_key
    if not expected:
        raise HTTPException(status_code=403, detail="operator_endpoints_disabled")
    if not x_operator_key or not hmac.compare_digest(x_operator_key, expected):
        raise HTTPException(status_code=401, detail="unauthorized_operator")


def _committed(ledger: ZWLedger, events: List[LedgerEvent]) -> CommitResponse:
    return CommitResponse(root=digest_hex(ledger.root()), events=[event_to_dict(e) for e in events])


# ---- queries ----

def _length_or_rest(ledger: ZWLedger, start: int, length: Optional[int]) -> int:
    # the record count only grows, so the rest of the range stays readable
    return length if length is not None else max(0, ledger.commitment_count() - start)


@router.get("/commitments")
def commitments(start: int = 0, length: Optional[int] = None, ledger: ZWLedger = Depends(get_ledger)):
    length = _length_or_rest(ledger, start, length)
    rows = ledger.get_commitments(start, length)
    return {"ok": True, "start": start, "commitments": [r.to_json() for r in rows]}


@router.get("/commitments/count")
def commitment_count(ledger: ZWLedger = Depends(get_ledger)):
    return {"ok": True, "count": ledger.commitment_count()}


@router.get("/leaves")
def leaves(start: int = 0, length: Optional[int] = None, ledger: ZWLedger = Depends(get_ledger)):
    length = _length_or_rest(ledger, start, length)
    pairs = ledger.get_leaf_range(start, length)
    return {"ok": True, "start": start, "leaves": [{"recipient": r, "amount": a} for r, a in pairs]}


@router.get("/accounts/{identity}")
def account(identity: str, ledger: ZWLedger = Depends(get_ledger)):
    identity = normalize_identity(identity)
    return {
        "ok": True,
        "identity": identity,
        "balance": ledger.balance_of(identity),
        "hasFirstReceipt": ledger.has_first_receipt(identity),
    }


@router.get("/nullifiers/{nullifier}")
def nullifier_status(nullifier: str, ledger: ZWLedger = Depends(get_ledger)):
    return {"ok": True, "nullifier": nullifier.lower(), "consumed": ledger.is_nullifier_consumed(nullifier)}


@router.get("/events", response_model=EventsResponse)
def events(since: int = 0, limit: int = 200, ledger: ZWLedger = Depends(get_ledger)):
    return EventsResponse(since=since, events=[event_to_dict(e) for e in ledger.events(since, limit)])


# ---- claims (permissionless) ----

@router.post("/remint", response_model=CommitResponse)
def remint(req: RemintReq, ledger: ZWLedger = Depends(get_ledger)):
    try:
        proof = base64.b64decode(req.proof_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProofRejected(f"proof_b64 is not base64: {e}") from e
    inputs = PublicInputs.build(
        root=req.root,
        nullifier=req.nullifier,
        recipient=req.to,
        amount=req.amount,
        token_id=req.token_id,
        withdraw_underlying=req.withdraw_underlying,
        relayer_fee=req.relayer_fee,
    )
    return _committed(ledger, ledger.remint(RemintRequest(inputs, proof), sender=req.sender))


# ---- value operations (operator) ----

@router.post("/deposit", response_model=CommitResponse, dependencies=[Depends(require_operator)])
def deposit(req: DepositReq, ledger: ZWLedger = Depends(get_ledger)):
    return _committed(ledger, ledger.deposit(req.to, req.amount))


@router.post("/transfer", response_model=CommitResponse, dependencies=[Depends(require_operator)])
def transfer(req: TransferReq, ledger: ZWLedger = Depends(get_ledger)):
    return _committed(ledger, ledger.transfer(req.sender, req.to, req.amount))


@router.post("/approve", response_model=CommitResponse, dependencies=[Depends(require_operator)])
def approve(req: ApproveReq, ledger: ZWLedger = Depends(get_ledger)):
    return _committed(ledger, ledger.approve(req.owner, req.spender, req.amount))


@router.post("/transfer_from", response_model=CommitResponse, dependencies=[Depends(require_operator)])
def transfer_from(req: TransferFromReq, ledger: ZWLedger = Depends(get_ledger)):
    return _committed(ledger, ledger.transfer_from(req.spender, req.owner, req.to, req.amount))


@router.post("/withdraw", response_model=CommitResponse, dependencies=[Depends(require_operator)])
def withdraw(req: WithdrawReq, ledger: ZWLedger = Depends(get_ledger)):
    return _committed(ledger, ledger.withdraw(req.owner, req.to, req.amount))
