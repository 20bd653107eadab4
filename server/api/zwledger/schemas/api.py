from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class RemintReq(BaseModel):
    root: str
    nullifier: str
    to: str
    amount: int
    token_id: int = 0
    withdraw_underlying: bool = False
    relayer_fee: int = 0
    proof_b64: str = ""
    sender: Optional[str] = None        # relayer identity; defaults to `to`


class DepositReq(BaseModel):
    to: str
    amount: int


class TransferReq(BaseModel):
    sender: str
    to: str
    amount: int


class ApproveReq(BaseModel):
    owner: str
    spender: str
    amount: int


class TransferFromReq(BaseModel):
    spender: str
    owner: str
    to: str
    amount: int


class WithdrawReq(BaseModel):
    owner: str
    to: str
    amount: int


class EventsResponse(BaseModel):
    ok: bool = True
    since: int
    events: List[Dict[str, Any]]


class CommitResponse(BaseModel):
    ok: bool = True
    root: str
    events: List[Dict[str, Any]]
