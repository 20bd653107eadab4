from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Any, Dict, Literal, Optional, Union


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class CommitmentAdded(_Event):
    """
    Reconstruction record. Observers rebuild the accumulator by replaying
    these in index order; the field set is a stable wire format.
    """
    kind: Literal["commitment_added"] = "commitment_added"
    commitment: str
    index: int
    recipient: str
    amount: int


class Deposited(_Event):
    kind: Literal["deposited"] = "deposited"
    to: str
    amount: int
    fee: int = 0


class Transferred(_Event):
    kind: Literal["transferred"] = "transferred"
    sender: str
    to: str
    amount: int
    spender: Optional[str] = None


class Approved(_Event):
    kind: Literal["approved"] = "approved"
    owner: str
    spender: str
    amount: int


class Withdrawn(_Event):
    kind: Literal["withdrawn"] = "withdrawn"
    owner: str
    to: str
    amount: int
    fee: int = 0


class NullifierSpent(_Event):
    kind: Literal["nullifier_spent"] = "nullifier_spent"
    nullifier: str


class Reminted(_Event):
    kind: Literal["reminted"] = "reminted"
    sender: str
    to: str
    token_id: int
    amount: int
    withdraw_underlying: bool
    fee: int = 0
    relayer_fee: int = 0
    root: str
    nullifier: str

    @property
    def net_amount(self) -> int:
        return self.amount - self.fee - self.relayer_fee


LedgerEvent = Annotated[
    Union[CommitmentAdded, Deposited, Transferred, Approved, Withdrawn, NullifierSpent, Reminted],
    Field(discriminator="kind"),
]

_adapter = TypeAdapter(LedgerEvent)


def parse_event(obj: Dict[str, Any]) -> LedgerEvent:
    return _adapter.validate_python(obj)


def event_to_dict(ev: LedgerEvent) -> Dict[str, Any]:
    return ev.model_dump()
