from typing import Dict, NamedTuple, Tuple

from zwledger.crypto.hashing import ZERO_IDENTITY, check_amount, normalize_identity
from zwledger.errors import (
    InsufficientAllowance, InsufficientBalance, InsufficientReserve, InvalidFee, InvalidIdentity,
)


class FeeSchedule(NamedTuple):
    collector: str = ZERO_IDENTITY
    denominator: int = 10000
    deposit_bp: int = 0
    remint_bp: int = 0
    withdraw_bp: int = 0

    def fee(self, amount: int, bp: int) -> int:
        if bp < 0 or bp > self.denominator:
            raise InvalidFee(f"fee rate {bp} not in [0, {self.denominator}]")
        return amount * bp // self.denominator

    @classmethod
    def from_settings(cls, settings) -> "FeeSchedule":
        return cls(
            collector=settings.fee_collector,
            denominator=settings.fee_denominator,
            deposit_bp=settings.deposit_fee_bp,
            remint_bp=settings.remint_fee_bp,
            withdraw_bp=settings.withdraw_fee_bp,
        )


def require_recipient(identity: str) -> str:
    identity = normalize_identity(identity)
    if identity == ZERO_IDENTITY:
        raise InvalidIdentity("the zero identity cannot receive value")
    return identity


class ValueBook:
    """
    Wrapped-unit bookkeeping: balances, allowances and the underlying reserve
    backing withdrawals. check_* methods raise without mutating; the plain
    mutators assume the matching check already passed.
    """

    def __init__(self, fees: FeeSchedule = FeeSchedule()):
        self.fees = fees
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0
        self.reserve = 0

    def balance_of(self, identity: str) -> int:
        return self.balances.get(normalize_identity(identity), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((normalize_identity(owner), normalize_identity(spender)), 0)

    def check_debit(self, owner: str, amount: int) -> None:
        have = self.balance_of(owner)
        if have < check_amount(amount):
            raise InsufficientBalance(f"{owner} holds {have}, needs {amount}")

    def check_allowance(self, owner: str, spender: str, amount: int) -> None:
        have = self.allowance(owner, spender)
        if have < amount:
            raise InsufficientAllowance(f"{spender} may spend {have} of {owner}, needs {amount}")

    def check_release(self, amount: int) -> None:
        if self.reserve < amount:
            raise InsufficientReserve(f"reserve holds {self.reserve}, needs {amount}")

    def credit(self, to: str, amount: int) -> None:
        if amount == 0:
            return
        to = normalize_identity(to)
        self.balances[to] = self.balances.get(to, 0) + amount
        self.total_supply += amount

    def debit(self, owner: str, amount: int) -> None:
        self.check_debit(owner, amount)
        if amount == 0:
            return
        owner = normalize_identity(owner)
        left = self.balances[owner] - amount
        if left:
            self.balances[owner] = left
        else:
            del self.balances[owner]
        self.total_supply -= amount

    def move(self, sender: str, to: str, amount: int) -> None:
        self.debit(sender, amount)
        self.credit(to, amount)

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(normalize_identity(owner), normalize_identity(spender))] = check_amount(amount)

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.check_allowance(owner, spender, amount)
        key = (normalize_identity(owner), normalize_identity(spender))
        self.allowances[key] -= amount

    def lock_underlying(self, amount: int) -> None:
        self.reserve += amount

    def release_underlying(self, amount: int) -> None:
        self.check_release(amount)
        self.reserve -= amount
