from typing import Set

from zwledger.crypto.hashing import digest_hex, to_word
from zwledger.errors import NullifierAlreadyUsed


class NullifierRegistry:
    # write-once set; callers serialize check and consume under the ledger lock

    def __init__(self):
        self._consumed: Set[bytes] = set()

    def is_consumed(self, nullifier: bytes) -> bool:
        return to_word(nullifier) in self._consumed

    def require_fresh(self, nullifier: bytes) -> None:
        if self.is_consumed(nullifier):
            raise NullifierAlreadyUsed(f"nullifier {digest_hex(nullifier)} already used")

    def consume(self, nullifier: bytes) -> None:
        self.require_fresh(nullifier)
        self._consumed.add(to_word(nullifier))

    def __len__(self) -> int:
        return len(self._consumed)
