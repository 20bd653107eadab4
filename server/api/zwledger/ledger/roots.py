from typing import List, Set

from zwledger.crypto.hashing import digest_hex, to_word
from zwledger.errors import UnknownRoot


class RootValidityLedger:
    """
    Every root the accumulator has ever had. Membership is permanent: a
    claimant may take arbitrarily long to build a proof against an old root,
    so nothing is ever evicted.
    """

    def __init__(self):
        self._known: Set[bytes] = set()
        self._order: List[bytes] = []

    def register(self, root: bytes) -> bool:
        root = to_word(root)
        if root in self._known:
            return False
        self._known.add(root)
        self._order.append(root)
        return True

    def is_valid(self, root: bytes) -> bool:
        return to_word(root) in self._known

    def require_valid(self, root: bytes) -> None:
        if not self.is_valid(root):
            raise UnknownRoot(f"root {digest_hex(root)} was never registered")

    def history(self) -> List[bytes]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, root: bytes) -> bool:
        return self.is_valid(root)
