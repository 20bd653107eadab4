import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from zwledger.crypto.hashing import ZERO_DIGEST, digest_hex, hash_pair, to_word
from zwledger.errors import CapacityExceeded, IndexOutOfRange

logger = logging.getLogger(__name__)


class ZeroHashCache:
    """
    zero[0] is the empty leaf, zero[i] = H(zero[i-1] || zero[i-1]) is the root
    of an empty subtree of height i. Levels 0..depth-1.
    """

    def __init__(self, depth: int):
        if depth < 1:
            raise ValueError("depth must be >= 1")
        zeros = [ZERO_DIGEST]
        for _ in range(1, depth):
            zeros.append(hash_pair(zeros[-1], zeros[-1]))
        self._zeros: Tuple[bytes, ...] = tuple(zeros)

    def __getitem__(self, level: int) -> bytes:
        return self._zeros[level]

    def __len__(self) -> int:
        return len(self._zeros)

    def as_list(self) -> List[bytes]:
        return list(self._zeros)


class MerkleProof(NamedTuple):
    index: int
    leaf: bytes
    root: bytes
    path_elements: List[bytes]
    path_indices: List[int]     # 1 => node on the path is a right child

    def to_json(self) -> Dict:
        return {
            "index": self.index,
            "leaf": digest_hex(self.leaf),
            "root": digest_hex(self.root),
            "pathElements": [digest_hex(e) for e in self.path_elements],
            "pathIndices": list(self.path_indices),
        }


def compute_root(leaf: bytes, path_elements: Sequence[bytes], path_indices: Sequence[int]) -> bytes:
    if len(path_elements) != len(path_indices):
        raise ValueError("path_elements and path_indices differ in length")
    cur = to_word(leaf)
    for sib, bit in zip(path_elements, path_indices):
        if bit not in (0, 1):
            raise ValueError("path index must be 0 or 1")
        cur = hash_pair(sib, cur) if bit else hash_pair(cur, sib)
    return cur


def verify_merkle_proof(leaf: bytes, path_elements: Sequence[bytes], path_indices: Sequence[int], root: bytes) -> bool:
    try:
        return compute_root(leaf, path_elements, path_indices) == to_word(root)
    except ValueError:
        return False


class IncrementalAccumulator:
    """
    Append-only Merkle tree of fixed depth with O(depth) inserts.

    filled_subtrees[level] holds the last left child seen at that level. It is
    insert bookkeeping only: after later inserts it may describe a different
    subtree than the one next to an older leaf, so proofs rebuild siblings
    from the stored leaves instead (see get_proof).

    `roots` is anything with a register(root) method; every root the tree ever
    takes, genesis included, is registered there.
    """

    def __init__(self, depth: int, roots=None, zeros: Optional[ZeroHashCache] = None):
        self.depth = depth
        self.zeros = zeros or ZeroHashCache(depth)
        if len(self.zeros) != depth:
            raise ValueError("zero cache depth mismatch")
        self.capacity = 1 << depth
        self.next_index = 0
        self.filled_subtrees: List[bytes] = self.zeros.as_list()
        self.root: bytes = self.zeros[depth - 1]
        self._leaves: List[bytes] = []
        self._nodes: Dict[Tuple[int, int], bytes] = {}
        self._roots = roots
        if roots is not None:
            roots.register(self.root)

    @property
    def is_full(self) -> bool:
        return self.next_index >= self.capacity

    def __len__(self) -> int:
        return self.next_index

    def leaf(self, index: int) -> bytes:
        if index < 0 or index >= self.next_index:
            raise IndexOutOfRange(f"leaf index {index} not in [0, {self.next_index})")
        return self._leaves[index]

    def insert(self, leaf: bytes) -> int:
        if self.is_full:
            raise CapacityExceeded(f"accumulator full ({self.capacity} leaves)")
        leaf = to_word(leaf)
        index = self.next_index
        filled = list(self.filled_subtrees)
        cur = leaf
        idx = index
        for level in range(self.depth):
            if level and (index + 1) % (1 << level) == 0:
                self._nodes[((index >> level) << level, level)] = cur
            if idx % 2 == 0:
                filled[level] = cur
                cur = hash_pair(cur, self.zeros[level])
            else:
                cur = hash_pair(filled[level], cur)
            idx //= 2

        self.filled_subtrees = filled
        self.root = cur
        self._leaves.append(leaf)
        self.next_index = index + 1
        if self._roots is not None:
            self._roots.register(cur)
        logger.debug("leaf %d inserted, root %s", index, digest_hex(cur))
        return index

    def subtree_hash(self, start: int, level: int) -> bytes:
        """
        Hash of the height-`level` subtree covering leaves [start, start + 2^level),
        folded from the stored leaves; empty ranges collapse to zero[level].
        Complete subtrees never change again and are kept in _nodes.
        """
        if start >= self.next_index:
            return self.zeros[level]
        if level == 0:
            return self._leaves[start]
        node = self._nodes.get((start, level))
        if node is not None:
            return node
        half = 1 << (level - 1)
        node = hash_pair(self.subtree_hash(start, level - 1), self.subtree_hash(start + half, level - 1))
        if start + (1 << level) <= self.next_index:
            self._nodes[(start, level)] = node
        return node

    def get_proof(self, index: int) -> MerkleProof:
        if index < 0 or index >= self.next_index:
            raise IndexOutOfRange(f"leaf index {index} not in [0, {self.next_index})")
        path_elements: List[bytes] = []
        path_indices: List[int] = []
        cur = index
        for level in range(self.depth):
            sibling = cur ^ 1
            path_elements.append(self.subtree_hash(sibling << level, level))
            path_indices.append(cur & 1)
            cur >>= 1
        return MerkleProof(index, self._leaves[index], self.root, path_elements, path_indices)
