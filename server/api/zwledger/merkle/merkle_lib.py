import hashlib
from typing import Any, Dict, Iterable, List

from zwledger.crypto.hashing import commitment_hash, parse_digest


def sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()


def zero_hashes(depth: int) -> List[bytes]:
    z = [b"\x00" * 32]
    for _ in range(1, depth):
        z.append(sha256(z[-1] + z[-1]))
    return z


def build_levels(leaves: List[bytes], depth: int) -> List[List[bytes]]:
    """
    Full rebuild, level by level, of the fixed-depth tree.
    levels[0] = leaves, levels[depth] = [root]; a missing right child at
    level l is the empty-subtree hash zero[l].
    With no leaves the root is zero[depth-1] (the accumulator's genesis root).
    """
    if len(leaves) > (1 << depth):
        raise ValueError("too many leaves for depth")
    zeros = zero_hashes(depth)
    if not leaves:
        return [[], [zeros[depth - 1]]]
    levels = [leaves[:]]
    for lvl in range(depth):
        cur = levels[-1][:]
        if len(cur) % 2 == 1:
            cur.append(zeros[lvl])
        levels.append([sha256(cur[i] + cur[i + 1]) for i in range(0, len(cur), 2)])
    return levels


def merkle_root(leaves: List[bytes], depth: int) -> bytes:
    return build_levels(leaves, depth)[-1][0]


def merkle_proof(levels: List[List[bytes]], index: int) -> Dict[str, Any]:
    depth = len(levels) - 1
    zeros = zero_hashes(depth)
    elements, indices = [], []
    idx = index
    for lvl in range(depth):
        sib = idx ^ 1
        row = levels[lvl]
        elements.append(row[sib] if sib < len(row) else zeros[lvl])
        indices.append(idx & 1)
        idx //= 2
    return {"pathElements": elements, "pathIndices": indices}


def leaves_from_commitments(records: Iterable[Dict[str, Any]]) -> List[bytes]:
    """
    Order reconstruction records by index and check them: indices must be
    0..n-1 with no gaps, and each commitment must equal Hash(recipient, amount).
    """
    rows = sorted(records, key=lambda r: int(r["index"]))
    leaves = []
    for i, r in enumerate(rows):
        if int(r["index"]) != i:
            raise ValueError(f"commitment index gap at {i}")
        c = parse_digest(r["commitment"])
        if c != commitment_hash(r["recipient"], int(r["amount"])):
            raise ValueError(f"commitment {i} does not match Hash(recipient, amount)")
        leaves.append(c)
    return leaves


def root_from_commitments(records: Iterable[Dict[str, Any]], depth: int) -> bytes:
    return merkle_root(leaves_from_commitments(records), depth)
