from fastapi import APIRouter, Depends, Request

from zwledger.crypto.hashing import digest_hex
from zwledger.ledger.core import ZWLedger

router = APIRouter(prefix="/api/merkle", tags=["merkle"])


def get_ledger(request: Request) -> ZWLedger:
    return request.app.state.ledger


@router.get("/root")
def get_root(ledger: ZWLedger = Depends(get_ledger)):
    return {
        "ok": True,
        "root": digest_hex(ledger.root()),
        "count": ledger.commitment_count(),
        "depth": ledger.state.accumulator.depth,
    }


@router.get("/roots/{root}")
def root_status(root: str, ledger: ZWLedger = Depends(get_ledger)):
    return {"ok": True, "root": root.lower(), "known": ledger.is_known_root(root)}


@router.get("/proof/{index}")
def get_proof(index: int, ledger: ZWLedger = Depends(get_ledger)):
    return {"ok": True, **ledger.get_proof(index).to_json()}


@router.get("/verify_rule")
def verify_rule():
    return {
        "ok": True,
        "word_rule": "integers and digests are 32-byte big-endian words; identities are 160-bit",
        "leaf_rule": "leaf=sha256(word(recipient)||word(amount)), recorded on an identity's first receipt",
        "tree_rule": "fixed depth; parent=sha256(left||right); empty subtree at level i is zero[i], "
                     "zero[0]=0x00*32, zero[i]=sha256(zero[i-1]||zero[i-1]); empty-tree root is zero[depth-1]",
        "proof_rule": "pathIndices[i]=1 means the running node is the right child at level i",
    }
