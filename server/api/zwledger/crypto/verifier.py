import base64, json, logging
from typing import Dict, Protocol, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from zwledger.crypto.hashing import Word, encode_words

logger = logging.getLogger(__name__)

PROOF_DOMAIN = b"zwledger/remint/v1"


class ProofVerifier(Protocol):
    """verify(proof, public_inputs) -> bool; synchronous and side-effect free."""
    name: str

    def verify(self, proof: bytes, public_inputs: Sequence[Word]) -> bool: ...


def proof_message(public_inputs: Sequence[Word]) -> bytes:
    return PROOF_DOMAIN + encode_words(public_inputs)


class AlwaysAcceptVerifier:
    """Development stub: accepts any proof."""
    name = "stub"

    def verify(self, proof: bytes, public_inputs: Sequence[Word]) -> bool:
        return True


class Ed25519AttestationVerifier:
    """
    Accepts a proof when it is an Ed25519 signature, by a trusted prover key,
    over PROOF_DOMAIN || words(public_inputs).

    Proof bytes are a JSON document:
      {"alg": "ed25519", "key_id": "...", "signature_b64": "..."}
    """
    name = "ed25519"

    def __init__(self, trust: Dict[str, bytes]):
        if not trust:
            raise ValueError("ed25519 verifier needs at least one trusted prover key")
        self._keys = {kid: ed25519.Ed25519PublicKey.from_public_bytes(raw) for kid, raw in trust.items()}

    @property
    def key_ids(self):
        return sorted(self._keys)

    def verify(self, proof: bytes, public_inputs: Sequence[Word]) -> bool:
        try:
            doc = json.loads(bytes(proof).decode("utf-8"))
            if not isinstance(doc, dict) or doc.get("alg") != "ed25519":
                return False
            pub = self._keys.get(doc.get("key_id"))
            if pub is None:
                return False
            sig = base64.b64decode(doc.get("signature_b64", ""), validate=True)
            msg = proof_message(public_inputs)
        except (ValueError, TypeError):
            return False
        try:
            pub.verify(sig, msg)
            return True
        except InvalidSignature:
            return False


def attest_public_inputs(sk: ed25519.Ed25519PrivateKey, key_id: str, public_inputs: Sequence[Word]) -> bytes:
    """Prover side of Ed25519AttestationVerifier."""
    sig = sk.sign(proof_message(public_inputs))
    doc = {"alg": "ed25519", "key_id": key_id, "signature_b64": base64.b64encode(sig).decode("ascii")}
    return json.dumps(doc, sort_keys=True, separators=(",", ":")).encode("utf-8")


def load_ed25519_private_key_pem(path: str) -> ed25519.Ed25519PrivateKey:
    with open(path, "rb") as f:
        k = serialization.load_pem_private_key(f.read(), password=None)
    if not isinstance(k, ed25519.Ed25519PrivateKey):
        raise ValueError("not ed25519 private key")
    return k


def load_truststore(path: str) -> Dict[str, bytes]:
    """
    returns { key_id: raw_public_key_bytes }
    truststore format:
      { "trusted_keys":[ {"key_id":"...", "alg":"ed25519", "public_key_raw_b64":"..."} ] }
    """
    with open(path, "r", encoding="utf-8") as f:
        doc = json.load(f)
    out: Dict[str, bytes] = {}
    for k in doc.get("trusted_keys", []):
        if k.get("alg") != "ed25519":
            continue
        out[k["key_id"]] = base64.b64decode(k["public_key_raw_b64"])
    return out


def load_verifier(settings) -> ProofVerifier:
    if settings.verifier == "stub":
        logger.warning("using the always-accept proof verifier; do not run this in production")
        return AlwaysAcceptVerifier()
    trust = load_truststore(settings.truststore_path)
    v = Ed25519AttestationVerifier(trust)
    logger.info("ed25519 proof verifier loaded with keys %s", v.key_ids)
    return v
