import hashlib, re
from typing import Iterable, Union

from zwledger.errors import InvalidAmount, InvalidDigest, InvalidIdentity

WORD_BYTES = 32
WORD_LIMIT = 1 << (8 * WORD_BYTES)
IDENTITY_BITS = 160
IDENTITY_SALT = 8065            # recipient-derivation salt
ZERO_DIGEST = b"\x00" * WORD_BYTES
ZERO_IDENTITY = "0x" + "00" * 20

_IDENTITY_RE = re.compile(r"^0x[0-9a-f]{40}$")
_DIGEST_RE = re.compile(r"^0x[0-9a-f]{64}$")

Word = Union[int, bytes]


def _h(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()


def to_word(v: Word) -> bytes:
    """Encode an integer (or a 32-byte digest) as a 32-byte big-endian word."""
    if isinstance(v, bool):
        v = int(v)
    if isinstance(v, (bytes, bytearray)):
        if len(v) != WORD_BYTES:
            raise InvalidDigest(f"expected {WORD_BYTES} bytes, got {len(v)}")
        return bytes(v)
    if not isinstance(v, int):
        raise TypeError(f"cannot encode {type(v).__name__} as a word")
    if v < 0 or v >= WORD_LIMIT:
        raise InvalidAmount("value does not fit in 256 bits")
    return v.to_bytes(WORD_BYTES, "big")


def encode_words(words: Iterable[Word]) -> bytes:
    return b"".join(to_word(w) for w in words)


def field_hash(*words: Word) -> bytes:
    return _h(encode_words(words))


def hash_pair(left: bytes, right: bytes) -> bytes:
    # tree node: sha256(left || right)
    return _h(left + right)


def normalize_identity(identity: str) -> str:
    if not isinstance(identity, str):
        raise InvalidIdentity("identity must be a hex string")
    s = identity.strip().lower()
    if not s.startswith("0x"):
        s = "0x" + s
    if not _IDENTITY_RE.match(s):
        raise InvalidIdentity(f"bad identity: {identity!r}")
    return s


def identity_to_int(identity: str) -> int:
    return int(normalize_identity(identity), 16)


def identity_from_int(v: int) -> str:
    if v < 0 or v >= (1 << IDENTITY_BITS):
        raise InvalidIdentity("identity does not fit in 160 bits")
    return "0x%040x" % v


def digest_hex(d: bytes) -> str:
    return "0x" + to_word(d).hex()


def parse_digest(s: Union[str, bytes]) -> bytes:
    if isinstance(s, (bytes, bytearray)):
        return to_word(bytes(s))
    t = s.strip().lower()
    if not t.startswith("0x"):
        t = "0x" + t
    if not _DIGEST_RE.match(t):
        raise InvalidDigest(f"bad digest: {s!r}")
    return bytes.fromhex(t[2:])


def digest_to_int(d: bytes) -> int:
    return int.from_bytes(to_word(d), "big")


def check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount("amount must be an integer")
    if amount < 0 or amount >= WORD_LIMIT:
        raise InvalidAmount("amount must be in [0, 2^256)")
    return amount


def commitment_hash(identity: str, amount: int) -> bytes:
    """Leaf value: Hash(recipientIdentity, amount)."""
    return field_hash(identity_to_int(identity), check_amount(amount))


def derive_identity(secret: int, token_id: int = 0) -> str:
    """
    Privacy identity for a secret: low 160 bits of Hash(8065, tokenId, secret).
    Nobody holds a key for it, so value sent there can only come back out
    through a remint proof.
    """
    scalar = digest_to_int(field_hash(IDENTITY_SALT, token_id, secret))
    return identity_from_int(scalar & ((1 << IDENTITY_BITS) - 1))


def derive_nullifier(secret: int, token_id: int = 0) -> bytes:
    return field_hash(identity_to_int(derive_identity(secret, token_id)), secret)