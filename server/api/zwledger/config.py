import os, logging
from pydantic import BaseModel, field_validator, model_validator

from zwledger.crypto.hashing import ZERO_IDENTITY, normalize_identity

DEFAULT_TREE_DEPTH = 20
MAX_TREE_DEPTH = 32
FEE_DENOMINATOR_DEFAULT = 10000

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _geti(k: str, d: int) -> int:
    v = os.environ.get(k)
    if v is None or v.strip() == "":
        return d
    try:
        return int(v)
    except ValueError as e:
        raise ValueError(f"{k} must be an integer, got {v!r}") from e


def _gets(k: str, d: str) -> str:
    v = os.environ.get(k)
    return d if v is None or v.strip() == "" else v.strip()


class Settings(BaseModel):
    tree_depth: int = DEFAULT_TREE_DEPTH
    token_id: int = 0

    verifier: str = "ed25519"                   # ed25519 | stub (development only)
    truststore_path: str = "trust/prover_keys.json"

    journal: str = "memory"                     # memory | jsonl | sql
    journal_path: str = "ledger/events/events.jsonl"
    db_url: str = "sqlite:///ledger/zwledger.sqlite"

    fee_collector: str = ZERO_IDENTITY
    fee_denominator: int = FEE_DENOMINATOR_DEFAULT
    deposit_fee_bp: int = 0
    remint_fee_bp: int = 0
    withdraw_fee_bp: int = 0

    operator_key: str = ""
    log_level: str = "INFO"

    @field_validator("tree_depth")
    @classmethod
    def _depth_in_range(cls, v: int) -> int:
        if not 1 <= v <= MAX_TREE_DEPTH:
            raise ValueError(f"tree_depth must be in [1, {MAX_TREE_DEPTH}]")
        return v

    @field_validator("verifier")
    @classmethod
    def _known_verifier(cls, v: str) -> str:
        v = v.lower()
        if v not in ("stub", "ed25519"):
            raise ValueError("verifier must be 'stub' or 'ed25519'")
        return v

    @field_validator("journal")
    @classmethod
    def _known_journal(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "jsonl", "sql"):
            raise ValueError("journal must be 'memory', 'jsonl' or 'sql'")
        return v

    @field_validator("fee_collector")
    @classmethod
    def _collector_identity(cls, v: str) -> str:
        return normalize_identity(v)

    @model_validator(mode="after")
    def _fees_consistent(self) -> "Settings":
        if self.token_id < 0:
            raise ValueError("token_id must be non-negative")
        if self.fee_denominator <= 0:
            raise ValueError("fee_denominator must be positive")
        for name in ("deposit_fee_bp", "remint_fee_bp", "withdraw_fee_bp"):
            bp = getattr(self, name)
            if not 0 <= bp <= self.fee_denominator:
                raise ValueError(f"{name} must be in [0, fee_denominator]")
            if bp and self.fee_collector == ZERO_IDENTITY:
                raise ValueError(f"{name} is set but fee_collector is the zero identity")
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            tree_depth=_geti("ZW_TREE_DEPTH", DEFAULT_TREE_DEPTH),
            token_id=_geti("ZW_TOKEN_ID", 0),
            verifier=_gets("ZW_VERIFIER", "ed25519"),
            truststore_path=_gets("ZW_TRUSTSTORE", "trust/prover_keys.json"),
            journal=_gets("ZW_JOURNAL", "memory"),
            journal_path=_gets("ZW_JOURNAL_PATH", "ledger/events/events.jsonl"),
            db_url=_gets("ZW_DB_URL", "sqlite:///ledger/zwledger.sqlite"),
            fee_collector=_gets("ZW_FEE_COLLECTOR", ZERO_IDENTITY),
            fee_denominator=_geti("ZW_FEE_DENOMINATOR", FEE_DENOMINATOR_DEFAULT),
            deposit_fee_bp=_geti("ZW_DEPOSIT_FEE_BP", 0),
            remint_fee_bp=_geti("ZW_REMINT_FEE_BP", 0),
            withdraw_fee_bp=_geti("ZW_WITHDRAW_FEE_BP", 0),
            operator_key=os.environ.get("ZW_OPERATOR_KEY", ""),
            log_level=_gets("ZW_LOG_LEVEL", "INFO"),
        )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("zwledger").setLevel(level.upper())
