class LedgerError(Exception):
    """
    Base class for caller-visible ledger failures.

    Every subclass is raised before the state mutation it guards, so a caught
    LedgerError always means "nothing changed".
    """
    code = "ledger_error"
    status_code = 400

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class CapacityExceeded(LedgerError):
    code = "capacity_exceeded"
    status_code = 409


class UnknownRoot(LedgerError):
    code = "unknown_root"


class NullifierAlreadyUsed(LedgerError):
    code = "nullifier_already_used"
    status_code = 409


class ProofRejected(LedgerError):
    code = "proof_rejected"


class IndexOutOfRange(LedgerError, IndexError):
    code = "index_out_of_range"


class InsufficientBalance(LedgerError):
    code = "insufficient_balance"


class InsufficientAllowance(LedgerError):
    code = "insufficient_allowance"


class InsufficientReserve(LedgerError):
    code = "insufficient_reserve"
    status_code = 409


class InvalidAmount(LedgerError, ValueError):
    code = "invalid_amount"


class InvalidIdentity(LedgerError, ValueError):
    code = "invalid_identity"


class InvalidDigest(LedgerError, ValueError):
    code = "invalid_digest"


class InvalidFee(LedgerError, ValueError):
    code = "invalid_fee"


class UnsupportedTokenId(LedgerError, ValueError):
    code = "unsupported_token_id"


class JournalError(LedgerError):
    # journal content disagrees with what the ledger would have produced
    code = "journal_error"
    status_code = 500
