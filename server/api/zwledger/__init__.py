"""ZW ledger: first-receipt commitments, an incremental accumulator and proof-gated remints."""

__version__ = "0.3.0"
