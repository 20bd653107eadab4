import os, json, base64
import requests, typer

from zwledger.config import Settings, configure_logging
from zwledger.crypto.hashing import derive_identity, derive_nullifier, digest_hex, parse_digest
from zwledger.crypto.merkle import verify_merkle_proof
from zwledger.crypto.verifier import AlwaysAcceptVerifier, attest_public_inputs, load_ed25519_private_key_pem
from zwledger.ledger.claims import PublicInputs
from zwledger.ledger.core import ZWLedger
from zwledger.merkle.merkle_lib import root_from_commitments
from zwledger.schemas.events import CommitmentAdded, event_to_dict
from zwledger.store.journal import open_journal

app = typer.Typer(no_args_is_help=True)


def api_url() -> str:
    return os.getenv("ZW_API", "http://localhost:8000")


@app.command()
def derive(secret: int, token_id: int = 0):
    """Print the privacy identity and nullifier for a secret."""
    typer.echo(json.dumps({
        "identity": derive_identity(secret, token_id),
        "nullifier": digest_hex(derive_nullifier(secret, token_id)),
        "token_id": token_id,
    }, indent=2))


@app.command()
def attest(
    key: str = typer.Option(..., help="ed25519 private key PEM"),
    key_id: str = typer.Option(..., help="key id as listed in the truststore"),
    root: str = typer.Option(...),
    nullifier: str = typer.Option(...),
    to: str = typer.Option(...),
    amount: int = typer.Option(...),
    token_id: int = 0,
    withdraw_underlying: bool = False,
    relayer_fee: int = 0,
):
    """Sign a claim's public inputs and print a ready /api/ledger/remint body."""
    inputs = PublicInputs.build(root, nullifier, to, amount, token_id, withdraw_underlying, relayer_fee)
    proof = attest_public_inputs(load_ed25519_private_key_pem(key), key_id, inputs.as_words())
    typer.echo(json.dumps({
        "root": digest_hex(inputs.root),
        "nullifier": digest_hex(inputs.nullifier),
        "to": inputs.recipient,
        "amount": inputs.amount,
        "token_id": inputs.token_id,
        "withdraw_underlying": inputs.withdraw_underlying,
        "relayer_fee": inputs.relayer_fee,
        "proof_b64": base64.b64encode(proof).decode("ascii"),
    }, indent=2))


@app.command("verify-path")
def verify_path(proof_file: str):
    """Check a saved /api/merkle/proof/{index} response offline."""
    with open(proof_file, "r", encoding="utf-8") as f:
        doc = json.load(f)
    ok = verify_merkle_proof(
        parse_digest(doc["leaf"]),
        [parse_digest(e) for e in doc["pathElements"]],
        [int(i) for i in doc["pathIndices"]],
        parse_digest(doc["root"]),
    )
    typer.echo(json.dumps({"ok": ok, "index": doc.get("index"), "root": doc["root"]}))
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def rebuild():
    """
    Replay the configured journal twice: through the ledger, and as bare
    commitment records through a full tree rebuild. The roots must agree.
    """
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    records = [event_to_dict(ev) for ev in open_journal(settings).replay() if isinstance(ev, CommitmentAdded)]
    rebuilt = root_from_commitments(records, settings.tree_depth)
    # replay never consults the verifier
    ledger = ZWLedger(settings, journal=open_journal(settings), verifier=AlwaysAcceptVerifier())
    ok = rebuilt == ledger.root()
    typer.echo(json.dumps({
        "ok": ok,
        "count": len(records),
        "rebuilt_root": digest_hex(rebuilt),
        "ledger_root": digest_hex(ledger.root()),
    }, indent=2))
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000):
    import uvicorn
    uvicorn.run("zwledger.main:app", host=host, port=port)


@app.command()
def health():
    r = requests.get(f"{api_url()}/health", timeout=10)
    typer.echo(r.json())


if __name__ == "__main__":
    app()
