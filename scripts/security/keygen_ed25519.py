#!/usr/bin/env python3
"""Generate a prover key for the ed25519 claim verifier and trust it."""
import json, base64, argparse
from pathlib import Path
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives import serialization

ap = argparse.ArgumentParser()
ap.add_argument("--out-dir", default="keys")
ap.add_argument("--key-id", required=True)
ap.add_argument("--truststore", default="trust/prover_keys.json")
args = ap.parse_args()

out = Path(args.out_dir)
out.mkdir(parents=True, exist_ok=True)
priv_path = out / f"{args.key_id}.ed25519.priv.pem"
if priv_path.exists():
    raise SystemExit(f"refusing to overwrite {priv_path}")

priv = ed25519.Ed25519PrivateKey.generate()
pub_raw = priv.public_key().public_bytes(
    encoding=serialization.Encoding.Raw,
    format=serialization.PublicFormat.Raw
)
priv_path.write_bytes(priv.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption()
))

ts = Path(args.truststore)
doc = json.loads(ts.read_text(encoding="utf-8")) if ts.exists() else {"trusted_keys": []}
keys = [k for k in doc.get("trusted_keys", []) if k.get("key_id") != args.key_id]
keys.append({
    "key_id": args.key_id,
    "alg": "ed25519",
    "public_key_raw_b64": base64.b64encode(pub_raw).decode("ascii"),
})
doc["trusted_keys"] = keys
ts.parent.mkdir(parents=True, exist_ok=True)
ts.write_text(json.dumps(doc, indent=2, sort_keys=True) + "\n", encoding="utf-8")

print("Wrote private key:", priv_path)
print("Trusted", args.key_id, "in", ts)
