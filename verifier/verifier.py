"""
Reconstruction observer. Pages through /api/ledger/commitments, rebuilds the
tree from the records alone and checks the result against /api/merkle/root.
"""
import os, sys, time, logging, argparse, requests

from zwledger.crypto.hashing import digest_hex, parse_digest
from zwledger.merkle.merkle_lib import root_from_commitments

API = os.environ.get("ZW_API", "http://api:8000")
PAGE = int(os.environ.get("ZW_OBSERVER_PAGE", "500"))

log = logging.getLogger("zwledger.observer")


def fetch_records(api: str):
    count = requests.get(f"{api}/api/ledger/commitments/count", timeout=20).json()["count"]
    out = []
    while len(out) < count:
        n = min(PAGE, count - len(out))
        r = requests.get(f"{api}/api/ledger/commitments", params={"start": len(out), "length": n}, timeout=20)
        r.raise_for_status()
        out.extend(r.json()["commitments"])
    return out


def check_once(api: str, attempts: int = 3) -> bool:
    for _ in range(attempts):
        head = requests.get(f"{api}/api/merkle/root", timeout=20)
        head.raise_for_status()
        doc = head.json()
        records = fetch_records(api)
        if len(records) == doc["count"]:
            break
        # the ledger moved between the two reads
        log.info("ledger advanced during fetch (%d -> %d); retrying", doc["count"], len(records))
    else:
        log.warning("ledger kept moving; skipped this round")
        return False
    rebuilt = root_from_commitments(records, int(doc["depth"]))
    ok = rebuilt == parse_digest(doc["root"])
    if ok:
        log.info("root %s matches %d commitments", doc["root"], len(records))
    else:
        log.error("root mismatch: api %s, rebuilt %s", doc["root"], digest_hex(rebuilt))
    return ok


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--api", default=API)
    ap.add_argument("--once", action="store_true")
    ap.add_argument("--interval", type=float, default=15.0)
    args = ap.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.once:
        sys.exit(0 if check_once(args.api) else 1)
    while True:
        try:
            check_once(args.api)
        except (requests.RequestException, ValueError, KeyError) as e:
            log.warning("observer error: %s", e)
        time.sleep(args.interval)


if __name__ == "__main__":
    main()
