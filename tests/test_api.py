import pytest
from fastapi.testclient import TestClient

from zwledger.config import Settings
from zwledger.crypto.hashing import derive_identity, derive_nullifier, digest_hex, field_hash
from zwledger.ledger.core import ZWLedger
from zwledger.main import create_app

from conftest import FUNDER, ident

OPERATOR = {"X-Operator-Key": "op-secret"}
SECRET = 321


@pytest.fixture
def ledger():
    return ZWLedger(Settings(tree_depth=4, verifier="stub", operator_key="op-secret"))


@pytest.fixture
def client(ledger):
    with TestClient(create_app(ledger)) as c:
        yield c


def fund(client, amount=100):
    p = derive_identity(SECRET)
    assert client.post("/api/ledger/deposit", json={"to": FUNDER, "amount": amount}, headers=OPERATOR).status_code == 200
    r = client.post("/api/ledger/transfer", json={"sender": FUNDER, "to": p, "amount": amount}, headers=OPERATOR)
    assert r.status_code == 200
    return r.json()["root"]


def remint_body(root, to, amount=100, **kw):
    body = {"root": root, "nullifier": digest_hex(derive_nullifier(SECRET)), "to": to, "amount": amount}
    body.update(kw)
    return body


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


class TestOperatorGate:

    def test_missing_or_wrong_key(self, client):
        body = {"to": FUNDER, "amount": 1}
        assert client.post("/api/ledger/deposit", json=body).status_code == 401
        assert client.post("/api/ledger/deposit", json=body, headers={"X-Operator-Key": "nope"}).status_code == 401

    def test_disabled_without_key(self):
        with TestClient(create_app(ZWLedger(Settings(tree_depth=4, verifier="stub")))) as c:
            r = c.post("/api/ledger/deposit", json={"to": FUNDER, "amount": 1}, headers=OPERATOR)
            assert r.status_code == 403

    def test_value_operations(self, client, ledger):
        fund(client)
        spender, to = ident(2), ident(3)
        client.post("/api/ledger/deposit", json={"to": FUNDER, "amount": 50}, headers=OPERATOR)
        r = client.post("/api/ledger/approve", json={"owner": FUNDER, "spender": spender, "amount": 20},
                        headers=OPERATOR)
        assert r.status_code == 200
        r = client.post("/api/ledger/transfer_from",
                        json={"spender": spender, "owner": FUNDER, "to": to, "amount": 20}, headers=OPERATOR)
        assert [e["kind"] for e in r.json()["events"]] == ["transferred", "commitment_added"]
        r = client.post("/api/ledger/withdraw", json={"owner": FUNDER, "to": ident(9), "amount": 30},
                        headers=OPERATOR)
        assert r.status_code == 200
        assert ledger.balance_of(FUNDER) == 0
        assert ledger.reserve() == 120


class TestMerkleRoutes:

    def test_root_and_proof(self, client, ledger):
        root = fund(client)
        doc = client.get("/api/merkle/root").json()
        assert doc == {"ok": True, "root": root, "count": 1, "depth": 4}
        proof = client.get("/api/merkle/proof/0").json()
        assert proof["root"] == root
        assert len(proof["pathElements"]) == 4

        assert client.get(f"/api/merkle/roots/{root}").json()["known"] is True
        assert client.get(f"/api/merkle/roots/{digest_hex(field_hash(5))}").json()["known"] is False

    def test_proof_out_of_range(self, client):
        r = client.get("/api/merkle/proof/3")
        assert r.status_code == 400
        assert r.json()["reason"] == "index_out_of_range"

    def test_verify_rule(self, client):
        assert "tree_rule" in client.get("/api/merkle/verify_rule").json()


class TestClaims:

    def test_remint_and_replay(self, client):
        root = fund(client)
        r = client.post("/api/ledger/remint", json=remint_body(root, ident(0xB0B)))
        assert r.status_code == 200, r.text
        assert [e["kind"] for e in r.json()["events"]] == ["nullifier_spent", "reminted", "commitment_added"]

        nul = digest_hex(derive_nullifier(SECRET))
        assert client.get(f"/api/ledger/nullifiers/{nul}").json()["consumed"] is True
        acct = client.get(f"/api/ledger/accounts/{ident(0xB0B)}").json()
        assert acct["balance"] == 100 and acct["hasFirstReceipt"] is True

        again = client.post("/api/ledger/remint", json=remint_body(root, ident(0xB0B)))
        assert again.status_code == 409
        assert again.json() == {"ok": False, "reason": "nullifier_already_used", "detail": again.json()["detail"]}

    def test_unknown_root(self, client):
        fund(client)
        r = client.post("/api/ledger/remint", json=remint_body(digest_hex(field_hash(1)), ident(0xB0B)))
        assert r.status_code == 400
        assert r.json()["reason"] == "unknown_root"

    def test_bad_proof_encoding(self, client):
        root = fund(client)
        r = client.post("/api/ledger/remint", json=remint_body(root, ident(0xB0B), proof_b64="***"))
        assert r.json()["reason"] == "proof_rejected"


class TestQueries:

    def test_leaves_and_commitments(self, client):
        fund(client)
        p = derive_identity(SECRET)
        assert client.get("/api/ledger/commitments/count").json()["count"] == 1
        assert client.get("/api/ledger/leaves", params={"start": 0, "length": 1}).json()["leaves"] == [
            {"recipient": p, "amount": 100}
        ]
        rows = client.get("/api/ledger/commitments", params={"start": 0, "length": 1}).json()["commitments"]
        assert rows[0]["index"] == 0 and rows[0]["recipient"] == p

        r = client.get("/api/ledger/leaves", params={"start": 0, "length": 2})
        assert r.status_code == 400
        assert r.json()["reason"] == "index_out_of_range"

    def test_omitted_length_reads_to_the_end(self, client):
        assert client.get("/api/ledger/commitments").json()["commitments"] == []
        fund(client)
        p = derive_identity(SECRET)
        rows = client.get("/api/ledger/commitments").json()["commitments"]
        assert [(r["index"], r["recipient"]) for r in rows] == [(0, p)]
        r = client.get("/api/ledger/leaves")
        assert r.status_code == 200
        assert r.json()["leaves"] == [{"recipient": p, "amount": 100}]
        assert client.get("/api/ledger/leaves", params={"start": 1}).json()["leaves"] == []

        assert client.get("/api/ledger/commitments", params={"start": 2}).status_code == 400
        assert client.get("/api/ledger/commitments", params={"start": -1}).status_code == 400
        r = client.get("/api/ledger/commitments", params={"length": 5})
        assert r.status_code == 400
        assert r.json()["reason"] == "index_out_of_range"

    def test_events(self, client):
        fund(client)
        doc = client.get("/api/ledger/events", params={"since": 1}).json()
        assert [e["kind"] for e in doc["events"]] == ["transferred", "commitment_added"]
        assert client.get("/api/ledger/events", params={"since": -1}).status_code == 400

    def test_bad_identity(self, client):
        r = client.get("/api/ledger/accounts/0x1234")
        assert r.status_code == 400
        assert r.json()["reason"] == "invalid_identity"
