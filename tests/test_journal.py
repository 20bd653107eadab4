import json
import pytest

from zwledger.config import Settings
from zwledger.crypto.hashing import commitment_hash, digest_hex
from zwledger.errors import JournalError
from zwledger.ledger.claims import RemintRequest
from zwledger.ledger.core import ZWLedger
from zwledger.schemas.events import CommitmentAdded, Deposited, Withdrawn, event_to_dict
from zwledger.store.journal import JsonlJournal, MemoryJournal, open_journal
from zwledger.store.sql import SqlJournal

from conftest import FUNDER, claim_inputs, fund_privacy_identity, ident

SETTINGS = Settings(tree_depth=4, verifier="stub")


def run_scenario(ledger):
    fund_privacy_identity(ledger, 11, 300)
    ledger.approve(FUNDER, ident(2), 50)
    ledger.deposit(FUNDER, 80)
    ledger.transfer_from(ident(2), FUNDER, ident(3), 30)
    ledger.remint(RemintRequest(claim_inputs(ledger, 11, ident(4), 300), b""))
    ledger.withdraw(FUNDER, ident(5), 20)


def fingerprint(ledger):
    return (
        ledger.root(),
        ledger.state.roots.history(),
        [r.to_json() for r in ledger.get_commitments(0, ledger.commitment_count())],
        dict(ledger.state.book.balances),
        dict(ledger.state.book.allowances),
        ledger.reserve(),
        ledger.total_supply(),
        len(ledger.state.nullifiers),
        [event_to_dict(e) for e in ledger.events(0, 1000)],
    )


class TestReplay:

    @pytest.mark.parametrize("kind", ["memory", "jsonl", "sql"])
    def test_replay_rebuilds_identical_state(self, tmp_path, kind):
        memory = MemoryJournal()
        make = {
            "memory": lambda: memory,
            "jsonl": lambda: JsonlJournal(str(tmp_path / "events" / "events.jsonl")),
            "sql": lambda: SqlJournal(f"sqlite:///{tmp_path}/db/zw.sqlite"),
        }[kind]
        live = ZWLedger(SETTINGS, journal=make())
        run_scenario(live)

        replayed = ZWLedger(SETTINGS, journal=make())
        assert fingerprint(replayed) == fingerprint(live)
        assert replayed.is_nullifier_consumed(claim_inputs(live, 11, ident(4), 300).nullifier)

    def test_open_journal_by_settings(self, tmp_path):
        s = Settings(journal="jsonl", journal_path=str(tmp_path / "j.jsonl"))
        assert isinstance(open_journal(s), JsonlJournal)
        s = Settings(journal="sql", db_url=f"sqlite:///{tmp_path}/j.sqlite")
        assert isinstance(open_journal(s), SqlJournal)
        assert isinstance(open_journal(Settings()), MemoryJournal)


class TestJsonlJournal:

    def test_one_line_per_operation(self, tmp_path):
        path = tmp_path / "events.jsonl"
        ledger = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        ledger.deposit(FUNDER, 10)
        ledger.transfer(FUNDER, ident(2), 5)
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        second = json.loads(lines[1])
        assert second["seq"] == 2
        assert [e["kind"] for e in second["events"]] == ["transferred", "commitment_added"]

    def test_torn_tail_is_dropped(self, tmp_path):
        path = tmp_path / "events.jsonl"
        live = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        run_scenario(live)
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"seq": 99, "events": [{"kind": "depos')

        reopened = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        assert fingerprint(reopened) == fingerprint(live)
        reopened.deposit(FUNDER, 1)
        again = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        assert again.balance_of(FUNDER) == reopened.balance_of(FUNDER)

    def test_unparsable_last_line_is_cut_before_next_append(self, tmp_path):
        path = tmp_path / "events.jsonl"
        live = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        live.deposit(FUNDER, 10)
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"seq": 2, "events": [{"kind": "depos\n')

        reopened = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        assert reopened.balance_of(FUNDER) == 10
        reopened.deposit(FUNDER, 5)
        lines = path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(ln)["seq"] for ln in lines] == [1, 2]

        again = ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))
        assert again.balance_of(FUNDER) == 15

    def test_corrupt_middle_line(self, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text('{"seq":1,"events":[]}\nnot json\n{"seq":3,"events":[]}\n', encoding="utf-8")
        with pytest.raises(JournalError):
            ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))

    def test_inconsistent_event_fails_replay(self, tmp_path):
        path = tmp_path / "events.jsonl"
        j = JsonlJournal(str(path))
        j.append([CommitmentAdded(commitment=digest_hex(commitment_hash(ident(1), 2)),
                                  index=0, recipient=ident(1), amount=3)])
        with pytest.raises(JournalError):
            ZWLedger(SETTINGS, journal=JsonlJournal(str(path)))


class FailingJournal(MemoryJournal):

    def append(self, events):
        raise OSError("disk full")


def test_failed_append_leaves_state_unchanged():
    ledger = ZWLedger(SETTINGS, journal=FailingJournal())
    with pytest.raises(OSError):
        ledger.deposit(FUNDER, 10)
    assert ledger.balance_of(FUNDER) == 0
    assert ledger.reserve() == 0
    assert ledger.events() == []


def test_overdrawn_withdraw_in_journal_fails_replay():
    j = MemoryJournal()
    j.append([Deposited(to=FUNDER, amount=5)])
    j.append([Withdrawn(owner=FUNDER, to=ident(2), amount=6)])
    with pytest.raises(JournalError):
        ZWLedger(SETTINGS, journal=j)


def test_subscribers_see_committed_events():
    ledger = ZWLedger(SETTINGS)
    seen = []
    ledger.subscribe(lambda ev: seen.append(ev.kind))
    ledger.subscribe(lambda ev: 1 / 0)
    ledger.deposit(FUNDER, 10)
    ledger.transfer(FUNDER, ident(2), 4)
    assert seen == ["deposited", "transferred", "commitment_added"]
    assert ledger.balance_of(ident(2)) == 4
