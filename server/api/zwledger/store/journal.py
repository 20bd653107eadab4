import os, json, logging
from typing import Iterator, List, Protocol, Sequence

from zwledger.errors import JournalError
from zwledger.schemas.events import LedgerEvent, event_to_dict, parse_event

logger = logging.getLogger(__name__)


class Journal(Protocol):
    """
    Append-only event store. append() persists one batch atomically (all
    events of one operation) or raises; replay() yields every event in order.
    """

    def append(self, events: Sequence[LedgerEvent]) -> None: ...

    def replay(self) -> Iterator[LedgerEvent]: ...


def canon_json_line(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class MemoryJournal:

    def __init__(self):
        self._batches: List[List[LedgerEvent]] = []

    def append(self, events: Sequence[LedgerEvent]) -> None:
        self._batches.append(list(events))

    def replay(self) -> Iterator[LedgerEvent]:
        for batch in self._batches:
            yield from batch


class JsonlJournal:
    """
    One JSON line per batch: {"seq": n, "events": [...]}. A crash mid-write
    leaves a last line that is unfinished or does not parse; that batch was
    never applied, so opening the journal cuts it off before anything is
    appended behind it.
    """

    def __init__(self, path: str):
        self.path = path
        d = os.path.dirname(path)
        if d:
            os.makedirs(d, exist_ok=True)
        if not os.path.exists(path):
            open(path, "a", encoding="utf-8").close()
        self._repair_tail()
        self._seq = sum(1 for _ in self._lines())

    def _repair_tail(self) -> None:
        with open(self.path, "rb+") as f:
            data = f.read()
            keep = len(data)
            if data and not data.endswith(b"\n"):
                keep = data.rfind(b"\n") + 1
            body = data[:keep].rstrip()
            start = body.rfind(b"\n") + 1
            if body[start:].strip():
                try:
                    json.loads(body[start:])
                except ValueError:
                    keep = start
            if keep < len(data):
                logger.warning("truncating torn tail of %s (%d bytes)", self.path, len(data) - keep)
                f.truncate(keep)

    def _lines(self) -> Iterator[str]:
        with open(self.path, "r", encoding="utf-8") as f:
            for ln in f:
                ln = ln.strip()
                if ln:
                    yield ln

    def append(self, events: Sequence[LedgerEvent]) -> None:
        line = canon_json_line({"seq": self._seq + 1, "events": [event_to_dict(e) for e in events]})
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        self._seq += 1

    def replay(self) -> Iterator[LedgerEvent]:
        for n, ln in enumerate(self._lines(), start=1):
            try:
                batch = json.loads(ln)
            except json.JSONDecodeError as e:
                raise JournalError(f"{self.path}:{n}: bad json") from e
            try:
                events = [parse_event(obj) for obj in batch["events"]]
            except (KeyError, TypeError, ValueError) as e:
                raise JournalError(f"{self.path}:{n}: bad batch: {e}") from e
            yield from events


def open_journal(settings) -> Journal:
    if settings.journal == "memory":
        return MemoryJournal()
    if settings.journal == "jsonl":
        return JsonlJournal(settings.journal_path)
    from zwledger.store.sql import SqlJournal
    return SqlJournal(settings.db_url)
