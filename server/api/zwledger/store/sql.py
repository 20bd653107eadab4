import os, json
from typing import Iterator, Sequence

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from zwledger.errors import JournalError
from zwledger.schemas.events import LedgerEvent, event_to_dict, parse_event
from zwledger.store.journal import canon_json_line

BaseJournal = declarative_base()


class LedgerEventRow(BaseJournal):
    __tablename__ = "ledger_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    batch = Column(Integer, nullable=False, index=True)     # one batch per ledger operation
    kind = Column(String(40), nullable=False, index=True)
    body_json = Column(Text, nullable=False)                 # canonical json of the event
    created_at = Column(DateTime(timezone=True), server_default=func.now())


Index("ix_ledger_events_batch_id", LedgerEventRow.batch, LedgerEventRow.id)


def _engine(url: str):
    u = make_url(url)
    if u.get_backend_name() == "sqlite":
        if u.database and u.database != ":memory:":
            d = os.path.dirname(u.database)
            if d:
                os.makedirs(d, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url)


class SqlJournal:
    """Journal in a SQL table; a batch is written in one transaction."""

    def __init__(self, url: str):
        self.engine = _engine(url)
        BaseJournal.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False)

    def append(self, events: Sequence[LedgerEvent]) -> None:
        with self.Session.begin() as s:
            last = s.execute(select(func.max(LedgerEventRow.batch))).scalar()
            batch = (last or 0) + 1
            for ev in events:
                s.add(LedgerEventRow(batch=batch, kind=ev.kind, body_json=canon_json_line(event_to_dict(ev))))

    def replay(self) -> Iterator[LedgerEvent]:
        with self.Session() as s:
            rows = s.execute(select(LedgerEventRow).order_by(LedgerEventRow.id)).scalars().all()
            bodies = [(r.id, r.body_json) for r in rows]
        for row_id, body in bodies:
            try:
                yield parse_event(json.loads(body))
            except ValueError as e:
                raise JournalError(f"ledger_events row {row_id}: {e}") from e
