"""Shared fixtures: throwaway SQLite database and a seeded cycle."""
from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from readyroom.models import Base, Cycle, Qualification, Squadron
from readyroom.store import SqlAttendanceStore
from readyroom.tests.factories import add_event, add_pilot, add_response


@pytest.fixture()
def engine(tmp_path):
    """Throwaway SQLite file per test.

    Store queries run on worker threads; a file database gives each thread its
    own pooled connection instead of one shared in-memory connection.
    """
    eng = create_engine(
        f"sqlite:///{tmp_path / 'readyroom-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def store(session_factory) -> SqlAttendanceStore:
    return SqlAttendanceStore(session_factory)


@pytest.fixture()
def seeded(session: Session) -> dict:
    """A small cycle: two squadrons, two qualifications, two events, five pilots.

    * Event 1 (Jan 10, 20:00 UTC) is posted to Discord as message ``m1``.
    * Event 2 (Feb 10, 20:00 UTC) has no Discord post, so its roll call is manual.
    """
    cycle = Cycle(name="Cycle 25-1", type="Training", start_date=date(2025, 1, 1), end_date=date(2025, 3, 31))
    other = Cycle(name="Cycle 24-4", type="Training", start_date=date(2024, 10, 1), end_date=date(2024, 12, 31))
    session.add_all([cycle, other])
    s1 = Squadron(name="VFA-26", designation="Stingers")
    s2 = Squadron(name="VFA-161", designation="Chargers")
    q1 = Qualification(name="Flight Lead", code="FL", order=1)
    q2 = Qualification(name="Section Lead", code="SL", order=2)
    session.add_all([s1, s2, q1, q2])
    session.flush()

    e1 = add_event(session, cycle, "Strike Training", datetime(2025, 1, 10, 20, 0), ["m1"])
    e2 = add_event(session, cycle, "BFM Night", datetime(2025, 2, 10, 20, 0))

    alpha = add_pilot(session, 744, "Nubs", "d-alpha", squadron=s1, qualifications=[q1])
    bravo = add_pilot(session, 512, "Ghost", "d-bravo", squadron=s1, qualifications=[q2])
    charlie = add_pilot(session, 600, "Rook", "d-charlie", squadron=s2)
    # Active only from Feb 1: not on the roster for event 1.
    delta = add_pilot(
        session, 101, "Late", "d-delta",
        intervals=[(date(2024, 1, 1), date(2025, 1, 31), False), (date(2025, 2, 1), None, True)],
    )
    # Retired before the cycle: never on the roster.
    add_pilot(session, 900, "Gone", "d-echo", intervals=[(date(2023, 1, 1), date(2024, 6, 30), True)])

    # Event 1
    add_response(session, "m1", "d-alpha", datetime(2025, 1, 8, 12, 0), rsvp="accepted")
    add_response(session, "m1", "d-alpha", datetime(2025, 1, 10, 19, 0), rsvp="declined")
    add_response(session, "m1", "d-bravo", datetime(2025, 1, 8, 12, 0), rsvp="accepted", roll_call="Present")
    add_response(session, "m1", "d-charlie", datetime(2025, 1, 8, 12, 0), rsvp="declined")
    add_response(session, "m1", "d-echo", datetime(2025, 1, 8, 12, 0), rsvp="accepted")
    # Event 2 (manual roll call)
    add_response(session, f"manual-{e2.id}", "d-alpha", datetime(2025, 2, 10, 20, 5), roll_call="Present")
    add_response(session, f"manual-{e2.id}", "d-delta", datetime(2025, 2, 10, 20, 5), roll_call="Absent")
    session.commit()

    return {
        "cycle": cycle, "other_cycle": other, "events": [e1, e2],
        "squadrons": [s1, s2], "qualifications": [q1, q2],
        "pilots": {"alpha": alpha, "bravo": bravo, "charlie": charlie, "delta": delta},
    }
