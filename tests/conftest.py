from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from termplan.database import init_db
from termplan.models import (
    CalendarDay,
    DayType,
    RequiredLessonCount,
    Subject,
    Term,
    WeekdayRule,
)
from termplan.store import TimetableStore

# Monday
TERM_START = date(2025, 4, 7)
TERM_WEEKS = 4


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return TimetableStore(engine)


def seed_term(engine, required, slot_count=6, holidays=()):
    """
    Four-week term, Mon-Fri instructional, weekends off. `required` maps
    subject name -> required lesson count. Returns ids.
    """
    with Session(engine) as session:
        term = Term(
            name="Spring",
            starts_at=TERM_START,
            ends_at=TERM_START + timedelta(days=7 * TERM_WEEKS - 1),
        )
        session.add(term)
        session.flush()

        subjects = {}
        for name, count in required.items():
            subject = Subject(name=name)
            session.add(subject)
            session.flush()
            subjects[name] = subject.id
            session.add(RequiredLessonCount(term_id=term.id, subject_id=subject.id, required_count=count))

        for weekday in range(1, 6):
            session.add(WeekdayRule(term_id=term.id, weekday=weekday, default_slot_count=slot_count))

        for offset in range(7 * TERM_WEEKS):
            day = TERM_START + timedelta(days=offset)
            if day in holidays:
                day_type = DayType.HOLIDAY
            elif day.isoweekday() >= 6:
                day_type = DayType.WEEKLY_OFF
            else:
                day_type = DayType.NORMAL
            session.add(CalendarDay(term_id=term.id, date=day, day_type=day_type, slot_count=slot_count))

        session.commit()
        return SimpleNamespace(term_id=term.id, subjects=subjects)


@pytest.fixture
def seeded(engine):
    return seed_term(engine, {"Math": 10, "Art": 7, "PE": 5, "Music": 4})


@pytest.fixture
def empty_term(engine):
    with Session(engine) as session:
        term = Term(name="Empty", starts_at=TERM_START, ends_at=TERM_START + timedelta(days=6))
        session.add(term)
        session.commit()
        return term.id
