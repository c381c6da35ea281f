import random
from collections import Counter
from datetime import date, timedelta
from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from termplan import scheduler

TERM_ID = 1
PLAN_ID = 10
MATH, ART, PE = 1, 2, 3


def _four_weeks():
    start = date(2025, 4, 7)
    days = [start + timedelta(days=i) for i in range(28)]
    return [(d, d.isoweekday()) for d in days if d.isoweekday() <= 5]


class FakeStore:
    """In-memory stand-in for TimetableStore that records writes."""

    def __init__(self, required=(), rules=(), days=(), fixed=(), plan_term_id=TERM_ID, fail=False):
        self.required = list(required)
        self.rules = list(rules)
        self.days = list(days)
        self.fixed = list(fixed)
        self.plan_term_id = plan_term_id
        self.fail = fail
        self.writes = []

    def list_required_lesson_counts(self, term_id):
        return self.required

    def list_weekday_rules(self, term_id):
        return self.rules

    def list_instructional_calendar_days(self, term_id):
        return self.days

    def list_fixed_slots(self, term_id):
        return self.fixed

    def get_plan(self, plan_id):
        if self.plan_term_id is None:
            return None
        return SimpleNamespace(id=plan_id, term_id=self.plan_term_id)

    def _write(self, kind, key, cells):
        if self.fail:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        cells = list(cells)
        self.writes.append((kind, key, cells))
        return sum(1 for _, _, subject_id in cells if subject_id is not None)

    def replace_fixed_slots(self, term_id, cells):
        return self._write("fixed", term_id, cells)

    def replace_plan_slots(self, plan_id, cells):
        return self._write("plan", plan_id, cells)

    def create_plan(self, term_id, name, cells):
        self._write("create", (term_id, name), cells)
        return PLAN_ID


def _configured(**kwargs):
    return FakeStore(
        required=[(MATH, 10), (ART, 7), (PE, 5)],
        rules=[(weekday, 6) for weekday in range(1, 6)],
        days=_four_weeks(),
        **kwargs
    )


# --- Fixed timetable ---
def test_fixed_generation_without_requirements_writes_nothing():
    store = FakeStore(rules=[(1, 6)], days=_four_weeks())
    result = scheduler.generate_fixed_timetable(store, TERM_ID)
    assert not result.success
    assert result.message == scheduler.MISSING_REQUIREMENTS
    assert store.writes == []


def test_fixed_generation_without_weekday_rules_writes_nothing():
    store = FakeStore(required=[(MATH, 10)], days=_four_weeks())
    result = scheduler.generate_fixed_timetable(store, TERM_ID)
    assert not result.success
    assert result.message == scheduler.MISSING_WEEKDAY_RULES
    assert store.writes == []


def test_fixed_generation_replaces_term_slots():
    store = _configured()
    result = scheduler.generate_fixed_timetable(store, TERM_ID)

    assert result.success
    assert result.message is None
    [(kind, key, cells)] = store.writes
    assert (kind, key) == ("fixed", TERM_ID)
    placed = Counter(subject_id for _, _, subject_id in cells if subject_id is not None)
    # 4 occurrences each weekday: 10 -> 2 per day, 7 -> 2,2,1,1,1, 5 -> 1 per day
    assert placed == Counter({MATH: 10, ART: 7, PE: 5})
    assert result.slots_written == 22


def test_fixed_generation_is_deterministic():
    first, second = _configured(), _configured()
    scheduler.generate_fixed_timetable(first, TERM_ID)
    scheduler.generate_fixed_timetable(second, TERM_ID)
    assert first.writes == second.writes


def test_fixed_generation_reports_persistence_failure():
    store = _configured(fail=True)
    result = scheduler.generate_fixed_timetable(store, TERM_ID)
    assert not result.success
    assert result.message == scheduler.GENERATION_FAILED


# --- Plan regeneration ---
def test_plan_generation_for_unknown_plan_is_a_no_op():
    store = _configured(plan_term_id=None)
    result = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID)
    assert not result.success
    assert result.message == scheduler.PLAN_NOT_FOUND
    assert store.writes == []


def test_plan_generation_rejects_plan_of_another_term():
    store = _configured(plan_term_id=TERM_ID + 1)
    result = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID)
    assert result.message == scheduler.PLAN_NOT_FOUND
    assert store.writes == []


def test_plan_generation_without_requirements_writes_nothing():
    store = FakeStore(rules=[(1, 6)], days=_four_weeks())
    result = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID)
    assert result.message == scheduler.MISSING_REQUIREMENTS
    assert store.writes == []


def test_plan_generation_replaces_plan_slots():
    store = _configured()
    result = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID, random.Random(1))

    assert result.success
    assert result.plan_id == PLAN_ID
    [(kind, key, cells)] = store.writes
    assert (kind, key) == ("plan", PLAN_ID)
    for weekday in range(1, 6):
        day = [subject_id for wd, _, subject_id in cells if wd == weekday and subject_id is not None]
        # five or fewer lessons owed a day; a subject owed twice repeats once
        assert sorted(Counter(day).values()) in ([1, 1, 2], [1, 2, 2])


def test_plan_generation_is_reproducible_with_same_seed():
    first, second = _configured(), _configured()
    scheduler.generate_plan_assignment(first, TERM_ID, PLAN_ID, random.Random(5))
    scheduler.generate_plan_assignment(second, TERM_ID, PLAN_ID, random.Random(5))
    assert first.writes == second.writes


def test_plan_generation_keeps_counts_across_seeds():
    def counts(seed):
        store = _configured()
        scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID, random.Random(seed))
        return Counter((weekday, subject_id) for weekday, _, subject_id in store.writes[0][2])

    assert counts(1) == counts(2) == counts(3)


def test_plan_generation_reports_persistence_failure():
    store = _configured(fail=True)
    result = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID)
    assert not result.success
    assert result.message == scheduler.GENERATION_FAILED


# --- Plan creation ---
def test_create_plan_requires_name():
    store = _configured()
    result = scheduler.create_timetable_plan(store, TERM_ID, "   ")
    assert result.message == scheduler.PLAN_NAME_REQUIRED
    assert store.writes == []


def test_create_plan_requires_weekday_rules():
    store = FakeStore()
    result = scheduler.create_timetable_plan(store, TERM_ID, "Draft")
    assert result.message == scheduler.MISSING_WEEKDAY_RULES
    assert store.writes == []


def test_create_plan_seeds_cells_from_fixed_timetable():
    store = FakeStore(rules=[(1, 2), (2, 1)], fixed=[(1, 1, MATH), (2, 1, ART)])
    result = scheduler.create_timetable_plan(store, TERM_ID, " Draft ")

    assert result.success
    assert result.plan_id == PLAN_ID
    assert result.slots_written == 3
    assert store.writes == [
        ("create", (TERM_ID, "Draft"), [(1, 1, MATH), (1, 2, None), (2, 1, ART)]),
    ]


# --- Failures inside the orchestrator ---
class UnreadableStore(FakeStore):
    """Every read fails the way a locked database does."""

    def _fail(self, *args):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    list_required_lesson_counts = _fail
    list_weekday_rules = _fail
    get_plan = _fail


def test_fixed_generation_reports_read_failure():
    store = UnreadableStore()
    result = scheduler.generate_fixed_timetable(store, TERM_ID)
    assert not result.success
    assert result.message == scheduler.GENERATION_FAILED
    assert store.writes == []


def test_plan_generation_reports_read_failure():
    store = UnreadableStore()
    result = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID)
    assert result.message == scheduler.GENERATION_FAILED
    assert store.writes == []


def test_create_plan_reports_read_failure():
    store = UnreadableStore()
    result = scheduler.create_timetable_plan(store, TERM_ID, "Draft")
    assert result.message == scheduler.GENERATION_FAILED
    assert store.writes == []


def test_negative_required_count_fails_without_writing():
    store = _configured()
    store.required = [(MATH, -3), (ART, 7)]

    fixed = scheduler.generate_fixed_timetable(store, TERM_ID)
    plan = scheduler.generate_plan_assignment(store, TERM_ID, PLAN_ID)

    assert fixed.message == scheduler.GENERATION_FAILED
    assert plan.message == scheduler.GENERATION_FAILED
    assert store.writes == []
