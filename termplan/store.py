# termplan/store.py
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from termplan.models import (
    CalendarDay,
    FixedTimetableSlot,
    INSTRUCTIONAL_DAY_TYPES,
    RequiredLessonCount,
    Subject,
    TimetablePlan,
    TimetablePlanSlot,
    WeekdayRule,
)

# (weekday, day_slot_index, subject_id or None)
Cell = Tuple[int, int, Optional[int]]


class TimetableStore:
    """
    Database access for timetable generation.

    Reads return plain tuples so the allocation code never sees ORM objects.
    Every write runs in a single transaction: the old slot set is deleted and
    the new one inserted, or nothing changes.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    # --- Reads ---
    def list_required_lesson_counts(self, term_id: int) -> List[Tuple[int, int]]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(RequiredLessonCount)
                .where(RequiredLessonCount.term_id == term_id)
                .order_by(RequiredLessonCount.id)
            ).all()
            return [(r.subject_id, r.required_count) for r in rows]

    def list_weekday_rules(self, term_id: int) -> List[Tuple[int, int]]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(WeekdayRule)
                .where(WeekdayRule.term_id == term_id)
                .order_by(WeekdayRule.weekday)
            ).all()
            return [(r.weekday, r.default_slot_count) for r in rows]

    def list_instructional_calendar_days(self, term_id: int) -> List[Tuple[date, int]]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(CalendarDay)
                .where(CalendarDay.term_id == term_id)
                .where(CalendarDay.day_type.in_(INSTRUCTIONAL_DAY_TYPES))
                .order_by(CalendarDay.date)
            ).all()
            return [(r.date, r.date.isoweekday()) for r in rows]

    def get_plan(self, plan_id: int) -> Optional[TimetablePlan]:
        with Session(self.engine) as session:
            return session.get(TimetablePlan, plan_id)

    def list_fixed_slots(self, term_id: int) -> List[Cell]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(FixedTimetableSlot).where(FixedTimetableSlot.term_id == term_id)
            ).all()
            return sorted((r.weekday, r.day_slot_index, r.subject_id) for r in rows)

    def list_plan_slots(self, plan_id: int) -> List[Cell]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TimetablePlanSlot).where(TimetablePlanSlot.timetable_plan_id == plan_id)
            ).all()
            return sorted(
                ((r.weekday, r.day_slot_index, r.subject_id) for r in rows),
                key=lambda cell: (cell[0], cell[1]),
            )

    def list_subject_names(self) -> Dict[int, str]:
        with Session(self.engine) as session:
            return {s.id: s.name for s in session.exec(select(Subject)).all()}

    # --- Writes ---
    def replace_fixed_slots(self, term_id: int, cells: Iterable[Cell]) -> int:
        new_slots = [
            FixedTimetableSlot(
                term_id=term_id, weekday=weekday, day_slot_index=slot_index, subject_id=subject_id
            )
            for weekday, slot_index, subject_id in cells
            if subject_id is not None
        ]
        with Session(self.engine) as session, session.begin():
            session.exec(delete(FixedTimetableSlot).where(FixedTimetableSlot.term_id == term_id))
            session.add_all(new_slots)
        return len(new_slots)

    def replace_plan_slots(self, plan_id: int, cells: Iterable[Cell]) -> int:
        new_slots = [
            TimetablePlanSlot(
                timetable_plan_id=plan_id, weekday=weekday, day_slot_index=slot_index, subject_id=subject_id
            )
            for weekday, slot_index, subject_id in cells
            if subject_id is not None
        ]
        with Session(self.engine) as session, session.begin():
            session.exec(delete(TimetablePlanSlot).where(TimetablePlanSlot.timetable_plan_id == plan_id))
            session.add_all(new_slots)
        return len(new_slots)

    def create_plan(self, term_id: int, name: str, cells: Iterable[Cell]) -> int:
        """Create a plan together with its (possibly empty) slot cells."""
        with Session(self.engine) as session, session.begin():
            plan = TimetablePlan(term_id=term_id, name=name)
            session.add(plan)
            session.flush()
            session.add_all(
                TimetablePlanSlot(
                    timetable_plan_id=plan.id, weekday=weekday, day_slot_index=slot_index, subject_id=subject_id
                )
                for weekday, slot_index, subject_id in cells
            )
            return plan.id
