# termplan/models.py
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import CheckConstraint, DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field

class DayType(str, Enum):
    NORMAL = "NORMAL"
    WEEKLY_OFF = "WEEKLY_OFF"
    HOLIDAY = "HOLIDAY"
    SCHOOL_EVENT = "SCHOOL_EVENT"

# Day types on which lessons are held
INSTRUCTIONAL_DAY_TYPES = (DayType.NORMAL, DayType.SCHOOL_EVENT)

class Subject(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str

class Term(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    starts_at: date
    ends_at: date

class WeekdayRule(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("term_id", "weekday"),
        CheckConstraint("default_slot_count >= 0"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    term_id: int = Field(foreign_key="term.id", index=True)
    weekday: int  # 1=Mon .. 7=Sun
    default_slot_count: int = Field(default=0, ge=0)

class CalendarDay(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("term_id", "date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    term_id: int = Field(foreign_key="term.id", index=True)
    date: date
    day_type: DayType = DayType.NORMAL
    slot_count: int = 0
    title: Optional[str] = None

class RequiredLessonCount(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("term_id", "subject_id"),
        CheckConstraint("required_count >= 0"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    term_id: int = Field(foreign_key="term.id", index=True)
    subject_id: int = Field(foreign_key="subject.id")
    required_count: int = Field(default=0, ge=0)

class FixedTimetableSlot(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("term_id", "weekday", "day_slot_index"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    term_id: int = Field(foreign_key="term.id", index=True)
    weekday: int
    day_slot_index: int  # 1-based position within the day
    subject_id: int = Field(foreign_key="subject.id")
    name: Optional[str] = None
    note: Optional[str] = None

class TimetablePlan(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    term_id: int = Field(foreign_key="term.id", index=True)
    name: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )

class TimetablePlanSlot(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("timetable_plan_id", "weekday", "day_slot_index"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    timetable_plan_id: int = Field(foreign_key="timetableplan.id", index=True)
    weekday: int
    day_slot_index: int
    subject_id: Optional[int] = Field(default=None, foreign_key="subject.id")

# --- API payloads ---
class GenerationResult(BaseModel):
    success: bool
    message: Optional[str] = None
    slots_written: int = 0
    plan_id: Optional[int] = None

class PlanCreate(BaseModel):
    name: str
