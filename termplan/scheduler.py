# termplan/scheduler.py
import logging
import random
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from termplan.allocation import (
    DayAssignment,
    ShuffledPriority,
    StaticPriority,
    build_weekly_assignment,
    count_weekday_occurrences,
    distribute_equal,
    distribute_proportional,
)
from termplan.models import GenerationResult

logger = logging.getLogger(__name__)

MISSING_REQUIREMENTS = "legal required lesson counts not configured"
MISSING_WEEKDAY_RULES = "weekly rules not configured"
GENERATION_FAILED = "generation failed"
PLAN_NOT_FOUND = "timetable plan not found"
PLAN_NAME_REQUIRED = "timetable name is required"


class GenerationError(Exception):
    """A term is not configured well enough to generate a timetable."""

    message = GENERATION_FAILED


class MissingRequirementsError(GenerationError):
    message = MISSING_REQUIREMENTS


class MissingWeekdayRulesError(GenerationError):
    message = MISSING_WEEKDAY_RULES


def _load_inputs(store, term_id: int) -> Tuple[List[Tuple[int, int]], List[Tuple[int, int]], Dict[int, int]]:
    """
    Read required counts, weekday rules and weekday occurrences for a term.
    Raises before anything is written if the term is not configured.
    """
    required_counts = store.list_required_lesson_counts(term_id)
    if not required_counts:
        raise MissingRequirementsError(term_id)

    weekday_rules = store.list_weekday_rules(term_id)
    if not weekday_rules:
        raise MissingWeekdayRulesError(term_id)

    occurrences = count_weekday_occurrences(store.list_instructional_calendar_days(term_id))
    return required_counts, weekday_rules, occurrences


def _to_cells(weekly: Dict[int, DayAssignment]) -> List[Tuple[int, int, Optional[int]]]:
    return [
        (weekday, slot_index, subject_id)
        for weekday, day in sorted(weekly.items())
        for slot_index, subject_id in day
    ]


def generate_fixed_timetable(store, term_id: int) -> GenerationResult:
    """
    Rebuild the term's fixed weekly timetable.

    Required counts are split over weekdays in proportion to how often each
    weekday occurs, and slots are filled with the subjects that need the
    most lessons first. The term's previous fixed slots are replaced.
    """
    try:
        required_counts, weekday_rules, occurrences = _load_inputs(store, term_id)
        weekly = build_weekly_assignment(
            required_counts,
            weekday_rules,
            occurrences,
            distribute_proportional,
            StaticPriority(dict(required_counts)),
        )
        written = store.replace_fixed_slots(term_id, _to_cells(weekly))
    except GenerationError as e:
        logger.warning("Fixed timetable for term %s not generated: %s", term_id, e.message)
        return GenerationResult(success=False, message=e.message)
    except (SQLAlchemyError, ValueError):
        logger.exception("Generating fixed timetable for term %s failed", term_id)
        return GenerationResult(success=False, message=GENERATION_FAILED)

    logger.info("Fixed timetable for term %s generated, %d slots written", term_id, written)
    return GenerationResult(success=True, slots_written=written)


def generate_plan_assignment(
    store,
    term_id: int,
    plan_id: int,
    rng: Optional[random.Random] = None,
) -> GenerationResult:
    """
    Regenerate every slot of a timetable plan.

    Required counts are split evenly over the available weekdays; the day
    order is shuffled with `rng` and a subject is kept out of the slot it
    held on the previous weekday where possible.
    """
    try:
        plan = store.get_plan(plan_id)
        if plan is None or plan.term_id != term_id:
            logger.warning("Timetable plan %s not found in term %s", plan_id, term_id)
            return GenerationResult(success=False, message=PLAN_NOT_FOUND)

        required_counts, weekday_rules, occurrences = _load_inputs(store, term_id)
        weekly = build_weekly_assignment(
            required_counts,
            weekday_rules,
            occurrences,
            distribute_equal,
            ShuffledPriority(rng),
        )
        written = store.replace_plan_slots(plan_id, _to_cells(weekly))
    except GenerationError as e:
        logger.warning("Timetable plan %s not generated: %s", plan_id, e.message)
        return GenerationResult(success=False, message=e.message, plan_id=plan_id)
    except (SQLAlchemyError, ValueError):
        logger.exception("Generating timetable plan %s failed", plan_id)
        return GenerationResult(success=False, message=GENERATION_FAILED, plan_id=plan_id)

    logger.info("Timetable plan %s generated, %d slots written", plan_id, written)
    return GenerationResult(success=True, slots_written=written, plan_id=plan_id)


def create_timetable_plan(store, term_id: int, name: str) -> GenerationResult:
    """
    Create a named plan with one slot per weekday rule cell, pre-filled
    from the fixed timetable.
    """
    name = (name or "").strip()
    if not name:
        return GenerationResult(success=False, message=PLAN_NAME_REQUIRED)

    try:
        weekday_rules = store.list_weekday_rules(term_id)
        if not weekday_rules:
            return GenerationResult(success=False, message=MISSING_WEEKDAY_RULES)

        fixed = {
            (weekday, slot_index): subject_id
            for weekday, slot_index, subject_id in store.list_fixed_slots(term_id)
        }
        cells = [
            (weekday, slot_index, fixed.get((weekday, slot_index)))
            for weekday, slot_count in weekday_rules
            for slot_index in range(1, slot_count + 1)
        ]
        plan_id = store.create_plan(term_id, name, cells)
    except SQLAlchemyError:
        logger.exception("Creating timetable plan %r for term %s failed", name, term_id)
        return GenerationResult(success=False, message=GENERATION_FAILED)

    logger.info("Timetable plan %s created for term %s with %d slots", plan_id, term_id, len(cells))
    return GenerationResult(success=True, slots_written=len(cells), plan_id=plan_id)
