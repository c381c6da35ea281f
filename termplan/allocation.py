# termplan/allocation.py
"""
Weekly lesson allocation.

Turns a term's required lesson counts into a weekday x slot grid:

1. count how often each weekday is an instructional day in the term,
2. split every subject's required count over the weekdays that can take it,
3. fill each weekday's slots left to right, placing a subject at most once
   per day unless the lessons owed that day cannot fit any other way.

Nothing here touches the database; callers pass plain tuples and dicts.
"""
import logging
import random
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Mon..Fri, ISO numbering
WEEKDAYS = (1, 2, 3, 4, 5)

# [(day_slot_index, subject_id or None), ...] for one weekday
DayAssignment = List[Tuple[int, Optional[int]]]

Distributor = Callable[[int, Dict[int, int], Dict[int, int]], Dict[int, int]]


def count_weekday_occurrences(days: Iterable[Tuple[date, int]]) -> Dict[int, int]:
    """
    Count instructional days per weekday.

    `days` holds (date, weekday) pairs of instructional calendar days. Every
    weekday 1..5 is present in the result, with 0 when it never occurs.
    """
    occurrences = {weekday: 0 for weekday in WEEKDAYS}
    for _, weekday in days:
        # Weekend days never count, even if tagged as instructional
        if weekday in occurrences:
            occurrences[weekday] += 1
    return occurrences


def available_weekdays(occurrences: Dict[int, int], capacities: Dict[int, int]) -> List[int]:
    return [
        weekday
        for weekday in WEEKDAYS
        if occurrences.get(weekday, 0) > 0 and capacities.get(weekday, 0) > 0
    ]


def distribute_proportional(
    required: int, occurrences: Dict[int, int], capacities: Dict[int, int]
) -> Dict[int, int]:
    """
    Split `required` over the available weekdays in proportion to how often
    each weekday occurs in the term.

    Each share is rounded half up, then the rounding error is walked off one
    unit per weekday per pass, most frequent weekday first, so the targets
    always add up to `required`.
    """
    if required < 0:
        raise ValueError(f"required lesson count must be >= 0, got {required}")

    weekdays = available_weekdays(occurrences, capacities)
    if not weekdays:
        return {}

    total = sum(occurrences[weekday] for weekday in weekdays)
    targets = {
        weekday: (2 * required * occurrences[weekday] + total) // (2 * total)
        for weekday in weekdays
    }

    diff = required - sum(targets.values())
    by_occurrence = sorted(weekdays, key=lambda weekday: occurrences[weekday], reverse=True)
    while diff != 0:
        for weekday in by_occurrence:
            if diff > 0:
                targets[weekday] += 1
                diff -= 1
            elif diff < 0 and targets[weekday] > 0:
                targets[weekday] -= 1
                diff += 1
            if diff == 0:
                break

    return {weekday: count for weekday, count in targets.items() if count > 0}


def distribute_equal(
    required: int, occurrences: Dict[int, int], capacities: Dict[int, int]
) -> Dict[int, int]:
    """
    Split `required` evenly over the available weekdays; the remainder goes
    one each to the earliest weekdays.
    """
    if required < 0:
        raise ValueError(f"required lesson count must be >= 0, got {required}")

    weekdays = available_weekdays(occurrences, capacities)
    if not weekdays:
        return {}

    base, remainder = divmod(required, len(weekdays))
    targets = {}
    for i, weekday in enumerate(weekdays):
        count = base + (1 if i < remainder else 0)
        if count > 0:
            targets[weekday] = count
    return targets


class StaticPriority:
    """Subjects with the larger term-wide required count go first."""

    def __init__(self, required_totals: Dict[int, int]):
        self.required_totals = required_totals

    def arrange(self, subject_ids: Sequence[int]) -> List[int]:
        return sorted(subject_ids, key=lambda s: -self.required_totals.get(s, 0))

    def rank(self, subject_id: int, remaining: Dict[int, int], previous_subject: Optional[int]):
        return 0


class ShuffledPriority:
    """
    Random day order, then avoid repeating the subject that held the same
    slot on the previous occurring weekday, then larger remaining need first.

    Pass `rng` or `seed` for reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def arrange(self, subject_ids: Sequence[int]) -> List[int]:
        order = list(subject_ids)
        self.rng.shuffle(order)
        return order

    def rank(self, subject_id: int, remaining: Dict[int, int], previous_subject: Optional[int]):
        return (subject_id == previous_subject, -remaining[subject_id])


def assign_slots(
    slot_count: int,
    owed: Dict[int, int],
    priority,
    previous: Optional[DayAssignment] = None,
) -> DayAssignment:
    """
    Fill slots 1..slot_count of one weekday from `owed` (subject -> lessons
    owed on this weekday).

    A subject already placed today is only picked again when every subject
    still owed has been placed once. Slots left over once nothing is owed
    stay None. `previous` is the previous occurring weekday's result, used
    by priorities that avoid same-slot repeats.
    """
    remaining = dict(owed)
    order = priority.arrange([s for s, count in remaining.items() if count > 0])
    previous_by_slot = dict(previous or [])
    assigned_today = set()

    slots: DayAssignment = []
    for slot_index in range(1, slot_count + 1):
        previous_subject = previous_by_slot.get(slot_index)
        pool = [s for s in order if remaining[s] > 0]
        candidates = [s for s in pool if s not in assigned_today] or pool

        chosen = None
        if candidates:
            chosen = min(
                candidates,
                key=lambda s: priority.rank(s, remaining, previous_subject),
            )
            remaining[chosen] -= 1
            assigned_today.add(chosen)
        slots.append((slot_index, chosen))
    return slots


def build_weekly_assignment(
    required_counts: Sequence[Tuple[int, int]],
    weekday_rules: Sequence[Tuple[int, int]],
    occurrences: Dict[int, int],
    distribute: Distributor,
    priority,
) -> Dict[int, DayAssignment]:
    """
    Compute the full weekly grid.

    Returns weekday -> day assignment for every weekday that both occurs in
    the term and has slots. Weekdays are filled in order and each one sees
    the previous filled weekday's result.
    """
    capacities = {weekday: slot_count for weekday, slot_count in weekday_rules}

    targets: Dict[int, Dict[int, int]] = {}
    for subject_id, required in required_counts:
        per_weekday = distribute(required, occurrences, capacities)
        if required > 0 and not per_weekday:
            logger.warning(
                "Subject %s has no available weekday, %d lessons left unallocated",
                subject_id, required,
            )
        targets[subject_id] = per_weekday

    weekly: Dict[int, DayAssignment] = {}
    previous: Optional[DayAssignment] = None
    for weekday in sorted(capacities):
        slot_count = capacities[weekday]
        if weekday not in WEEKDAYS or slot_count <= 0 or occurrences.get(weekday, 0) <= 0:
            continue

        owed = {
            subject_id: per_weekday[weekday]
            for subject_id, per_weekday in targets.items()
            if per_weekday.get(weekday, 0) > 0
        }
        day = assign_slots(slot_count, owed, priority, previous)

        placed = sum(1 for _, subject_id in day if subject_id is not None)
        if placed < sum(owed.values()):
            logger.warning(
                "Weekday %d: %d of %d owed lessons placed",
                weekday, placed, sum(owed.values()),
            )

        weekly[weekday] = day
        previous = day
    return weekly
