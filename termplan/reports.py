# termplan/reports.py
import json
import logging
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from termplan.allocation import count_weekday_occurrences

logger = logging.getLogger(__name__)

WEEKDAY_LABELS = {1: "Mon", 2: "Tue", 3: "Wed", 4: "Thu", 5: "Fri", 6: "Sat", 7: "Sun"}

COVERAGE_COLUMNS = ["subject_id", "subject", "required", "scheduled", "difference"]


def lesson_coverage(store, term_id: int, plan_id: Optional[int] = None) -> pd.DataFrame:
    """
    Compare how many lessons each subject gets over the term against its
    required count.

    A subject's scheduled count is the sum, over every slot holding it, of
    how often that slot's weekday occurs in the term. Uses the plan's slots
    when `plan_id` is given, otherwise the fixed timetable.
    """
    required_counts = store.list_required_lesson_counts(term_id)
    names = store.list_subject_names()
    occurrences = count_weekday_occurrences(store.list_instructional_calendar_days(term_id))
    cells = store.list_plan_slots(plan_id) if plan_id is not None else store.list_fixed_slots(term_id)

    scheduled = Counter()
    for weekday, _, subject_id in cells:
        if subject_id is not None:
            scheduled[subject_id] += occurrences.get(weekday, 0)

    df = pd.DataFrame(
        [
            (subject_id, names.get(subject_id, str(subject_id)), required, scheduled[subject_id], 0)
            for subject_id, required in required_counts
        ],
        columns=COVERAGE_COLUMNS,
    )
    df["difference"] = df["scheduled"] - df["required"]
    return df


def timetable_grid(cells: Iterable, names: Dict[int, str]) -> pd.DataFrame:
    """Slot index rows x weekday columns, subject names in the cells."""
    rows = [
        (weekday, slot_index, names.get(subject_id, "") if subject_id is not None else "")
        for weekday, slot_index, subject_id in cells
    ]
    if not rows:
        return pd.DataFrame()

    df = pd.DataFrame(rows, columns=["weekday", "slot", "subject"])
    grid = df.pivot(index="slot", columns="weekday", values="subject")
    grid = grid.rename(columns=WEEKDAY_LABELS).fillna("")
    grid.columns.name = None
    return grid


def export_timetable(store, term_id: int, out_dir: Path, plan_id: Optional[int] = None) -> Dict[str, str]:
    """
    Write the fixed timetable (or a plan) to JSON and Excel.
    Returns the written file paths.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stem = f"plan_{plan_id}" if plan_id is not None else f"fixed_{term_id}"

    names = store.list_subject_names()
    cells = store.list_plan_slots(plan_id) if plan_id is not None else store.list_fixed_slots(term_id)

    records = [
        {
            "weekday": WEEKDAY_LABELS.get(weekday, str(weekday)),
            "slot": slot_index,
            "subject": names.get(subject_id) if subject_id is not None else None,
        }
        for weekday, slot_index, subject_id in cells
    ]

    json_path = out_dir / f"{stem}.json"
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=4)

    xlsx_path = out_dir / f"{stem}.xlsx"
    with pd.ExcelWriter(xlsx_path) as writer:
        timetable_grid(cells, names).to_excel(writer, sheet_name="timetable")
        lesson_coverage(store, term_id, plan_id).to_excel(writer, sheet_name="coverage", index=False)

    logger.info("Exported %s with %d entries", stem, len(records))
    return {"json": str(json_path), "xlsx": str(xlsx_path)}
