# termplan/main.py
import logging
import random
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from termplan import config, scheduler
from termplan.database import engine, init_db
from termplan.models import GenerationResult, PlanCreate
from termplan.reports import export_timetable, lesson_coverage
from termplan.store import TimetableStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Term Timetable Planner")

# Add CORS middleware - MUST be before routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

config.EXPORT_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/exports", StaticFiles(directory=config.EXPORT_DIR), name="exports")

# One generation at a time per term's fixed timetable and per plan.
# key -> [lock, number of requests holding or waiting on it]
_generate_locks: Dict[str, List] = {}
_generate_locks_guard = threading.Lock()

@contextmanager
def _generation_lock(key: str):
    with _generate_locks_guard:
        entry = _generate_locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _generate_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _generate_locks[key]

@app.on_event("startup")
def on_startup():
    init_db()

def get_store() -> TimetableStore:
    return TimetableStore(engine)

def _raise_for(result: GenerationResult) -> GenerationResult:
    if result.success:
        return result
    status_code = 404 if result.message == scheduler.PLAN_NOT_FOUND else 400
    raise HTTPException(status_code=status_code, detail=result.message)

# --- Fixed timetable ---
@app.post("/terms/{term_id}/fixed-timetable/generate", response_model=GenerationResult)
def generate_fixed_timetable(term_id: int, store: TimetableStore = Depends(get_store)):
    with _generation_lock(f"fixed:{term_id}"):
        result = scheduler.generate_fixed_timetable(store, term_id)
    return _raise_for(result)

@app.get("/terms/{term_id}/fixed-timetable/coverage")
def fixed_timetable_coverage(term_id: int, store: TimetableStore = Depends(get_store)):
    return lesson_coverage(store, term_id).to_dict(orient="records")

@app.post("/terms/{term_id}/fixed-timetable/export")
def export_fixed_timetable(term_id: int, store: TimetableStore = Depends(get_store)):
    try:
        return export_timetable(store, term_id, config.EXPORT_DIR)
    except OSError as e:
        logger.exception("Exporting fixed timetable for term %s failed", term_id)
        raise HTTPException(status_code=500, detail=f"Error exporting timetable: {str(e)}")

# --- Timetable plans ---
@app.post("/terms/{term_id}/timetables", response_model=GenerationResult)
def create_timetable_plan(term_id: int, body: PlanCreate, store: TimetableStore = Depends(get_store)):
    return _raise_for(scheduler.create_timetable_plan(store, term_id, body.name))

@app.post("/terms/{term_id}/timetables/{plan_id}/generate", response_model=GenerationResult)
def generate_plan_assignment(
    term_id: int,
    plan_id: int,
    seed: Optional[int] = None,
    store: TimetableStore = Depends(get_store),
):
    rng = random.Random(seed)
    with _generation_lock(f"plan:{plan_id}"):
        result = scheduler.generate_plan_assignment(store, term_id, plan_id, rng)
    return _raise_for(result)

def _get_plan_or_404(store: TimetableStore, term_id: int, plan_id: int):
    plan = store.get_plan(plan_id)
    if plan is None or plan.term_id != term_id:
        raise HTTPException(status_code=404, detail=scheduler.PLAN_NOT_FOUND)
    return plan

@app.get("/terms/{term_id}/timetables/{plan_id}/coverage")
def plan_coverage(term_id: int, plan_id: int, store: TimetableStore = Depends(get_store)):
    _get_plan_or_404(store, term_id, plan_id)
    return lesson_coverage(store, term_id, plan_id).to_dict(orient="records")

@app.post("/terms/{term_id}/timetables/{plan_id}/export")
def export_plan(term_id: int, plan_id: int, store: TimetableStore = Depends(get_store)):
    _get_plan_or_404(store, term_id, plan_id)
    try:
        return export_timetable(store, term_id, config.EXPORT_DIR, plan_id)
    except OSError as e:
        logger.exception("Exporting timetable plan %s failed", plan_id)
        raise HTTPException(status_code=500, detail=f"Error exporting timetable: {str(e)}")
