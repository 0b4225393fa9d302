from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import date, datetime
from typing import Optional
import json
import logging
import uuid

from pydantic import ValidationError

from config import ANTHROPIC_API_KEY, CORS_ORIGINS, LOG_LEVEL, MODEL, NARRATIVE_TIMEOUT
from database import TaskStore, init_db
from models import (
    Narrative,
    NarrativeFailure,
    NarrativeRequest,
    ProgressResponse,
    ProgressUpdateRequest,
    RemindersResponse,
    Step,
    StepCreate,
    StepUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
    TaskView,
)
from narrative import GENERIC_NARRATIVE, NarrativeGenerator
from schedule import describe_task, get_tasks_due_for_reminder, reminder_banner

logger = logging.getLogger(__name__)

NARRATIVE_FALLBACK_NOTICE = "Couldn't reach the progress coach. Showing an estimate from your schedule instead."

store = TaskStore()
narrator = NarrativeGenerator(ANTHROPIC_API_KEY, MODEL, timeout=NARRATIVE_TIMEOUT)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    init_db()
    store.load()
    logger.info("Loaded %d tasks", len(store.tasks))
    yield
    # Shutdown (nothing to do, every mutation is saved as it happens)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Routes that touch the store are async so they run one at a time on the
# event loop instead of concurrently in the threadpool
def get_store() -> TaskStore:
    return store


def get_narrator() -> NarrativeGenerator:
    return narrator


def _get_task_or_404(task_store: TaskStore, task_id: str) -> Task:
    task = task_store.get(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _save(task_store: TaskStore, task: Task) -> Task:
    task_store.replace(task)
    task_store.save()
    return task


@app.get("/tasks", response_model=list[TaskView])
async def get_tasks(
    day: Optional[date] = Query(default=None, alias="date"),
    task_store: TaskStore = Depends(get_store),
) -> list[TaskView]:
    today = day or date.today()
    return [describe_task(task, today) for task in task_store.tasks]


@app.post("/tasks", response_model=TaskView)
async def create_task(task_data: TaskCreate, task_store: TaskStore = Depends(get_store)) -> TaskView:
    task = Task(
        id=str(uuid.uuid4()),
        created_at=datetime.now(),
        **task_data.model_dump(),
    )
    task_store.add(task)
    task_store.save()
    logger.info("Created task %s (%s)", task.id, task.schedule.kind)
    return describe_task(task, date.today())


@app.get("/tasks/{task_id}", response_model=TaskView)
async def get_task(
    task_id: str,
    day: Optional[date] = Query(default=None, alias="date"),
    task_store: TaskStore = Depends(get_store),
) -> TaskView:
    return describe_task(_get_task_or_404(task_store, task_id), day or date.today())


@app.patch("/tasks/{task_id}", response_model=TaskView)
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    task_store: TaskStore = Depends(get_store),
) -> TaskView:
    task = _get_task_or_404(task_store, task_id)
    changes = task_data.model_dump(exclude_unset=True)
    updated = _save(task_store, task.model_copy(update=changes))
    return describe_task(updated, date.today())


@app.delete("/tasks/{task_id}")
async def delete_task(task_id: str, task_store: TaskStore = Depends(get_store)) -> dict:
    if not task_store.remove(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    task_store.save()
    return {"status": "deleted"}


@app.post("/tasks/{task_id}/steps", response_model=TaskView)
async def add_step(
    task_id: str,
    step_data: StepCreate,
    task_store: TaskStore = Depends(get_store),
) -> TaskView:
    task = _get_task_or_404(task_store, task_id)
    step = Step(id=str(uuid.uuid4()), text=step_data.text)
    updated = _save(task_store, task.model_copy(update={"steps": [*task.steps, step]}))
    return describe_task(updated, date.today())


@app.patch("/tasks/{task_id}/steps/{step_id}", response_model=TaskView)
async def update_step(
    task_id: str,
    step_id: str,
    step_data: StepUpdate,
    task_store: TaskStore = Depends(get_store),
) -> TaskView:
    task = _get_task_or_404(task_store, task_id)
    if not any(step.id == step_id for step in task.steps):
        raise HTTPException(status_code=404, detail="Step not found")

    completed_at = datetime.now() if step_data.completed else None
    steps = [
        step.model_copy(update={"completed": step_data.completed, "completed_at": completed_at})
        if step.id == step_id else step
        for step in task.steps
    ]
    updated = _save(task_store, task.model_copy(update={"steps": steps}))
    return describe_task(updated, date.today())


@app.post("/tasks/{task_id}/progress", response_model=ProgressResponse)
async def update_progress(
    task_id: str,
    request: ProgressUpdateRequest,
    task_store: TaskStore = Depends(get_store),
    generator: NarrativeGenerator = Depends(get_narrator),
) -> ProgressResponse:
    """Ask for a fresh narrative and attach it to the task."""
    task = _get_task_or_404(task_store, task_id)
    today = date.today()
    result = await generator.generate(task, today, request.user_update)

    # The task may have changed or been deleted while the call was in flight;
    # apply the narrative to its current version (last resolved call wins)
    current = _get_task_or_404(task_store, task_id)
    updated = _save(task_store, current.model_copy(update={
        "progress_made": result.narrative.progress_made,
        "progress_to_go": result.narrative.progress_to_go,
    }))
    return ProgressResponse(
        task=describe_task(updated, today),
        notice=None if result.ok else NARRATIVE_FALLBACK_NOTICE,
    )


@app.post("/analyze-task-progress", response_model=Narrative)
async def analyze_task_progress(
    request: Request,
    generator: NarrativeGenerator = Depends(get_narrator),
):
    """Stateless narrative endpoint; failures answer 500 with fallback text still filled in."""
    try:
        payload = NarrativeRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning("Unreadable narrative request: %s", e)
        failure = NarrativeFailure(error="Invalid request", **GENERIC_NARRATIVE.model_dump())
        return JSONResponse(status_code=500, content=failure.model_dump(by_alias=True))

    result = await generator.generate(payload.task, date.today(), payload.user_update)
    if not result.ok:
        return JSONResponse(status_code=500, content=result.as_failure().model_dump(by_alias=True))
    return result.narrative


@app.get("/reminders", response_model=RemindersResponse)
async def get_reminders(
    day: Optional[date] = Query(default=None, alias="date"),
    task_store: TaskStore = Depends(get_store),
) -> RemindersResponse:
    today = day or date.today()
    due = get_tasks_due_for_reminder(task_store.tasks, today)
    return RemindersResponse(
        tasks=[describe_task(task, today) for task in due],
        message=reminder_banner(task_store.tasks, today),
    )


@app.get("/notices")
async def get_notices(task_store: TaskStore = Depends(get_store)) -> dict:
    """Non-blocking notices about recovered failures; each is returned once."""
    return {"notices": task_store.drain_notices()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
