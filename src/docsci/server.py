from __future__ import annotations

import hashlib
import hmac
import json
import subprocess
import tempfile
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from . import events, triggers
from .config import Settings, get_settings
from .model import EVENT_TYPES, PULL_REQUEST, Event, Workflow
from .runner import RunReport, run_jobs
from .ui.console import get_console

# -------------------- Schemas --------------------

class EventRequest(BaseModel):
    type: str
    branch: str = ""
    changed_paths: list[str] = Field(default_factory=list)
    repository: str | None = None
    sha: str | None = None


class EventResponse(BaseModel):
    triggered: bool
    reason: str
    run_id: str | None = None


class StepView(BaseModel):
    name: str
    kind: str
    status: str
    exit_code: int | None = None


class JobView(BaseModel):
    status: str
    exit_code: int
    steps: list[StepView] = Field(default_factory=list)
    error: str | None = None


class RunResponse(BaseModel):
    run_id: str
    workflow: str
    event: str
    status: str  # queued|running|ok|failed
    exit_code: int | None = None
    jobs: dict[str, JobView] = Field(default_factory=dict)


# -------------------- Run registry --------------------

MAX_RUNS = 500
FINISHED = ("ok", "failed")


class RunRegistry:
    """
    In-memory view of runs started by this process. Nothing is persisted.

    At most `max_runs` are kept; the oldest finished runs are dropped first.
    Queued and running runs are never dropped.
    """

    def __init__(self, max_runs: int = MAX_RUNS) -> None:
        self._lock = threading.Lock()
        self._max_runs = max_runs
        self._runs: "OrderedDict[str, RunReport]" = OrderedDict()
        self._status: Dict[str, str] = {}

    def add(self, report: RunReport) -> None:
        with self._lock:
            self._runs[report.run_id] = report
            self._status[report.run_id] = "queued"
            self._evict()

    def _evict(self) -> None:
        finished = [rid for rid in self._runs if self._status[rid] in FINISHED]
        while len(self._runs) > self._max_runs and finished:
            rid = finished.pop(0)
            del self._runs[rid]
            del self._status[rid]

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)

    def set_status(self, run_id: str, status: str) -> None:
        with self._lock:
            self._status[run_id] = status

    def get(self, run_id: str) -> Optional[tuple[RunReport, str]]:
        with self._lock:
            if run_id not in self._runs:
                return None
            return self._runs[run_id], self._status[run_id]


def _to_response(report: RunReport, status: str) -> RunResponse:
    jobs = {}
    for name, result in report.results.items():
        jobs[name] = JobView(
            status=result.status,
            exit_code=result.exit_code,
            steps=[StepView(name=s.name, kind=s.kind, status=s.status, exit_code=s.exit_code) for s in result.steps],
            error=str(result.error) if result.error is not None else None,
        )
    return RunResponse(
        run_id=report.run_id,
        workflow=report.workflow,
        event=report.event.type,
        status=status,
        exit_code=report.exit_code if status in ("ok", "failed") else None,
        jobs=jobs,
    )


def _pull_request_changes(payload: Dict[str, Any]) -> list[str]:
    with tempfile.TemporaryDirectory() as tmp:
        return events.pull_request_changes(payload, tmp)


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check a GitHub `X-Hub-Signature-256` header against the raw body."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256="):])


# -------------------- App --------------------

def create_app(workflow: Workflow, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    registry = RunRegistry()
    app = FastAPI(title="docsci webhook receiver")
    app.state.registry = registry
    app.state.workflow = workflow

    def execute(report: RunReport) -> None:
        console = get_console()
        registry.set_status(report.run_id, "running")
        try:
            report.results = run_jobs(workflow.jobs, report.event, settings=settings, console=console)
        except Exception as e:
            console.print_exception(e)
            registry.set_status(report.run_id, "failed")
            return
        registry.set_status(report.run_id, "ok" if report.ok else "failed")

    def accept(event: Event, background: BackgroundTasks) -> EventResponse:
        triggered, reason = triggers.explain(workflow, event)
        get_console().print_trigger(triggered, reason)
        if not triggered:
            return EventResponse(triggered=False, reason=reason)
        report = RunReport(workflow=workflow.name, event=event, triggered=True, reason=reason)
        registry.add(report)
        background.add_task(execute, report)
        return EventResponse(triggered=True, reason=reason, run_id=report.run_id)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True, "workflow": workflow.name}

    @app.post("/events", response_model=EventResponse)
    def post_event(req: EventRequest, background: BackgroundTasks):
        if req.type not in EVENT_TYPES:
            raise HTTPException(status_code=400, detail=f"type must be one of {list(EVENT_TYPES)}")
        event = events.from_args(
            req.type,
            branch=req.branch,
            changed=req.changed_paths,
            repository=req.repository,
            sha=req.sha,
        )
        return accept(event, background)

    @app.post("/github", response_model=EventResponse)
    async def post_github(
        request: Request,
        background: BackgroundTasks,
        x_github_event: str = Header(...),
        x_hub_signature_256: str | None = Header(default=None),
    ):
        body = await request.body()
        if settings.webhook_secret and not verify_signature(settings.webhook_secret, body, x_hub_signature_256):
            raise HTTPException(status_code=401, detail="bad signature")

        if x_github_event == "ping":
            return EventResponse(triggered=False, reason="ping")
        if x_github_event not in EVENT_TYPES:
            return EventResponse(triggered=False, reason=f"ignored event {x_github_event!r}")

        try:
            payload = json.loads(body or b"{}")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"invalid payload: {e}")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="invalid payload: expected a JSON object")

        if x_github_event == PULL_REQUEST and payload.get("action") not in events.PULL_REQUEST_ACTIONS:
            return EventResponse(triggered=False, reason=f"ignored action {payload.get('action')!r}")

        try:
            event = events.from_github_payload(x_github_event, payload)
        except (ValueError, TypeError, AttributeError) as e:
            raise HTTPException(status_code=400, detail=f"invalid payload: {e}")

        if event.type == PULL_REQUEST:
            try:
                changed = await run_in_threadpool(_pull_request_changes, payload)
            except (ValueError, subprocess.CalledProcessError) as e:
                raise HTTPException(status_code=422, detail=f"cannot list pull request changes: {e}")
            event = events.with_changes(event, changed)

        return accept(event, background)

    @app.get("/runs/{run_id}", response_model=RunResponse)
    async def get_run(run_id: str):
        found = registry.get(run_id)
        if not found:
            raise HTTPException(status_code=404, detail="Run not found")
        report, status = found
        return _to_response(report, status)

    return app
