from __future__ import annotations
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import os, logging, threading
from contextlib import asynccontextmanager

from assess_core.audit_export import session_events, to_csv as audit_to_csv, to_json as audit_to_json
from assess_core.config import AUDIT_EXPORT_ENABLED, SWEEP_INTERVAL_SEC, load_config, seed_rng
from assess_core.engine import SessionManager
from assess_core.errors import AssessmentError, PoolExhausted, SessionNotFound, ValidationError
from assess_core.generator import default_generator
from assess_core.insights import ResultAnalyzer, default_narrator
from assess_core.pool import QuestionPoolProvider
from assess_core.question_bank import load_bank
from assess_core.store import SessionStore
from assess_core.types import Criteria, SessionConfig
from .storage import ARCHIVE, SESSIONS_DIR, list_reports_for_user, load_report

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger(__name__)


def build_manager() -> SessionManager:
    cfg = load_config()
    pool = QuestionPoolProvider(load_bank(cfg.get("QUESTION_BANK_PATH")), default_generator(), seed_rng(cfg))
    return SessionManager(
        pool,
        SessionStore(SESSIONS_DIR),
        analyzer=ResultAnalyzer(default_narrator(cfg)),
        persistence=ARCHIVE,
    )


MANAGER: SessionManager = build_manager()


# ---- Background expiry sweep ----
_SWEEP_STOP = threading.Event()

def _sweep_loop(interval: int) -> None:
    while not _SWEEP_STOP.wait(interval):
        try:
            done = MANAGER.sweep_expired()
            if done:
                log.info("sweep finalized %d expired sessions", len(done))
        except Exception:
            log.exception("expiry sweep failed")

@asynccontextmanager
async def _lifespan(_: FastAPI):
    if SWEEP_INTERVAL_SEC > 0:
        _SWEEP_STOP.clear()
        threading.Thread(target=_sweep_loop, args=(SWEEP_INTERVAL_SEC,), daemon=True, name="sweep").start()
    try:
        yield
    finally:
        _SWEEP_STOP.set()


app = FastAPI(title="Adaptive Assessment API", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,  # keep False unless you use cookies
)


def _status_for(exc: AssessmentError) -> int:
    if isinstance(exc, SessionNotFound):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, PoolExhausted):
        return 503
    return 409


@app.exception_handler(AssessmentError)
async def assessment_error_handler(request: Request, exc: AssessmentError):
    return JSONResponse(status_code=_status_for(exc), content={"error": exc.to_dict()})


# ---- Schemas ----
class CreateReq(BaseModel):
    learner_id: str
    subject_id: str
    question_count: int
    topic_id: str | None = None
    subtopic_id: str | None = None
    time_limit_sec: int | None = None
    starting_difficulty: str = "MEDIUM"
    adaptive: bool = True

class AnswerReq(BaseModel):
    question_id: str
    answer: int | float | str
    time_spent_sec: float

class GenerateReq(BaseModel):
    subject_id: str
    topic_id: str | None = None
    subtopic_id: str | None = None
    difficulty: str = "MEDIUM"
    count: int = 5


# ---- Health ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "llm_backend": os.getenv("LLM_BACKEND", "none"),
        "sessions": len(MANAGER.store),
    }


# ---- Session lifecycle ----
@app.post("/assessments")
def create_assessment(req: CreateReq):
    session = MANAGER.create_session(SessionConfig(**req.model_dump()))
    return session.public_view()

@app.get("/assessments/{sid}")
def get_assessment(sid: str):
    return MANAGER.get_session(sid).public_view()

@app.post("/assessments/{sid}/answer")
def submit_answer(sid: str, req: AnswerReq):
    session = MANAGER.submit_answer(sid, req.question_id, req.answer, req.time_spent_sec)
    done = session.status == "COMPLETED"
    return {
        "done": done,
        "session": session.public_view(),
        "result": session.result.to_dict() if done and session.result else None,
    }

@app.post("/assessments/{sid}/pause")
def pause_assessment(sid: str):
    MANAGER.pause(sid)
    return {"ok": True}

@app.post("/assessments/{sid}/resume")
def resume_assessment(sid: str):
    return MANAGER.resume(sid).public_view()

@app.post("/assessments/{sid}/finish")
def finish_assessment(sid: str):
    return MANAGER.finalize(sid).to_dict()

@app.get("/assessments/{sid}/result")
def get_result(sid: str):
    return MANAGER.get_result(sid).to_dict()

@app.post("/assessments/sweep")
def sweep_assessments():
    return {"finalized": MANAGER.sweep_expired()}


# ---- Audit export ----
@app.get("/assessments/{sid}/audit.json")
def get_audit_json(sid: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")
    session = MANAGER.get_session(sid)
    return {"session_id": sid, **audit_to_json(session_events(session))}

@app.get("/assessments/{sid}/audit.csv")
def get_audit_csv(sid: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")
    session = MANAGER.get_session(sid)
    body = audit_to_csv(session_events(session))
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{sid}_audit.csv\""},
    )


# ---- Content tooling ----
@app.post("/questions/generate")
def generate_questions(req: GenerateReq):
    criteria = Criteria(req.subject_id, req.topic_id, req.subtopic_id)
    questions = MANAGER.generate_questions(criteria, req.difficulty, req.count)
    return {"questions": [q.to_dict() for q in questions]}


# ---- Archive ----
@app.get("/users/{learner_id}/reports")
def list_reports(learner_id: str):
    return {"reports": list_reports_for_user(learner_id)}

@app.get("/reports/{sid}")
def get_report(sid: str):
    report = load_report(sid)
    if report is None:
        raise HTTPException(404, "report not found")
    return report

