"""Question answering and ingestion trigger endpoints."""

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field

from . import config
from .query import QueryOrchestrator
from .scheduler import IngestionScheduler
from .services import get_orchestrator, get_scheduler

router = APIRouter()

LOOKBACK_PATTERN = r"^\d+(us|ms|s|m|h|d)$"


class AskRequest(BaseModel):
    question: str = Field(min_length=1)


class AskResponse(BaseModel):
    question: str
    answer: str


class IngestTracesRequest(BaseModel):
    lookback: str | None = Field(default=None, pattern=LOOKBACK_PATTERN)
    limit: int | None = Field(default=None, gt=0)

    def effective_lookback(self) -> str:
        return self.lookback or config.INGEST_TRACES_LOOKBACK

    def effective_limit(self) -> int:
        return self.limit or config.INGEST_TRACES_LIMIT


@router.post("/ask", response_model=AskResponse)
def ask(req: AskRequest, orchestrator: QueryOrchestrator = Depends(get_orchestrator)):
    answer = orchestrator.ask(req.question)
    return AskResponse(question=req.question, answer=answer)


@router.post("/ingest")
def ingest(scheduler: IngestionScheduler = Depends(get_scheduler)):
    count = scheduler.run_docs()
    if count is None:
        return {"status": "skipped", "reason": "ingestion already in progress", "documentsIngested": 0}
    return {"status": "completed", "documentsIngested": count}


@router.post("/ingest/traces")
def ingest_traces(
    req: IngestTracesRequest | None = Body(default=None),
    scheduler: IngestionScheduler = Depends(get_scheduler),
):
    req = req or IngestTracesRequest()
    lookback, limit = req.effective_lookback(), req.effective_limit()
    count = scheduler.run_traces(lookback, limit)
    if count is None:
        return {
            "status": "skipped",
            "reason": "ingestion already in progress",
            "tracesIngested": 0,
            "lookback": lookback,
            "limit": limit,
        }
    return {"status": "completed", "tracesIngested": count, "lookback": lookback, "limit": limit}


@router.get("/health")
def health():
    return {"status": "ok"}
