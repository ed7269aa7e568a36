"""Chat router: situational analysis over the current reports."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from safetymap.models.report import ReportStatus
from safetymap.services import ai
from safetymap.services.sync_coordinator import SyncCoordinator, get_coordinator

router = APIRouter(prefix="/api", tags=["chat"])


class ChatRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)


class ChatResponse(BaseModel):
    text: str


@router.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Answer from verified reports only; pending reports stay out of analysis."""
    reports = [r for r in await coordinator.current_reports() if r.status == ReportStatus.VERIFIED]
    return ChatResponse(text=await ai.analyze_situation(reports, req.query))
