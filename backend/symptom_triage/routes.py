"""HTTP endpoints for analysis, chat sessions and submission history"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from symptom_triage.analysis_client import AnalysisClient
from symptom_triage.chat_graph import ConversationService
from symptom_triage.errors import SessionNotFoundError, ValidationError
from symptom_triage.history import HistoryService
from symptom_triage.models import (
    AnalyzeRequest,
    ChatMessageRequest,
    ChatReplyResponse,
    ErrorResponse,
    Gender,
    IntakeForm,
    SessionStateResponse,
    SubmissionRecord,
    SubmissionResponse,
    TriageAssessment,
    TurnOut,
)
from symptom_triage.submission import SubmissionService, UploadedImage

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api",
    responses={
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


def require_analysis_backend(request: Request) -> None:
    """Reject the request when the backend credential was missing at startup"""
    error = request.app.state.configuration_error
    if error is not None:
        logger.warning("Rejecting %s: analysis backend not configured", request.url.path)
        raise error


def get_analysis_client(request: Request) -> AnalysisClient:
    return request.app.state.analysis_client


def get_conversations(request: Request) -> ConversationService:
    return request.app.state.conversations


def get_submissions(request: Request) -> SubmissionService:
    return request.app.state.submissions


def get_history(request: Request) -> HistoryService:
    return request.app.state.history


def _session_state(conversation) -> SessionStateResponse:
    return SessionStateResponse(
        session_id=conversation.session_id,
        phase=conversation.phase,
        turns=[TurnOut.from_turn(turn) for turn in conversation.turns],
    )


@router.post(
    "/analyze",
    response_model=TriageAssessment,
    tags=["analysis"],
    dependencies=[Depends(require_analysis_backend)],
)
async def analyze(body: AnalyzeRequest, client: AnalysisClient = Depends(get_analysis_client)):
    """Analyze a symptom description; responds with ``content`` plus structured fields"""
    if not body.symptoms.strip():
        raise ValidationError("Empty symptoms")
    return await client.analyze(body.symptoms)


@router.post(
    "/chat/sessions",
    response_model=SessionStateResponse,
    status_code=201,
    tags=["chat"],
    dependencies=[Depends(require_analysis_backend)],
)
async def create_session(conversations: ConversationService = Depends(get_conversations)):
    """Start a new conversation, opened by the assistant greeting"""
    conversation = await conversations.store.create_session()
    return _session_state(conversation)


@router.get("/chat/sessions/{session_id}", response_model=SessionStateResponse, tags=["chat"])
async def get_session(session_id: str, conversations: ConversationService = Depends(get_conversations)):
    conversation = await conversations.store.get_session(session_id)
    if conversation is None:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return _session_state(conversation)


@router.delete("/chat/sessions/{session_id}", tags=["chat"])
async def delete_session(session_id: str, conversations: ConversationService = Depends(get_conversations)):
    """Discard a conversation so the user can start over"""
    if not await conversations.store.delete_session(session_id):
        raise SessionNotFoundError(f"Session {session_id} not found")
    return {"deleted": True}


@router.post(
    "/chat/sessions/{session_id}/messages",
    response_model=ChatReplyResponse,
    tags=["chat"],
    dependencies=[Depends(require_analysis_backend)],
)
async def send_message(
    session_id: str,
    body: ChatMessageRequest,
    conversations: ConversationService = Depends(get_conversations),
):
    result = await conversations.send_message(session_id, body.content)
    return ChatReplyResponse(
        session_id=result.session_id,
        phase=result.phase,
        reply=TurnOut.from_turn(result.reply),
        assessment=result.assessment,
        error=result.error,
    )


@router.post(
    "/users/{owner_id}/submissions",
    response_model=SubmissionResponse,
    tags=["submissions"],
    dependencies=[Depends(require_analysis_backend)],
)
async def create_submission(
    owner_id: str,
    symptoms: str = Form(""),
    age: str = Form(""),
    gender: Gender = Form(""),
    temperature: str = Form(""),
    blood_pressure: str = Form("", alias="bloodPressure"),
    image: Optional[UploadFile] = File(None),
    submissions: SubmissionService = Depends(get_submissions),
):
    """Analyze an intake form and store it in the user's history"""
    form = IntakeForm(
        symptoms=symptoms,
        age=age,
        gender=gender,
        temperature=temperature,
        blood_pressure=blood_pressure,
    )
    uploaded = None
    if image is not None and image.filename:
        uploaded = UploadedImage(
            filename=image.filename,
            data=await image.read(),
        )

    outcome = await submissions.submit(owner_id, form, uploaded)
    return SubmissionResponse(
        assessment=outcome.assessment,
        record=outcome.record,
        error=outcome.error,
    )


@router.get(
    "/users/{owner_id}/submissions",
    response_model=list[SubmissionRecord],
    tags=["submissions"],
)
def list_submissions(owner_id: str, search: str = "", history: HistoryService = Depends(get_history)):
    """Submissions newest first; ``search`` is a prefix-style range match on symptoms"""
    return history.list(owner_id, search)
