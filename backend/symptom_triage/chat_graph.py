"""LangGraph pipeline for one chat turn"""

from dataclasses import dataclass
from typing import Literal, Optional, Protocol
import logging

from langgraph.graph import StateGraph, END
from langgraph.graph.state import CompiledStateGraph
from typing_extensions import TypedDict

from symptom_triage.conversation import APOLOGY, format_assessment
from symptom_triage.errors import (
    BackendError,
    ConversationBusyError,
    SessionNotFoundError,
    TriageError,
)
from symptom_triage.models import ConversationContext, ConversationTurn, Phase, TriageAssessment
from symptom_triage.session_store import SessionStore

logger = logging.getLogger(__name__)


class Analyzer(Protocol):
    async def analyze(self, context: ConversationContext) -> TriageAssessment: ...


class ChatTurnState(TypedDict, total=False):
    """State flowing through the turn graph"""

    session_id: str
    context: ConversationContext
    assessment: Optional[TriageAssessment]
    error: Optional[str]
    reply: str


def build_chat_graph(client: Analyzer) -> CompiledStateGraph:
    """Build the analyze -> respond workflow around an analysis client"""

    async def analyze_node(state: ChatTurnState) -> dict:
        """Node: call the reasoning backend with the conversation digest"""
        try:
            assessment = await client.analyze(state["context"])
        except TriageError as exc:
            logger.error("Analysis failed for session %s: %s", state.get("session_id"), exc)
            return {"assessment": None, "error": exc.user_message}
        return {"assessment": assessment, "error": None}

    def confirm_node(state: ChatTurnState) -> dict:
        """Node: deliver an assessment that met the confidence gate"""
        logger.info("Assessment confirmed for session %s", state.get("session_id"))
        return {"reply": format_assessment(state["assessment"])}

    def follow_up_node(state: ChatTurnState) -> dict:
        """Node: relay follow-up questions while information is still gathered"""
        return {"reply": format_assessment(state["assessment"])}

    def apologize_node(state: ChatTurnState) -> dict:
        """Node: fixed apology turn after a failed analysis"""
        return {"reply": APOLOGY}

    def _route_after_analysis(state: ChatTurnState) -> Literal["confirm", "follow_up", "apologize"]:
        assessment = state.get("assessment")
        if assessment is None:
            return "apologize"
        if assessment.confidence_met:
            return "confirm"
        return "follow_up"

    workflow = StateGraph(ChatTurnState)

    workflow.add_node("analyze", analyze_node)
    workflow.add_node("confirm", confirm_node)
    workflow.add_node("follow_up", follow_up_node)
    workflow.add_node("apologize", apologize_node)

    workflow.set_entry_point("analyze")
    workflow.add_conditional_edges(
        "analyze",
        _route_after_analysis,
        {
            "confirm": "confirm",
            "follow_up": "follow_up",
            "apologize": "apologize",
        },
    )
    workflow.add_edge("confirm", END)
    workflow.add_edge("follow_up", END)
    workflow.add_edge("apologize", END)

    return workflow.compile()


@dataclass
class ChatTurnResult:
    session_id: str
    phase: Phase
    reply: ConversationTurn
    assessment: Optional[TriageAssessment]
    error: Optional[str]


class ConversationService:
    """Runs user turns through the chat graph, one at a time per session"""

    def __init__(self, client: Analyzer, store: SessionStore):
        self.store = store
        self.graph = build_chat_graph(client)

    async def _require(self, session_id: str):
        conversation = await self.store.get_session(session_id)
        if conversation is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return conversation

    async def send_message(self, session_id: str, text: str) -> ChatTurnResult:
        conversation = await self._require(session_id)
        if conversation.lock.locked():
            raise ConversationBusyError(f"Session {session_id} already has a turn in progress")

        async with conversation.lock:
            conversation.append_user_turn(text)
            try:
                state = await self.graph.ainvoke(
                    {"session_id": session_id, "context": conversation.build_context()}
                )
            except Exception:
                # Every user turn is answered, even when the turn pipeline itself breaks
                logger.exception("Chat turn failed for session %s", session_id)
                state = {"reply": APOLOGY, "assessment": None, "error": BackendError.user_message}
            reply = conversation.append_assistant_turn(state["reply"])
            assessment = state.get("assessment")
            if assessment is not None:
                conversation.record_assessment(assessment)

        return ChatTurnResult(
            session_id=session_id,
            phase=conversation.phase,
            reply=reply,
            assessment=assessment,
            error=state.get("error"),
        )
