"""Conversation state for a single chat session"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from symptom_triage.errors import ValidationError
from symptom_triage.models import (
    ConversationContext,
    ConversationTurn,
    Phase,
    Sender,
    TriageAssessment,
)

GREETING = "Hi there! I'm MediBot, your healthcare assistant. How can I help you today?"
APOLOGY = "Sorry, I encountered an error. Please try again."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_assessment(assessment: TriageAssessment) -> str:
    """Render an assessment as the assistant's chat reply"""
    if not assessment.confidence_met:
        return assessment.content

    recommendations = "\n".join(f"- {rec}" for rec in assessment.recommendations)
    summary = (
        "Based on your symptoms, here's what I found:\n\n"
        f"Condition: {assessment.condition}\n"
        f"Severity: {assessment.severity or 'Not determined'}\n"
        f"Risk Level: {assessment.risk_level}\n\n"
        f"Recommendations:\n{recommendations}"
    )
    if assessment.content:
        return f"{summary}\n\n{assessment.content}"
    return summary


class Conversation:
    """
    Ordered, append-only turn history for one session.

    The phase moves from ``gathering`` to ``confirmed`` once an assessment
    that meets the confidence gate has been delivered, and never moves back.
    Phase is advisory: a confirmed conversation still accepts new turns.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        greeting: Optional[str] = GREETING,
        max_context_turns: Optional[int] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.created_at = _utcnow()
        self.max_context_turns = max_context_turns
        self.lock = asyncio.Lock()
        self._turns: list[ConversationTurn] = []
        self._phase: Phase = "gathering"
        if greeting:
            self._append(greeting, "assistant")

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def last_activity(self) -> datetime:
        return self._turns[-1].created_at if self._turns else self.created_at

    def _append(self, content: str, sender: Sender) -> ConversationTurn:
        created_at = _utcnow()
        if self._turns and created_at <= self._turns[-1].created_at:
            created_at = self._turns[-1].created_at + timedelta(microseconds=1)
        turn = ConversationTurn(
            id=str(uuid.uuid4()),
            content=content,
            sender=sender,
            created_at=created_at,
        )
        self._turns.append(turn)
        return turn

    def append_user_turn(self, text: str) -> ConversationTurn:
        if not text or not text.strip():
            raise ValidationError("Empty user message", user_message="Please enter a message")
        return self._append(text, "user")

    def append_assistant_turn(self, text: str) -> ConversationTurn:
        return self._append(text, "assistant")

    def record_assessment(self, assessment: TriageAssessment) -> Phase:
        if assessment.confidence_met:
            self._phase = "confirmed"
        return self._phase

    def build_context(self) -> ConversationContext:
        """
        Digest prior turns into labelled user/assistant blocks plus the
        newest user message. ``max_context_turns`` keeps only that many of
        the most recent prior turns.
        """
        newest = None
        for index in range(len(self._turns) - 1, -1, -1):
            if self._turns[index].sender == "user":
                newest = index
                break
        if newest is None:
            raise ValidationError("No user message to analyze", user_message="Please enter a message")

        prior = self._turns[:newest]
        if self.max_context_turns is not None:
            prior = prior[-self.max_context_turns:] if self.max_context_turns > 0 else []

        return ConversationContext(
            prior_user=tuple(t.content for t in prior if t.sender == "user"),
            prior_assistant=tuple(t.content for t in prior if t.sender == "assistant"),
            current_message=self._turns[newest].content,
        )
