"""Clients for the symptom analysis backend"""

import logging
import re
from typing import Any, Iterable, Optional, Union

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from symptom_triage.config import Settings
from symptom_triage.errors import BackendError, ConfigurationError, ValidationError
from symptom_triage.models import (
    DEFAULT_RISK_LEVEL,
    RISK_LEVELS,
    SEVERITIES,
    ConversationContext,
    TriageAssessment,
    TriageReply,
)
from symptom_triage.utils.triage_prompt import (
    PROSE_RESPONSE_INSTRUCTIONS,
    STRUCTURED_RESPONSE_INSTRUCTIONS,
    SYMPTOM_ANALYZER_SYSTEM_PROMPT,
)

logger = logging.getLogger(__name__)

AnalysisInput = Union[ConversationContext, str]

_UNKNOWN_CONDITIONS = {"unknown", "none", "n/a", "null", "uncertain", "not sure", "undetermined"}

_SEVERITY_RISK = {
    "Mild": "low",
    "Moderate": "medium",
    "Severe": "high",
    "Emergency": "high",
}

_FIELD_RE = re.compile(
    r"^\s*(?:[-*#>]+\s*)?(condition|severity|risk level)\s*:\s*(.*?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_RECOMMENDATIONS_RE = re.compile(r"^\s*(?:[-*#>]+\s*)?recommendations?\s*:\s*(.*?)\s*$", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$")


def _match_choice(value: Any, choices: Iterable[str]) -> Optional[str]:
    """Return the canonical choice named in ``value``, if any"""
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if not lowered:
        return None
    for choice in choices:
        if lowered == choice.lower():
            return choice
    # Free text such as "Moderate to severe": the first label mentioned wins
    found = [
        (match.start(), choice)
        for choice in choices
        if (match := re.search(rf"\b{re.escape(choice.lower())}\b", lowered))
    ]
    return min(found)[1] if found else None


def _clean_condition(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip().strip(".")
    if not cleaned or cleaned.lower() in _UNKNOWN_CONDITIONS:
        return None
    return cleaned


def build_assessment(
    content: str,
    condition: Any = None,
    severity: Any = None,
    risk_level: Any = None,
    recommendations: Any = None,
    confidence_met: Any = False,
) -> TriageAssessment:
    """
    Normalize backend fields into a TriageAssessment.

    Anything unrecognised is treated as absent. Condition and severity are
    only kept when the confidence gate is met, and the gate requires both a
    condition and at least one recommendation.
    """
    recs = []
    if isinstance(recommendations, str):
        recommendations = [recommendations]
    if isinstance(recommendations, (list, tuple)):
        recs = [r.strip() for r in recommendations if isinstance(r, str) and r.strip()]

    clean_condition = _clean_condition(condition)
    clean_severity = _match_choice(severity, SEVERITIES)
    risk = _match_choice(risk_level, RISK_LEVELS) or DEFAULT_RISK_LEVEL

    confident = confidence_met is True and clean_condition is not None and bool(recs)
    if not confident:
        clean_condition = None
        clean_severity = None

    return TriageAssessment(
        content=content.strip(),
        condition=clean_condition,
        severity=clean_severity,
        risk_level=risk,
        recommendations=recs,
        confidence_met=confident,
    )


def parse_prose(text: str) -> TriageAssessment:
    """Best-effort extraction of labelled fields from a free-text reply"""
    plain = text.replace("**", "").replace("__", "")
    fields: dict[str, str] = {}
    for match in _FIELD_RE.finditer(plain):
        fields.setdefault(match.group(1).lower(), match.group(2))

    recommendations: list[str] = []
    collecting = False
    for line in plain.splitlines():
        header = _RECOMMENDATIONS_RE.match(line)
        if header:
            collecting = True
            if header.group(1):
                recommendations.append(header.group(1))
            continue
        if not collecting:
            continue
        bullet = _BULLET_RE.match(line)
        if bullet:
            recommendations.append(bullet.group(1))
        elif line.strip() and recommendations:
            break

    condition = fields.get("condition")
    severity = _match_choice(fields.get("severity"), SEVERITIES)
    risk_level = fields.get("risk level")
    if _match_choice(risk_level, RISK_LEVELS) is None and severity:
        risk_level = _SEVERITY_RISK[severity]

    return build_assessment(
        content=text,
        condition=condition,
        severity=severity,
        risk_level=risk_level,
        recommendations=recommendations,
        confidence_met=_clean_condition(condition) is not None and severity is not None,
    )


def assessment_from_payload(payload: dict) -> TriageAssessment:
    """Build an assessment from an analysis endpoint body, whatever fields it carries"""
    content = payload.get("content") or ""
    structured_keys = ("condition", "severity", "riskLevel", "recommendations")
    if not any(key in payload for key in structured_keys):
        return parse_prose(content)

    condition = payload.get("condition")
    recommendations = payload.get("recommendations")
    confidence = payload.get("confidenceMet")
    if confidence is None:
        confidence = bool(_clean_condition(condition) and payload.get("severity") and recommendations)
    return build_assessment(
        content=content,
        condition=condition,
        severity=payload.get("severity"),
        risk_level=payload.get("riskLevel"),
        recommendations=recommendations,
        confidence_met=confidence,
    )


def _message_text(message: Any) -> str:
    """Flatten a chat message's content into plain text"""
    if message is None:
        return ""
    content = message.content if isinstance(message, BaseMessage) else message
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "".join(parts)
    return ""


def _tool_call_args(message: Any) -> Optional[dict]:
    """Arguments of the first tool call on a function-calling reply"""
    if not isinstance(message, AIMessage) or not message.tool_calls:
        return None
    args = message.tool_calls[0].get("args")
    return args if isinstance(args, dict) else None


def build_chat_model(settings: Settings) -> ChatOpenAI:
    """Construct the OpenAI chat model used for symptom analysis."""
    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY not configured")

    return ChatOpenAI(
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        api_key=SecretStr(settings.openai_api_key),
        temperature=settings.openai_temperature,
    )


class AnalysisClient:
    """
    Client for the reasoning backend.

    Sends the conversation digest with the fixed analyzer instructions and
    returns a validated TriageAssessment. One outbound call per ``analyze``;
    failures surface once as BackendError, nothing is retried.
    """

    def __init__(self, model: BaseChatModel, structured: bool = True):
        self.model = model
        self.structured = structured
        self._structured_model = (
            model.with_structured_output(TriageReply, method="function_calling", include_raw=True)
            if structured
            else None
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisClient":
        client = cls(build_chat_model(settings), structured=settings.structured_output)
        logger.info(
            "Initialized analysis client (model: %s, structured: %s)",
            settings.openai_model,
            settings.structured_output,
        )
        return client

    def build_messages(self, context: AnalysisInput) -> list[BaseMessage]:
        """Assemble system instructions and the conversation payload"""
        instructions = SYMPTOM_ANALYZER_SYSTEM_PROMPT + (
            STRUCTURED_RESPONSE_INSTRUCTIONS if self.structured else PROSE_RESPONSE_INSTRUCTIONS
        )
        return [
            SystemMessage(content=instructions),
            HumanMessage(content=str(context)),
        ]

    async def analyze(self, context: AnalysisInput) -> TriageAssessment:
        """
        Analyze a conversation context.

        Args:
            context: ConversationContext or a plain symptom description

        Returns:
            TriageAssessment with unusable fields normalized to absent

        Raises:
            ValidationError: the context is empty
            BackendError: the call failed or produced no content
        """
        if not str(context).strip():
            raise ValidationError("Empty analysis context")

        messages = self.build_messages(context)
        try:
            if self._structured_model is not None:
                result = await self._structured_model.ainvoke(messages)
            else:
                result = await self.model.ainvoke(messages)
        except Exception as exc:
            logger.exception("Symptom analysis call failed")
            raise BackendError(f"Analysis backend call failed: {exc}") from exc

        if self._structured_model is None:
            return self._from_text(_message_text(result))
        return self._from_structured(result)

    def _from_structured(self, result: Any) -> TriageAssessment:
        parsed = result.get("parsed") if isinstance(result, dict) else result
        if isinstance(parsed, dict):
            parsed = TriageReply.model_validate(parsed)

        if isinstance(parsed, TriageReply) and parsed.reply.strip():
            return build_assessment(
                content=parsed.reply,
                condition=parsed.condition,
                severity=parsed.severity,
                risk_level=parsed.risk_level,
                recommendations=parsed.recommendations,
                confidence_met=parsed.confidence_met,
            )

        error = result.get("parsing_error") if isinstance(result, dict) else None
        raw = result.get("raw") if isinstance(result, dict) else None

        # Schema validation failed: keep the tool call fields that are still usable
        args = _tool_call_args(raw)
        reply = args.get("reply") if args else None
        if isinstance(reply, str) and reply.strip():
            logger.warning(
                "Structured analysis output did not validate (%s); keeping usable fields", error
            )
            return build_assessment(
                content=reply,
                condition=args.get("condition"),
                severity=args.get("severity"),
                risk_level=args.get("risk_level"),
                recommendations=args.get("recommendations"),
                confidence_met=args.get("confidence_met", False),
            )

        logger.warning("Structured analysis output unusable (%s); parsing raw text", error)
        return self._from_text(_message_text(raw))

    @staticmethod
    def _from_text(text: str) -> TriageAssessment:
        if not text.strip():
            raise BackendError("No response from AI")
        return parse_prose(text)


class HttpAnalysisClient:
    """Caller-side client for the analysis endpoint (``POST /api/analyze``)"""

    def __init__(self, base_url: str, path: str = "/api/analyze", **client_kwargs: Any):
        self.base_url = base_url.rstrip("/")
        self.path = path
        self._client_kwargs = client_kwargs

    async def analyze(self, context: AnalysisInput) -> TriageAssessment:
        async with httpx.AsyncClient(base_url=self.base_url, **self._client_kwargs) as client:
            try:
                response = await client.post(self.path, json={"symptoms": str(context)})
            except httpx.HTTPError as exc:
                logger.error("Error analyzing symptoms: %s", exc)
                raise BackendError(f"Analysis request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200:
            detail = body.get("error") if isinstance(body, dict) else response.text
            logger.error("Analysis endpoint returned %s: %s", response.status_code, detail)
            raise BackendError(f"Failed to analyze symptoms: {detail}")

        if not isinstance(body, dict) or not str(body.get("content") or "").strip():
            raise BackendError("Analysis endpoint returned no content")

        return assessment_from_payload(body)
