import json

import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from symptom_triage.analysis_client import (
    AnalysisClient,
    HttpAnalysisClient,
    build_assessment,
    parse_prose,
)
from symptom_triage.config import Settings
from symptom_triage.errors import BackendError, ConfigurationError, ValidationError
from symptom_triage.models import ConversationContext, TriageReply

from tests.fakes import FakeChatModel, ToolCallingChatModel, structured_result

PROSE_REPLY = """Based on what you've told me, this looks like a common cold.

**Condition:** Common cold
**Severity:** Mild
**Risk Level:** low

**Recommendations:**
- Take rest
- Drink plenty of water
- Visit a doctor if the fever persists

Would you like to add more symptoms or details for better accuracy?"""

QUESTIONS_ONLY = "I'm not sure yet. How high is your fever, and do you have any rashes?"


class TestStructuredMode:
    async def test_confident_reply_is_passed_through(self):
        model = FakeChatModel(
            structured_result(
                TriageReply(
                    reply="This sounds like the flu. Would you like to add more details?",
                    condition="Influenza",
                    severity="Moderate",
                    risk_level="Medium",
                    recommendations=["Rest", "Drink water"],
                    confidence_met=True,
                )
            )
        )
        client = AnalysisClient(model)

        result = await client.analyze("fever, chills and body aches for two days")

        assert model.structured_schema is TriageReply
        assert result.condition == "Influenza"
        assert result.severity == "Moderate"
        assert result.risk_level == "medium"
        assert result.recommendations == ["Rest", "Drink water"]
        assert result.confidence_met is True
        assert result.content.startswith("This sounds like the flu")

    async def test_unconfident_reply_drops_condition_and_severity(self):
        model = FakeChatModel(
            structured_result(
                TriageReply(
                    reply="How high is your fever?",
                    follow_up_questions=["How high is your fever?"],
                    condition="Flu",
                    severity="Mild",
                    risk_level="low",
                    confidence_met=False,
                )
            )
        )

        result = await AnalysisClient(model).analyze("I have a fever")

        assert result.condition is None
        assert result.severity is None
        assert result.confidence_met is False
        assert result.content == "How high is your fever?"

    async def test_confidence_requires_recommendations(self):
        model = FakeChatModel(
            structured_result(
                TriageReply(
                    reply="You have a migraine.",
                    condition="Migraine",
                    severity="Moderate",
                    confidence_met=True,
                )
            )
        )

        result = await AnalysisClient(model).analyze("throbbing headache")

        assert result.confidence_met is False
        assert result.condition is None
        assert result.severity is None

    async def test_unknown_labels_are_treated_as_absent(self):
        model = FakeChatModel(
            structured_result(
                TriageReply(
                    reply="Likely a migraine.",
                    condition="Migraine",
                    severity="critical",
                    risk_level="EXTREME",
                    recommendations=["Rest in a dark room", "  "],
                    confidence_met=True,
                )
            )
        )

        result = await AnalysisClient(model).analyze("throbbing headache with light sensitivity")

        assert result.condition == "Migraine"
        assert result.severity is None
        assert result.risk_level == "medium"
        assert result.recommendations == ["Rest in a dark room"]

    async def test_parse_failure_falls_back_to_raw_text(self):
        model = FakeChatModel(
            structured_result(None, raw_text=PROSE_REPLY, parsing_error=ValueError("invalid json"))
        )

        result = await AnalysisClient(model).analyze("runny nose and mild fever")

        assert result.condition == "Common cold"
        assert result.severity == "Mild"
        assert result.risk_level == "low"
        assert result.confidence_met is True

    async def test_empty_output_is_a_backend_error(self):
        model = FakeChatModel(structured_result(None, raw_text=""))

        with pytest.raises(BackendError):
            await AnalysisClient(model).analyze("headache")

    async def test_blank_reply_is_a_backend_error(self):
        model = FakeChatModel(structured_result(TriageReply(reply="   "), raw_text=""))

        with pytest.raises(BackendError):
            await AnalysisClient(model).analyze("headache")

    async def test_backend_exception_surfaces_once(self):
        model = FakeChatModel(RuntimeError("503 Service Unavailable"))

        with pytest.raises(BackendError) as exc_info:
            await AnalysisClient(model).analyze("headache")

        assert len(model.calls) == 1
        assert exc_info.value.user_message == "Failed to analyze symptoms"

    async def test_empty_context_never_reaches_backend(self):
        model = FakeChatModel()

        with pytest.raises(ValidationError):
            await AnalysisClient(model).analyze("   ")

        assert model.calls == []


class TestFunctionCallingReplies:
    """Tool-call replies run through LangChain's own structured output parser"""

    async def test_valid_tool_call_is_parsed(self):
        model = ToolCallingChatModel(
            tool_args={
                "reply": "How long have you had the cough?",
                "follow_up_questions": ["How long have you had the cough?"],
            }
        )

        result = await AnalysisClient(model).analyze("dry cough")

        assert model.structured_method == "function_calling"
        assert result.content == "How long have you had the cough?"
        assert result.confidence_met is False
        assert result.risk_level == "medium"

    async def test_string_recommendations_keep_the_assessment(self):
        model = ToolCallingChatModel(
            tool_args={
                "reply": "Looks like a cold. Would you like to add more details?",
                "condition": "Common cold",
                "severity": "Mild",
                "risk_level": "low",
                "recommendations": "Rest and drink fluids",
                "confidence_met": True,
            }
        )

        result = await AnalysisClient(model).analyze("runny nose")

        assert result.content.startswith("Looks like a cold")
        assert result.condition == "Common cold"
        assert result.severity == "Mild"
        assert result.risk_level == "low"
        assert result.recommendations == ["Rest and drink fluids"]
        assert result.confidence_met is True

    async def test_wrongly_typed_fields_are_treated_as_absent(self):
        model = ToolCallingChatModel(
            tool_args={
                "reply": "Can you describe the pain?",
                "condition": 42,
                "severity": ["Mild"],
                "risk_level": 3,
                "recommendations": ["Rest"],
                "confidence_met": "yes",
            }
        )

        result = await AnalysisClient(model).analyze("stomach ache")

        assert result.content == "Can you describe the pain?"
        assert result.condition is None
        assert result.severity is None
        assert result.risk_level == "medium"
        assert result.recommendations == ["Rest"]
        assert result.confidence_met is False

    async def test_missing_reply_without_text_is_a_backend_error(self):
        model = ToolCallingChatModel(tool_args={"condition": "Flu", "confidence_met": True})

        with pytest.raises(BackendError):
            await AnalysisClient(model).analyze("fever")


class TestProseMode:
    async def test_labelled_reply_is_extracted(self):
        model = FakeChatModel(AIMessage(content=PROSE_REPLY))

        result = await AnalysisClient(model, structured=False).analyze("runny nose")

        assert model.structured_schema is None
        assert result.condition == "Common cold"
        assert result.recommendations == [
            "Take rest",
            "Drink plenty of water",
            "Visit a doctor if the fever persists",
        ]
        assert result.confidence_met is True

    async def test_reply_without_fields_defaults_safely(self):
        model = FakeChatModel(AIMessage(content=QUESTIONS_ONLY))

        result = await AnalysisClient(model, structured=False).analyze("I feel unwell")

        assert result.content == QUESTIONS_ONLY
        assert result.condition is None
        assert result.severity is None
        assert result.risk_level == "medium"
        assert result.recommendations == []
        assert result.confidence_met is False

    async def test_content_blocks_are_flattened(self):
        model = FakeChatModel(AIMessage(content=[{"type": "text", "text": QUESTIONS_ONLY}]))

        result = await AnalysisClient(model, structured=False).analyze("I feel unwell")

        assert result.content == QUESTIONS_ONLY


def test_build_messages_carries_instructions_and_context():
    client = AnalysisClient(FakeChatModel())
    context = ConversationContext(
        prior_user=("I have a headache",),
        prior_assistant=("Hi there!", "How long has it lasted?"),
        current_message="Two days",
    )

    system, human = client.build_messages(context)

    assert isinstance(system, SystemMessage)
    assert "95% confident" in system.content
    assert "Mild, Moderate, Severe, Emergency" in system.content
    assert isinstance(human, HumanMessage)
    assert human.content == context.render()


def test_missing_credential_is_a_configuration_error(test_settings):
    with pytest.raises(ConfigurationError):
        AnalysisClient.from_settings(test_settings)


def test_from_settings_builds_openai_model():
    settings = Settings(openai_api_key="sk-test", openai_model="gpt-4o", structured_output=False)

    client = AnalysisClient.from_settings(settings)

    assert isinstance(client.model, ChatOpenAI)
    assert client.structured is False


def test_severity_phrase_maps_to_first_label():
    result = parse_prose("Condition: Gastroenteritis\nSeverity: Moderate to severe\nRecommendations:\n- Fluids")

    assert result.severity == "Moderate"
    assert result.risk_level == "medium"


def test_unknown_condition_is_not_a_diagnosis():
    result = build_assessment(
        content="text",
        condition="Unknown",
        severity="Mild",
        recommendations=["Rest"],
        confidence_met=True,
    )

    assert result.condition is None
    assert result.confidence_met is False


class TestHttpAnalysisClient:
    async def test_content_only_body_is_parsed_best_effort(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/analyze"
            assert json.loads(request.content) == {"symptoms": "runny nose"}
            return httpx.Response(200, json={"content": PROSE_REPLY})

        client = HttpAnalysisClient("http://triage.test", transport=httpx.MockTransport(handler))

        result = await client.analyze("runny nose")

        assert result.condition == "Common cold"
        assert result.content == PROSE_REPLY.strip()

    async def test_structured_body_is_validated(self):
        body = {
            "content": "Please rest.",
            "condition": "Flu",
            "severity": "Mild",
            "riskLevel": "low",
            "recommendations": ["Rest"],
            "confidenceMet": False,
        }
        client = HttpAnalysisClient(
            "http://triage.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)),
        )

        result = await client.analyze("fever")

        assert result.condition is None
        assert result.severity is None
        assert result.risk_level == "low"
        assert result.recommendations == ["Rest"]

    async def test_error_status_is_a_backend_error(self):
        client = HttpAnalysisClient(
            "http://triage.test",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(500, json={"error": "Failed to analyze symptoms"})
            ),
        )

        with pytest.raises(BackendError, match="Failed to analyze symptoms"):
            await client.analyze("fever")

    async def test_empty_content_is_a_backend_error(self):
        client = HttpAnalysisClient(
            "http://triage.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"content": ""})),
        )

        with pytest.raises(BackendError):
            await client.analyze("fever")

    async def test_transport_failure_is_a_backend_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = HttpAnalysisClient("http://triage.test", transport=httpx.MockTransport(handler))

        with pytest.raises(BackendError):
            await client.analyze("fever")
