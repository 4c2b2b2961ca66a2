import asyncio
import json
from datetime import datetime, timedelta, timezone

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from agents import FeedbackAgent, default_feedback, insufficient_data_analysis
from conftest import ScriptedLLM, make_record

NOW = datetime(2025, 1, 20, 3, 0, tzinfo=timezone.utc)

DAILY_REPLY = {
    "content": "Good morning! You slept a bit short.",
    "factors": [
        {"name": "Short sleep", "impact": "negative", "evidence": "6h last night"},
        {"name": "Walked", "impact": "positive", "evidence": "40 minutes"},
    ],
    "prescriptions": ["Go to bed by 11pm"],
    "riskLevel": "medium",
    "riskReason": "Sleep under 7h",
}


def recent_sleep(hours_ago: float = 2, value: float = 6):
    return make_record(
        "sleep", value, "2025-01-20", timestamp=NOW - timedelta(hours=hours_ago)
    )


def run(coro):
    return asyncio.run(coro)


def test_no_recent_records_skips_model():
    llm = ScriptedLLM(error=ConnectionError("should not be called"))
    agent = FeedbackAgent(llm)

    feedback = run(
        agent.request_feedback(
            [recent_sleep(hours_ago=49)], "evening", "user-1", "2025-01-20", now=NOW
        )
    )

    assert llm.calls == 0
    assert feedback == default_feedback("user-1", "2025-01-20", "evening")


def test_prose_wrapped_reply_becomes_feedback():
    chunks = ["Here you go: ", json.dumps(DAILY_REPLY)[:20], json.dumps(DAILY_REPLY)[20:], " Bye"]
    llm = ScriptedLLM(replies=[chunks])
    agent = FeedbackAgent(llm, language="English")

    feedback = run(
        agent.request_feedback([recent_sleep()], "morning", "user-1", "2025-01-20", now=NOW)
    )

    assert feedback.kind == "morning"
    assert feedback.content == DAILY_REPLY["content"]
    assert [f.id for f in feedback.factors] == ["factor-0", "factor-1"]
    assert feedback.factors[0].description == "6h last night"
    assert feedback.factors[0].evidence == "6h last night"
    assert feedback.prescriptions == ["Go to bed by 11pm"]
    assert feedback.risk_level == "medium"
    assert feedback.risk_reason == "Sleep under 7h"

    prompt = llm.prompts[0]
    assert "2025-01-20" in prompt
    assert '"kind": "sleep"' in prompt
    assert "English" in prompt


def test_remote_failure_returns_morning_default():
    llm = ScriptedLLM(error=ConnectionError("network down"))
    agent = FeedbackAgent(llm)

    feedback = run(
        agent.request_feedback([recent_sleep()], "morning", "user-1", "2025-01-20", now=NOW)
    )

    assert llm.calls == 1
    assert feedback == default_feedback("user-1", "2025-01-20", "morning")
    assert feedback.factors == []
    assert feedback.risk_level is None
    assert feedback.risk_reason is None
    assert len(feedback.prescriptions) == 2


def test_reply_without_json_returns_default():
    agent = FeedbackAgent(ScriptedLLM(replies=["I cannot help with that."]))

    feedback = run(
        agent.request_feedback([recent_sleep()], "evening", "user-1", "2025-01-20", now=NOW)
    )

    assert feedback.content == default_feedback("user-1", "2025-01-20", "evening").content


def test_malformed_shape_returns_default():
    reply = json.dumps({"factors": [{"name": "x", "impact": "huge", "evidence": "?"}]})
    agent = FeedbackAgent(ScriptedLLM(replies=[reply]))

    feedback = run(
        agent.request_feedback([recent_sleep()], "morning", "user-1", "2025-01-20", now=NOW)
    )

    assert feedback == default_feedback("user-1", "2025-01-20", "morning")


def test_blank_risk_fields_are_dropped():
    reply = dict(DAILY_REPLY, riskLevel="", riskReason="")
    agent = FeedbackAgent(ScriptedLLM(replies=[json.dumps(reply)]))

    feedback = run(
        agent.request_feedback([recent_sleep()], "morning", "user-1", "2025-01-20", now=NOW)
    )

    assert feedback.risk_level is None
    assert feedback.risk_reason is None


def test_works_with_langchain_fake_model():
    llm = FakeListChatModel(responses=["Result: " + json.dumps(DAILY_REPLY)])
    agent = FeedbackAgent(llm)

    feedback = run(
        agent.request_feedback([recent_sleep()], "morning", "user-1", "2025-01-20", now=NOW)
    )

    assert feedback.content == DAILY_REPLY["content"]


def test_warning_analysis_parses_reply():
    reply = {
        "patterns": ["Sleep is short"],
        "factors": [{"name": "Sleep", "impact": "negative", "evidence": "6h avg"}],
        "recommendations": ["Sleep earlier"],
    }
    llm = ScriptedLLM(replies=["```json\n" + json.dumps(reply) + "\n```"])
    agent = FeedbackAgent(llm)
    records = [make_record("sleep", 6, "2025-01-20"), make_record("diet", 500, "2025-01-19")]

    result = run(agent.request_warning_analysis(records, today=datetime(2025, 1, 20).date()))

    assert result.patterns == ["Sleep is short"]
    assert result.factors[0].impact == "negative"
    assert '"총_기록_수": 2' in llm.prompts[0]
    assert '"식사_기록": 1' in llm.prompts[0]


def test_warning_analysis_failure_is_insufficient_data():
    agent = FeedbackAgent(ScriptedLLM(replies=["no idea"]))

    result = run(agent.request_warning_analysis([make_record("sleep", 4, "2025-01-20")]))

    assert result == insufficient_data_analysis()
    assert result.factors[0].impact == "neutral"


def test_food_analysis_success():
    reply = {
        "foods": [
            {
                "name": "Bibimbap",
                "nameKr": "비빔밥",
                "portion": "1 bowl",
                "calories": 550,
                "protein": 20,
                "carbs": 80,
                "fat": 15,
                "sodium": 900,
            }
        ],
        "totalNutrition": {"calories": 550, "protein": 20, "carbs": 80, "fat": 15, "sodium": 900},
        "description": "Bibimbap",
        "confidence": "high",
        "suggestedMealType": "lunch",
    }
    llm = ScriptedLLM(replies=[json.dumps(reply)])
    agent = FeedbackAgent(llm)

    result = run(agent.analyze_food(b"\xff\xd8fake-jpeg", "image/jpeg"))

    assert result.success is True
    assert result.foods[0].name_kr == "비빔밥"
    assert result.total_nutrition.calories == 550
    assert result.suggested_meal_type == "lunch"
    image_part = llm.prompts[0][0]
    assert image_part["image_url"].startswith("data:image/jpeg;base64,")


def test_food_analysis_failure_is_zeroed():
    agent = FeedbackAgent(ScriptedLLM(error=TimeoutError()))

    result = run(agent.analyze_food(b"img"))

    assert result.success is False
    assert result.error
    assert result.foods == []
    assert result.total_nutrition.calories == 0
    assert result.confidence == "low"
