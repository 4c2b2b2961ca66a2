import base64
import json
import logging
from datetime import date as date_type
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import Field, field_validator

from analyzer import records_in_window
from config import Settings, local_tz
from models import (
    AnalysisFactor,
    AnalysisResult,
    CamelModel,
    DailyFeedbackKind,
    EventRecord,
    FeedbackDraft,
    FoodAnalysisResult,
    RiskLevel,
    factors_from_analysis,
    utc_now,
)
from parsing import content_to_text, extract_json_object
from prompts import DAILY_FEEDBACK_PROMPTS, FOOD_ANALYSIS_PROMPT, PATTERN_ANALYSIS_PROMPT

logger = logging.getLogger(__name__)

DAILY_WINDOW = timedelta(hours=48)


# ------------------------------------------------------------------
# Fallback values
# ------------------------------------------------------------------
def default_feedback(user_id: str, date: str, kind: DailyFeedbackKind) -> FeedbackDraft:
    if kind == "morning":
        return FeedbackDraft(
            user_id=user_id,
            date=date,
            kind="morning",
            content=(
                "Good morning! Start your day healthy. "
                "Log your day to get personalized advice."
            ),
            prescriptions=[
                "Don't skip breakfast",
                "Start your day with a glass of water",
            ],
        )
    return FeedbackDraft(
        user_id=user_id,
        date=date,
        kind="evening",
        content="Great job today! Get plenty of rest for tomorrow.",
        prescriptions=["Go to bed early"],
    )


def insufficient_data_analysis() -> AnalysisResult:
    return AnalysisResult(
        patterns=[
            "Something went wrong while analyzing your data. Showing a basic result instead.",
            "Log more data for a more accurate analysis.",
        ],
        factors=[
            AnalysisFactor(
                name="More data needed",
                impact="neutral",
                evidence="A detailed analysis will be available once enough data is collected.",
            )
        ],
        recommendations=[
            "Build a habit of logging every day.",
            "Drink enough water and keep a regular routine.",
        ],
    )


def failed_food_analysis(
    message: str = "Food analysis failed. Please try again.",
) -> FoodAnalysisResult:
    return FoodAnalysisResult(success=False, error=message)


# ------------------------------------------------------------------
# Reply shapes
# ------------------------------------------------------------------
class DailyReply(CamelModel):
    content: str
    factors: List[AnalysisFactor]
    prescriptions: List[str] = Field(default_factory=list)
    risk_level: Optional[RiskLevel] = None
    risk_reason: Optional[str] = None

    @field_validator("risk_level", "risk_reason", mode="before")
    @classmethod
    def blank_is_none(cls, value: Any) -> Any:
        return value or None

    @field_validator("prescriptions", mode="before")
    @classmethod
    def null_is_empty(cls, value: Any) -> Any:
        return value or []


# ------------------------------------------------------------------
# LLM Factory
# ------------------------------------------------------------------
def build_llm(settings: Settings) -> Optional[BaseChatModel]:
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY not set; remote analysis disabled")
        return None

    return ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=settings.GEMINI_TEMPERATURE,
        thinking_budget=settings.THINKING_BUDGET,
    )


# ------------------------------------------------------------------
# Feedback Agent
# ------------------------------------------------------------------
class FeedbackAgent:
    """
    Turns lifelog records into Gemini prompts and Gemini replies into
    feedback / analysis models.

    Every public coroutine returns a usable value: remote or parse failures
    are logged and replaced by the matching fallback.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        language: str = "Korean",
        tz: Optional[ZoneInfo] = None,
    ):
        self.llm = llm
        self.language = language
        self.tz = tz or local_tz()

    # --- helpers ---
    def _local_time(self, ts: datetime) -> str:
        return ts.astimezone(self.tz).strftime("%H:%M:%S")

    def _record_summary(self, records: Sequence[EventRecord]) -> str:
        rows = [
            {
                "kind": r.kind,
                "value": r.value,
                "time": self._local_time(r.timestamp),
                "metadata": r.metadata.model_dump(by_alias=True, exclude_none=True),
            }
            for r in records
        ]
        return json.dumps(rows, ensure_ascii=False, indent=2)

    async def _stream_text(self, prompt: str) -> str:
        # Stream is buffered whole; nothing is applied before the last chunk
        full_text = ""
        async for chunk in self.llm.astream([HumanMessage(content=prompt)]):
            full_text += content_to_text(chunk.content)
        return full_text

    # --- daily feedback ---
    async def request_feedback(
        self,
        records: Sequence[EventRecord],
        kind: DailyFeedbackKind,
        user_id: str,
        date: str,
        now: Optional[datetime] = None,
    ) -> FeedbackDraft:
        cutoff = (now or utc_now()) - DAILY_WINDOW
        recent = [r for r in records if r.timestamp >= cutoff]

        if not recent:
            return default_feedback(user_id, date, kind)

        try:
            prompt = DAILY_FEEDBACK_PROMPTS[kind].format(
                date=date,
                records=self._record_summary(recent),
                language=self.language,
            )
            full_text = await self._stream_text(prompt)
            reply = DailyReply.model_validate(extract_json_object(full_text))

            return FeedbackDraft(
                user_id=user_id,
                date=date,
                kind=kind,
                content=reply.content,
                factors=factors_from_analysis(reply.factors),
                prescriptions=reply.prescriptions,
                risk_level=reply.risk_level,
                risk_reason=reply.risk_reason,
            )
        except Exception as e:
            logger.error(f"Daily feedback failed ({kind} {date}): {str(e)}")
            return default_feedback(user_id, date, kind)

    # --- 7-day pattern analysis ---
    def _pattern_summary(self, recent: Sequence[EventRecord]) -> Dict[str, Any]:
        def dump(kind: str) -> List[Dict[str, Any]]:
            return [
                r.model_dump(mode="json", by_alias=True, exclude_none=True)
                for r in recent
                if r.kind == kind
            ]

        return {
            "총_기록_수": len(recent),
            "식사_기록": sum(1 for r in recent if r.kind == "diet"),
            "수면_기록": dump("sleep"),
            "활동_기록": dump("activity"),
            "체중_기록": dump("weight"),
            "기분_기록": dump("mood"),
        }

    async def request_warning_analysis(
        self, records: Sequence[EventRecord], today: Optional[date_type] = None
    ) -> AnalysisResult:
        recent = records_in_window(records, today)

        try:
            prompt = PATTERN_ANALYSIS_PROMPT.format(
                summary=json.dumps(
                    self._pattern_summary(recent), ensure_ascii=False, indent=2
                ),
                records=json.dumps(
                    [r.model_dump(mode="json", by_alias=True) for r in recent],
                    ensure_ascii=False,
                    indent=2,
                ),
                language=self.language,
            )
            full_text = await self._stream_text(prompt)
            return AnalysisResult.model_validate(extract_json_object(full_text))
        except Exception as e:
            logger.error(f"Pattern analysis failed: {str(e)}")
            return insufficient_data_analysis()

    # --- food photo ---
    async def analyze_food(
        self, image: bytes, mime_type: str = "image/jpeg"
    ) -> FoodAnalysisResult:
        try:
            encoded = base64.b64encode(image).decode("ascii")
            message = HumanMessage(
                content=[
                    {
                        "type": "image_url",
                        "image_url": f"data:{mime_type};base64,{encoded}",
                    },
                    {
                        "type": "text",
                        "text": FOOD_ANALYSIS_PROMPT.format(language=self.language),
                    },
                ]
            )
            response = await self.llm.ainvoke([message])
            data = extract_json_object(content_to_text(response.content))
            return FoodAnalysisResult.model_validate({**data, "success": True})
        except Exception as e:
            logger.error(f"Food analysis failed: {str(e)}")
            return failed_food_analysis()
