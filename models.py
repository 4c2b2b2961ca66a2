"""
Domain models shared by the store, the analyzers and the API.

Wire JSON is camelCase (``userId``, ``createdAt``); Python code uses the
snake_case field names.

``EventRecord.value`` carries the primary measurement, whose unit is implied
by the kind (see ``VALUE_UNITS``).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

LogKind = Literal["diet", "sleep", "activity", "weight", "mood"]
FeedbackKind = Literal["morning", "evening", "warning"]
DailyFeedbackKind = Literal["morning", "evening"]
Impact = Literal["positive", "negative", "neutral"]
RiskLevel = Literal["low", "medium", "high"]
ViewId = Literal["home", "logs", "insights", "history", "profile"]

LOG_KINDS = ("diet", "sleep", "activity", "weight", "mood")

VALUE_UNITS = {
    "diet": "kcal (estimate, analysis reads metadata.calories)",
    "sleep": "hours slept",
    "activity": "minutes active",
    "weight": "kg",
    "mood": "score 1-5",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ------------------------------------------------------------------
# Event metadata (one payload shape per kind)
# ------------------------------------------------------------------
class EventMetadata(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    description: Optional[str] = None


class DietMeta(EventMetadata):
    meal_type: Optional[Literal["breakfast", "lunch", "dinner", "snack"]] = None
    meal_description: Optional[str] = None
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    sodium: Optional[float] = None
    photo_url: Optional[str] = None


class SleepMeta(EventMetadata):
    sleep_quality: Optional[int] = Field(default=None, ge=1, le=5)
    bedtime: Optional[str] = None
    wake_time: Optional[str] = None


class ActivityMeta(EventMetadata):
    activity_type: Optional[str] = None
    intensity: Optional[Literal["low", "medium", "high"]] = None
    duration: Optional[float] = None  # minutes


class WeightMeta(EventMetadata):
    weight_time: Optional[Literal["am", "pm"]] = None


class MoodMeta(EventMetadata):
    mood_score: Optional[int] = Field(default=None, ge=1, le=5)
    mood_note: Optional[str] = None


METADATA_MODELS = {
    "diet": DietMeta,
    "sleep": SleepMeta,
    "activity": ActivityMeta,
    "weight": WeightMeta,
    "mood": MoodMeta,
}


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------
class EventRecord(CamelModel):
    id: str
    user_id: str
    timestamp: datetime
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    kind: LogKind
    value: float
    metadata: SerializeAsAny[EventMetadata] = Field(default_factory=EventMetadata)

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="before")
    @classmethod
    def metadata_for_kind(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        meta_cls = METADATA_MODELS.get(data.get("kind"))
        if meta_cls is None:
            return data
        meta = data.get("metadata")
        if meta is None or isinstance(meta, dict):
            return {**data, "metadata": meta_cls.model_validate(meta or {})}
        if isinstance(meta, EventMetadata) and not isinstance(meta, meta_cls):
            return {**data, "metadata": meta_cls.model_validate(meta.model_dump())}
        return data


class Factor(CamelModel):
    id: str
    name: str
    description: str
    evidence: str
    impact: Impact


class FeedbackDraft(CamelModel):
    """Feedback before the store has assigned ``id`` and ``createdAt``."""

    user_id: str
    date: str
    kind: FeedbackKind
    content: str
    factors: List[Factor] = Field(default_factory=list)
    prescriptions: List[str] = Field(default_factory=list)
    risk_level: Optional[RiskLevel] = None
    risk_reason: Optional[str] = None


class Feedback(FeedbackDraft):
    id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def created_at_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class DaySummaryRecord(CamelModel):
    id: str
    user_id: str
    date: str
    summary: str
    risk_flag: bool
    risk_level: RiskLevel = "low"
    recommended_action: str
    message_log: str
    factors: List[Factor] = Field(default_factory=list)
    created_at: datetime


class UserProfile(CamelModel):
    id: str
    name: str
    age: Optional[int] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    height: Optional[float] = None  # cm
    target_weight: Optional[float] = None  # kg
    health_goals: List[str] = Field(default_factory=list)
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


# ------------------------------------------------------------------
# Analysis results
# ------------------------------------------------------------------
class AnalysisFactor(CamelModel):
    name: str
    impact: Impact
    evidence: str


class AnalysisResult(CamelModel):
    patterns: List[str] = Field(default_factory=list)
    factors: List[AnalysisFactor] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class Nutrition(CamelModel):
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0
    sodium: float = 0


class FoodItem(Nutrition):
    name: str
    name_kr: str = ""
    portion: str = ""


class FoodAnalysisResult(CamelModel):
    success: bool
    error: Optional[str] = None
    foods: List[FoodItem] = Field(default_factory=list)
    total_nutrition: Nutrition = Field(default_factory=Nutrition)
    description: str = ""
    confidence: Literal["high", "medium", "low"] = "low"
    suggested_meal_type: Literal["breakfast", "lunch", "dinner", "snack"] = "snack"


def factors_from_analysis(items: List[AnalysisFactor]) -> List[Factor]:
    """Give analysis factors sequential ids; evidence doubles as description."""
    return [
        Factor(
            id=f"factor-{idx}",
            name=f.name,
            description=f.evidence,
            evidence=f.evidence,
            impact=f.impact,
        )
        for idx, f in enumerate(items)
    ]
