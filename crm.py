"""
CRM export: one summary record per logged day.

Output depends only on the inputs, so running it twice on the same records
and feedback yields identical records.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from config import local_tz
from models import DaySummaryRecord, EventRecord, Factor, Feedback, RiskLevel

RISK_ORDER = {"low": 1, "medium": 2, "high": 3}

KIND_LABELS = {
    "diet": "Diet",
    "sleep": "Sleep",
    "activity": "Activity",
    "weight": "Weight",
    "mood": "Mood",
}

# Kind-specific fields that read as a description in the message log
DESCRIPTION_FIELDS = ("description", "meal_description", "mood_note", "activity_type")

NO_RECORDS = "No records"
NO_ACTION = "No action needed"


def format_number(value: float) -> str:
    """8.0 -> "8", 1234.567 -> "1234.567"."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def filter_date_range(
    records: Sequence[EventRecord],
    feedbacks: Sequence[Feedback],
    date_from: str,
    date_to: str,
) -> Tuple[List[EventRecord], List[Feedback]]:
    return (
        [r for r in records if date_from <= r.date <= date_to],
        [f for f in feedbacks if date_from <= f.date <= date_to],
    )


def highest_risk(feedbacks: Sequence[Feedback]) -> RiskLevel:
    level: RiskLevel = "low"
    for f in feedbacks:
        if f.risk_level and RISK_ORDER[f.risk_level] > RISK_ORDER[level]:
            level = f.risk_level
    return level


def day_summary(records: Sequence[EventRecord]) -> str:
    parts = []

    sleep = next((r for r in records if r.kind == "sleep"), None)
    if sleep:
        parts.append(f"Sleep {format_number(sleep.value)}h")

    activity = [r for r in records if r.kind == "activity"]
    if activity:
        minutes = sum(r.metadata.duration or 0 for r in activity)
        parts.append(f"Activity {format_number(minutes)}min")

    weight = next((r for r in records if r.kind == "weight"), None)
    if weight:
        parts.append(f"Weight {format_number(weight.value)}kg")

    mood = next((r for r in records if r.kind == "mood"), None)
    if mood:
        score = mood.metadata.mood_score or mood.value
        parts.append(f"Mood {format_number(score)}/5")

    diet = [r for r in records if r.kind == "diet"]
    if diet:
        parts.append(f"Meals {len(diet)}")

    return " | ".join(parts) or NO_RECORDS


def _describe(record: EventRecord) -> str:
    for field in DESCRIPTION_FIELDS:
        text = getattr(record.metadata, field, None)
        if text:
            return str(text)
    return format_number(record.value)


def format_message_log(
    records: Sequence[EventRecord],
    feedbacks: Sequence[Feedback],
    tz: Optional[ZoneInfo] = None,
) -> str:
    tz = tz or local_tz()
    lines = ["=== Daily Log ==="]

    for r in records:
        time = r.timestamp.astimezone(tz).strftime("%H:%M")
        lines.append(f"[{time}] {KIND_LABELS[r.kind]}: {_describe(r)}")

    if feedbacks:
        lines.append("")
        lines.append("=== AI Analysis ===")
        for f in feedbacks:
            lines.append(f"[{f.kind}] {f.content}")
            if f.prescriptions:
                lines.append(f"Action: {', '.join(f.prescriptions)}")

    return "\n".join(lines)


def _latest_instant(
    records: Sequence[EventRecord], feedbacks: Sequence[Feedback]
) -> datetime:
    return max([r.timestamp for r in records] + [f.created_at for f in feedbacks])


def build_day_summaries(
    user_id: str,
    records: Sequence[EventRecord],
    feedbacks: Sequence[Feedback],
    created_at: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> List[DaySummaryRecord]:
    """
    Group records by date and fold in that date's feedback.

    ``created_at`` stamps every record; without it each record carries the
    latest record/feedback instant of its own day.
    """
    by_date: Dict[str, List[EventRecord]] = {}
    for r in records:
        by_date.setdefault(r.date, []).append(r)

    summaries = []
    for day, day_records in by_date.items():
        day_feedbacks = [f for f in feedbacks if f.date == day]
        risk = highest_risk(day_feedbacks)
        has_warning = any(f.kind == "warning" for f in day_feedbacks)

        factors: List[Factor] = [x for f in day_feedbacks for x in f.factors]
        prescriptions = [p for f in day_feedbacks for p in f.prescriptions if p]

        summaries.append(
            DaySummaryRecord(
                id=f"crm-{user_id}-{day}",
                user_id=user_id,
                date=day,
                summary=day_summary(day_records),
                risk_flag=has_warning or risk == "high",
                risk_level=risk,
                recommended_action=prescriptions[0] if prescriptions else NO_ACTION,
                message_log=format_message_log(day_records, day_feedbacks, tz),
                factors=factors,
                created_at=created_at or _latest_instant(day_records, day_feedbacks),
            )
        )

    return sorted(summaries, key=lambda s: s.date, reverse=True)
