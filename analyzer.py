"""
Local pattern analyzer.

Deterministic 7-day summary used when the Gemini analysis cannot be reached.
Returns the same shape as the remote analysis (patterns / factors /
recommendations).
"""

from datetime import date, timedelta
from typing import List, Optional, Sequence

from config import local_today
from models import AnalysisFactor, AnalysisResult, EventRecord

WINDOW_DAYS = 7
SLEEP_TARGET_HOURS = 7.0
ACTIVITY_TARGET_MINUTES = 150
WEIGHT_CHANGE_KG = 1.0
DAILY_CALORIE_LIMIT = 2000
LOW_MOOD = 3.0
GOOD_MOOD = 4.0

MAX_FACTORS = 3
MAX_RECOMMENDATIONS = 2

DEFAULT_RECOMMENDATIONS = [
    "Keep up your current routine and keep logging consistently.",
    "Don't forget to drink enough water (2 L a day).",
]
DEFAULT_PATTERN = "Log a few more days to unlock a detailed pattern analysis."


def records_in_window(
    records: Sequence[EventRecord], today: Optional[date] = None
) -> List[EventRecord]:
    """Records dated within the last 7 calendar days, today included."""
    today = today or local_today()
    cutoff = (today - timedelta(days=WINDOW_DAYS - 1)).isoformat()
    return [r for r in records if r.date >= cutoff]


def _of_kind(records: Sequence[EventRecord], kind: str) -> List[EventRecord]:
    return [r for r in records if r.kind == kind]


def analyze_local(
    records: Sequence[EventRecord], today: Optional[date] = None
) -> AnalysisResult:
    recent = records_in_window(records, today)

    patterns: List[str] = []
    factors: List[AnalysisFactor] = []
    recommendations: List[str] = []

    # ---- Sleep ----
    sleep_logs = _of_kind(recent, "sleep")
    if sleep_logs:
        avg_sleep = sum(r.value for r in sleep_logs) / len(sleep_logs)
        evidence = f"Averaged {avg_sleep:.1f} hours of sleep over the last 7 days"
        if avg_sleep < SLEEP_TARGET_HOURS:
            patterns.append(
                f"Your average sleep is {avg_sleep:.1f} hours, "
                f"below the recommended {SLEEP_TARGET_HOURS:.0f} hours."
            )
            factors.append(
                AnalysisFactor(name="Sleep deficit", impact="negative", evidence=evidence)
            )
            recommendations.append("Try going to bed 30 minutes earlier tonight.")
        else:
            patterns.append(
                f"Your average sleep is {avg_sleep:.1f} hours, a healthy sleep pattern!"
            )
            factors.append(
                AnalysisFactor(name="Enough sleep", impact="positive", evidence=evidence)
            )

    # ---- Activity ----
    activity_logs = _of_kind(recent, "activity")
    if activity_logs:
        total_minutes = sum(r.metadata.duration or 0 for r in activity_logs)
        evidence = f"{total_minutes:g} active minutes over the last 7 days"
        if total_minutes < ACTIVITY_TARGET_MINUTES:
            patterns.append(
                f"Weekly activity is {total_minutes:g} minutes, "
                f"below the recommended {ACTIVITY_TARGET_MINUTES} minutes."
            )
            factors.append(
                AnalysisFactor(name="Low activity", impact="negative", evidence=evidence)
            )
            recommendations.append("Take a 10-minute walk after lunch.")
        else:
            factors.append(
                AnalysisFactor(
                    name="Active lifestyle", impact="positive", evidence=evidence
                )
            )
    elif recent:
        # Other kinds logged but no activity at all
        patterns.append("No recent activity recorded. Start with some light exercise.")
        recommendations.append("Aim for a 20-minute walk today.")

    # ---- Weight ----
    weight_logs = _of_kind(recent, "weight")
    if len(weight_logs) >= 2:
        # Stable sort: same-day entries keep insertion order
        weight_logs = sorted(weight_logs, key=lambda r: r.date)
        change = weight_logs[-1].value - weight_logs[0].value
        if abs(change) > WEIGHT_CHANGE_KG:
            if change > 0:
                patterns.append(
                    f"Your weight went up {change:.1f}kg. "
                    "Take a look at your diet and activity."
                )
                factors.append(
                    AnalysisFactor(
                        name="Weight gain",
                        impact="negative",
                        evidence=f"Up {change:.1f}kg over the last 7 days",
                    )
                )
                recommendations.append("Cut back on carbohydrates after 6 pm.")
            else:
                patterns.append(f"Your weight went down {abs(change):.1f}kg.")
                factors.append(
                    AnalysisFactor(
                        name="Losing weight",
                        impact="positive",
                        evidence=f"Down {abs(change):.1f}kg over the last 7 days",
                    )
                )

    # ---- Diet ----
    diet_logs = _of_kind(recent, "diet")
    if diet_logs:
        total_calories = sum(r.metadata.calories or 0 for r in diet_logs)
        # Always spread over the full window, not over logged days
        avg_calories = total_calories / WINDOW_DAYS
        if avg_calories > DAILY_CALORIE_LIMIT:
            patterns.append(f"Your average daily intake is {round(avg_calories)}kcal.")

    # ---- Mood ----
    mood_logs = _of_kind(recent, "mood")
    if mood_logs:
        scores = [
            r.metadata.mood_score if r.metadata.mood_score is not None else r.value
            for r in mood_logs
        ]
        avg_mood = sum(scores) / len(scores)
        evidence = f"Recent average mood score {avg_mood:.1f}/5"
        if avg_mood < LOW_MOOD:
            patterns.append("Your mood has been on the low side lately.")
            factors.append(
                AnalysisFactor(name="Low mood", impact="negative", evidence=evidence)
            )
            recommendations.append("Spend 10 minutes on something you enjoy today.")
        elif avg_mood >= GOOD_MOOD:
            factors.append(
                AnalysisFactor(name="Positive mood", impact="positive", evidence=evidence)
            )

    if not recommendations:
        recommendations.extend(DEFAULT_RECOMMENDATIONS)
    if not patterns:
        patterns.append(DEFAULT_PATTERN)

    return AnalysisResult(
        patterns=patterns,
        factors=factors[:MAX_FACTORS],
        recommendations=recommendations[:MAX_RECOMMENDATIONS],
    )
