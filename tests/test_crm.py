from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from conftest import make_feedback, make_record
from crm import (
    NO_ACTION,
    NO_RECORDS,
    build_day_summaries,
    day_summary,
    filter_date_range,
    format_number,
)
from models import Factor

SEOUL = ZoneInfo("Asia/Seoul")


def sample_day():
    return [
        make_record("diet", 300, "2025-01-20", {"calories": 300, "mealDescription": "Oatmeal"}, record_id="d1"),
        make_record("diet", 700, "2025-01-20", {"calories": 700}, record_id="d2"),
        make_record("sleep", 8, "2025-01-20", record_id="s1"),
        make_record("mood", 3, "2025-01-20", {"moodScore": 5}, record_id="m1"),
    ]


def test_day_with_meals_sleep_and_mood():
    records = build_day_summaries("user-1", sample_day(), [], tz=SEOUL)

    assert len(records) == 1
    day = records[0]
    assert day.id == "crm-user-1-2025-01-20"
    assert day.summary == "Sleep 8h | Mood 5/5 | Meals 2"
    assert "sleep 8" in day.summary.lower()
    assert "mood 5" in day.summary.lower()
    assert day.risk_flag is False
    assert day.risk_level == "low"
    assert day.recommended_action == NO_ACTION
    assert day.factors == []


def test_summary_kind_order_and_activity_total():
    records = [
        make_record("diet", 0, "2025-01-20"),
        make_record("activity", 25, "2025-01-20", {"duration": 25}),
        make_record("weight", 70.5, "2025-01-20"),
        make_record("activity", 15, "2025-01-20", {"duration": 15}),
        make_record("sleep", 7.5, "2025-01-20"),
    ]

    assert day_summary(records) == "Sleep 7.5h | Activity 40min | Weight 70.5kg | Meals 1"
    assert day_summary([]) == NO_RECORDS


def test_output_is_deterministic():
    records = sample_day() + [make_record("sleep", 6, "2025-01-19")]
    feedbacks = [make_feedback("2025-01-20", prescriptions=["Walk"])]

    first = build_day_summaries("user-1", records, feedbacks, tz=SEOUL)
    second = build_day_summaries("user-1", records, feedbacks, tz=SEOUL)

    assert [r.model_dump_json() for r in first] == [r.model_dump_json() for r in second]


def test_sorted_newest_first_without_losing_records():
    records = [
        make_record("sleep", 7, "2025-01-18"),
        make_record("sleep", 6, "2025-01-20"),
        make_record("mood", 4, "2025-01-18"),
        make_record("weight", 70, "2025-01-19"),
    ]

    summaries = build_day_summaries("user-1", records, [], tz=SEOUL)

    assert [s.date for s in summaries] == ["2025-01-20", "2025-01-19", "2025-01-18"]
    logged = sum(len(s.message_log.splitlines()) - 1 for s in summaries)
    assert logged == len(records)


def test_warning_sets_risk_flag_regardless_of_level():
    feedbacks = [make_feedback("2025-01-20", kind="warning")]

    day = build_day_summaries("user-1", sample_day(), feedbacks, tz=SEOUL)[0]

    assert day.risk_flag is True
    assert day.risk_level == "low"


def test_highest_risk_level_wins():
    medium = [make_feedback("2025-01-20", risk_level="medium")]
    high = medium + [make_feedback("2025-01-20", kind="evening", risk_level="high")]

    medium_day = build_day_summaries("user-1", sample_day(), medium, tz=SEOUL)[0]
    high_day = build_day_summaries("user-1", sample_day(), high, tz=SEOUL)[0]

    assert (medium_day.risk_level, medium_day.risk_flag) == ("medium", False)
    assert (high_day.risk_level, high_day.risk_flag) == ("high", True)


def test_action_and_factors_come_from_that_days_feedback():
    factor = Factor(id="factor-0", name="Sleep", description="8h", evidence="8h", impact="positive")
    feedbacks = [
        make_feedback("2025-01-19", prescriptions=["Other day"]),
        make_feedback("2025-01-20", prescriptions=[""], factors=[factor]),
        make_feedback("2025-01-20", kind="evening", prescriptions=["Stretch", "Sleep early"]),
    ]

    day = build_day_summaries("user-1", sample_day(), feedbacks, tz=SEOUL)[0]

    assert day.recommended_action == "Stretch"
    assert day.factors == [factor]


def test_message_log_layout():
    feedbacks = [
        make_feedback("2025-01-20", content="Nice start", prescriptions=["Walk", "Drink water"]),
        make_feedback("2025-01-20", kind="evening", content="Good day"),
    ]

    log = build_day_summaries("user-1", sample_day(), feedbacks, tz=SEOUL)[0].message_log

    assert log.splitlines() == [
        "=== Daily Log ===",
        "[09:00] Diet: Oatmeal",
        "[09:00] Diet: 700",
        "[09:00] Sleep: 8",
        "[09:00] Mood: 3",
        "",
        "=== AI Analysis ===",
        "[morning] Nice start",
        "Action: Walk, Drink water",
        "[evening] Good day",
    ]


def test_message_log_without_feedback_has_no_analysis_section():
    log = build_day_summaries("user-1", sample_day(), [], tz=SEOUL)[0].message_log

    assert "=== AI Analysis ===" not in log
    assert not log.endswith("\n")


def test_created_at_defaults_to_latest_instant_of_the_day():
    records = [
        make_record("sleep", 7, "2025-01-20", timestamp=datetime(2025, 1, 20, 1, tzinfo=timezone.utc)),
        make_record("mood", 4, "2025-01-20", timestamp=datetime(2025, 1, 20, 5, tzinfo=timezone.utc)),
    ]
    stamp = datetime(2025, 2, 1, tzinfo=timezone.utc)

    assert build_day_summaries("user-1", records, [])[0].created_at == records[1].timestamp
    assert build_day_summaries("user-1", records, [], created_at=stamp)[0].created_at == stamp


def test_date_range_is_inclusive():
    records = [make_record("sleep", 7, d) for d in ("2025-01-17", "2025-01-18", "2025-01-20", "2025-01-21")]
    feedbacks = [make_feedback(d) for d in ("2025-01-17", "2025-01-20")]

    kept_records, kept_feedbacks = filter_date_range(records, feedbacks, "2025-01-18", "2025-01-20")

    assert [r.date for r in kept_records] == ["2025-01-18", "2025-01-20"]
    assert [f.date for f in kept_feedbacks] == ["2025-01-20"]


def test_numbers_keep_full_precision():
    assert format_number(8.0) == "8"
    assert format_number(1234.567) == "1234.567"
    assert format_number(1234567.5) == "1234567.5"

    records = [make_record("weight", 72.345, "2025-01-20")]
    assert day_summary(records) == "Weight 72.345kg"
