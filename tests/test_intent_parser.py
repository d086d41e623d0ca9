from datetime import datetime

import pytest

from alqemist.services.intent_parser import count_questions, detect_topic, parse_intent

NOW = datetime(2026, 3, 10, 12, 0)


def test_relative_minutes():
    intent = parse_intent("Please remind me to call mom in 30 minutes", NOW)
    assert intent.title == "call mom"
    assert intent.due_at == datetime(2026, 3, 10, 12, 30)
    assert intent.kind == "reminder"


@pytest.mark.parametrize(
    "unit,expected",
    [
        ("hours", datetime(2026, 3, 10, 14, 0)),
        ("hr", datetime(2026, 3, 10, 14, 0)),
        ("days", datetime(2026, 3, 12, 12, 0)),
        ("mins", datetime(2026, 3, 10, 12, 2)),
    ],
)
def test_relative_units(unit, expected):
    assert parse_intent(f"remind me to stretch in 2 {unit}", NOW).due_at == expected


def test_tomorrow_defaults_to_nine():
    intent = parse_intent("remind me to pay rent tomorrow", NOW)
    assert intent.title == "pay rent"
    assert intent.due_at == datetime(2026, 3, 11, 9, 0)


def test_tomorrow_with_time():
    intent = parse_intent("Remind me to submit the report tomorrow at 14:30", NOW)
    assert intent.title == "submit the report"
    assert intent.due_at == datetime(2026, 3, 11, 14, 30)


def test_at_time_later_today():
    intent = parse_intent("remind me to water the plants at 18:00", NOW)
    assert intent.due_at == datetime(2026, 3, 10, 18, 0)


def test_at_time_already_passed_rolls_to_tomorrow():
    intent = parse_intent("remind me to water the plants at 8:15", NOW)
    assert intent.due_at == datetime(2026, 3, 11, 8, 15)


def test_twelve_hour_clock():
    assert parse_intent("remind me to leave at 2pm", NOW).due_at == datetime(2026, 3, 10, 14, 0)
    assert parse_intent("remind me to leave at 2:45 pm", NOW).due_at == datetime(2026, 3, 10, 14, 45)
    assert parse_intent("remind me to sleep at 12 am", NOW).due_at == datetime(2026, 3, 11, 0, 0)


def test_meeting_intent():
    intent = parse_intent("I have a team meeting at 15:00, can you prepare notes?", NOW)
    assert intent.kind == "meeting"
    assert intent.title == "I have a team meeting"
    assert intent.due_at == datetime(2026, 3, 10, 15, 0)


def test_no_intent():
    assert parse_intent("What is the capital of France?", NOW) is None
    assert parse_intent("", NOW) is None


def test_invalid_clock_is_ignored():
    assert parse_intent("remind me to check at 27:00", NOW) is None


def test_huge_relative_amount_is_ignored():
    assert parse_intent("remind me to x in 99999999999 days", NOW) is None


def test_detect_topic():
    assert detect_topic("How do I use pandas groupby?") == "python"
    assert detect_topic("Write a blog post about hiking") == "writing"
    assert detect_topic("Deploy this with Docker") == "devops"
    assert detect_topic("Good morning") is None


def test_count_questions():
    assert count_questions("Why? How? When?") == 3
    assert count_questions("") == 0
