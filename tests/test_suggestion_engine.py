from datetime import datetime, timedelta

import pytest

from alqemist.models.proactive_suggestion import ProactiveSuggestion
from alqemist.models.scheduled_task import ScheduledTask
from alqemist.models.usage_event import UsageEvent
from alqemist.models.user import User
from alqemist.models.user_activity import UserActivity
from alqemist.models.user_pattern import UserPattern
from alqemist.services.model_catalog import DEFAULT_CATALOG
from alqemist.services.suggestion_engine import ProactiveSuggestionsEngine, sort_suggestions

# Tuesday
NOW = datetime(2026, 3, 10, 12, 0)


@pytest.fixture
def engine(scheduler):
    return ProactiveSuggestionsEngine(scheduler, DEFAULT_CATALOG)


def _activity(db, hour, activity_type="chat", day=NOW, **data):
    db.add(UserActivity(
        user_id="user_1", activity_type=activity_type, data=data,
        timestamp=day.replace(hour=hour, minute=0),
    ))
    db.commit()


def _pattern(db, pattern_type, key="", frequency=1, confidence=0.5, **data):
    db.add(UserPattern(user_id="user_1", pattern_type=pattern_type, key=key,
                       frequency=frequency, confidence=confidence, data=data, last_seen=NOW))
    db.commit()


def _task(db, title, when, status="pending", category="general"):
    db.add(ScheduledTask(user_id="user_1", title=title, task_type="reminder", scheduled_for=when,
                         status=status, metadata_={"priority": "medium", "category": category}))
    db.commit()


def _stored(db, title="Tip", priority="medium", confidence=0.5, user_id="user_1", **fields):
    s = ProactiveSuggestion(user_id=user_id, type="insight", title=title,
                            description="", confidence=confidence, priority=priority,
                            metadata_={}, actions=[], created_at=NOW, **fields)
    db.add(s)
    db.commit()
    return s


def _titles(suggestions):
    return [s.title for s in suggestions]


# ---- activity and patterns ----

def test_record_activity(db, user, engine):
    engine.record_activity(db, user.id, "chat", {"topic": "python"})
    rows = db.query(UserActivity).all()
    assert len(rows) == 1
    assert rows[0].data == {"topic": "python"}


def test_refresh_patterns_working_hours(db, user, engine):
    for hour in (9, 10, 10, 14, 14, 14):
        _activity(db, hour)
    engine.refresh_patterns(db, user.id, NOW)
    pattern = db.query(UserPattern).filter(UserPattern.pattern_type == "working_hours").one()
    assert pattern.frequency == 1
    assert pattern.confidence == pytest.approx(0.12)
    assert pattern.data["start_hour"] == 9
    assert pattern.data["end_hour"] == 15
    assert pattern.data["peak_productivity_hours"] == ["10:00", "14:00"]
    assert pattern.data["intensive_hours"] == 3


def test_refresh_patterns_task_frequency_is_upserted(db, user, engine):
    monday = datetime(2026, 3, 9, 10, 0)
    _task(db, "Standup", monday, status="completed", category="meeting")
    _task(db, "Planning", monday + timedelta(minutes=30), status="completed", category="meeting")
    engine.refresh_patterns(db, user.id, NOW)
    engine.refresh_patterns(db, user.id, NOW)
    rows = db.query(UserPattern).filter(UserPattern.pattern_type == "task_frequency").all()
    assert len(rows) == 1
    assert rows[0].key == "meeting"
    assert rows[0].frequency == 2
    assert rows[0].confidence == pytest.approx(0.7)
    assert rows[0].data == {"task_type": "meeting", "day_of_week": 0, "hour": 10}


# ---- generators ----

def test_no_data_no_suggestions(db, user, engine):
    assert engine.generate_suggestions(db, user.id, NOW) == []


def test_task_batching(db, user, engine):
    for i in range(3):
        _task(db, f"Report {i}", NOW + timedelta(hours=i + 1), category="work")
    suggestions = engine.generate_suggestions(db, user.id, NOW)
    assert _titles(suggestions) == ["Task Batching Opportunity"]
    assert suggestions[0].metadata_["estimated_time_minutes"] == 30
    assert len(suggestions[0].actions[0]["data"]["tasks"]) == 3


def test_two_tasks_do_not_batch(db, user, engine):
    for i in range(2):
        _task(db, f"Report {i}", NOW + timedelta(hours=1), category="work")
    assert engine.generate_suggestions(db, user.id, NOW) == []


def test_break_reminder_and_insight(db, user, engine):
    _pattern(db, "working_hours", confidence=0.6, intensive_hours=5, peak_productivity_hours=["09:00", "14:00"])
    suggestions = engine.generate_suggestions(db, user.id, NOW)
    assert _titles(suggestions) == ["Break Reminder", "Your Productivity Pattern"]
    assert suggestions[0].priority == "high"
    assert "between 09:00 and 14:00" in suggestions[1].description


def test_forgotten_meeting(db, user, engine):
    _pattern(db, "task_frequency", key="meeting", frequency=3, confidence=0.8,
             task_type="meeting", day_of_week=1, hour=13)
    suggestions = engine.generate_suggestions(db, user.id, NOW)
    assert _titles(suggestions) == ["Possible Forgotten Meeting"]
    assert "Tuesday around 13:00" in suggestions[0].description


def test_forgotten_meeting_skipped_when_meeting_scheduled(db, user, engine):
    _pattern(db, "task_frequency", key="meeting", frequency=3, confidence=0.8,
             task_type="meeting", day_of_week=1, hour=13)
    _task(db, "Sync", NOW.replace(hour=16), category="meeting")
    assert engine.generate_suggestions(db, user.id, NOW) == []


def test_learning_suggestion(db, user, engine):
    _activity(db, 9, topic="python", question_count=2)
    _activity(db, 10, topic="python", question_count=2)
    _activity(db, 11, topic="sql", question_count=1)
    suggestions = engine.generate_suggestions(db, user.id, NOW)
    assert _titles(suggestions) == ["Learn More About python"]


def test_workflow_suggestions(db, user, engine):
    _pattern(db, "task_frequency", key="report", frequency=4, confidence=0.9, task_type="report",
             day_of_week=4, hour=8)
    for hour in range(6):
        _activity(db, hour + 1, topic="react")
    titles = _titles(engine.generate_suggestions(db, user.id, NOW))
    assert titles == ["Workflow Automation Opportunity", "Workflow Template Suggestion"]


def _api_call(db, model):
    db.add(UsageEvent(user_id="user_1", type="api_call", resource="chat", quantity=1,
                      metadata_={"model": model}, timestamp=NOW - timedelta(days=1)))
    db.commit()


def test_cost_optimization_over_eighty_percent(db, user, engine):
    for _ in range(5):
        _api_call(db, "gpt-4o")
    suggestions = engine.generate_suggestions(db, user.id, NOW)
    assert _titles(suggestions) == ["AI Model Cost Optimization"]
    assert suggestions[0].metadata_["expensive_model_usage"] == 1.0


def test_cost_optimization_exactly_eighty_percent(db, user, engine):
    for _ in range(4):
        _api_call(db, "gpt-4o")
    _api_call(db, "gpt-4o-mini")
    assert engine.generate_suggestions(db, user.id, NOW) == []


def test_sort_suggestions_priority_then_confidence():
    def s(title, priority, confidence):
        return ProactiveSuggestion(title=title, priority=priority, confidence=confidence)

    ranked = sort_suggestions([
        s("a", "low", 0.9), s("b", "medium", 0.5), s("c", "high", 0.1),
        s("d", "medium", 0.7), s("e", "low", 0.2), s("f", "medium", 0.7),
    ])
    assert _titles(ranked) == ["c", "d", "f", "b", "a"]


# ---- storage and interactions ----

def test_save_and_list(db, user, engine):
    for i in range(3):
        _task(db, f"Report {i}", NOW + timedelta(hours=1), category="work")
    saved = engine.save_suggestions(db, engine.generate_suggestions(db, user.id, NOW))
    assert saved[0].id
    assert _titles(engine.list_suggestions(db, user.id, now=NOW)) == ["Task Batching Opportunity"]


def test_list_filters_expired_shown_and_dismissed(db, user, engine):
    _stored(db, "Fresh", priority="low")
    _stored(db, "Urgent", priority="high")
    _stored(db, "Expired", expires_at=NOW - timedelta(minutes=1))
    _stored(db, "Seen", shown=True)
    _stored(db, "Dismissed", dismissed=True)
    assert _titles(engine.list_suggestions(db, user.id, now=NOW)) == ["Urgent", "Fresh"]
    everything = _titles(engine.list_suggestions(db, user.id, include_shown=True, now=NOW))
    assert everything[0] == "Urgent"
    assert everything[-1] == "Fresh"
    assert set(everything[1:3]) == {"Seen", "Dismissed"}
    assert len(engine.list_suggestions(db, user.id, limit=1, now=NOW)) == 1


def test_interactions(db, user, engine):
    shown = _stored(db, "A")
    dismissed = _stored(db, "B")
    completed = _stored(db, "C")
    clicked = _stored(db, "D")

    assert engine.mark_shown(db, shown.id, user.id)
    assert engine.dismiss(db, dismissed.id, user.id)
    assert engine.complete(db, completed.id, user.id)
    assert engine.interact(db, clicked.id, user.id)

    for s in (shown, dismissed, completed, clicked):
        db.refresh(s)
        assert s.interacted_at is not None
    assert shown.shown and not shown.dismissed
    assert dismissed.dismissed
    assert completed.dismissed
    assert not clicked.shown and not clicked.dismissed


def test_interaction_scoped_to_owner(db, user, engine):
    db.add(User(id="user_2", email="user_2@example.com", name="Other"))
    db.commit()
    other = _stored(db, "Theirs", user_id="user_2")
    assert engine.dismiss(db, other.id, user.id) is False
    assert engine.dismiss(db, "missing", user.id) is False
