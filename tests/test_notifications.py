"""Tests for the notification dispatcher."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from smartnotify.common.config import SmartNotifyConfig
from smartnotify.common.constants import NotificationStatus, Priority
from smartnotify.common.errors import (
    ChannelNotFoundError,
    MalformedInputError,
    RuleNotFoundError,
)
from smartnotify.common.schemas import HistoryFilter, Notification, NotificationRule
from smartnotify.notifications.channels import Channel
from smartnotify.notifications.dispatch import NotificationDispatcher

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


# --- Helpers ---


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class BrokenChannel(Channel):
    def __init__(self, channel_id: str = "broken") -> None:
        super().__init__(channel_id, "Broken")

    def deliver(self, notification: Notification) -> None:
        raise RuntimeError("boom")


class RecordingChannel(Channel):
    def __init__(self, channel_id: str = "recorder") -> None:
        super().__init__(channel_id, "Recorder")
        self.received: list[Notification] = []

    def deliver(self, notification: Notification) -> None:
        self.received.append(notification)


@pytest.fixture
def config(tmp_path: Path) -> SmartNotifyConfig:
    return SmartNotifyConfig(data_dir=tmp_path / "data", config_dir=tmp_path / "configs")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher(config: SmartNotifyConfig, clock: FakeClock) -> NotificationDispatcher:
    return NotificationDispatcher(config, clock=clock)


# --- Submission ---


def test_project_completed_end_to_end(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.submit_event("completed", "project", {"projectName": "Demo"})
    assert n.priority == Priority.SUCCESS
    assert n.message == "Project completed successfully: Demo"
    assert n.channels == ["console", "log", "email"]
    assert n.status == NotificationStatus.DELIVERED
    assert n.attempts == 0
    assert n.max_attempts == 3
    assert len(dispatcher.history) == 1


def test_unknown_rule_raises(dispatcher: NotificationDispatcher) -> None:
    with pytest.raises(RuleNotFoundError, match="No rule found for project.archived"):
        dispatcher.submit_event("archived", "project", {})
    assert len(dispatcher.history) == 0


def test_ids_are_unique(dispatcher: NotificationDispatcher) -> None:
    ids = {dispatcher.submit_event("info", "system", {"info": str(i)}).id for i in range(5)}
    assert len(ids) == 5


def test_missing_field_keeps_placeholder(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.submit_event("due_soon", "task", {"taskTitle": "Fix bug"})
    assert "{{dueDate}}" in n.message
    assert n.message.startswith("Task due soon: Fix bug")


def test_condition_failure_leaves_no_trace(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.submit_event("due_soon", "task", {"taskTitle": "Fix bug"})
    assert n.status == NotificationStatus.PENDING
    assert len(dispatcher.history) == 0


def test_due_soon_within_three_days(dispatcher: NotificationDispatcher) -> None:
    due = (NOW + timedelta(days=2)).isoformat()
    n = dispatcher.submit_event("due_soon", "task", {"taskTitle": "Ship", "dueDate": due})
    assert n.status == NotificationStatus.DELIVERED


def test_due_soon_beyond_three_days(dispatcher: NotificationDispatcher) -> None:
    due = (NOW + timedelta(days=4)).isoformat()
    n = dispatcher.submit_event("due_soon", "task", {"taskTitle": "Ship", "dueDate": due})
    assert n.status == NotificationStatus.PENDING


def test_overdue_task(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.submit_event("overdue", "task", {"taskTitle": "Fix", "dueDate": "2023-01-01"})
    assert n.status == NotificationStatus.DELIVERED
    assert n.priority == Priority.ERROR


def test_score_low_gate(dispatcher: NotificationDispatcher) -> None:
    low = dispatcher.submit_event("score_low", "quality", {"score": 40, "projectName": "A"})
    high = dispatcher.submit_event("score_low", "quality", {"score": 80, "projectName": "A"})
    assert low.status == NotificationStatus.DELIVERED
    assert low.message == "Low quality score: 40/100 - A"
    assert high.status == NotificationStatus.PENDING


def test_always_rules_ignore_data(dispatcher: NotificationDispatcher) -> None:
    for data in ({}, {"score": 0}, {"dueDate": "not-a-date"}):
        n = dispatcher.submit_event("created", "project", data)
        assert dispatcher.should_deliver(n) is True


def test_options_are_kept(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.submit_event("created", "project", {"projectName": "X"}, {"source": "ci"})
    assert n.options == {"source": "ci"}


# --- Snapshot semantics ---


def test_channels_snapshotted_at_creation(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    dispatcher.update_rule("project", "created", {"channels": ["console"], "conditions": ["score < 1"]})
    assert n.channels == ["console", "log"]
    assert n.conditions == ["always"]
    assert dispatcher.history.all()[0].channels == ["console", "log"]


# --- Rate limiting ---


def test_rate_limit_allows_ten_per_hour(dispatcher: NotificationDispatcher) -> None:
    results = [dispatcher.submit_event("info", "system", {"info": i}) for i in range(11)]
    assert len(dispatcher.history) == 10
    assert all(r.status == NotificationStatus.DELIVERED for r in results[:10])
    assert results[10].status == NotificationStatus.PENDING
    assert results[10].id not in {n.id for n in dispatcher.history}


def test_rate_limit_is_per_category_and_type(dispatcher: NotificationDispatcher) -> None:
    for i in range(10):
        dispatcher.submit_event("info", "system", {"info": i})
    n = dispatcher.submit_event("warning", "system", {"warning": "disk"})
    assert n.status == NotificationStatus.DELIVERED


def test_rate_limit_window_slides(dispatcher: NotificationDispatcher, clock: FakeClock) -> None:
    for i in range(10):
        dispatcher.submit_event("info", "system", {"info": i})
    clock.advance(hours=1)
    n = dispatcher.submit_event("info", "system", {"info": "later"})
    assert n.status == NotificationStatus.DELIVERED


def test_rate_limit_configurable(tmp_path: Path, clock: FakeClock) -> None:
    cfg = SmartNotifyConfig(data_dir=tmp_path, config_dir=tmp_path, rate_limit_max=2)
    dispatcher = NotificationDispatcher(cfg, clock=clock)
    for i in range(3):
        dispatcher.submit_event("info", "system", {"info": i})
    assert len(dispatcher.history) == 2


# --- Subscriber gate ---


def test_empty_subscriber_list_suppresses(dispatcher: NotificationDispatcher) -> None:
    dispatcher.subscribe("project", "alice")
    dispatcher.unsubscribe("project", "alice")
    assert dispatcher.get_subscribers("project") == []
    n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    assert n.status == NotificationStatus.PENDING
    assert len(dispatcher.history) == 0


def test_subscribed_category_delivers(dispatcher: NotificationDispatcher) -> None:
    dispatcher.subscribe("project", "alice")
    n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    assert n.status == NotificationStatus.DELIVERED


def test_unregistered_category_delivers(dispatcher: NotificationDispatcher) -> None:
    dispatcher.subscribe("task", "bob")
    dispatcher.unsubscribe("task", "bob")
    n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    assert n.status == NotificationStatus.DELIVERED


# --- Delivery ---


def test_failing_channel_does_not_stop_others(
    config: SmartNotifyConfig, clock: FakeClock, caplog: pytest.LogCaptureFixture,
) -> None:
    recorder = RecordingChannel()
    dispatcher = NotificationDispatcher(
        config, channels={"broken": BrokenChannel(), "recorder": recorder}, clock=clock,
    )
    dispatcher.add_rule("system", "probe", {
        "priority": "info", "channels": ["broken", "recorder"], "message": "probe",
    })
    with caplog.at_level(logging.ERROR):
        n = dispatcher.submit_event("probe", "system", {})
    assert len(recorder.received) == 1
    assert n.status == NotificationStatus.DELIVERED
    assert n.attempts == 1
    assert "Failed to send notification via broken" in caplog.text


def test_all_channels_failing_marks_failed(config: SmartNotifyConfig, clock: FakeClock) -> None:
    dispatcher = NotificationDispatcher(
        config, channels={"broken": BrokenChannel()}, clock=clock,
    )
    dispatcher.add_rule("system", "probe", {
        "priority": "error", "channels": ["broken"], "message": "probe",
    })
    n = dispatcher.submit_event("probe", "system", {})
    assert n.status == NotificationStatus.FAILED
    assert n.attempts == 1
    assert len(dispatcher.history) == 1


def test_no_enabled_channels_marks_failed(dispatcher: NotificationDispatcher) -> None:
    dispatcher.add_rule("system", "mail_only", {
        "priority": "info", "channels": ["email", "missing"], "message": "hi",
    })
    n = dispatcher.submit_event("mail_only", "system", {})
    assert n.status == NotificationStatus.FAILED
    assert n.attempts == 0


def test_enabled_stub_channel_counts_as_failure(dispatcher: NotificationDispatcher) -> None:
    dispatcher.enable_channel("email")
    n = dispatcher.submit_event("completed", "project", {"projectName": "Demo"})
    assert n.status == NotificationStatus.DELIVERED
    assert n.attempts == 1


def test_log_and_history_files_written(
    dispatcher: NotificationDispatcher, config: SmartNotifyConfig,
) -> None:
    dispatcher.submit_event("created", "project", {"projectName": "X"})
    log_lines = (config.data_dir / "notifications.log").read_text().splitlines()
    assert len(log_lines) == 1
    entry = json.loads(log_lines[0])
    assert entry["level"] == "info"
    assert entry["message"] == "New project created: X"
    history = json.loads((config.data_dir / "history.json").read_text())
    assert history[0]["maxAttempts"] == 3
    assert history[0]["status"] == "delivered"


def test_database_channel_sink(
    dispatcher: NotificationDispatcher, config: SmartNotifyConfig,
) -> None:
    dispatcher.add_rule("system", "audit", {
        "priority": "info", "channels": ["database"], "message": "audit {{who}}",
    })
    dispatcher.submit_event("audit", "system", {"who": "ops"})
    dispatcher.submit_event("audit", "system", {"who": "dev"})
    records = json.loads((config.data_dir / "notifications.json").read_text())
    assert [r["message"] for r in records] == ["audit ops", "audit dev"]


def test_history_reloaded(config: SmartNotifyConfig, clock: FakeClock) -> None:
    first = NotificationDispatcher(config, clock=clock)
    sent = first.submit_event("created", "project", {"projectName": "X"})
    second = NotificationDispatcher(config, clock=clock)
    loaded = second.history.all()
    assert [n.id for n in loaded] == [sent.id]
    assert loaded[0].timestamp == NOW


def test_listener_called_after_record(dispatcher: NotificationDispatcher) -> None:
    seen: list[str] = []
    dispatcher.add_listener(lambda n: seen.append(n.id))
    n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    dispatcher.submit_event("due_soon", "task", {})
    assert seen == [n.id]


def test_failing_listener_is_contained(dispatcher: NotificationDispatcher) -> None:
    def bad(_: Notification) -> None:
        raise RuntimeError("listener down")

    dispatcher.add_listener(bad)
    n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    assert n.status == NotificationStatus.DELIVERED


# --- Rules ---


def test_add_rule_persists_full_table(
    dispatcher: NotificationDispatcher, config: SmartNotifyConfig,
) -> None:
    rule = NotificationRule(priority=Priority.WARNING, channels=["console"], message="Deploy {{env}}")
    dispatcher.add_rule("deploy", "started", rule)
    saved = json.loads((config.config_dir / "notification-rules.json").read_text())
    assert saved["deploy"]["started"] == {
        "priority": "warning",
        "channels": ["console"],
        "message": "Deploy {{env}}",
        "conditions": ["always"],
    }
    assert "completed" in saved["project"]
    assert sum(len(types) for types in saved.values()) == 22


def test_update_rule_shallow_merge(dispatcher: NotificationDispatcher) -> None:
    updated = dispatcher.update_rule("project", "created", {"priority": "warning"})
    assert updated.priority == Priority.WARNING
    assert updated.message == "New project created: {{projectName}}"
    assert updated.channels == ["console", "log"]


def test_update_missing_rule_raises(dispatcher: NotificationDispatcher) -> None:
    with pytest.raises(RuleNotFoundError):
        dispatcher.update_rule("nope", "nothing", {"priority": "info"})


def test_remove_rule(dispatcher: NotificationDispatcher, config: SmartNotifyConfig) -> None:
    dispatcher.remove_rule("project", "created")
    with pytest.raises(RuleNotFoundError):
        dispatcher.submit_event("created", "project", {})
    saved = json.loads((config.config_dir / "notification-rules.json").read_text())
    assert "created" not in saved["project"]


def test_rules_loaded_from_file(config: SmartNotifyConfig, clock: FakeClock) -> None:
    NotificationDispatcher(config, clock=clock).add_rule(
        "deploy", "finished", {"priority": "success", "channels": ["log"], "message": "done"},
    )
    reloaded = NotificationDispatcher(config, clock=clock)
    assert reloaded.get_rule("deploy", "finished").message == "done"


def test_persistence_failure_keeps_memory(
    tmp_path: Path, clock: FakeClock, caplog: pytest.LogCaptureFixture,
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    cfg = SmartNotifyConfig(data_dir=tmp_path / "data", config_dir=blocker)
    dispatcher = NotificationDispatcher(cfg, clock=clock)
    with caplog.at_level(logging.WARNING):
        dispatcher.add_rule("deploy", "started", {"priority": "info", "message": "go"})
    assert dispatcher.get_rule("deploy", "started").message == "go"
    assert "Could not write" in caplog.text


def test_history_write_failure_keeps_memory(
    tmp_path: Path, clock: FakeClock, caplog: pytest.LogCaptureFixture,
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    cfg = SmartNotifyConfig(data_dir=blocker, config_dir=tmp_path / "configs")
    dispatcher = NotificationDispatcher(cfg, clock=clock)
    with caplog.at_level(logging.WARNING):
        n = dispatcher.submit_event("created", "project", {"projectName": "X"})
    assert n.status == NotificationStatus.DELIVERED
    assert [h.id for h in dispatcher.history] == [n.id]
    assert f"Could not write {blocker / 'history.json'}" in caplog.text
    assert dispatcher.cleanup(30) == 0


def test_update_rule_rejects_unknown_fields(dispatcher: NotificationDispatcher) -> None:
    with pytest.raises(MalformedInputError, match="Unknown rule fields for project.created: throttle"):
        dispatcher.update_rule("project", "created", {"throttle": 5, "priority": "warning"})
    assert dispatcher.get_rule("project", "created").priority == Priority.INFO


# --- Payload validation ---


class Opaque:
    pass


def test_unserializable_data_rejected_before_history(dispatcher: NotificationDispatcher) -> None:
    with pytest.raises(MalformedInputError, match="not JSON-serializable"):
        dispatcher.submit_event("info", "system", {"info": Opaque()})
    assert len(dispatcher.history) == 0

    n = dispatcher.submit_event("created", "project", {"projectName": "ok"})
    assert n.status == NotificationStatus.DELIVERED
    saved = json.loads(dispatcher.history.path.read_text())
    assert [r["id"] for r in saved] == [n.id]
    assert dispatcher.cleanup(30) == 0


# --- Channels ---


def test_channel_management(dispatcher: NotificationDispatcher) -> None:
    dispatcher.disable_channel("console")
    assert dispatcher.get_channel("console").enabled is False
    dispatcher.enable_channel("console")
    assert dispatcher.get_channel("console").enabled is True
    with pytest.raises(ChannelNotFoundError):
        dispatcher.enable_channel("pager")


def test_add_channel(dispatcher: NotificationDispatcher) -> None:
    recorder = RecordingChannel("pager")
    dispatcher.add_channel(recorder)
    dispatcher.add_rule("system", "page", {"priority": "error", "channels": ["pager"], "message": "x"})
    dispatcher.submit_event("page", "system", {})
    assert len(recorder.received) == 1


def test_default_channels(dispatcher: NotificationDispatcher) -> None:
    states = {c.channel_id: c.enabled for c in dispatcher.list_channels()}
    assert states == {
        "console": True,
        "log": True,
        "email": False,
        "slack": False,
        "webhook": False,
        "database": True,
    }


# --- History & analytics ---


def test_query_history_newest_first(dispatcher: NotificationDispatcher, clock: FakeClock) -> None:
    first = dispatcher.submit_event("created", "project", {"projectName": "A"})
    clock.advance(minutes=5)
    second = dispatcher.submit_event("created", "task", {"taskTitle": "B"})
    result = dispatcher.query_history()
    assert [n.id for n in result] == [second.id, first.id]


def test_query_history_filters(dispatcher: NotificationDispatcher, clock: FakeClock) -> None:
    dispatcher.submit_event("created", "project", {"projectName": "A"})
    clock.advance(hours=1)
    mid = dispatcher.submit_event("failed", "project", {"projectName": "B", "error": "x"})
    clock.advance(hours=1)
    dispatcher.submit_event("created", "task", {"taskTitle": "C"})

    assert len(dispatcher.query_history({"category": "project"})) == 2
    assert [n.id for n in dispatcher.query_history({"priority": "error"})] == [mid.id]
    window = HistoryFilter(start_date=mid.timestamp, end_date=mid.timestamp)
    assert [n.id for n in dispatcher.query_history(window)] == [mid.id]
    assert len(dispatcher.query_history({"startDate": mid.timestamp.isoformat()})) == 2


def test_stats_empty(dispatcher: NotificationDispatcher) -> None:
    stats = dispatcher.compute_stats("24h")
    assert stats.total == 0
    assert stats.success_rate == 0
    assert stats.failure_rate == 0


def test_stats_counts(config: SmartNotifyConfig, clock: FakeClock) -> None:
    dispatcher = NotificationDispatcher(
        config,
        channels={"console": RecordingChannel("console"), "broken": BrokenChannel()},
        clock=clock,
    )
    dispatcher.add_rule("system", "probe", {"priority": "error", "channels": ["broken"], "message": "p"})
    dispatcher.submit_event("created", "project", {"projectName": "A"})
    dispatcher.submit_event("completed", "task", {"taskTitle": "B"})
    dispatcher.submit_event("probe", "system", {})
    clock.advance(days=2)
    dispatcher.submit_event("created", "project", {"projectName": "C"})

    recent = dispatcher.compute_stats("24h")
    assert recent.total == 1

    stats = dispatcher.compute_stats("7d")
    assert stats.total == 4
    assert stats.by_priority == {"info": 2, "success": 1, "error": 1}
    assert stats.by_category == {"project": 2, "task": 1, "system": 1}
    assert stats.by_type == {"created": 2, "completed": 1, "probe": 1}
    assert stats.by_channel["console"] == 3
    assert stats.by_channel["broken"] == 1
    assert stats.success_rate == 0.75
    assert stats.failure_rate == 0.25
    assert dispatcher.compute_stats("all").total == 4
    assert dispatcher.compute_stats("bogus").total == len(dispatcher.history)


def test_query_history_ignores_unknown_keys(dispatcher: NotificationDispatcher) -> None:
    dispatcher.submit_event("created", "project", {"projectName": "A"})
    assert len(dispatcher.query_history({"category": "project", "limit": 5})) == 1


def test_cleanup_zero_days_empties_history(
    dispatcher: NotificationDispatcher, clock: FakeClock, config: SmartNotifyConfig,
) -> None:
    for i in range(3):
        dispatcher.submit_event("info", "system", {"info": i})
    clock.advance(seconds=1)
    removed = dispatcher.cleanup(0)
    assert removed == 3
    assert len(dispatcher.history) == 0
    assert json.loads((config.data_dir / "history.json").read_text()) == []


def test_cleanup_keeps_recent(dispatcher: NotificationDispatcher, clock: FakeClock) -> None:
    dispatcher.submit_event("created", "project", {"projectName": "old"})
    clock.advance(days=40)
    recent = dispatcher.submit_event("created", "project", {"projectName": "new"})
    assert dispatcher.cleanup(30) == 1
    assert [n.id for n in dispatcher.history] == [recent.id]


def test_export_json(dispatcher: NotificationDispatcher) -> None:
    dispatcher.submit_event("created", "project", {"projectName": "A"})
    document = json.loads(dispatcher.export("json"))
    assert set(document) == {"rules", "channels", "history"}
    assert document["channels"]["email"]["enabled"] is False
    assert document["history"][0]["message"] == "New project created: A"


def test_export_unsupported(dispatcher: NotificationDispatcher) -> None:
    with pytest.raises(ValueError, match="Unsupported format"):
        dispatcher.export("xml")


# --- Smart notifications ---


def test_smart_notification_near_deadline(dispatcher: NotificationDispatcher) -> None:
    context = {"project": {"deadline": (NOW - timedelta(hours=1)).isoformat()}}
    n = dispatcher.send_smart_notification(context, "Release {{version}} pending", {"version": "2.0"})
    assert n.category == "smart"
    assert n.priority == Priority.ERROR
    assert n.channels == ["console", "log", "email", "slack"]
    assert n.message == "Release 2.0 pending"
    assert n.options == {"urgency": "critical", "smart": True}
    assert n.status == NotificationStatus.DELIVERED
    with pytest.raises(RuleNotFoundError):
        dispatcher.get_rule("smart", "Release {{version}} pending")


def test_test_notification_returns_object(dispatcher: NotificationDispatcher) -> None:
    n = dispatcher.test_notification("workflow", "started", {"workflowName": "nightly"})
    assert n.message == "Workflow started: nightly"
    assert len(dispatcher.history) == 1
