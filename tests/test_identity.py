import uuid
from datetime import datetime

import psutil

from code_time_tracker import host
from code_time_tracker.events import EventBus, TrackerEvent
from code_time_tracker.user import resolve_user_id


class TestResolveUserId:
    def test_new_id_is_generated_and_stored(self, conn, tmp_path):
        id_path = tmp_path / "user_id"
        user_id = resolve_user_id(conn, id_path)
        assert uuid.UUID(user_id)
        assert id_path.read_text(encoding="utf-8") == user_id
        assert resolve_user_id(conn, id_path) == user_id

    def test_local_file_is_reused(self, conn, tmp_path):
        id_path = tmp_path / "user_id"
        id_path.write_text("local-user\n", encoding="utf-8")
        assert resolve_user_id(conn, id_path) == "local-user"

    def test_database_owner_wins_over_local_file(self, conn, add_session, tmp_path):
        add_session(datetime(2024, 1, 1, 9), minutes=5, user_id="db-user")
        id_path = tmp_path / "user_id"
        id_path.write_text("local-user", encoding="utf-8")
        assert resolve_user_id(conn, id_path) == "db-user"
        assert id_path.read_text(encoding="utf-8") == "db-user"


class TestHost:
    def test_platform_string(self):
        assert host.current_platform()

    def test_parent_process_name(self):
        assert host.detect_host_application() == psutil.Process().parent().name()

    def test_unknown_when_process_lookup_fails(self, monkeypatch):
        def deny(*args, **kwargs):
            raise psutil.AccessDenied()

        monkeypatch.setattr(host.psutil, "Process", deny)
        assert host.detect_host_application() == "unknown"


class TestEventBus:
    def test_publish_reaches_subscribers_in_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(TrackerEvent.PERIOD_RESET, lambda period: seen.append(("a", period)))
        bus.subscribe(TrackerEvent.PERIOD_RESET, lambda period: seen.append(("b", period)))
        bus.publish(TrackerEvent.PERIOD_RESET, "today")
        assert seen == [("a", "today"), ("b", "today")]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(TrackerEvent.ACTIVITY_STARTED, lambda: seen.append(1))
        unsubscribe()
        bus.publish(TrackerEvent.ACTIVITY_STARTED)
        assert seen == []

    def test_failing_listener_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken():
            raise RuntimeError("boom")

        bus.subscribe(TrackerEvent.ACTIVITY_STOPPED, broken)
        bus.subscribe(TrackerEvent.ACTIVITY_STOPPED, lambda: seen.append(1))
        bus.publish(TrackerEvent.ACTIVITY_STOPPED)
        assert seen == [1]
