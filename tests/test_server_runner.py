import webbrowser

import pytest

from code_time_tracker.config import TrackerSettings
from code_time_tracker.server_runner import build_server, open_docs_when_started


@pytest.fixture
def server(db_path):
    return build_server(port=9876, db_path=db_path, settings=TrackerSettings())


@pytest.fixture
def opened(monkeypatch):
    urls = []
    monkeypatch.setattr(webbrowser, "open", lambda url: urls.append(url) or True)
    return urls


class TestServerRunner:
    def test_build_server_binds_config(self, server):
        assert server.config.host == "127.0.0.1"
        assert server.config.port == 9876
        assert server.started is False

    def test_docs_open_once_started(self, server, opened):
        server.started = True
        assert open_docs_when_started(server, "http://127.0.0.1:9876/docs") is True
        assert opened == ["http://127.0.0.1:9876/docs"]

    def test_docs_skipped_when_server_exits(self, server, opened):
        server.should_exit = True
        assert open_docs_when_started(server, "http://x/docs", poll_seconds=0.01) is False
        assert opened == []

    def test_docs_skipped_after_timeout(self, server, opened):
        assert open_docs_when_started(server, "http://x/docs", poll_seconds=0.01, timeout=0.05) is False
        assert opened == []
