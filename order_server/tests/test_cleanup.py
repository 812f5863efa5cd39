"""Tests for the periodic cleanup task and the app lifespan that runs it."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from order_server import main as main_module
from order_server.cleanup import run_cleanup_loop, start_cleanup_task, stop_cleanup_task
from order_server.config import ConfigError, Settings
from order_server.flow_store import FLOW_TTL
from order_server.identity import Identity
from order_server.main import create_app


def test_cleanup_task_sweeps_periodically(oauth, clock):
    oauth.store_pending("stale", "v", "n")
    sid = oauth.create_session(Identity(id="u1"), {})
    clock.advance(FLOW_TTL + 3600)

    async def scenario():
        task = start_cleanup_task(oauth, interval=0.01)
        await asyncio.sleep(0.1)
        await stop_cleanup_task(task)
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    assert len(oauth.pending) == 0
    assert oauth.session_snapshot(sid) is None


def test_cleanup_loop_survives_failed_sweep():
    class FlakyOAuth:
        calls = 0

        def cleanup_expired(self):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")

    flaky = FlakyOAuth()

    async def scenario():
        task = asyncio.create_task(run_cleanup_loop(flaky, interval=0.01))
        await asyncio.sleep(0.1)
        await stop_cleanup_task(task)

    asyncio.run(scenario())
    assert flaky.calls >= 2


def test_lifespan_with_injected_client_keeps_it_open(oauth, stub_provider):
    app = create_app(oauth)
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    assert app.state.oauth is oauth
    assert stub_provider.closed is False


def test_lifespan_builds_and_closes_client(monkeypatch, oauth, stub_provider):
    monkeypatch.setattr(main_module, "build_oauth_client", lambda settings: oauth)
    app = create_app()
    with TestClient(app) as client:
        assert app.state.oauth is oauth
        assert client.get("/auth/login", follow_redirects=False).status_code == 307
    assert stub_provider.closed is True
    assert app.state.oauth is None


def test_startup_fails_on_missing_configuration(monkeypatch):
    monkeypatch.delenv("OIDC_ISSUER_URL", raising=False)
    monkeypatch.delenv("OAUTH_CLIENT_ID", raising=False)
    with pytest.raises(ConfigError):
        with TestClient(create_app()):
            pass


def test_cors_allows_configured_origin_with_credentials(oauth):
    client = TestClient(create_app(oauth, allowed_origins=["http://localhost:5173"]))
    r = client.options(
        "/auth/me",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
    )
    assert r.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert r.headers["access-control-allow-credentials"] == "true"


def test_app_from_env_loads_settings_once(monkeypatch, oauth, oauth_settings, session_settings):
    settings = Settings(
        oauth=oauth_settings,
        session=session_settings,
        allowed_origins=("http://localhost:5173",),
        cleanup_interval=60.0,
    )
    loads = []
    built_with = []

    def fake_load_settings():
        loads.append(1)
        return settings

    def fake_build(s):
        built_with.append(s)
        return oauth

    monkeypatch.setattr(main_module, "load_settings", fake_load_settings)
    monkeypatch.setattr(main_module, "build_oauth_client", fake_build)

    app = main_module.app_from_env()
    assert app.state.cleanup_interval == 60.0
    with TestClient(app) as client:
        r = client.options(
            "/auth/me",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
        )
        assert r.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert built_with == [settings]
    assert len(loads) == 1
