import asyncio
import inspect

from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

import main
from services import analytics


def test_root_reports_online(client):
    r = client.get("/")

    assert r.status_code == 200
    assert r.json() == {"status": "BZ Cart API is online and operational."}


def test_shutdown_cancels_enrichment_replay(db, monkeypatch):
    started = []

    async def slow_replay(database, limit=500):
        started.append(database)
        await asyncio.sleep(60)

    monkeypatch.setattr(main, "ping", lambda: True)
    monkeypatch.setattr(main, "ensure_indexes", lambda database: None)
    monkeypatch.setattr(main, "get_db", lambda: db)
    monkeypatch.setattr(analytics, "replay_pending", slow_replay)

    with TestClient(main.app) as client:
        client.get("/")
        replay = main.app.state.replay
        assert not replay.done()

    assert started == [db]
    assert replay.cancelled()


def test_only_offloading_handlers_are_coroutines():
    # these hand pymongo and bcrypt work to run_in_threadpool
    offloading = {"register_user", "login_user", "register_admin", "login_admin", "create_admin", "create_order"}
    coroutines = {
        route.endpoint.__name__
        for route in main.app.routes
        if isinstance(route, APIRoute) and inspect.iscoroutinefunction(route.endpoint)
    }

    assert coroutines == offloading
