from dataclasses import replace
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from helpdesk.main import create_app
from helpdesk.tickets.models import Role
from helpdesk.tickets.reference import hash_token

from conftest import make_actor, make_level


def _app_with_repository(actor):
    app = create_app()
    repository = AsyncMock()
    repository.get_actor_by_token_hash = AsyncMock(return_value=actor)
    app.state.ticket_repository = repository
    return app, repository


def test_ping_is_public():
    client = TestClient(create_app())

    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_secure_ping_resolves_bearer_token():
    actor = make_actor(make_level("L1", 1), actor_id="agent-a", role=Role.AGENT)
    app, repository = _app_with_repository(actor)
    client = TestClient(app)

    response = client.get("/ping/secure", headers={"Authorization": "Bearer token-123"})

    assert response.status_code == 200
    repository.get_actor_by_token_hash.assert_awaited_with(hash_token("token-123"))


def test_unknown_token_is_rejected():
    app, _ = _app_with_repository(None)
    client = TestClient(app)

    response = client.get("/ping/secure", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


def test_inactive_actor_is_rejected():
    actor = replace(make_actor(make_level("L1", 1)), is_active=False)
    app, _ = _app_with_repository(actor)
    client = TestClient(app)

    response = client.get("/ping/secure", headers={"Authorization": "Bearer token-123"})

    assert response.status_code == 401


def test_missing_repository_returns_503():
    client = TestClient(create_app())

    response = client.get("/ping/secure", headers={"Authorization": "Bearer token-123"})

    assert response.status_code == 503
