from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from helpdesk.dependencies import tickets as ticket_deps
from helpdesk.main import create_app
from helpdesk.tickets.errors import NotFoundError
from helpdesk.tickets.models import TicketAggregate, TicketNote, TicketReply
from helpdesk.tickets.public import build_public_view

from conftest import NOW, make_level, make_ticket


@pytest.fixture
def public_client():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_service
    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_lookup_hides_internal_records(public_client):
    client, service = public_client
    ticket = make_ticket(make_level("L1", 1))
    aggregate = TicketAggregate(
        ticket=ticket,
        replies=[
            TicketReply(
                id="reply-1",
                ticket_id=ticket.id,
                message="Sudah kami perbaiki",
                is_customer=False,
                created_at=NOW,
                author_id="agent-a",
            )
        ],
        notes=[
            TicketNote(id="note-1", ticket_id=ticket.id, content="rahasia", author_id="agent-a", created_at=NOW)
        ],
    )
    service.lookup_public = AsyncMock(return_value=build_public_view(aggregate))

    response = client.post(
        "/public/tickets/lookup",
        json={"ticket_number": "tkt-24120001", "email": "BUDI@example.com"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ticket_number"] == "TKT-24120001"
    assert body["level_code"] == "L1"
    assert "notes" not in body
    assert "author_id" not in body["replies"][0]
    assert "rahasia" not in response.text
    service.lookup_public.assert_awaited_with("tkt-24120001", "BUDI@example.com")


def test_lookup_mismatch_returns_404(public_client):
    client, service = public_client
    service.lookup_public = AsyncMock(side_effect=NotFoundError("Tiket tidak ditemukan"))

    response = client.post(
        "/public/tickets/lookup",
        json={"ticket_number": "TKT-24120001", "email": "other@example.com"},
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Tiket tidak ditemukan"


def test_customer_reply_is_created(public_client):
    client, service = public_client
    service.add_customer_reply = AsyncMock(
        return_value=TicketReply(
            id="reply-2",
            ticket_id="ticket-1",
            message="Masih error",
            is_customer=True,
            created_at=NOW,
        )
    )

    response = client.post(
        "/public/tickets/ticket-1/reply",
        json={"ticket_number": "TKT-24120001", "email": "budi@example.com", "message": "Masih error"},
    )

    assert response.status_code == 201
    assert response.json() == {"id": "reply-2", "message": "Masih error", "is_customer": True}
    args = service.add_customer_reply.await_args.args
    assert args[:4] == ("ticket-1", "TKT-24120001", "budi@example.com", "Masih error")


def test_customer_reply_requires_message(public_client):
    client, service = public_client

    response = client.post(
        "/public/tickets/ticket-1/reply",
        json={"ticket_number": "TKT-24120001", "email": "budi@example.com", "message": ""},
    )

    assert response.status_code == 422
    service.add_customer_reply.assert_not_called()
