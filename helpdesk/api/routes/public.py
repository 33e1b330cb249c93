from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.api.schemas import AttachmentPayload, PublicTicketResponse, to_inputs
from helpdesk.dependencies.tickets import TicketServiceDep
from helpdesk.tickets.errors import TicketServiceError

router = APIRouter(prefix="/public/tickets", tags=["public"])


class LookupRequest(BaseModel):
    ticket_number: str = Field(..., min_length=1, max_length=32)
    email: str = Field(..., min_length=3, max_length=255)


class CustomerReplyRequest(BaseModel):
    ticket_number: str = Field(..., min_length=1, max_length=32)
    email: str = Field(..., min_length=3, max_length=255)
    message: str = Field(..., min_length=1)
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class CustomerReplyResponse(BaseModel):
    id: str
    message: str
    is_customer: bool


@router.post("/lookup", response_model=PublicTicketResponse)
async def lookup_ticket(payload: LookupRequest, service: TicketServiceDep) -> PublicTicketResponse:
    try:
        view = await service.lookup_public(payload.ticket_number, payload.email)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return PublicTicketResponse.model_validate(view)


@router.post(
    "/{ticket_id}/reply",
    response_model=CustomerReplyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def customer_reply(
    ticket_id: str,
    payload: CustomerReplyRequest,
    service: TicketServiceDep,
) -> CustomerReplyResponse:
    try:
        reply = await service.add_customer_reply(
            ticket_id,
            payload.ticket_number,
            payload.email,
            payload.message,
            to_inputs(payload.attachments),
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return CustomerReplyResponse(id=reply.id, message=reply.message, is_customer=reply.is_customer)
