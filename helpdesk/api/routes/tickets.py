from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.api.schemas import (
    ActivityResponse,
    AttachmentPayload,
    AttachmentResponse,
    NoteResponse,
    ReplyResponse,
    SLAResponse,
    TicketDetailResponse,
    TicketListResponse,
    TicketResponse,
    to_inputs,
)
from helpdesk.dependencies.auth import CurrentActor
from helpdesk.dependencies.tickets import TicketServiceDep
from helpdesk.tickets.errors import TicketServiceError
from helpdesk.tickets.lifecycle import UNSET, TicketDraft, TicketPatch
from helpdesk.tickets.models import Ticket
from helpdesk.tickets.repository import TicketFilters
from helpdesk.tickets.service import TicketDetail
from helpdesk.tickets.state import TicketPriority, TicketSource, TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    level_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str = Field(..., min_length=3, max_length=255)
    priority: TicketPriority = TicketPriority.NORMAL
    source: TicketSource = TicketSource.PHONE
    customer_phone: str | None = Field(default=None, max_length=50)
    customer_company: str | None = Field(default=None, max_length=255)
    assignee_id: str | None = None
    due_date: datetime | None = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class TicketUpdateRequest(BaseModel):
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    level_id: str | None = None
    category_id: str | None = None
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    customer_name: str | None = Field(default=None, min_length=1, max_length=255)
    customer_email: str | None = Field(default=None, min_length=3, max_length=255)
    customer_phone: str | None = Field(default=None, max_length=50)
    customer_company: str | None = Field(default=None, max_length=255)
    due_date: datetime | None = None

    def ensure_payload(self) -> None:
        if not self.model_fields_set:
            raise HTTPException(status_code=400, detail="No fields provided for update")

    def to_patch(self) -> TicketPatch:
        provided = self.model_fields_set
        return TicketPatch(
            status=self.status,
            priority=self.priority,
            level_id=self.level_id,
            category_id=self.category_id,
            subject=self.subject,
            description=self.description,
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone if "customer_phone" in provided else UNSET,
            customer_company=self.customer_company if "customer_company" in provided else UNSET,
            due_date=self.due_date if "due_date" in provided else UNSET,
        )


class ReplyRequest(BaseModel):
    message: str = Field(..., min_length=1)
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class NoteRequest(BaseModel):
    content: str = Field(..., min_length=1)
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class AttachmentsRequest(BaseModel):
    attachments: list[AttachmentPayload] = Field(..., min_length=1)


class AssignRequest(BaseModel):
    assignee_id: str | None = None
    note: str | None = Field(default=None, max_length=500)


class EscalateRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_detail_response(detail: TicketDetail) -> TicketDetailResponse:
    aggregate = detail.aggregate
    return TicketDetailResponse(
        ticket=_to_response(aggregate.ticket),
        replies=[ReplyResponse.model_validate(reply) for reply in aggregate.replies],
        notes=[NoteResponse.model_validate(note) for note in aggregate.notes],
        activities=[ActivityResponse.model_validate(entry) for entry in aggregate.activities],
        attachments=[AttachmentResponse.model_validate(item) for item in aggregate.attachments],
        sla=SLAResponse.model_validate(detail.sla),
    )


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    draft = TicketDraft(
        subject=payload.subject,
        description=payload.description,
        category_id=payload.category_id,
        level_id=payload.level_id,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        priority=payload.priority,
        source=payload.source,
        customer_phone=payload.customer_phone,
        customer_company=payload.customer_company,
        assignee_id=payload.assignee_id,
        due_date=payload.due_date,
        attachments=to_inputs(payload.attachments),
    )
    try:
        aggregate = await service.create_ticket(actor, draft)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(aggregate.ticket)


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    service: TicketServiceDep,
    actor: CurrentActor,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = Query(default=None),
    level_id: str | None = Query(default=None, alias="level"),
    category_id: str | None = Query(default=None, alias="category"),
    assignee: str | None = Query(default=None),
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> TicketListResponse:
    filters = TicketFilters(
        status=status_filter,
        priority=priority,
        level_id=level_id,
        category_id=category_id,
        search=search,
        page=page,
        limit=limit,
    )
    result = await service.list_tickets(actor, filters, assignee=assignee)
    return TicketListResponse(
        items=[_to_response(ticket) for ticket in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
    )


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketDetailResponse:
    try:
        detail = await service.get_ticket(actor, ticket_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_detail_response(detail)


@router.put("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    payload.ensure_payload()
    try:
        ticket = await service.update_ticket(actor, ticket_id, payload.to_patch())
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/reply", response_model=ReplyResponse, status_code=status.HTTP_201_CREATED)
async def add_reply(
    ticket_id: str,
    payload: ReplyRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> ReplyResponse:
    try:
        reply = await service.add_reply(actor, ticket_id, payload.message, to_inputs(payload.attachments))
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return ReplyResponse.model_validate(reply)


@router.post("/{ticket_id}/note", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_note(
    ticket_id: str,
    payload: NoteRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> NoteResponse:
    try:
        note = await service.add_note(actor, ticket_id, payload.content, to_inputs(payload.attachments))
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return NoteResponse.model_validate(note)


@router.post(
    "/{ticket_id}/attachments",
    response_model=list[AttachmentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_attachments(
    ticket_id: str,
    payload: AttachmentsRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> list[AttachmentResponse]:
    try:
        attachments = await service.add_attachments(actor, ticket_id, to_inputs(payload.attachments))
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return [AttachmentResponse.model_validate(item) for item in attachments]


@router.post("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: AssignRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    try:
        ticket = await service.assign(actor, ticket_id, payload.assignee_id, note=payload.note)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/escalate", response_model=TicketResponse)
async def escalate_ticket(
    ticket_id: str,
    payload: EscalateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    try:
        ticket = await service.escalate(actor, ticket_id, reason=payload.reason)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(ticket)


@router.get("/{ticket_id}/activity", response_model=list[ActivityResponse])
async def get_ticket_activity(
    ticket_id: str,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> list[ActivityResponse]:
    try:
        entries = await service.get_activity(actor, ticket_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return [ActivityResponse.model_validate(entry) for entry in entries]
