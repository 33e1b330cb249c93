"""Request and response models shared by the routers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.tickets.models import AttachmentInput
from helpdesk.tickets.sla import SLABucket
from helpdesk.tickets.state import ActivityType, TicketPriority, TicketSource, TicketStatus


class AttachmentPayload(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_key: str = Field(..., min_length=1, max_length=512)
    file_url: str = Field(..., min_length=1, max_length=1024)
    file_size: int = Field(..., ge=0)
    file_type: str = Field(..., min_length=1, max_length=100)

    def to_input(self) -> AttachmentInput:
        return AttachmentInput(
            file_name=self.file_name,
            file_key=self.file_key,
            file_url=self.file_url,
            file_size=self.file_size,
            file_type=self.file_type,
        )


def to_inputs(payloads: list[AttachmentPayload]) -> list[AttachmentInput]:
    return [payload.to_input() for payload in payloads]


class CapabilitiesModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    can_view_own_tickets: bool = True
    can_view_team_tickets: bool = False
    can_view_all_tickets: bool = False
    can_create_ticket: bool = True
    can_assign_ticket: bool = False
    can_escalate_ticket: bool = False
    can_resolve_ticket: bool = True
    can_close_ticket: bool = False


class SupportLevelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    name: str
    sort_order: int
    is_active: bool
    description: str | None
    capabilities: CapabilitiesModel


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    email: str
    phone: str | None
    company: str | None


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_number: str
    subject: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    source: TicketSource
    level: SupportLevelResponse
    category_id: str
    customer: CustomerResponse
    created_by_id: str
    assignee_id: str | None
    due_date: datetime | None
    resolved_at: datetime | None
    closed_at: datetime | None
    version: int
    created_at: datetime
    updated_at: datetime


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_key: str
    file_url: str
    file_size: int
    file_type: str
    uploaded_by_id: str | None
    created_at: datetime


class ReplyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    message: str
    is_customer: bool
    author_id: str | None
    created_at: datetime
    attachments: list[AttachmentResponse]


class NoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    content: str
    author_id: str
    created_at: datetime
    attachments: list[AttachmentResponse]


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    author_id: str | None
    type: ActivityType
    description: str
    old_value: str | None
    new_value: str | None
    created_at: datetime


class SLAResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bucket: SLABucket
    elapsed_hours: int
    target_hours: int
    warning_hours: int
    critical_hours: int
    progress_percent: float
    uses_fallback_target: bool


class TicketDetailResponse(BaseModel):
    ticket: TicketResponse
    replies: list[ReplyResponse]
    notes: list[NoteResponse]
    activities: list[ActivityResponse]
    attachments: list[AttachmentResponse]
    sla: SLAResponse


class TicketListResponse(BaseModel):
    items: list[TicketResponse]
    total: int
    page: int
    limit: int
    pages: int


class PublicAttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_url: str
    file_size: int
    file_type: str
    created_at: datetime


class PublicReplyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    message: str
    is_customer: bool
    created_at: datetime
    attachments: list[PublicAttachmentResponse]


class PublicActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: ActivityType
    description: str
    created_at: datetime


class PublicTicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_number: str
    subject: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    level_code: str
    level_name: str
    customer_name: str
    customer_email: str
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None
    closed_at: datetime | None
    replies: list[PublicReplyResponse]
    attachments: list[PublicAttachmentResponse]
    activities: list[PublicActivityResponse]
