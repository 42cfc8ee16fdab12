"""Input models for the data-access helpers.

Enumerated columns are plain varchar in the database; their allowed values
are enforced here, before a row is written.
"""

from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

ConversationStatus = Literal["active", "closed"]
ConversationPriority = Literal["normal", "high"]
MessageDirection = Literal["inbound", "outbound"]
MessageStatus = Literal["received", "queued", "sent", "delivered", "read", "failed"]
MessageType = Literal["text", "image", "audio", "video", "document", "location", "template"]
MessageSource = Literal["whatsapp", "widget"]


class ConversationInput(BaseModel):
    """A conversation is identified by (company_id, customer_phone, business_phone)."""

    company_id: int
    customer_phone: str = Field(min_length=1, max_length=20)
    business_phone: str = Field(min_length=1, max_length=20)
    customer_name: str | None = Field(default=None, max_length=100)
    customer_email: str | None = Field(default=None, max_length=255)
    customer_id: int | None = None
    status: ConversationStatus = "active"
    priority: ConversationPriority = "normal"
    source: MessageSource = "whatsapp"
    session_id: str | None = Field(default=None, max_length=100)


class MessageInput(BaseModel):
    company_id: int
    conversation_id: UUID
    provider_sid: str = Field(min_length=1, max_length=100)
    sender: str = Field(min_length=1, max_length=255)
    recipient: str = Field(min_length=1, max_length=255)
    body: str | None = Field(default=None, max_length=4096)
    message_type: MessageType = "text"
    direction: MessageDirection
    status: MessageStatus
    customer_id: int | None = None
    source: MessageSource = "whatsapp"
    session_id: str | None = Field(default=None, max_length=100)


class SnapshotInput(BaseModel):
    company_id: int
    page_id: int
    page_slug: str | None = Field(default=None, max_length=255)
    page_type: str = Field(min_length=1, max_length=50)
    snapshot_data: dict[str, Any]


WhatsAppProvider = Literal["Twilio", "GreenApi"]


class WhatsAppConfigInput(BaseModel):
    """WhatsApp channel settings for one company.

    Secrets left empty keep the stored secret and its mask.
    """

    company_id: int
    provider: WhatsAppProvider = "Twilio"
    whatsapp_phone_number: str | None = Field(default=None, max_length=20)
    twilio_account_sid: str | None = Field(default=None, max_length=500)
    twilio_auth_token: str | None = Field(default=None, max_length=500)
    green_api_instance_id: str | None = Field(default=None, max_length=100)
    green_api_token: str | None = Field(default=None, max_length=500)
    webhook_secret: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


class EmailSettingsInput(BaseModel):
    company_id: int
    provider: str = Field(default="Postmark", max_length=50)
    api_key: str | None = Field(default=None, max_length=1000)
    from_email: str | None = Field(default=None, max_length=255)
    from_name: str | None = Field(default=None, max_length=255)


class NotificationInput(BaseModel):
    company_id: int
    type: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=200)
    message: str | None = Field(default=None, max_length=1000)
    data: dict[str, Any] | None = None
    related_entity_type: str | None = Field(default=None, max_length=50)
    related_entity_id: str | None = Field(default=None, max_length=100)
