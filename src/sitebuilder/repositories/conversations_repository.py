"""WhatsApp conversations repository.

A conversation is identified per tenant by the (CompanyId, CustomerPhone,
BusinessPhone) triple, which a unique index enforces.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from sitebuilder.domain.models import ConversationInput
from sitebuilder.infra.time import utc_now
from sitebuilder.observability.logging import get_logger
from sitebuilder.observability.redaction import safe_log_context
from sitebuilder.schema.entities import metadata

logger = get_logger(__name__)

conversations = metadata.tables["WhatsAppConversations"]


def _row_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row.Id,
        "company_id": row.CompanyId,
        "customer_phone": row.CustomerPhone,
        "business_phone": row.BusinessPhone,
        "customer_name": row.CustomerName,
        "customer_email": row.CustomerEmail,
        "customer_id": row.CustomerId,
        "status": row.Status,
        "priority": row.Priority,
        "source": row.Source,
        "session_id": row.SessionId,
        "unread_count": row.UnreadCount,
        "message_count": row.MessageCount,
    }


def get_conversation(
    conn: Connection, *, company_id: int, conversation_id: UUID
) -> dict[str, Any] | None:
    row = conn.execute(
        sa.select(conversations).where(
            conversations.c.CompanyId == company_id,
            conversations.c.Id == conversation_id,
        )
    ).first()
    return _row_to_dict(row) if row else None


def upsert_conversation(conn: Connection, data: ConversationInput) -> dict[str, Any]:
    """Find the conversation for the phone pair or start a new one.

    An existing conversation keeps its status and counters; contact details
    given here fill in or replace the stored ones.

    Args:
        conn: Connection in an open transaction.
        data: Conversation identity and contact details.

    Returns:
        Conversation dict with an extra "created" flag.
    """
    now = utc_now()
    key = (
        conversations.c.CompanyId == data.company_id,
        conversations.c.CustomerPhone == data.customer_phone,
        conversations.c.BusinessPhone == data.business_phone,
    )
    existing = conn.execute(sa.select(conversations).where(*key)).first()

    if existing is None:
        conn.execute(
            sa.insert(conversations).values(
                CompanyId=data.company_id,
                CustomerPhone=data.customer_phone,
                BusinessPhone=data.business_phone,
                CustomerName=data.customer_name,
                CustomerEmail=data.customer_email,
                CustomerId=data.customer_id,
                Status=data.status,
                Priority=data.priority,
                Source=data.source,
                SessionId=data.session_id,
                StartedAt=now,
                CreatedAt=now,
                UpdatedAt=now,
            )
        )
        created = True
        logger.info(
            "conversation started",
            extra={
                "extra_fields": safe_log_context(
                    company_id=data.company_id,
                    customer_phone=data.customer_phone,
                    source=data.source,
                )
            },
        )
    else:
        changes = {
            column: value
            for column, value in (
                ("CustomerName", data.customer_name),
                ("CustomerEmail", data.customer_email),
                ("CustomerId", data.customer_id),
                ("SessionId", data.session_id),
            )
            if value is not None
        }
        if changes:
            conn.execute(
                sa.update(conversations).where(*key).values(UpdatedAt=now, **changes)
            )
        created = False

    row = conn.execute(sa.select(conversations).where(*key)).one()
    return {**_row_to_dict(row), "created": created}
