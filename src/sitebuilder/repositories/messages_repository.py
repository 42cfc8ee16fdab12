"""WhatsApp messages repository.

Deleting a message is a soft delete: the row stays (with its conversation
link and provider SID) and is flagged IsDeleted with who and when.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from sitebuilder.domain.models import MessageInput
from sitebuilder.infra.time import utc_now
from sitebuilder.observability.logging import get_logger
from sitebuilder.schema.entities import metadata

logger = get_logger(__name__)

messages = metadata.tables["WhatsAppMessages"]


def _row_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row.Id,
        "company_id": row.CompanyId,
        "conversation_id": row.ConversationId,
        "provider_sid": row.TwilioSid,
        "sender": row.From,
        "recipient": row.To,
        "body": row.Body,
        "message_type": row.MessageType,
        "direction": row.Direction,
        "status": row.Status,
        "source": row.Source,
        "timestamp": row.Timestamp,
        "is_deleted": row.IsDeleted,
        "deleted_at": row.DeletedAt,
        "deleted_by_user_id": row.DeletedByUserId,
    }


def insert_message(
    conn: Connection,
    data: MessageInput,
    *,
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    """Insert a message.

    Args:
        conn: Connection in an open transaction.
        data: Message contents.
        timestamp: Provider timestamp (defaults to now).

    Returns:
        Dict with the created message fields.
    """
    now = utc_now()
    result = conn.execute(
        sa.insert(messages).values(
            CompanyId=data.company_id,
            ConversationId=data.conversation_id,
            CustomerId=data.customer_id,
            TwilioSid=data.provider_sid,
            From=data.sender,
            To=data.recipient,
            Body=data.body,
            MessageType=data.message_type,
            Direction=data.direction,
            Status=data.status,
            Source=data.source,
            SessionId=data.session_id,
            Timestamp=timestamp or now,
            CreatedAt=now,
            UpdatedAt=now,
        )
    )
    message_id = result.inserted_primary_key[0]
    row = conn.execute(sa.select(messages).where(messages.c.Id == message_id)).one()
    return _row_to_dict(row)


def soft_delete_message(
    conn: Connection,
    *,
    company_id: int,
    message_id: UUID,
    deleted_by_user_id: int | None,
) -> bool:
    """Flag a message as deleted.

    Args:
        conn: Connection in an open transaction.
        company_id: Company identifier (tenant isolation).
        message_id: Message UUID.
        deleted_by_user_id: User performing the delete.

    Returns:
        True if the message was deleted now, False if it does not exist for
        this company or was already deleted.
    """
    now = utc_now()
    result = conn.execute(
        sa.update(messages)
        .where(
            messages.c.CompanyId == company_id,
            messages.c.Id == message_id,
            messages.c.IsDeleted.is_(False),
        )
        .values(
            IsDeleted=True,
            DeletedAt=now,
            DeletedByUserId=deleted_by_user_id,
            UpdatedAt=now,
        )
    )
    deleted = result.rowcount == 1
    logger.info(
        "message soft delete",
        extra={"extra_fields": {"message_id": str(message_id), "deleted": deleted}},
    )
    return deleted


def list_messages(
    conn: Connection,
    *,
    company_id: int,
    conversation_id: UUID,
    include_deleted: bool = False,
) -> list[dict[str, Any]]:
    """List a conversation's messages, oldest first.

    Args:
        conn: Database connection.
        company_id: Company identifier (tenant isolation).
        conversation_id: Conversation UUID.
        include_deleted: Include soft-deleted messages.

    Returns:
        List of message dicts.
    """
    query = sa.select(messages).where(
        messages.c.CompanyId == company_id,
        messages.c.ConversationId == conversation_id,
    )
    if not include_deleted:
        query = query.where(messages.c.IsDeleted.is_(False))
    rows = conn.execute(query.order_by(messages.c.Timestamp, messages.c.CreatedAt)).all()
    return [_row_to_dict(r) for r in rows]
