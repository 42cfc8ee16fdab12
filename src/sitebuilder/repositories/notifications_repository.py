"""Notifications repository.

A per-company feed of read/unread notifications. Related entities are
referenced loosely (type + id as text), without foreign keys.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from sitebuilder.domain.models import NotificationInput
from sitebuilder.infra.time import utc_now
from sitebuilder.observability.logging import get_logger
from sitebuilder.observability.redaction import safe_log_context
from sitebuilder.schema.entities import metadata

logger = get_logger(__name__)

notifications = metadata.tables["Notifications"]

MAX_RECENT = 100


def _row_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row.Id,
        "company_id": row.CompanyId,
        "type": row.Type,
        "title": row.Title,
        "message": row.Message,
        "data": row.Data,
        "is_read": row.IsRead,
        "read_at": row.ReadAt,
        "related_entity_type": row.RelatedEntityType,
        "related_entity_id": row.RelatedEntityId,
        "created_at": row.CreatedAt,
    }


def create_notification(conn: Connection, data: NotificationInput) -> dict[str, Any]:
    """Add an unread notification to a company's feed.

    Args:
        conn: Connection in an open transaction.
        data: Notification contents.

    Returns:
        Dict with the created notification fields.
    """
    result = conn.execute(
        sa.insert(notifications).values(
            CompanyId=data.company_id,
            Type=data.type,
            Title=data.title,
            Message=data.message,
            Data=data.data,
            IsRead=False,
            RelatedEntityType=data.related_entity_type,
            RelatedEntityId=data.related_entity_id,
            CreatedAt=utc_now(),
        )
    )
    notification_id = result.inserted_primary_key[0]
    row = conn.execute(sa.select(notifications).where(notifications.c.Id == notification_id)).one()
    logger.info(
        "notification created",
        extra={"extra_fields": safe_log_context(company_id=data.company_id, type=data.type)},
    )
    return _row_to_dict(row)


def unread_count(conn: Connection, *, company_id: int) -> int:
    return conn.execute(
        sa.select(sa.func.count())
        .select_from(notifications)
        .where(notifications.c.CompanyId == company_id, notifications.c.IsRead.is_(False))
    ).scalar_one()


def recent_notifications(
    conn: Connection, *, company_id: int, limit: int = 20
) -> list[dict[str, Any]]:
    """Newest notifications first; limit is clamped to 1..100."""
    limit = max(1, min(limit, MAX_RECENT))
    rows = conn.execute(
        sa.select(notifications)
        .where(notifications.c.CompanyId == company_id)
        .order_by(notifications.c.CreatedAt.desc(), notifications.c.Id.desc())
        .limit(limit)
    ).all()
    return [_row_to_dict(r) for r in rows]


def mark_read(conn: Connection, *, company_id: int, notification_id: int) -> bool:
    """Mark one notification read.

    Returns:
        True if the notification exists for this company (already read or
        not), False otherwise. ReadAt is only set on the first read.
    """
    found = conn.execute(
        sa.select(notifications.c.Id).where(
            notifications.c.CompanyId == company_id,
            notifications.c.Id == notification_id,
        )
    ).first()
    if found is None:
        return False
    conn.execute(
        sa.update(notifications)
        .where(notifications.c.Id == notification_id, notifications.c.IsRead.is_(False))
        .values(IsRead=True, ReadAt=utc_now())
    )
    return True


def mark_all_read(conn: Connection, *, company_id: int) -> int:
    """Mark every unread notification of a company read. Returns how many."""
    result = conn.execute(
        sa.update(notifications)
        .where(notifications.c.CompanyId == company_id, notifications.c.IsRead.is_(False))
        .values(IsRead=True, ReadAt=utc_now())
    )
    return result.rowcount
